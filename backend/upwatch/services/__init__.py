"""Services for checking, scheduling, and alerting."""
from .checker import CheckerService
from .scheduler import SchedulerService, InFlightRegistry
from .alerter import AlerterService
from .agents import AgentService
from .monitor_runner import MonitorCheckService

__all__ = [
    "CheckerService",
    "SchedulerService",
    "InFlightRegistry",
    "AlerterService",
    "AgentService",
    "MonitorCheckService",
]
