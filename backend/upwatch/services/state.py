"""Monitor state machine - derives a monitor's status from a probe outcome."""
from typing import Optional, Tuple

from ..models.monitor import STATUS_PENDING, STATUS_UP, STATUS_DOWN, STATUS_ERROR
from .checker import ProbeResult, status_matches, describe_expected

__all__ = [
    "STATUS_PENDING",
    "STATUS_UP",
    "STATUS_DOWN",
    "STATUS_ERROR",
    "classify",
    "is_transition",
]


def classify(probe: ProbeResult, expected_status: Optional[int]) -> Tuple[str, Optional[str]]:
    """Return (status, error) for a probe.

    Only ``up`` or ``down`` come out of here; ``error`` is reserved for failures
    of the check pipeline itself.
    """
    if not probe.reached:
        return STATUS_DOWN, probe.error
    if status_matches(probe.status_code, expected_status):
        return STATUS_UP, None
    return STATUS_DOWN, (
        f"Unexpected status code: {probe.status_code}, expected {describe_expected(expected_status)}"
    )


def is_transition(previous: Optional[str], new: str) -> bool:
    """True when the status differs from the one recorded before the check."""
    return previous != new
