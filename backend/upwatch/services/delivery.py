"""Delivery outcome shared by all channel transports."""
from dataclasses import dataclass
from typing import Optional


@dataclass
class DeliveryResult:
    """Outcome of handing one message to one transport."""
    success: bool
    error: Optional[str] = None
