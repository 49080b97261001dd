"""Checker service - probes HTTP endpoints and matches expected status codes."""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional

import httpx

from ..config import settings
from ..models import Monitor

logger = logging.getLogger(__name__)

# Methods that never carry a request body
BODYLESS_METHODS = ("GET", "HEAD")


@dataclass
class ProbeResult:
    """Outcome of a single HTTP probe."""
    reached: bool
    elapsed_ms: int
    status_code: Optional[int] = None
    error: Optional[str] = None


def status_matches(status_code: Optional[int], expected_status: Optional[int]) -> bool:
    """Match a response code against a monitor's expected status.

    A single digit 1-5 matches any code in that hundred-class (2 -> 2xx);
    any other value requires exact equality.
    """
    if status_code is None or expected_status is None:
        return False
    if 1 <= expected_status <= 5:
        return status_code // 100 == expected_status
    return status_code == expected_status


def describe_expected(expected_status: Optional[int]) -> str:
    """Human-readable expected status, e.g. '2xx' or '200'."""
    if expected_status is None:
        return "unknown"
    if 1 <= expected_status <= 5:
        return f"{expected_status}xx"
    return str(expected_status)


class CheckerService:
    """Service for probing monitored HTTP endpoints."""

    def __init__(
        self,
        default_timeout: int = settings.default_probe_timeout,
        verify: bool = settings.verify_ssl,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.default_timeout = default_timeout
        self.verify = verify
        self.transport = transport

    async def probe(self, monitor: Monitor) -> ProbeResult:
        """Issue one request for a monitor.

        The whole request is bounded by the monitor's timeout and aborted when it
        expires. Never raises; transport failures are returned in ``error``.
        """
        method = (monitor.method or "GET").upper()
        timeout = monitor.timeout or self.default_timeout
        start = time.monotonic()

        try:
            headers = monitor.header_map()
        except ValueError as e:
            return ProbeResult(reached=False, elapsed_ms=0, error=f"Invalid headers: {e}")

        content = None
        if method not in BODYLESS_METHODS:
            content = monitor.body or ""

        try:
            async with httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=True,
                verify=self.verify,
                transport=self.transport,
            ) as client:
                response = await asyncio.wait_for(
                    client.request(method, monitor.url, headers=headers, content=content),
                    timeout=timeout,
                )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            return ProbeResult(
                reached=False,
                elapsed_ms=self._elapsed(start),
                error=f"Request timeout after {timeout}s",
            )
        except httpx.ConnectError as e:
            return ProbeResult(
                reached=False,
                elapsed_ms=self._elapsed(start),
                error=f"Connection error: {e}",
            )
        except Exception as e:
            logger.debug(f"Probe of {monitor.url} failed: {type(e).__name__}: {e}")
            return ProbeResult(
                reached=False,
                elapsed_ms=self._elapsed(start),
                error=str(e) or type(e).__name__,
            )

        return ProbeResult(
            reached=True,
            elapsed_ms=self._elapsed(start),
            status_code=response.status_code,
        )

    @staticmethod
    def _elapsed(start: float) -> int:
        return int((time.monotonic() - start) * 1000)


# Global instance
checker_service = CheckerService()
