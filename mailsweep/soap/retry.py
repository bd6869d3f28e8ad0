"""Retry policy wrapped around every SOAP call."""

import logging
import time
import xml.etree.ElementTree as ET
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from mailsweep.errors import RpcError, SoapFault, TransportError
from mailsweep.soap.types import SoapRequest

logger = logging.getLogger(__name__)


class Channel(Protocol):
    """Anything that can send one SoapRequest, e.g. SoapChannel."""

    def call(self, request: SoapRequest) -> ET.Element:
        ...


class ErrorMode(str, Enum):
    """What to do once a request has definitively failed."""

    RAISE = "raise"    # abort the whole run
    REPORT = "report"  # log a warning and hand the caller None


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retries with a linear backoff: 1, 2, ... ``base_delay`` units.

    ``sleep`` is injectable so tests can run against a fake clock.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False)

    def delay(self, attempt: int) -> float:
        """Seconds to wait after failed attempt number ``attempt`` (1-based)."""
        return attempt * self.base_delay


class RetryingClient:
    """Sends requests through a channel, retrying transport failures.

    A SoapFault is a valid answer from the server and is surfaced on the
    first occurrence.  Transport and malformed-response errors are retried
    until the policy runs out, then raised as RpcError (RAISE mode) or
    logged and turned into ``None`` (REPORT mode).
    """

    def __init__(
        self,
        channel: Channel,
        policy: RetryPolicy | None = None,
        error_mode: ErrorMode = ErrorMode.RAISE,
    ) -> None:
        self._channel = channel
        self._policy = policy or RetryPolicy()
        self._error_mode = error_mode

    @property
    def error_mode(self) -> ErrorMode:
        return self._error_mode

    def send(self, request: SoapRequest) -> ET.Element | None:
        """Send ``request`` and return the response element.

        Returns None only in REPORT mode, after a fault or exhausted retries.
        """
        attempts = self._policy.max_attempts
        last_error: TransportError | None = None

        for attempt in range(1, attempts + 1):
            try:
                return self._channel.call(request)
            except SoapFault as fault:
                if self._error_mode is ErrorMode.REPORT:
                    logger.warning("%s returned a fault: %s", request.name, fault)
                    return None
                raise
            except TransportError as exc:
                last_error = exc
                if attempt < attempts:
                    delay = self._policy.delay(attempt)
                    logger.warning(
                        "%s failed (attempt %d/%d): %s; retrying in %gs",
                        request.name,
                        attempt,
                        attempts,
                        exc,
                        delay,
                    )
                    self._policy.sleep(delay)

        error = RpcError(request.name, attempts, last_error)
        if self._error_mode is ErrorMode.REPORT:
            logger.warning("%s", error)
            return None
        raise error from last_error
