"""
Reentrancy Guard and Abort Flag.

The engine is single-threaded and cooperative:
- only one public operation may be active at a time; a nested or
  overlapping call is rejected immediately with EngineBusyError
- a caller may request an abort; long scans poll the flag between
  alternatives and stop with UserAbortError
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

import structlog

from beliefcast.exceptions import EngineBusyError, UserAbortError

logger = structlog.get_logger(__name__)


@dataclass
class GuardStats:
    """Counters for the guard."""

    entered_calls: int = 0
    rejected_calls: int = 0


class ReentrancyGuard:
    """Admits one operation at a time, rejecting the rest."""

    def __init__(self):
        self._active: Optional[str] = None
        self._stats = GuardStats()

    @property
    def active(self) -> Optional[str]:
        """Name of the operation holding the guard."""
        return self._active

    @property
    def stats(self) -> GuardStats:
        return self._stats

    @contextmanager
    def enter(self, operation: str) -> Iterator[None]:
        if self._active is not None:
            self._stats.rejected_calls += 1
            logger.warning("engine_busy", requested=operation, active=self._active)
            raise EngineBusyError(operation, self._active)
        self._active = operation
        self._stats.entered_calls += 1
        try:
            yield
        finally:
            self._active = None


class AbortFlag:
    """Abort request polled at alternative boundaries."""

    def __init__(self):
        self._requested = False
        self._operation = "idle"

    @property
    def requested(self) -> bool:
        return self._requested

    def arm(self, operation: str) -> None:
        """Clear any stale request at the start of a top-level call."""
        self._requested = False
        self._operation = operation

    def request(self) -> None:
        self._requested = True

    def check(self) -> None:
        if self._requested:
            self._requested = False
            logger.info("operation_aborted", operation=self._operation)
            raise UserAbortError(self._operation)


# One guard per process unless an engine is given its own
process_guard = ReentrancyGuard()
