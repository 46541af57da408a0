"""
Clock -- injectable time source.

Responsibility:
    Services stamp audit columns (created/updated) and posting times
    through a Clock so tests can pin "now".

Architecture position:
    Kernel > Domain.  SystemClock is the only place that reads wall time.
"""

from abc import ABC, abstractmethod
from datetime import UTC, datetime, timedelta


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        Services that need the current time receive a Clock by constructor
        injection and never call ``datetime.now()`` themselves.
    """

    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware UTC."""
        ...


class SystemClock(Clock):
    """Production clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        ``now()`` returns the same value until ``advance()`` or
        ``set_time()`` is called.
    """

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(2025, 1, 1, 12, 0, 0, tzinfo=UTC)
        self._offset = timedelta(0)

    def now(self) -> datetime:
        return self._fixed_time + self._offset

    def set_time(self, time: datetime) -> None:
        self._fixed_time = time
        self._offset = timedelta(0)

    def advance(self, seconds: int = 1) -> None:
        self._offset += timedelta(seconds=seconds)
