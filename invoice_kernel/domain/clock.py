"""
Clock -- Deterministic time abstraction.

Responsibility:
    Provides an injectable clock so that services never call ``time.time()``
    directly.  Ledger timestamps (due dates, payment dates, application dates,
    rate effective times) are integer epoch seconds.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O (except SystemClock,
    which is the one sanctioned I/O boundary for time).

Audit relevance:
    Accrual depends on elapsed time.  A DeterministicClock makes historical
    recomputation and tests reproducible.
"""

import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """
    Abstract clock interface.

    Contract:
        All services that need current time receive a Clock instance via
        constructor injection.

    Guarantees:
        - ``now()`` returns integer epoch seconds.
    """

    @abstractmethod
    def now(self) -> int:
        """Current time in epoch seconds."""
        ...


class SystemClock(Clock):
    """Production clock that returns actual system time."""

    def now(self) -> int:
        return int(time.time())


class DeterministicClock(Clock):
    """
    Test clock with controlled time.

    Guarantees:
        - ``now()`` returns the same value on repeated calls until
          ``advance()`` or ``set_time()`` is called.
    """

    DEFAULT_EPOCH = 1_704_110_400  # 2024-01-01T12:00:00Z

    def __init__(self, fixed_time: int | None = None):
        self._fixed_time = self.DEFAULT_EPOCH if fixed_time is None else int(fixed_time)
        self._advance_seconds = 0

    def now(self) -> int:
        return self._fixed_time + self._advance_seconds

    def set_time(self, epoch_seconds: int) -> None:
        """Set the clock to a specific time."""
        self._fixed_time = int(epoch_seconds)
        self._advance_seconds = 0

    def advance(self, seconds: int = 1) -> None:
        """Advance the clock by the specified seconds."""
        self._advance_seconds += seconds
