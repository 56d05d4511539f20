"""Counter store interfaces.

The rate limit stage depends on this abstraction (not the concrete
implementation) so the in-process store can be swapped for a shared backend
(e.g., Redis ``INCR`` + ``PEXPIRE``) without touching the pipeline.

Every method is a coroutine because a shared backend performs network I/O;
the in-memory store simply never suspends.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class CounterResult:
    """Outcome of an increment on a fixed-window counter.

    Attributes:
        total_hits: Count for the key in the current window, this call included.
        ms_until_reset: Milliseconds until the window ends (never negative).
        reset_at: UNIX epoch seconds at which the window ends.
    """

    total_hits: int
    ms_until_reset: int
    reset_at: float


@dataclass(frozen=True)
class CounterRecord:
    """Snapshot of a live counter window."""

    count: int
    window_start: float
    window_end: float


class AbstractCounterStore(ABC):
    """Interface for per-key fixed-window request counters.

    Implementations must make ``increment``, ``decrement`` and ``reset``
    atomic with respect to concurrent callers sharing a key. Backend
    failures are raised as ``StoreUnavailableError``.
    """

    @property
    @abstractmethod
    def window_ms(self) -> int:
        """Window duration applied to new records, in milliseconds."""

    @abstractmethod
    async def increment(self, key: str) -> CounterResult:
        """Account one request for ``key``.

        Starts a new window with a count of 1 when no live record exists.

        Args:
            key: Admission key (e.g., namespaced client address).

        Returns:
            CounterResult for the window the request was counted in.
        """
        raise NotImplementedError

    @abstractmethod
    async def decrement(self, key: str) -> None:
        """Give back one request for ``key`` if its window is still live.

        No-op for absent or expired records and for a count of zero.
        """
        raise NotImplementedError

    @abstractmethod
    async def reset(self, key: str) -> None:
        """Delete the record for ``key``."""
        raise NotImplementedError

    @abstractmethod
    async def get(self, key: str) -> CounterRecord | None:
        """Return the live record for ``key`` or None."""
        raise NotImplementedError
