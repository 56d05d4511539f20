"""In-memory fixed-window counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: a single lock guards the whole map, so every read-modify-write
  of a record is atomic. Key cardinality is bounded by distinct clients.
- Expiry is passive; ``sweep`` only bounds memory.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from todo_service.adapters.rate_limit.base import AbstractCounterStore, CounterRecord, CounterResult
from todo_service.core.errors import ConfigurationAppError

logger = logging.getLogger(__name__)


@dataclass
class _WindowState:
    count: int
    window_start_ms: int
    window_end_ms: int


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store keeping one fixed window per key in a dict.

    Important:
        This store is per-process only. If the API runs with multiple workers,
        each worker enforces its own independent limits; a shared deployment
        needs a backend with a native atomic increment.
    """

    def __init__(
        self,
        *,
        window_ms: int,
        clock: Callable[[], float] = time.time,
        sweep_interval: int = 1000,
    ) -> None:
        """Initialize the store.

        Args:
            window_ms: Window duration in milliseconds.
            clock: Time source returning UNIX time in seconds.
            sweep_interval: Sweep expired records every N operations (0 disables).

        Raises:
            ConfigurationAppError: If window_ms or sweep_interval are invalid.
        """
        if window_ms < 1:
            raise ConfigurationAppError(
                code="invalid_window",
                message="window_ms must be >= 1",
                details={"field": "window_ms", "value": window_ms},
            )
        if sweep_interval < 0:
            raise ConfigurationAppError(
                code="invalid_sweep_interval",
                message="sweep_interval must be >= 0",
                details={"field": "sweep_interval", "value": sweep_interval},
            )

        self._window_ms = window_ms
        self._clock = clock
        self._sweep_interval = sweep_interval
        self._lock = threading.RLock()
        self._state_by_key: dict[str, _WindowState] = {}
        self._ops_since_sweep = 0

    @property
    def window_ms(self) -> int:
        return self._window_ms

    def _now_ms(self) -> int:
        return round(self._clock() * 1000)

    def _live_state_locked(self, key: str, now_ms: int) -> _WindowState | None:
        state = self._state_by_key.get(key)
        if state is None:
            return None
        if now_ms > state.window_end_ms:
            del self._state_by_key[key]
            return None
        return state

    def _tick_locked(self, now_ms: int) -> None:
        if not self._sweep_interval:
            return
        self._ops_since_sweep += 1
        if self._ops_since_sweep >= self._sweep_interval:
            self._sweep_locked(now_ms)

    def _sweep_locked(self, now_ms: int) -> int:
        expired = [k for k, s in self._state_by_key.items() if now_ms > s.window_end_ms]
        for key in expired:
            del self._state_by_key[key]
        self._ops_since_sweep = 0
        if expired:
            logger.debug("counter_store.swept", extra={"removed": len(expired)})
        return len(expired)

    async def increment(self, key: str) -> CounterResult:
        with self._lock:
            now_ms = self._now_ms()
            state = self._live_state_locked(key, now_ms)
            if state is None:
                state = _WindowState(
                    count=0,
                    window_start_ms=now_ms,
                    window_end_ms=now_ms + self._window_ms,
                )
                self._state_by_key[key] = state
            state.count += 1
            result = CounterResult(
                total_hits=state.count,
                ms_until_reset=max(0, state.window_end_ms - now_ms),
                reset_at=state.window_end_ms / 1000,
            )
            self._tick_locked(now_ms)
            return result

    async def decrement(self, key: str) -> None:
        with self._lock:
            now_ms = self._now_ms()
            state = self._live_state_locked(key, now_ms)
            if state is not None and state.count > 0:
                state.count -= 1
            self._tick_locked(now_ms)

    async def reset(self, key: str) -> None:
        with self._lock:
            self._state_by_key.pop(key, None)

    async def get(self, key: str) -> CounterRecord | None:
        with self._lock:
            state = self._live_state_locked(key, self._now_ms())
            if state is None:
                return None
            return CounterRecord(
                count=state.count,
                window_start=state.window_start_ms / 1000,
                window_end=state.window_end_ms / 1000,
            )

    def sweep(self) -> int:
        """Delete expired records now.

        Returns:
            Number of records removed.
        """
        with self._lock:
            return self._sweep_locked(self._now_ms())

