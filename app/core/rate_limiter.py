"""
Admission Gate
==============
Per-client, in-memory fixed-window rate limiting.

Trade-offs
----------
- Stored in a dict keyed by client_id (forwarded address or socket peer).
- Each client owns one `ClientWindowRecord`: a counter plus the instant the
  current window expires.  The window rolls forward from the moment it is
  first observed to be stale, not from a calendar boundary.
- Denied requests still increment the counter; the reset instant does not
  move until the window rolls over.
- `admit` is a map lookup plus arithmetic under a single lock.  It never
  sleeps or queues, so it is safe to call straight from request handling.
- Records whose window expired more than `evict_after_windows` windows ago
  are swept by a background task so the table does not grow for the whole
  process lifetime.
- In-memory only: does not survive restarts and does not share state across
  multiple processes/hosts.
"""

import asyncio
import math
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Union

from app.core.logging import get_logger

logger = get_logger(__name__)


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass
class ClientWindowRecord:
    count: int
    window_reset_at: float


@dataclass(frozen=True)
class Admitted:
    count: int
    window_reset_at: float


@dataclass(frozen=True)
class Denied:
    count: int
    window_reset_at: float
    retry_after_seconds: int


Admission = Union[Admitted, Denied]


class RateLimiter:
    def __init__(
        self,
        max_requests: int = 20,
        window_ms: int = 60_000,
        evict_after_windows: int = 2,
        clock: Callable[[], float] = monotonic_ms,
    ) -> None:
        if max_requests < 0:
            raise ValueError("max_requests must be >= 0")
        if window_ms <= 0:
            raise ValueError("window_ms must be > 0")
        self._max = max_requests
        self._window = window_ms
        self._evict_after = max(1, evict_after_windows)
        self._clock = clock
        self._records: Dict[str, ClientWindowRecord] = {}
        self._lock = threading.Lock()
        self._sweep_task: Optional[asyncio.Task] = None

    @property
    def limit(self) -> int:
        return self._max

    @property
    def window_ms(self) -> int:
        return self._window

    @property
    def tracked_clients(self) -> int:
        return len(self._records)

    # ── Public API ─────────────────────────────────────────────────────────────

    def admit(self, client_id: str, now: Optional[float] = None) -> Admission:
        """Count one request for `client_id` and decide whether to let it in."""
        if now is None:
            now = self._clock()

        with self._lock:
            record = self._records.get(client_id)
            if record is None:
                record = ClientWindowRecord(count=0, window_reset_at=now + self._window)
                self._records[client_id] = record

            if now > record.window_reset_at:
                record.count = 0
                record.window_reset_at = now + self._window

            record.count += 1
            count = record.count
            reset_at = record.window_reset_at

        if count > self._max:
            retry_after = max(0, math.ceil((reset_at - now) / 1000))
            logger.warning(
                "Rate limit exceeded",
                extra={
                    "client_id": client_id,
                    "limit": self._max,
                    "window_ms": self._window,
                    "count": count,
                    "retry_after": retry_after,
                },
            )
            return Denied(count=count, window_reset_at=reset_at, retry_after_seconds=retry_after)

        return Admitted(count=count, window_reset_at=reset_at)

    def get_record(self, client_id: str) -> Optional[ClientWindowRecord]:
        with self._lock:
            record = self._records.get(client_id)
            if record is None:
                return None
            return ClientWindowRecord(count=record.count, window_reset_at=record.window_reset_at)

    def sweep(self, now: Optional[float] = None) -> int:
        """Remove clients whose window expired `evict_after_windows` windows ago."""
        if now is None:
            now = self._clock()
        cutoff = now - self._evict_after * self._window

        with self._lock:
            stale = [
                cid
                for cid, record in self._records.items()
                if record.window_reset_at < cutoff
            ]
            for cid in stale:
                del self._records[cid]

        if stale:
            logger.debug("Rate limiter cleanup", extra={"removed_clients": len(stale)})
        return len(stale)

    # ── Lifecycle ──────────────────────────────────────────────────────────────

    def start_background_sweep(self) -> None:
        """Call once after the event loop is running."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        if self._sweep_task and not self._sweep_task.done():
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
        self._sweep_task = None

    async def _sweep_loop(self) -> None:
        interval = self._window / 1000.0
        while True:
            await asyncio.sleep(interval)
            self.sweep()
