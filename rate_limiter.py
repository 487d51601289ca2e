"""
Fixed-window request limiter, keyed by client address.

Each key gets ``limit`` requests per ``window`` seconds; the window resets
entirely once it has expired. State lives in process memory only.
"""

import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class RateLimitRecord:
    count: int
    window_start: float


class FixedWindowRateLimiter:
    def __init__(
        self,
        limit: int = 20,
        window: float = 60 * 60,
        max_keys: int = 10_000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window = window
        self.max_keys = max(1, max_keys)
        self.clock = clock
        self._records: Dict[str, RateLimitRecord] = {}
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def check_and_consume(self, client_id: str, now: Optional[float] = None) -> bool:
        """Count one request for ``client_id``; False once the window is full."""
        if now is None:
            now = self.clock()

        with self._lock:
            record = self._records.get(client_id)
            if record is None or now - record.window_start > self.window:
                self._records[client_id] = RateLimitRecord(count=1, window_start=now)
                if len(self._records) > self.max_keys:
                    self._evict(now)
                return True

            if record.count >= self.limit:
                return False

            record.count += 1
            return True

    def reset(self) -> None:
        with self._lock:
            self._records.clear()

    def _evict(self, now: float) -> None:
        """
        Shrink the map back under ``max_keys``. Caller holds the lock.

        Expired records go first. If every record is still live, the oldest
        half is dropped anyway: those clients lose their count and start a
        fresh window on their next request. Memory stays bounded at the cost
        of letting an evicted client exceed ``limit`` within one window.
        """
        expired = [k for k, r in self._records.items() if now - r.window_start > self.window]
        for k in expired:
            del self._records[k]

        if len(self._records) > self.max_keys:
            # drop oldest half
            items = sorted(self._records.items(), key=lambda kv: kv[1].window_start)
            for k, _ in items[: len(items) // 2]:
                del self._records[k]

        logger.info("Rate limiter evicted down to %d keys", len(self._records))
