"""
Rate Limiter

Per-client request cap for the expensive endpoints. The server depends only
on ``RateLimiter.check_and_increment``; the sliding-window implementation
keeps timestamps in process and suits a single instance. A shared backend
can be swapped in behind the same interface.
"""

import threading
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict


@dataclass
class RateLimitStatus:
    """Snapshot of a client's window, rendered as X-RateLimit-* headers"""
    limit: int
    remaining: int
    reset_at: float  # epoch seconds when the oldest request leaves the window

    def headers(self) -> Dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(int(self.reset_at)),
        }


class RateLimiter(ABC):
    @abstractmethod
    def check_and_increment(self, client_id: str) -> bool:
        """Record a request. False means the client is over the limit."""

    @abstractmethod
    def status(self, client_id: str) -> RateLimitStatus: ...


class SlidingWindowRateLimiter(RateLimiter):
    """At most ``limit`` requests per client in any ``window_seconds`` span"""

    def __init__(
        self,
        limit: int = 10,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.time,
    ):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._hits: Dict[str, Deque[float]] = {}
        self._last_sweep = clock()
        self._lock = threading.Lock()

    def _prune(self, client_id: str, now: float) -> Deque[float]:
        """Drop hits outside the window; a client with none left is forgotten"""
        hits = self._hits.get(client_id)
        if hits is None:
            return deque()
        cutoff = now - self.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()
        if not hits:
            del self._hits[client_id]
        return hits

    def check_and_increment(self, client_id: str) -> bool:
        now = self._clock()
        with self._lock:
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(now)
            hits = self._prune(client_id, now)
            if len(hits) >= self.limit:
                return False
            hits.append(now)
            self._hits[client_id] = hits
            return True

    def status(self, client_id: str) -> RateLimitStatus:
        now = self._clock()
        with self._lock:
            hits = self._prune(client_id, now)
            remaining = max(0, self.limit - len(hits))
            reset_at = (hits[0] if hits else now) + self.window_seconds
            return RateLimitStatus(self.limit, remaining, reset_at)

    def _sweep(self, now: float) -> None:
        """Forget every client whose window has emptied. Caller holds the lock."""
        for client_id in list(self._hits):
            self._prune(client_id, now)
        self._last_sweep = now

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()
