import time
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict

from fastapi import Depends, Request

from datapusher.config import settings

logger = logging.getLogger("datapusher.ratelimit")

RATE_LIMIT_MESSAGE = "Too many requests, try again later."


@dataclass
class _Window:
    started_at: float
    count: int = 0


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after: float


class RateLimitExceeded(Exception):
    def __init__(self, key: str, decision: RateLimitDecision):
        super().__init__(RATE_LIMIT_MESSAGE)
        self.key = key
        self.decision = decision


class RateLimiter:
    """
    Fixed-window admission counter shared by every request in the process.

    Each key gets its own window, opened by its first admitted hit and
    rolled over once ``window_seconds`` have passed. The check and the
    increment happen under one lock, and nothing inside it awaits, so two
    concurrent requests from the same key can never both slip past the limit.
    """

    def __init__(
        self,
        max_requests: int = 5,
        window_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sweep_threshold: int = 10_000,
    ):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._sweep_threshold = sweep_threshold
        self._windows: Dict[str, _Window] = {}
        self._last_sweep = float("-inf")
        self._lock = threading.Lock()

    def hit(self, key: str) -> RateLimitDecision:
        """Count one request for ``key`` and report whether it is admitted."""
        now = self._clock()
        with self._lock:
            window = self._windows.get(key)
            if window is None or now - window.started_at >= self.window_seconds:
                if (
                    window is None
                    and len(self._windows) >= self._sweep_threshold
                    and now - self._last_sweep >= self.window_seconds
                ):
                    self._sweep(now)
                window = _Window(started_at=now)
                self._windows[key] = window

            reset_after = max(0.0, self.window_seconds - (now - window.started_at))

            if window.count >= self.max_requests:
                return RateLimitDecision(
                    allowed=False,
                    limit=self.max_requests,
                    remaining=0,
                    reset_after=reset_after,
                )

            window.count += 1
            return RateLimitDecision(
                allowed=True,
                limit=self.max_requests,
                remaining=self.max_requests - window.count,
                reset_after=reset_after,
            )

    def _sweep(self, now: float) -> None:
        # Runs at most once per window
        self._last_sweep = now
        expired = [
            key
            for key, window in self._windows.items()
            if now - window.started_at >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]
        if expired:
            logger.debug(f"Swept {len(expired)} expired rate-limit windows")

    def reset(self) -> None:
        with self._lock:
            self._windows.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._windows)


rate_limiter = RateLimiter(
    max_requests=settings.rate_limit_max_requests,
    window_seconds=settings.rate_limit_window_seconds,
)


def get_rate_limiter() -> RateLimiter:
    return rate_limiter


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


async def enforce_rate_limit(
    request: Request, limiter: RateLimiter = Depends(get_rate_limiter)
) -> RateLimitDecision:
    """Route dependency rejecting the request before the endpoint body runs."""
    key = client_key(request)
    decision = limiter.hit(key)
    if not decision.allowed:
        logger.warning(f"Rate limit exceeded for {key} on {request.url.path}")
        raise RateLimitExceeded(key, decision)

    request.state.rate_limit = decision
    return decision
