import math
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional


@dataclass
class RateLimitResult:
    allowed: bool
    limit: int
    remaining: int
    reset_time: float  # epoch seconds
    retry_after: Optional[int] = None


class RateLimiter:
    """Sliding-window request limiter kept in process memory.

    State is per process and lost on restart.
    """

    def __init__(self, max_requests: int, window_seconds: float, clock: Callable[[], float] = time.time):
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._requests: Dict[str, List[float]] = {}

    def _valid(self, identifier: str, now: float) -> List[float]:
        return [t for t in self._requests.get(identifier, []) if now - t < self.window_seconds]

    def check_limit(self, identifier: str) -> RateLimitResult:
        now = self._clock()
        valid = self._valid(identifier, now)
        reset_time = now + self.window_seconds

        if len(valid) >= self.max_requests:
            self._requests[identifier] = valid
            return RateLimitResult(
                allowed=False,
                limit=self.max_requests,
                remaining=0,
                reset_time=reset_time,
                retry_after=max(1, math.ceil(valid[0] + self.window_seconds - now)),
            )

        valid.append(now)
        self._requests[identifier] = valid
        return RateLimitResult(
            allowed=True,
            limit=self.max_requests,
            remaining=self.max_requests - len(valid),
            reset_time=reset_time,
        )

    def reset(self, identifier: str) -> None:
        self._requests.pop(identifier, None)

    def clear(self) -> None:
        self._requests.clear()

    def get_status(self, identifier: str) -> dict:
        now = self._clock()
        valid = self._valid(identifier, now)
        return {
            "current": len(valid),
            "limit": self.max_requests,
            "remaining": max(0, self.max_requests - len(valid)),
            "reset_time": now + self.window_seconds,
        }


def rate_limit_headers(result: RateLimitResult) -> Dict[str, str]:
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": datetime.fromtimestamp(result.reset_time, tz=timezone.utc).isoformat(),
    }
    if not result.allowed and result.retry_after:
        headers["Retry-After"] = str(result.retry_after)
    return headers
