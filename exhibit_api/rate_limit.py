"""
rate_limit.py — Request rate limiting
=====================================
Two layers:

- ``RateLimiter``: per-client counters for credential endpoints
  (sign-in, sign-up, password reset, email verification). Each counter
  lives for ``window_ms`` after the request that last incremented it and
  the table is capped at ``capacity`` identities, least recently used
  evicted first.
- ``limiter``: slowapi for coarse limits on ordinary write endpoints
  such as feedback submission.

Credential limiters are built once at startup by ``build_rate_limiters``
and stored on ``app.state.rate_limiters``; routes reach them through the
``rate_limited(name)`` dependency.
"""
from __future__ import annotations

import logging
import math
from collections import OrderedDict
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Optional, Tuple

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from .clock import Clock, get_clock
from .config import Settings, settings

logger = logging.getLogger("exhibit.rate_limit")

limiter = Limiter(key_func=get_remote_address)

DEFAULT_CAPACITY = 500


# ---------------------------------------------------------------------------
# Counter cache
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after: Optional[int] = None

    def headers(self) -> Dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
        }
        if self.retry_after is not None:
            headers["Retry-After"] = str(self.retry_after)
        return headers


class RateLimiter:
    """
    Bounded identity -> count table with TTL and LRU eviction.

    A counter that has aged out is indistinguishable from one that never
    existed. Rejected requests are not counted and do not extend the
    window. ``check`` holds the lock for the whole read-increment-write,
    so concurrent hits from one identity never lose an increment.
    """

    def __init__(
        self,
        window_ms: int,
        max: int,
        capacity: int = DEFAULT_CAPACITY,
        clock: Optional[Clock] = None,
    ) -> None:
        if window_ms <= 0 or max <= 0 or capacity <= 0:
            raise ValueError("window_ms, max and capacity must be positive")
        self.window_ms = window_ms
        self.max = max
        self.capacity = capacity
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[int, float]]" = OrderedDict()  # identity -> (count, expires_at)
        self._lock = Lock()

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000

    @property
    def retry_after(self) -> int:
        return math.ceil(self.window_ms / 1000)

    def _now(self) -> float:
        return (self._clock or get_clock()).monotonic()

    def check(self, identity: str) -> RateLimitDecision:
        now = self._now()
        with self._lock:
            count = self._current(identity, now)
            if count >= self.max:
                return RateLimitDecision(
                    allowed=False, limit=self.max, remaining=0, retry_after=self.retry_after
                )
            count += 1
            self._entries[identity] = (count, now + self.window_seconds)
            self._entries.move_to_end(identity)
            self._evict(now)
            return RateLimitDecision(allowed=True, limit=self.max, remaining=self.max - count)

    def _current(self, identity: str, now: float) -> int:
        entry = self._entries.get(identity)
        if entry is None:
            return 0
        count, expires_at = entry
        if expires_at <= now:
            del self._entries[identity]
            return 0
        self._entries.move_to_end(identity)
        return count

    def _evict(self, now: float) -> None:
        if len(self._entries) <= self.capacity:
            return
        for key in [k for k, (_, exp) in self._entries.items() if exp <= now]:
            del self._entries[key]
        while len(self._entries) > self.capacity:
            self._entries.popitem(last=False)

    def count(self, identity: str) -> int:
        with self._lock:
            return self._current(identity, self._now())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, identity: str) -> bool:
        with self._lock:
            return self._current(identity, self._now()) > 0

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()


def build_rate_limiters(settings: Settings, clock: Optional[Clock] = None) -> Dict[str, RateLimiter]:
    """One limiter per protected endpoint group."""
    cap = settings.rate_limit_capacity
    return {
        "signin": RateLimiter(settings.signin_window_ms, settings.signin_max, cap, clock),
        "signup": RateLimiter(settings.signup_window_ms, settings.signup_max, cap, clock),
        "password_reset": RateLimiter(settings.password_reset_window_ms, settings.password_reset_max, cap, clock),
        "verification": RateLimiter(settings.verification_window_ms, settings.verification_max, cap, clock),
    }


# ---------------------------------------------------------------------------
# HTTP boundary
# ---------------------------------------------------------------------------

class RateLimitRejected(Exception):
    """Raised by the dependency; rendered as a 429 by ``rate_limit_rejected_handler``."""

    def __init__(self, decision: RateLimitDecision) -> None:
        super().__init__("Rate limit exceeded")
        self.decision = decision


def client_identity(request: Request, trust_forwarded_for: bool = True) -> str:
    """First forwarded address, else the socket peer, else ''."""
    if trust_forwarded_for:
        forwarded = request.headers.getlist("x-forwarded-for")
        if forwarded:
            first = forwarded[0].split(",")[0].strip()
            if first:
                return first
    if request.client and request.client.host:
        return request.client.host
    return ""


def rate_limited(name: str) -> Callable[[Request, Response], None]:
    """FastAPI dependency that charges one request against limiter ``name``."""

    def dependency(request: Request, response: Response) -> None:
        limiters: Dict[str, RateLimiter] = request.app.state.rate_limiters
        bucket = limiters[name]
        identity = client_identity(request, settings.trust_forwarded_for)
        if not identity and settings.anonymous_client_policy == "reject":
            logger.warning("Rejecting %s request with no client address", name)
            raise RateLimitRejected(
                RateLimitDecision(allowed=False, limit=bucket.max, remaining=0, retry_after=bucket.retry_after)
            )

        decision = bucket.check(identity)
        if not decision.allowed:
            logger.info("Rate limit exceeded for %s on %s", identity or "<anonymous>", name)
            raise RateLimitRejected(decision)
        for key, value in decision.headers().items():
            response.headers[key] = value

    return dependency


def rate_limit_rejected_handler(request: Request, exc: RateLimitRejected) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={"message": "Rate limit exceeded"},
        headers=exc.decision.headers(),
    )
