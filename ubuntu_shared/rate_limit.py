import logging
import time
from collections import defaultdict, deque
from typing import Deque, Dict, Iterable, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

import redis

logger = logging.getLogger("ubuntu.ratelimit")

AUTH_PATH_PREFIX = "/auth/"
AUTH_PATH_LIMIT = 20


def _limited_response(retry_after: int) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={
            "error": {
                "code": "rate_limited",
                "message": "Too many requests",
                "details": {"retry_after": retry_after},
            }
        },
        headers={"Retry-After": str(retry_after)},
    )


class _LimiterBase(BaseHTTPMiddleware):
    def __init__(
        self,
        app,
        limit_per_minute: int = 60,
        auth_boost: int = 2,
        exclude_paths: Optional[Iterable[str]] = None,
    ):
        super().__init__(app)
        self.limit_per_minute = limit_per_minute
        self.auth_boost = auth_boost
        self.exclude_paths = set(exclude_paths or ("/health",))

    def _identity(self, request: Request) -> str:
        auth = request.headers.get("authorization")
        if auth:
            return f"token:{auth[-24:]}"
        client = request.client.host if request.client else "unknown"
        return f"ip:{client}"

    def _limit_for(self, request: Request) -> int:
        base = self.limit_per_minute
        # OTP endpoints get a lower ceiling
        if request.url.path.startswith(AUTH_PATH_PREFIX):
            base = min(base, AUTH_PATH_LIMIT)
        if request.headers.get("authorization"):
            base *= self.auth_boost
        return base


class SlidingWindowLimiter(_LimiterBase):
    def __init__(self, app, **kwargs):
        super().__init__(app, **kwargs)
        self.window_seconds = 60
        self.store: Dict[str, Deque[float]] = defaultdict(deque)

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.exclude_paths:
            return await call_next(request)
        now = time.time()
        limit = self._limit_for(request)
        dq = self.store[self._identity(request)]
        while dq and now - dq[0] > self.window_seconds:
            dq.popleft()
        if len(dq) >= limit:
            retry_after = max(1, int(self.window_seconds - (now - dq[0])))
            return _limited_response(retry_after)
        dq.append(now)
        return await call_next(request)


class RedisRateLimiter(_LimiterBase):
    def __init__(self, app, redis_url: str, prefix: str = "ratelimit", **kwargs):
        super().__init__(app, **kwargs)
        self.prefix = prefix
        self.redis = redis.from_url(redis_url, decode_responses=True)

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.exclude_paths:
            return await call_next(request)
        limit = self._limit_for(request)
        now = int(time.time())
        key = f"{self.prefix}:{self._identity(request)}:{now // 60}"
        try:
            count = self.redis.incr(key)
            if count == 1:
                self.redis.expire(key, 70)
        except redis.RedisError as exc:
            # Fail open: an unavailable limiter must not take the API down
            logger.warning("Rate limiter backend unavailable: %s", exc)
            return await call_next(request)
        if count > limit:
            return _limited_response(60 - (now % 60))
        return await call_next(request)
