"""
Sliding-window rate limiting.

Two consumers share the same stores:

- `AuthRateLimitMiddleware` throttles the login and OTP endpoints, keyed by
  endpoint, client IP and the submitted email or identifier.
- `rootsreach.auth.dependencies.enforce_role_rate_limit` throttles
  authenticated callers with the per-role limits of the access policy.

A store answers one question atomically: may this key take another hit
under this limit, and if not, when may it?

Usage:
    app.add_middleware(AuthRateLimitMiddleware, store=MongoDBRateLimitStore(db))
"""

import json
import logging
import math
import time
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import timedelta
from types import MappingProxyType
from typing import Any, Protocol

from pymongo import ReturnDocument
from pymongo.errors import OperationFailure
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from ..constants import (AUTH_RATE_LIMIT_MAX_ATTEMPTS,
                         AUTH_RATE_LIMIT_WINDOW_SECONDS,
                         GENERAL_RATE_LIMIT_MAX_ATTEMPTS,
                         GENERAL_RATE_LIMIT_WINDOW_SECONDS,
                         OTP_RATE_LIMIT_MAX_ATTEMPTS,
                         OTP_RATE_LIMIT_WINDOW_SECONDS, RATE_LIMIT_COLLECTION)
from ..security.policy import RateLimit
from ..utils.time import utcnow

logger = logging.getLogger(__name__)

LOGIN_ENDPOINT = "POST /auth/login"

_AUTH_LIMIT = RateLimit(
    max_attempts=AUTH_RATE_LIMIT_MAX_ATTEMPTS, window_seconds=AUTH_RATE_LIMIT_WINDOW_SECONDS
)
_OTP_LIMIT = RateLimit(
    max_attempts=OTP_RATE_LIMIT_MAX_ATTEMPTS, window_seconds=OTP_RATE_LIMIT_WINDOW_SECONDS
)

# "METHOD path"; a path ending in "/" covers every path below it.
DEFAULT_AUTH_RATE_LIMITS: Mapping[str, RateLimit] = MappingProxyType(
    {
        LOGIN_ENDPOINT: _AUTH_LIMIT,
        "POST /auth/otp/verify": _AUTH_LIMIT,
        "POST /auth/otp/send": _OTP_LIMIT,
        "POST /auth/otp/resend": _OTP_LIMIT,
        "GET /auth/otp/status/": RateLimit(
            max_attempts=GENERAL_RATE_LIMIT_MAX_ATTEMPTS,
            window_seconds=GENERAL_RATE_LIMIT_WINDOW_SECONDS,
        ),
    }
)


@dataclass(frozen=True)
class RateDecision:
    allowed: bool
    count: int
    retry_after: int = 0  # seconds until the oldest hit leaves the window


class RateLimitStore(Protocol):
    async def hit(self, key: str, limit: RateLimit) -> RateDecision:
        ...

    async def reset(self, key: str) -> None:
        ...


def _seconds_left(oldest: float, window_seconds: int, now: float) -> int:
    return max(1, math.ceil(oldest + window_seconds - now))


class InMemoryRateLimitStore:
    """
    Per-process store; each key keeps the timestamps of its hits in the window.

    Keys whose hits have all aged out are swept every `sweep_every` hits.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic, sweep_every: int = 1000):
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._sweep_every = sweep_every
        self._since_sweep = 0
        self._longest_window = 0

    def __len__(self) -> int:
        return len(self._hits)

    async def hit(self, key: str, limit: RateLimit) -> RateDecision:
        now = self._clock()
        self._longest_window = max(self._longest_window, limit.window_seconds)
        self._since_sweep += 1
        if self._since_sweep >= self._sweep_every:
            self._sweep(now)

        hits = self._hits.setdefault(key, deque())
        cutoff = now - limit.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()

        if len(hits) >= limit.max_attempts:
            return RateDecision(
                False, len(hits), _seconds_left(hits[0], limit.window_seconds, now)
            )
        hits.append(now)
        return RateDecision(True, len(hits))

    async def reset(self, key: str) -> None:
        self._hits.pop(key, None)

    def _sweep(self, now: float) -> None:
        self._since_sweep = 0
        cutoff = now - self._longest_window
        for key in [k for k, hits in self._hits.items() if not hits or hits[-1] <= cutoff]:
            del self._hits[key]


class MongoDBRateLimitStore:
    """
    Shared store for multi-process deployments.

    One document per key holds the hit times still inside the window. A hit
    is a single pipeline `find_one_and_update` (upserting), so concurrent
    workers cannot both take the last slot. A TTL index on `expires_at`
    removes keys that go quiet.
    """

    def __init__(self, db: Any):
        self._collection = db[RATE_LIMIT_COLLECTION]
        self._indexes_ready = False

    async def ensure_indexes(self) -> None:
        if self._indexes_ready:
            return
        self._indexes_ready = True
        try:
            await self._collection.create_index(
                "expires_at", expireAfterSeconds=0, name="expires_at_ttl_idx"
            )
        except OperationFailure as e:
            logger.warning(f"Rate limit TTL index creation failed: {e}")

    @staticmethod
    def hit_pipeline(now: Any, limit: RateLimit) -> list[dict[str, Any]]:
        cutoff = now - timedelta(seconds=limit.window_seconds)
        return [
            {
                "$set": {
                    "hits": {
                        "$filter": {
                            "input": {"$ifNull": ["$hits", []]},
                            "as": "t",
                            "cond": {"$gt": ["$$t", cutoff]},
                        }
                    }
                }
            },
            {"$set": {"allowed": {"$lt": [{"$size": "$hits"}, limit.max_attempts]}}},
            {
                "$set": {
                    "hits": {
                        "$cond": ["$allowed", {"$concatArrays": ["$hits", [now]]}, "$hits"]
                    },
                    "expires_at": now + timedelta(seconds=limit.window_seconds),
                }
            },
        ]

    async def hit(self, key: str, limit: RateLimit) -> RateDecision:
        await self.ensure_indexes()
        now = utcnow()
        doc = await self._collection.find_one_and_update(
            {"_id": key},
            self.hit_pipeline(now, limit),
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )
        hits = doc.get("hits", [])
        if doc.get("allowed", True):
            return RateDecision(True, len(hits))
        oldest = min(hits) if hits else now
        free_at = oldest + timedelta(seconds=limit.window_seconds)
        return RateDecision(False, len(hits), max(1, math.ceil((free_at - now).total_seconds())))

    async def reset(self, key: str) -> None:
        await self._collection.delete_one({"_id": key})


def too_many_requests(retry_after: int) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={
            "detail": {
                "message": f"Too many attempts. Please try again in {retry_after} seconds.",
                "code": "RATE_LIMIT_EXCEEDED",
                "retry_after": retry_after,
            }
        },
        headers={"Retry-After": str(retry_after)},
    )


def get_client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


class AuthRateLimitMiddleware(BaseHTTPMiddleware):
    """
    Throttle the auth endpoints in `limits`.

    Requests to one endpoint from one client IP share a counter; for JSON
    bodies the submitted email or identifier is part of the key as well.

    A 2xx login clears its key, so a user who finally gets the password
    right is not left throttled.
    """

    def __init__(
        self,
        app: Callable,
        store: RateLimitStore,
        limits: Mapping[str, RateLimit] = DEFAULT_AUTH_RATE_LIMITS,
        include_identity_in_key: bool = True,
    ):
        super().__init__(app)
        self._store = store
        self._limits = limits
        self._include_identity_in_key = include_identity_in_key

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Any]
    ) -> Response:
        endpoint = self._endpoint(request.method, request.url.path)
        if endpoint is None:
            return await call_next(request)

        limit = self._limits[endpoint]
        key = await self._key(request, endpoint)
        decision = await self._store.hit(key, limit)
        if not decision.allowed:
            logger.warning(
                f"Auth rate limit hit on {endpoint} for {key} "
                f"({limit.max_attempts}/{limit.window_seconds}s)"
            )
            return too_many_requests(decision.retry_after)

        response = await call_next(request)
        if endpoint == LOGIN_ENDPOINT and 200 <= response.status_code < 300:
            await self._store.reset(key)
        return response

    def _endpoint(self, method: str, path: str) -> str | None:
        exact = f"{method} {path}"
        if exact in self._limits:
            return exact
        for endpoint in self._limits:
            if endpoint.endswith("/") and exact.startswith(endpoint):
                return endpoint
        return None

    async def _key(self, request: Request, endpoint: str) -> str:
        parts = [endpoint, get_client_ip(request)]
        if self._include_identity_in_key:
            identity = await self._submitted_identity(request)
            if identity:
                parts.append(identity)
        return ":".join(parts)

    @staticmethod
    async def _submitted_identity(request: Request) -> str | None:
        if "application/json" not in request.headers.get("content-type", ""):
            return None
        try:
            data = json.loads(await request.body() or b"null")
        except (ValueError, UnicodeDecodeError):
            return None
        if not isinstance(data, dict):
            return None
        value = data.get("email") or data.get("identifier")
        return str(value).strip().lower() if value else None
