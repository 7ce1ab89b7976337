"""
Application factory.

Wires the account repository, OTP service, audit log and rate limit stores
onto `app.state`, installs the request-context and auth rate limit
middleware, and mounts the `/auth` router.

Usage:
    from motor.motor_asyncio import AsyncIOMotorClient
    from rootsreach.app import create_app

    config = SecurityConfig()
    db = AsyncIOMotorClient(config.mongo_uri)[config.db_name]
    app = create_app(db, config)
"""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .auth.audit import AuthAuditLog
from .auth.otp import OTPSender, OTPService
from .auth.rate_limiter import (AuthRateLimitMiddleware,
                                InMemoryRateLimitStore, RateLimitStore)
from .auth.routes import router as auth_router
from .config import SecurityConfig
from .constants import ACCOUNTS_COLLECTION
from .observability.logging import request_scope
from .repositories.accounts import AccountRepository

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind a correlation ID to each request and echo it in the response."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        with request_scope(request.headers.get(CORRELATION_HEADER)) as correlation_id:
            response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


def create_app(
    db: Any,
    config: SecurityConfig | None = None,
    otp_sender: OTPSender | None = None,
    auth_rate_limit_store: RateLimitStore | None = None,
    role_rate_limit_store: RateLimitStore | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        db: Motor database (AsyncIOMotorDatabase)
        config: Security configuration (defaults to environment-driven SecurityConfig)
        otp_sender: OTP delivery channel (defaults to logging only)
        auth_rate_limit_store: Store for the auth endpoint limits
        role_rate_limit_store: Store for the per-role request limits

    Raises:
        ConfigurationError: If the configuration does not validate
    """
    config = config or SecurityConfig()
    config.validate()

    accounts = AccountRepository(
        db[ACCOUNTS_COLLECTION],
        max_login_attempts=config.max_login_attempts,
        lock_duration_seconds=config.lock_duration_seconds,
    )
    audit_log = AuthAuditLog(db)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        await accounts.ensure_indexes()
        await audit_log.ensure_indexes()
        logger.info(f"RootsReach access core started ({config.environment})")
        yield

    app = FastAPI(title="RootsReach", lifespan=lifespan)

    app.state.config = config
    app.state.accounts = accounts
    app.state.otp_service = OTPService(accounts, sender=otp_sender, config=config)
    app.state.audit_log = audit_log
    if role_rate_limit_store is None:
        role_rate_limit_store = InMemoryRateLimitStore()
    if auth_rate_limit_store is None:
        auth_rate_limit_store = InMemoryRateLimitStore()
    app.state.role_rate_limit_store = role_rate_limit_store

    # Last added runs first: the correlation ID is bound before rate limiting.
    app.add_middleware(AuthRateLimitMiddleware, store=auth_rate_limit_store)
    app.add_middleware(RequestContextMiddleware)

    app.include_router(auth_router)
    return app
