"""
FastAPI Authentication and Authorization Dependencies

Route gates built on the access policy table. Each gate is a dependency; a
route stacks them in the order authenticate -> permission -> requirements.

    @router.post("/products")
    async def create_product(
        account: Account = Depends(require_permission("product", "create")),
        _: Account = Depends(require_requirements(PRODUCT_OPERATIONS)),
    ):
        ...
"""

import json
from collections.abc import Callable, Mapping
from typing import Any

import jwt
from fastapi import Depends, HTTPException, Request, status
from pymongo.errors import PyMongoError

from ..config import SecurityConfig
from ..models import Account
from ..observability.logging import bind_caller, get_logger
from ..security.patterns import is_severe, scan_request
from ..security.policy import (ADDRESS_REQUIRED, Action, Resource, Role,
                               Scope, check_requirements, get_rate_limit,
                               has_permission, is_resource_owner)
from .audit import AuditEvent, AuthAction
from .jwt import ACCESS, decode_jwt_token
from .rate_limiter import get_client_ip

logger = get_logger(__name__)


def _app_state(request: Request, name: str) -> Any:
    value = getattr(request.app.state, name, None)
    if value is None:
        logger.critical(f"{name} not found on app.state")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Server configuration error: {name} not loaded.",
        )
    return value


def _denied(status_code: int, message: str, code: str) -> HTTPException:
    return HTTPException(status_code=status_code, detail={"message": message, "code": code})


async def _audit(request: Request, action: AuthAction, account: Account | None, /, **details) -> None:
    """Write a failed-check audit event if an audit log is configured."""
    audit_log = getattr(request.app.state, "audit_log", None)
    if audit_log is None:
        return
    event = AuditEvent(
        action,
        success=False,
        user_email=account.email if account else None,
        user_id=account.id if account else None,
        role=account.role if account else None,
        ip_address=get_client_ip(request),
        path=request.url.path,
        details=details or None,
    )
    try:
        await audit_log.record(event)
    except PyMongoError as e:
        logger.error(f"Failed to write audit event {action.value}: {e}")


def _unauthorized(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=message,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_account(request: Request) -> Account:
    """
    FastAPI Dependency: Resolve the caller from an `Authorization: Bearer` token.

    Raises:
        HTTPException 401: Missing, invalid or expired token; unknown or inactive account
        HTTPException 423: Account is locked
    """
    cached = getattr(request.state, "account", None)
    if cached is not None:
        return cached

    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise _unauthorized("Access token required")

    config: SecurityConfig = _app_state(request, "config")
    try:
        payload = decode_jwt_token(token.strip(), config.secret_key, expected_type=ACCESS)
    except jwt.ExpiredSignatureError:
        logger.info("get_current_account: token expired")
        raise _unauthorized("Token expired") from None
    except jwt.InvalidTokenError as e:
        logger.info(f"get_current_account: invalid token ({e})")
        raise _unauthorized("Invalid token") from None

    accounts = _app_state(request, "accounts")
    account = await accounts.get(payload.get("user_id"))
    if account is None or not account.is_active:
        raise _unauthorized("Invalid token or user not found")

    if account.is_locked():
        raise HTTPException(
            status_code=status.HTTP_423_LOCKED,
            detail="Account is temporarily locked due to too many failed login attempts",
        )

    bind_caller(account.id, account.role)
    request.state.account = account
    return account


def require_roles(*roles: Role | str) -> Callable:
    """
    Dependency factory: the caller's role must be one of `roles`.

    Raises:
        HTTPException 403 with code INSUFFICIENT_ROLE
    """
    allowed = {Role(role).value for role in roles}

    async def _check(
        request: Request, account: Account = Depends(get_current_account)
    ) -> Account:
        if account.role not in allowed:
            logger.warning(f"Role {account.role} refused; requires one of {sorted(allowed)}")
            await _audit(
                request,
                AuthAction.PERMISSION_DENIED,
                account,
                code="INSUFFICIENT_ROLE",
                required_roles=sorted(allowed),
            )
            raise _denied(
                status.HTTP_403_FORBIDDEN,
                f"Access denied. Required role: {', '.join(sorted(allowed))}",
                "INSUFFICIENT_ROLE",
            )
        return account

    return _check


def require_permission(
    resource: Resource | str,
    action: Action | str,
    scope: Scope | str = Scope.OWN,
) -> Callable:
    """
    Dependency factory: the caller's role must hold `action:scope` on `resource`.

    Raises:
        HTTPException 403 with code INSUFFICIENT_PERMISSIONS
    """
    resource_name = Resource(resource).value
    action_name = Action(action).value

    async def _check(
        request: Request, account: Account = Depends(get_current_account)
    ) -> Account:
        if not has_permission(account.role, resource_name, action_name, scope):
            logger.warning(
                f"Permission denied: {account.role} cannot {action_name} {resource_name}"
            )
            await _audit(
                request,
                AuthAction.PERMISSION_DENIED,
                account,
                resource=resource_name,
                action=action_name,
                code="INSUFFICIENT_PERMISSIONS",
            )
            raise _denied(
                status.HTTP_403_FORBIDDEN,
                f"Access denied. Your role ({account.role}) does not have "
                f"{action_name} permission for {resource_name}",
                "INSUFFICIENT_PERMISSIONS",
            )
        return account

    return _check


def require_requirements(category: str) -> Callable:
    """
    Dependency factory: the caller's account must meet the role's requirements
    for `category`. A missing address answers 400, a missing identity
    verification 403.
    """

    async def _check(
        request: Request, account: Account = Depends(get_current_account)
    ) -> Account:
        result = check_requirements(account.role, category, account)
        if not result.valid:
            logger.warning(f"Requirement {result.code} not met by account {account.id}")
            await _audit(
                request,
                AuthAction.REQUIREMENT_FAILED,
                account,
                category=category,
                code=result.code,
            )
            status_code = (
                status.HTTP_400_BAD_REQUEST
                if result.code == ADDRESS_REQUIRED
                else status.HTTP_403_FORBIDDEN
            )
            raise _denied(status_code, result.message, result.code)
        return account

    return _check


async def ensure_resource_access(
    account: Account,
    resource: Resource | str,
    document: Mapping[str, Any],
    action: Action | str = Action.READ,
) -> None:
    """
    Refuse access to another account's document.

    Roles holding `action:all` on the resource may touch any document;
    everyone else must own it through one of its ownership fields.

    Raises:
        HTTPException 403 with code RESOURCE_ACCESS_DENIED
    """
    if has_permission(account.role, resource, action, Scope.ALL):
        return
    if is_resource_owner(resource, document, account.id):
        return

    resource_name = Resource(resource).value
    logger.warning(
        f"Unauthorized {resource_name} access: account {account.id} ({account.role}) "
        f"tried to access {resource_name} {document.get('_id')}"
    )
    raise _denied(
        status.HTTP_403_FORBIDDEN,
        f"Access denied. You can only access your own {resource_name} resources.",
        "RESOURCE_ACCESS_DENIED",
    )


async def enforce_role_rate_limit(
    request: Request, account: Account = Depends(get_current_account)
) -> Account:
    """
    FastAPI Dependency: per-account sliding window sized by the caller's role.

    Raises:
        HTTPException 429 with a Retry-After header
    """
    limit = get_rate_limit(account.role)
    if limit is None:
        return account

    store = _app_state(request, "role_rate_limit_store")
    decision = await store.hit(f"role:{account.role}:{account.id}", limit)
    if not decision.allowed:
        await _audit(request, AuthAction.RATE_LIMIT_EXCEEDED, account, limit=limit.to_dict())
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "message": (
                    f"Too many requests. Please try again in {decision.retry_after} seconds."
                ),
                "code": "RATE_LIMIT_EXCEEDED",
            },
            headers={"Retry-After": str(decision.retry_after)},
        )
    return account


async def _json_body(request: Request) -> Any:
    if "application/json" not in request.headers.get("content-type", ""):
        return None
    body = await request.body()
    if not body:
        return None
    try:
        return json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return None


async def reject_suspicious_requests(request: Request) -> None:
    """
    FastAPI Dependency: screen the request for injection, traversal and
    scraping patterns. Every detection is logged; severe ones answer 400.

    Uses the account resolved earlier in the request, if any, for the role.
    """
    account: Account | None = getattr(request.state, "account", None)
    role = account.role if account else None

    raw_path = request.url.path
    if request.url.query:
        raw_path = f"{raw_path}?{request.url.query}"

    patterns = scan_request(
        raw_path,
        query=dict(request.query_params),
        body=await _json_body(request),
        role=role,
    )
    if not patterns:
        return

    client_ip = get_client_ip(request)
    logger.warning(
        f"Suspicious patterns detected: {', '.join(patterns)} from {client_ip}",
        extra={
            "patterns": patterns,
            "url": str(request.url),
            "method": request.method,
            "user_agent": request.headers.get("user-agent"),
        },
    )
    await _audit(request, AuthAction.SUSPICIOUS_ACTIVITY, account, patterns=patterns)

    if is_severe(patterns):
        raise _denied(
            status.HTTP_400_BAD_REQUEST,
            "Request blocked due to security concerns",
            "SECURITY_VIOLATION",
        )
