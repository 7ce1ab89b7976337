"""
Authentication routes.

    POST /auth/login                 password login, token pair on success
    POST /auth/otp/send              issue an OTP
    POST /auth/otp/resend            replace the current OTP
    POST /auth/otp/verify            check an OTP, verifying the phone number
    GET  /auth/otp/status/{ident}    OTP state for the account
    GET  /auth/me                    caller's account and effective permissions

Services are read from `request.app.state` (see `rootsreach.app.create_app`).
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field
from pymongo.errors import PyMongoError

from ..exceptions import AccountNotFoundError, OTPError, RootsReachError
from ..models import Account
from ..security.policy import (Action, Resource,
                               get_required_permission_level)
from ..utils.mongo import clean_mongo_doc
from .audit import AuditEvent, AuthAction
from .dependencies import get_current_account
from .jwt import generate_token_pair
from .login import LoginStatus, authenticate
from .rate_limiter import get_client_ip

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


class OTPRequest(BaseModel):
    identifier: str = Field(..., min_length=1, description="Email address or phone number")


class OTPVerifyRequest(OTPRequest):
    otp: str = Field(..., min_length=1)


async def _audit(request: Request, action: AuthAction, success: bool, **fields: Any) -> None:
    audit_log = getattr(request.app.state, "audit_log", None)
    if audit_log is None:
        return
    event = AuditEvent(
        action, success, ip_address=get_client_ip(request), path=request.url.path, **fields
    )
    try:
        await audit_log.record(event)
    except PyMongoError as e:
        logger.error(f"Failed to write audit event {action.value}: {e}")


def _http_error(error: RootsReachError) -> HTTPException:
    return HTTPException(
        status_code=error.status_code, detail=error.to_detail(), headers=error.headers()
    )


@router.post("/login")
async def login(request: Request, body: LoginRequest) -> dict[str, Any]:
    """Password login. 401 on bad credentials, 423 while locked."""
    accounts = request.app.state.accounts
    config = request.app.state.config

    result = await authenticate(accounts, body.email, body.password)

    if result.status == LoginStatus.LOCKED:
        await _audit(
            request,
            AuthAction.LOGIN_FAILED,
            False,
            user_email=body.email,
            details={"reason": "account_locked"},
        )
        raise HTTPException(
            status_code=status.HTTP_423_LOCKED,
            detail={
                "message": "Account is temporarily locked due to too many failed login attempts",
                "code": "ACCOUNT_LOCKED",
                "retry_after_minutes": result.locked_minutes,
            },
        )

    if result.status == LoginStatus.INVALID_CREDENTIALS:
        await _audit(
            request,
            AuthAction.LOGIN_FAILED,
            False,
            user_email=body.email,
            details={"reason": "invalid_credentials"},
        )
        if result.account is not None and result.account.is_locked():
            await _audit(
                request,
                AuthAction.ACCOUNT_LOCKED,
                False,
                user_email=body.email,
                user_id=result.account.id,
                details={"attempts": result.account.login_attempts},
            )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"message": "Invalid credentials", "code": "INVALID_CREDENTIALS"},
        )

    account = result.account
    tokens = generate_token_pair(
        {"user_id": account.id, "email": account.email, "role": account.role},
        config.secret_key,
        access_token_ttl=config.access_token_ttl,
        refresh_token_ttl=config.refresh_token_ttl,
    )
    await _audit(
        request,
        AuthAction.LOGIN_SUCCESS,
        True,
        user_email=account.email,
        user_id=account.id,
        role=account.role,
    )

    return {
        "success": True,
        "access_token": tokens.access_token,
        "refresh_token": tokens.refresh_token,
        "token_type": "bearer",
        "expires_in": config.access_token_ttl,
        "access_expires_at": tokens.access_expires_at.isoformat(),
        "user": account.to_public_dict(),
    }


@router.post("/otp/send")
async def send_otp(request: Request, body: OTPRequest) -> dict[str, Any]:
    otp_service = request.app.state.otp_service
    try:
        issue = await otp_service.send_otp(body.identifier)
    except (OTPError, AccountNotFoundError) as e:
        raise _http_error(e) from None

    await _audit(request, AuthAction.OTP_SENT, True, user_email=body.identifier)
    return {"success": True, **issue.to_dict()}


@router.post("/otp/resend")
async def resend_otp(request: Request, body: OTPRequest) -> dict[str, Any]:
    otp_service = request.app.state.otp_service
    try:
        issue = await otp_service.resend_otp(body.identifier)
    except (OTPError, AccountNotFoundError) as e:
        raise _http_error(e) from None

    await _audit(
        request, AuthAction.OTP_SENT, True, user_email=body.identifier, details={"resend": True}
    )
    return {"success": True, **issue.to_dict()}


@router.post("/otp/verify")
async def verify_otp(request: Request, body: OTPVerifyRequest) -> dict[str, Any]:
    """400 with the service's message when the code is not accepted."""
    otp_service = request.app.state.otp_service
    verification = await otp_service.verify_otp(body.identifier, body.otp)

    await _audit(
        request,
        AuthAction.OTP_VERIFIED if verification.success else AuthAction.OTP_FAILED,
        verification.success,
        user_email=body.identifier,
    )

    if not verification.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=verification.to_dict())
    return verification.to_dict()


@router.get("/otp/status/{identifier}")
async def otp_status(request: Request, identifier: str) -> dict[str, Any]:
    otp_service = request.app.state.otp_service
    return clean_mongo_doc(await otp_service.get_otp_status(identifier))


def effective_permissions(role: str) -> dict[str, dict[str, str]]:
    """{resource: {action: scope}} for every action the role holds."""
    levels: dict[str, dict[str, str]] = {}
    for resource in Resource:
        granted = {}
        for action in Action:
            level = get_required_permission_level(role, resource, action)
            if level is not None:
                granted[action.value] = level
        if granted:
            levels[resource.value] = granted
    return levels


@router.get("/me")
async def me(account: Account = Depends(get_current_account)) -> dict[str, Any]:
    return {
        "user": account.to_public_dict(),
        "permissions": effective_permissions(account.role),
    }
