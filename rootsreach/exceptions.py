"""
Custom exceptions for RootsReach.

Expected authorization outcomes (denied permission, unmet requirement, locked
account) are return values, not exceptions. These types cover configuration
problems and the OTP issuance flow, which rejects requests it cannot serve.

Each class carries the HTTP status and stable `code` the API answers with,
so route handlers translate any of them the same way:

    raise HTTPException(e.status_code, detail=e.to_detail(), headers=e.headers())
"""

from typing import Any


class RootsReachError(RuntimeError):
    """
    Base exception for RootsReach errors.

    Attributes:
        message: Client-safe error message
        context: Extra diagnostic fields (account_id, identifier, ...),
                 shown in `str()` for logs but never sent to clients
    """

    code = "ROOTSREACH_ERROR"
    status_code = 500

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = dict(context or {})

    def __str__(self) -> str:
        if not self.context:
            return self.message
        fields = ", ".join(f"{key}={value}" for key, value in self.context.items())
        return f"{self.message} (context: {fields})"

    def to_detail(self) -> dict[str, Any]:
        return {"message": self.message, "code": self.code}

    def headers(self) -> dict[str, str] | None:
        return None


class ConfigurationError(RootsReachError):
    """Invalid or missing setting; `config_key` names it when known."""

    code = "CONFIGURATION_ERROR"

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        config_value: Any = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.config_key = config_key
        self.config_value = config_value
        if config_key:
            self.context["config_key"] = config_key
        if config_value is not None:
            self.context["config_value"] = config_value


class AccountNotFoundError(RootsReachError):
    code = "USER_NOT_FOUND"
    status_code = 404

    def __init__(self, identifier: str) -> None:
        super().__init__("User not found", context={"identifier": identifier})
        self.identifier = identifier


class OTPError(RootsReachError):
    """Base class for OTP issuance failures."""

    code = "OTP_ERROR"
    status_code = 400


class OTPLockedError(OTPError):
    """OTP operations are locked after too many failed verifications."""

    code = "OTP_LOCKED"
    status_code = 423

    def __init__(self, minutes_remaining: int, context: dict[str, Any] | None = None) -> None:
        super().__init__(
            "Account is locked due to too many failed attempts. "
            f"Please try again in {minutes_remaining} minutes.",
            context=context,
        )
        self.minutes_remaining = minutes_remaining


class OTPRateLimitError(OTPError):
    """
    A send or resend would exceed a cooldown or daily cap.

    Attributes:
        retry_after: Seconds until the request may succeed, if known
    """

    code = "OTP_RATE_LIMITED"
    status_code = 429

    def __init__(
        self,
        message: str,
        retry_after: int | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, context=context)
        self.retry_after = retry_after
        if retry_after is not None:
            self.context["retry_after"] = retry_after

    def headers(self) -> dict[str, str] | None:
        return {"Retry-After": str(self.retry_after)} if self.retry_after else None


class OTPStateError(OTPError):
    """The account is in a state where no OTP may be issued."""

    code = "OTP_INVALID_STATE"
