"""
One-Time Password Service

Issues, resends and verifies numeric OTPs stored on the account document,
with the throttling the account's OTP counters exist for:

    - a daily cap on sends (`otpSendCount` / `lastOtpSentDate`)
    - a cooldown between sends (`lastOtpSentAt`)
    - a daily cap on resends (`otpResendCount` / `lastResendDate`)
    - a cap on wrong codes per OTP (`otpAttempts`), after which OTP
      operations lock for a while (`otpLockUntil`)

Daily counters roll over at UTC midnight.
"""

import hmac
import logging
import math
import secrets
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

from ..config import SecurityConfig
from ..constants import (OTP_EXPIRY_MINUTES, OTP_LENGTH,
                         OTP_LOCKOUT_MINUTES, OTP_MAX_DAILY_SENDS,
                         OTP_MAX_RESENDS_PER_DAY,
                         OTP_MAX_VERIFICATION_ATTEMPTS,
                         OTP_RESEND_COOLDOWN_MINUTES)
from ..exceptions import (AccountNotFoundError, OTPLockedError,
                          OTPRateLimitError, OTPStateError)
from ..models import Account
from ..observability.logging import log_operation
from ..repositories.accounts import AccountRepository
from ..utils.time import minutes_until, start_of_day, utcnow

logger = logging.getLogger(__name__)

_OTP_FIELDS = ("otpCode", "otpExpires", "otpAttempts")
_THROTTLE_FIELDS = (
    "otpResendCount",
    "lastOtpSentAt",
    "lastResendDate",
    "otpSendCount",
    "lastOtpSentDate",
    "otpLockUntil",
)


class OTPSender(Protocol):
    """Delivery channel for OTP messages (SMS gateway, e-mail, ...)."""

    async def send(self, destination: str, message: str) -> None:
        ...


class LoggingOTPSender:
    """Sender that only logs; used when no delivery provider is configured."""

    async def send(self, destination: str, message: str) -> None:
        logger.info(f"OTP message queued for {destination}")
        logger.debug(f"OTP message for {destination}: {message}")


@dataclass
class OTPIssue:
    """Result of a successful send or resend."""

    message: str
    expires_at: datetime
    send_count: int
    max_sends_per_day: int
    delivered: bool = True
    attempts_remaining: int | None = None
    otp_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["expires_at"] = self.expires_at.isoformat()
        return {key: value for key, value in data.items() if value is not None}


@dataclass
class OTPVerification:
    success: bool
    message: str
    attempts_remaining: int | None = None

    def to_dict(self) -> dict[str, Any]:
        data = {"success": self.success, "message": self.message}
        if self.attempts_remaining is not None:
            data["attempts_remaining"] = self.attempts_remaining
        return data


class OTPService:
    """
    OTP issuance and verification backed by the account repository.

    Example:
        otp = OTPService(accounts, config=SecurityConfig())
        issue = await otp.send_otp("+911234567890")
        result = await otp.verify_otp("+911234567890", "482913")
    """

    def __init__(
        self,
        accounts: AccountRepository,
        sender: OTPSender | None = None,
        config: SecurityConfig | None = None,
        app_name: str = "RootsReach",
    ):
        self._accounts = accounts
        self._sender = sender or LoggingOTPSender()
        self._config = config or SecurityConfig()
        self._app_name = app_name

        self.otp_length = OTP_LENGTH
        self.expiry = timedelta(minutes=OTP_EXPIRY_MINUTES)
        self.resend_cooldown = timedelta(minutes=OTP_RESEND_COOLDOWN_MINUTES)
        self.lockout = timedelta(minutes=OTP_LOCKOUT_MINUTES)
        self.max_resends = OTP_MAX_RESENDS_PER_DAY
        self.max_verification_attempts = OTP_MAX_VERIFICATION_ATTEMPTS
        self.max_daily_sends = OTP_MAX_DAILY_SENDS

    def generate_otp(self) -> str:
        """Cryptographically random code without a leading zero."""
        low = 10 ** (self.otp_length - 1)
        return str(low + secrets.randbelow(9 * low))

    # ------------------------------------------------------------------
    # Throttle helpers
    # ------------------------------------------------------------------

    async def _load(self, identifier: str) -> Account:
        account = await self._accounts.find_by_identifier(identifier)
        if account is None:
            raise AccountNotFoundError(identifier)
        return account

    @staticmethod
    def _otp_locked(account: Account, now: datetime) -> bool:
        return account.otp_lock_until is not None and account.otp_lock_until > now

    def _ensure_not_locked(self, account: Account, now: datetime) -> None:
        if self._otp_locked(account, now):
            raise OTPLockedError(
                minutes_until(account.otp_lock_until, now), context={"account_id": account.id}
            )

    @staticmethod
    def _daily_send_count(account: Account, today: datetime) -> int:
        if account.last_otp_sent_date is None or account.last_otp_sent_date < today:
            return 0
        return account.otp_send_count or 0

    @staticmethod
    def _daily_resend_count(account: Account, today: datetime) -> int:
        if account.last_resend_date is None or account.last_resend_date < today:
            return 0
        return account.otp_resend_count or 0

    def _ensure_daily_capacity(self, send_count: int, now: datetime) -> None:
        if send_count >= self.max_daily_sends:
            tomorrow = start_of_day(now) + timedelta(days=1)
            raise OTPRateLimitError(
                f"Daily OTP limit ({self.max_daily_sends}) reached. Please try again tomorrow.",
                retry_after=int((tomorrow - now).total_seconds()),
            )

    def _issue_update(
        self, code: str, now: datetime, send_count: int, extra: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        today = start_of_day(now)
        return {
            "$set": {
                "otpCode": code,
                "otpExpires": now + self.expiry,
                "otpAttempts": 0,
                "lastOtpSentAt": now,
                "otpSendCount": send_count + 1,
                "lastOtpSentDate": today,
                **(extra or {}),
            },
            "$unset": {"otpLockUntil": ""},
        }

    async def _deliver(self, destination: str, code: str) -> bool:
        message = (
            f"Your {self._app_name} verification code is: {code}. "
            f"This code will expire in {OTP_EXPIRY_MINUTES} minutes. "
            "Do not share this code with anyone."
        )
        try:
            await self._sender.send(destination, message)
            return True
        except (ConnectionError, TimeoutError, RuntimeError):
            # The code is already stored; the caller may resend.
            logger.error(f"OTP delivery to {destination} failed", exc_info=True)
            return False

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def send_otp(self, identifier: str, now: datetime | None = None) -> OTPIssue:
        """
        Issue a fresh OTP for the account identified by email or phone.

        Raises:
            AccountNotFoundError: No account matches `identifier`
            OTPLockedError: OTP operations are locked for this account
            OTPRateLimitError: The daily send cap is reached
        """
        now = now or utcnow()
        account = await self._load(identifier)
        self._ensure_not_locked(account, now)

        send_count = self._daily_send_count(account, start_of_day(now))
        self._ensure_daily_capacity(send_count, now)

        code = self.generate_otp()
        await self._accounts.apply_update(account.id, self._issue_update(code, now, send_count))
        delivered = await self._deliver(identifier, code)

        log_operation(
            logger,
            "otp_send",
            account_id=account.id,
            send_count=send_count + 1,
            delivered=delivered,
        )
        return OTPIssue(
            message="OTP sent successfully",
            expires_at=now + self.expiry,
            send_count=send_count + 1,
            max_sends_per_day=self.max_daily_sends,
            delivered=delivered,
            otp_code=code if self._config.is_development else None,
        )

    async def resend_otp(self, identifier: str, now: datetime | None = None) -> OTPIssue:
        """
        Issue a replacement OTP, subject to cooldown and the daily resend cap.

        Raises:
            AccountNotFoundError: No account matches `identifier`
            OTPStateError: The phone number is already verified
            OTPLockedError: OTP operations are locked for this account
            OTPRateLimitError: Cooldown active, or a daily cap is reached
        """
        now = now or utcnow()
        account = await self._load(identifier)

        if account.is_phone_verified:
            raise OTPStateError(
                "Phone number is already verified", context={"account_id": account.id}
            )

        self._ensure_not_locked(account, now)

        if account.last_otp_sent_at is not None:
            cooldown_end = account.last_otp_sent_at + self.resend_cooldown
            if now < cooldown_end:
                remaining = max(1, math.ceil((cooldown_end - now).total_seconds()))
                raise OTPRateLimitError(
                    f"Please wait {remaining} seconds before requesting another OTP",
                    retry_after=remaining,
                )

        today = start_of_day(now)
        send_count = self._daily_send_count(account, today)
        self._ensure_daily_capacity(send_count, now)

        resend_count = self._daily_resend_count(account, today)
        if resend_count >= self.max_resends:
            tomorrow = today + timedelta(days=1)
            raise OTPRateLimitError(
                f"Maximum resend attempts ({self.max_resends}) reached for today. "
                "Please try again tomorrow.",
                retry_after=int((tomorrow - now).total_seconds()),
            )

        code = self.generate_otp()
        update = self._issue_update(
            code,
            now,
            send_count,
            extra={"otpResendCount": resend_count + 1, "lastResendDate": today},
        )
        await self._accounts.apply_update(account.id, update)
        delivered = await self._deliver(identifier, code)

        log_operation(
            logger,
            "otp_resend",
            account_id=account.id,
            resend_count=resend_count + 1,
            delivered=delivered,
        )
        return OTPIssue(
            message="OTP resent successfully",
            expires_at=now + self.expiry,
            send_count=send_count + 1,
            max_sends_per_day=self.max_daily_sends,
            delivered=delivered,
            attempts_remaining=self.max_resends - (resend_count + 1),
            otp_code=code if self._config.is_development else None,
        )

    async def verify_otp(
        self, identifier: str, code: str, now: datetime | None = None
    ) -> OTPVerification:
        """
        Check a submitted code. Expected failures are results, not exceptions.

        Too many wrong codes lock OTP operations and discard the current code.
        """
        now = now or utcnow()
        account = await self._accounts.find_by_identifier(identifier)

        if account is None:
            return OTPVerification(False, "User not found")

        if account.is_phone_verified:
            return OTPVerification(False, "Phone number is already verified")

        if self._otp_locked(account, now):
            minutes = minutes_until(account.otp_lock_until, now)
            return OTPVerification(
                False,
                "Account is locked due to too many failed attempts. "
                f"Please try again in {minutes} minutes.",
            )

        if not account.otp_code or account.otp_expires is None:
            return OTPVerification(False, "No OTP found. Please request a new one.")

        if account.otp_expires < now:
            return OTPVerification(False, "OTP has expired. Please request a new one.")

        attempts = account.otp_attempts or 0
        if attempts >= self.max_verification_attempts:
            await self._accounts.apply_update(
                account.id,
                {
                    "$set": {"otpLockUntil": now + self.lockout},
                    "$unset": {field: "" for field in _OTP_FIELDS},
                },
            )
            logger.warning(f"OTP locked for account {account.id} after {attempts} wrong codes")
            return OTPVerification(
                False,
                f"Too many invalid attempts. Account locked for {OTP_LOCKOUT_MINUTES} minutes.",
            )

        if not hmac.compare_digest(str(account.otp_code), str(code or "")):
            await self._accounts.apply_update(account.id, {"$inc": {"otpAttempts": 1}})
            remaining = self.max_verification_attempts - (attempts + 1)
            log_operation(logger, "otp_verify", success=False, account_id=account.id)
            return OTPVerification(
                False, f"Invalid OTP. {remaining} attempts remaining.", attempts_remaining=remaining
            )

        await self._accounts.apply_update(
            account.id,
            {
                "$set": {"isPhoneVerified": True, "phoneVerifiedAt": now},
                "$unset": {field: "" for field in _OTP_FIELDS + _THROTTLE_FIELDS},
            },
        )
        log_operation(logger, "otp_verify", account_id=account.id)
        return OTPVerification(True, "Phone number verified successfully")

    async def get_otp_status(self, identifier: str, now: datetime | None = None) -> dict[str, Any]:
        """Snapshot of the account's OTP state for clients deciding what to show."""
        now = now or utcnow()
        account = await self._accounts.find_by_identifier(identifier)
        if account is None:
            return {"exists": False}

        locked = self._otp_locked(account, now)
        lock_minutes = minutes_until(account.otp_lock_until, now) if locked else 0

        can_resend = not locked
        cooldown_remaining = 0
        if account.last_otp_sent_at is not None and not locked:
            cooldown_end = account.last_otp_sent_at + self.resend_cooldown
            if now < cooldown_end:
                can_resend = False
                cooldown_remaining = math.ceil((cooldown_end - now).total_seconds())

        today = start_of_day(now)
        daily_send_count = self._daily_send_count(account, today)
        daily_limit_reached = daily_send_count >= self.max_daily_sends
        if daily_limit_reached:
            can_resend = False

        return {
            "exists": True,
            "is_phone_verified": account.is_phone_verified,
            "phone_verified_at": account.phone_verified_at,
            "has_active_otp": bool(
                account.otp_code and account.otp_expires and account.otp_expires > now
            ),
            "otp_expires": account.otp_expires,
            "attempts_used": account.otp_attempts or 0,
            "max_attempts": self.max_verification_attempts,
            "is_locked": locked,
            "lock_time_remaining": lock_minutes,
            "can_resend": can_resend,
            "cooldown_remaining": cooldown_remaining,
            "resend_count": self._daily_resend_count(account, today),
            "max_resends": self.max_resends,
            "daily_send_count": daily_send_count,
            "max_daily_sends": self.max_daily_sends,
            "daily_limit_reached": daily_limit_reached,
        }

    async def cleanup_expired(self, now: datetime | None = None) -> dict[str, int]:
        """Clear expired codes, expired OTP locks and previous days' counters."""
        now = now or utcnow()
        today = start_of_day(now)

        expired_otps = await self._accounts.update_many(
            {"otpExpires": {"$lt": now}},
            {"$unset": {field: "" for field in _OTP_FIELDS}},
        )
        expired_locks = await self._accounts.update_many(
            {"otpLockUntil": {"$lt": now}},
            {"$unset": {"otpLockUntil": ""}},
        )
        daily_resets = await self._accounts.update_many(
            {"lastOtpSentDate": {"$lt": today}},
            {
                "$unset": {
                    "otpSendCount": "",
                    "lastOtpSentDate": "",
                    "otpResendCount": "",
                    "lastResendDate": "",
                }
            },
        )

        log_operation(
            logger,
            "otp_cleanup",
            expired_otps=expired_otps,
            expired_locks=expired_locks,
            daily_resets=daily_resets,
        )
        return {
            "expired_otps": expired_otps,
            "expired_locks": expired_locks,
            "daily_resets": daily_resets,
        }
