"""
Password login against the account store.

`authenticate` drives the lockout state machine: a locked account is refused
before its password is looked at, a wrong password applies the atomic
failed-login update, and a correct password clears the counters.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from ..models import Account
from ..observability.logging import log_operation
from ..repositories.accounts import AccountRepository
from ..utils.time import minutes_until, utcnow
from .passwords import verify_password

logger = logging.getLogger(__name__)


class LoginStatus(str, Enum):
    OK = "ok"
    INVALID_CREDENTIALS = "invalid_credentials"
    LOCKED = "locked"


@dataclass
class LoginResult:
    """
    Outcome of a password check.

    Attributes:
        status: One of LoginStatus
        account: The account as stored after the attempt, when one matched
        locked_minutes: Minutes until the lock expires, when the account is locked
    """

    status: LoginStatus
    account: Account | None = None
    locked_minutes: int = 0

    @property
    def ok(self) -> bool:
        return self.status == LoginStatus.OK


async def authenticate(
    accounts: AccountRepository,
    email: str,
    password: str,
    now: datetime | None = None,
) -> LoginResult:
    """
    Check an email/password pair and apply the lockout transitions.

    Unknown emails and wrong passwords both return INVALID_CREDENTIALS so
    callers cannot tell them apart.

    Args:
        accounts: Account repository
        email: Submitted email (case-insensitive)
        password: Submitted plain-text password
        now: Time of the attempt (defaults to current UTC time)

    Returns:
        LoginResult; never raises for a rejected login
    """
    now = now or utcnow()
    account = await accounts.find_by_email(email)

    if account is None:
        log_operation(logger, "login", success=False, reason="unknown_email")
        return LoginResult(LoginStatus.INVALID_CREDENTIALS)

    if account.is_locked(now):
        logger.warning(f"Login refused for locked account {account.id}")
        return LoginResult(
            LoginStatus.LOCKED,
            account=account,
            locked_minutes=minutes_until(account.lock_until, now),
        )

    if not verify_password(password, account.password_hash):
        updated = await accounts.record_failed_login(account.id, now) or account
        log_operation(
            logger,
            "login",
            success=False,
            account_id=account.id,
            attempts=updated.login_attempts,
        )
        return LoginResult(LoginStatus.INVALID_CREDENTIALS, account=updated)

    if (account.login_attempts or 0) > 0 or account.lock_until is not None:
        await accounts.reset_login_attempts(account.id, now)
        account.login_attempts = 0
        account.lock_until = None

    log_operation(logger, "login", account_id=account.id, role=account.role)
    return LoginResult(LoginStatus.OK, account=account)
