"""
Account Lockout State Machine

Failed-login counting and timed lockout for accounts.

States are derived, never stored as an enum: an account is *locked* while
`lockUntil` is set and in the future, and *unlocked* otherwise. Transitions:

    failed login   stale lock (set, not in the future) -> attempts = 1, lock cleared
                   otherwise attempts += 1; when attempts reach the maximum and
                   the account is not locked, lock for a fixed duration
    success        attempts = 0, lock cleared

The same failed-login transition is available two ways: as a pure method on
`AccountSecurityState`, and as a MongoDB update pipeline that the account
repository applies in a single atomic `find_one_and_update`, so concurrent
failures for one account are each counted exactly once.

This module is part of RootsReach.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from ..constants import LOCK_DURATION_SECONDS, MAX_LOGIN_ATTEMPTS
from ..utils.time import utcnow

LOCK_DURATION = timedelta(seconds=LOCK_DURATION_SECONDS)

# Persisted field names
LOGIN_ATTEMPTS_FIELD = "loginAttempts"
LOCK_UNTIL_FIELD = "lockUntil"
_STALE_FLAG_FIELD = "_lockoutStale"


def is_locked(lock_until: datetime | None, now: datetime | None = None) -> bool:
    """True iff `lock_until` is set and strictly later than `now`."""
    if lock_until is None:
        return False
    return lock_until > (now or utcnow())


@dataclass(frozen=True)
class AccountSecurityState:
    """
    Login-attempt counter and lock timestamp of one account.

    Instances are immutable; transitions return a new state.
    """

    login_attempts: int = 0
    lock_until: datetime | None = None

    def is_locked(self, now: datetime | None = None) -> bool:
        return is_locked(self.lock_until, now)

    def has_stale_lock(self, now: datetime | None = None) -> bool:
        """A lock timestamp is present but has already expired."""
        return self.lock_until is not None and not self.is_locked(now)

    def after_failed_login(
        self,
        now: datetime | None = None,
        max_attempts: int = MAX_LOGIN_ATTEMPTS,
        lock_duration: timedelta = LOCK_DURATION,
    ) -> "AccountSecurityState":
        """State after one more failed credential check."""
        now = now or utcnow()

        if self.has_stale_lock(now):
            return AccountSecurityState(login_attempts=1, lock_until=None)

        attempts = self.login_attempts + 1
        lock_until = self.lock_until
        if attempts >= max_attempts and not self.is_locked(now):
            lock_until = now + lock_duration
        return AccountSecurityState(login_attempts=attempts, lock_until=lock_until)

    def after_successful_login(self) -> "AccountSecurityState":
        return AccountSecurityState(login_attempts=0, lock_until=None)


def failed_login_pipeline(
    now: datetime | None = None,
    max_attempts: int = MAX_LOGIN_ATTEMPTS,
    lock_duration: timedelta = LOCK_DURATION,
) -> list[dict[str, Any]]:
    """
    Build the update pipeline equivalent to `AccountSecurityState.after_failed_login`.

    The pipeline reads and writes the counters inside one document update, so
    MongoDB applies it atomically.

    Args:
        now: Time of the failed attempt
        max_attempts: Attempts that trigger the lock
        lock_duration: How long the lock lasts

    Returns:
        Aggregation pipeline usable as the `update` argument of
        `find_one_and_update` / `update_one`
    """
    now = now or utcnow()
    lock_field = f"${LOCK_UNTIL_FIELD}"
    attempts_field = f"${LOGIN_ATTEMPTS_FIELD}"

    stale = {
        "$and": [
            {"$ne": [{"$ifNull": [lock_field, None]}, None]},
            {"$lte": [lock_field, now]},
        ]
    }
    currently_locked = {"$gt": [lock_field, now]}

    return [
        {
            "$set": {
                _STALE_FLAG_FIELD: stale,
                LOGIN_ATTEMPTS_FIELD: {
                    "$cond": [stale, 1, {"$add": [{"$ifNull": [attempts_field, 0]}, 1]}]
                },
                LOCK_UNTIL_FIELD: {"$cond": [stale, "$$REMOVE", lock_field]},
                "updatedAt": now,
            }
        },
        {
            "$set": {
                LOCK_UNTIL_FIELD: {
                    "$cond": [
                        {
                            "$and": [
                                {"$not": [f"${_STALE_FLAG_FIELD}"]},
                                {"$gte": [attempts_field, max_attempts]},
                                {"$not": [currently_locked]},
                            ]
                        },
                        now + lock_duration,
                        lock_field,
                    ]
                }
            }
        },
        {"$unset": _STALE_FLAG_FIELD},
    ]


def reset_login_update(now: datetime | None = None) -> dict[str, Any]:
    """Update document clearing both the attempt counter and the lock."""
    return {
        "$set": {LOGIN_ATTEMPTS_FIELD: 0, "updatedAt": now or utcnow()},
        "$unset": {LOCK_UNTIL_FIELD: ""},
    }
