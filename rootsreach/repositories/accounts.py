"""
Account Repository

MongoDB persistence for accounts, including the atomic failed-login update.

Every lockout transition is a single document update: the failed-login
pipeline reads the current counters and writes the new ones inside MongoDB,
so two concurrent failures both count.
"""

import logging
from datetime import datetime, timedelta
from typing import Any

from pymongo import ReturnDocument
from pymongo.errors import OperationFailure

from ..constants import LOCK_DURATION_SECONDS, MAX_LOGIN_ATTEMPTS
from ..models import Account, normalize_email
from ..security.lockout import failed_login_pipeline, reset_login_update
from ..utils.mongo import to_object_id
from ..utils.time import utcnow
from .mongo import MongoRepository

logger = logging.getLogger(__name__)


class AccountRepository(MongoRepository[Account]):
    """
    Repository for `Account` documents.

    Example:
        accounts = AccountRepository(db.users)
        account = await accounts.find_by_email("maker@example.com")
        if account and not account.is_locked():
            ...
    """

    def __init__(
        self,
        collection: Any,
        max_login_attempts: int = MAX_LOGIN_ATTEMPTS,
        lock_duration_seconds: int = LOCK_DURATION_SECONDS,
    ):
        super().__init__(collection, Account)
        self._max_login_attempts = max_login_attempts
        self._lock_duration = timedelta(seconds=lock_duration_seconds)
        self._indexes_created = False

    async def ensure_indexes(self) -> None:
        """Create the unique email and sparse phone indexes."""
        if self._indexes_created:
            return

        try:
            await self._collection.create_index("email", unique=True, name="email_unique_idx")
            await self._collection.create_index("phone", sparse=True, name="phone_sparse_idx")
            self._indexes_created = True
            logger.info("Account indexes ensured")
        except OperationFailure as e:
            logger.warning(f"Failed to create account indexes: {e}")

    async def find_by_email(self, email: str) -> Account | None:
        if not email:
            return None
        return await self.find_one({"email": normalize_email(email)})

    async def find_by_identifier(self, identifier: str) -> Account | None:
        """Find an account by email address or phone number."""
        if not identifier:
            return None
        identifier = identifier.strip()
        return await self.find_one(
            {"$or": [{"email": normalize_email(identifier)}, {"phone": identifier}]}
        )

    async def record_failed_login(
        self, account_id: str, now: datetime | None = None
    ) -> Account | None:
        """
        Apply the failed-login transition atomically.

        Args:
            account_id: Account that failed a credential check
            now: Time of the attempt (defaults to current UTC time)

        Returns:
            The account after the update, or None if it no longer exists
        """
        pipeline = failed_login_pipeline(
            now=now or utcnow(),
            max_attempts=self._max_login_attempts,
            lock_duration=self._lock_duration,
        )
        doc = await self._collection.find_one_and_update(
            {"_id": to_object_id(account_id)},
            pipeline,
            return_document=ReturnDocument.AFTER,
        )
        account = self._to_entity(doc)
        if account is not None and account.is_locked(now):
            logger.warning(
                f"Account {account_id} locked after {account.login_attempts} failed logins"
            )
        return account

    async def reset_login_attempts(self, account_id: str, now: datetime | None = None) -> bool:
        """Clear the failed-login counter and any lock."""
        result = await self._collection.update_one(
            {"_id": to_object_id(account_id)}, reset_login_update(now)
        )
        return result.modified_count > 0

    async def apply_update(self, account_id: str, update: dict[str, Any]) -> bool:
        """
        Apply a raw update document ($set/$unset/$inc) to one account.

        Returns:
            True if the document was modified
        """
        update = dict(update)
        update["$set"] = {**update.get("$set", {}), "updatedAt": utcnow()}
        result = await self._collection.update_one({"_id": to_object_id(account_id)}, update)
        return result.modified_count > 0
