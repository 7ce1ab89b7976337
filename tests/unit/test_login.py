"""
Unit tests for password login and the lockout transitions it drives.
"""

from datetime import timedelta

import pytest
from bson import ObjectId

from rootsreach.auth.login import LoginStatus, authenticate


@pytest.mark.unit
class TestAuthenticate:
    """Test authenticate() outcomes."""

    @pytest.mark.asyncio
    async def test_unknown_email(self, account_repository, test_password, now):
        """Test unknown emails look like bad credentials."""
        result = await authenticate(account_repository, "ghost@example.com", test_password, now)
        assert result.status == LoginStatus.INVALID_CREDENTIALS
        assert result.account is None

    @pytest.mark.asyncio
    async def test_success_without_prior_failures(
        self, account_repository, mock_mongo_collection, account_doc_factory, test_password, now
    ):
        """Test a clean login performs no write."""
        mock_mongo_collection.find_one.return_value = account_doc_factory()

        result = await authenticate(account_repository, "maker@example.com", test_password, now)

        assert result.ok is True
        assert result.account.email == "maker@example.com"
        mock_mongo_collection.update_one.assert_not_called()
        mock_mongo_collection.find_one_and_update.assert_not_called()

    @pytest.mark.asyncio
    async def test_success_resets_counters(
        self, account_repository, mock_mongo_collection, account_doc_factory, test_password, now
    ):
        """Test a correct password after failures clears the counter."""
        mock_mongo_collection.find_one.return_value = account_doc_factory(loginAttempts=3)

        result = await authenticate(account_repository, "maker@example.com", test_password, now)

        assert result.status == LoginStatus.OK
        assert result.account.login_attempts == 0
        update = mock_mongo_collection.update_one.call_args.args[1]
        assert update["$set"]["loginAttempts"] == 0
        assert update["$unset"] == {"lockUntil": ""}

    @pytest.mark.asyncio
    async def test_success_after_expired_lock(
        self, account_repository, mock_mongo_collection, account_doc_factory, test_password, now
    ):
        """Test an expired lock does not block and is cleared."""
        mock_mongo_collection.find_one.return_value = account_doc_factory(
            loginAttempts=5, lockUntil=now - timedelta(seconds=1)
        )

        result = await authenticate(account_repository, "maker@example.com", test_password, now)

        assert result.ok is True
        assert result.account.lock_until is None
        mock_mongo_collection.update_one.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_locked_account_refused_before_password_check(
        self, account_repository, mock_mongo_collection, account_doc_factory, test_password, now
    ):
        """Test a locked account is refused even with the right password."""
        mock_mongo_collection.find_one.return_value = account_doc_factory(
            loginAttempts=5, lockUntil=now + timedelta(minutes=90)
        )

        result = await authenticate(account_repository, "maker@example.com", test_password, now)

        assert result.status == LoginStatus.LOCKED
        assert result.locked_minutes == 90
        mock_mongo_collection.find_one_and_update.assert_not_called()
        mock_mongo_collection.update_one.assert_not_called()

    @pytest.mark.asyncio
    async def test_wrong_password_records_failure(
        self, account_repository, mock_mongo_collection, account_doc_factory, now
    ):
        """Test a wrong password applies the atomic failure update."""
        doc = account_doc_factory(loginAttempts=1)
        mock_mongo_collection.find_one.return_value = doc
        mock_mongo_collection.find_one_and_update.return_value = {**doc, "loginAttempts": 2}

        result = await authenticate(account_repository, "maker@example.com", "wrong", now)

        assert result.status == LoginStatus.INVALID_CREDENTIALS
        assert result.account.login_attempts == 2
        assert mock_mongo_collection.find_one_and_update.call_args.args[0] == {"_id": doc["_id"]}

    @pytest.mark.asyncio
    async def test_fifth_failure_returns_locked_account(
        self, account_repository, mock_mongo_collection, account_doc_factory, now
    ):
        """Test the post-update account exposes the new lock."""
        doc = account_doc_factory(loginAttempts=4)
        mock_mongo_collection.find_one.return_value = doc
        mock_mongo_collection.find_one_and_update.return_value = {
            **doc,
            "loginAttempts": 5,
            "lockUntil": now + timedelta(hours=2),
        }

        result = await authenticate(account_repository, "maker@example.com", "wrong", now)

        assert result.status == LoginStatus.INVALID_CREDENTIALS
        assert result.account.is_locked(now) is True

    @pytest.mark.asyncio
    async def test_non_bcrypt_hash_rejected(
        self, account_repository, mock_mongo_collection, account_doc_factory, now
    ):
        """Test plain-text stored passwords never match."""
        doc = account_doc_factory(_id=ObjectId(), passwordHash="hunter2")
        mock_mongo_collection.find_one.return_value = doc
        mock_mongo_collection.find_one_and_update.return_value = doc

        result = await authenticate(account_repository, "maker@example.com", "hunter2", now)

        assert result.status == LoginStatus.INVALID_CREDENTIALS
