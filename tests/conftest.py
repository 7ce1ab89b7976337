"""
Pytest configuration and shared fixtures for RootsReach tests.

This module provides:
- Mock Motor collection and database fixtures
- A MongoDB container (testcontainers) for the integration tests
- Account document factories
- A fixed clock for lockout and OTP tests
"""

import os
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict
from unittest.mock import AsyncMock, MagicMock

import bcrypt
import pytest
import pytest_asyncio
from bson import ObjectId
from motor.motor_asyncio import (AsyncIOMotorClient, AsyncIOMotorCollection,
                                 AsyncIOMotorDatabase)
from pymongo.errors import ConnectionFailure

# Set test secret key before importing config-dependent components
if "RR_SECRET_KEY" not in os.environ:
    os.environ["RR_SECRET_KEY"] = "test_secret_key_for_testing_only_" + "x" * 32

from rootsreach.config import SecurityConfig
from rootsreach.repositories.accounts import AccountRepository

def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast tests against mocked collections")
    config.addinivalue_line("markers", "integration: tests against a real MongoDB container")


TEST_PASSWORD = "correct horse battery staple"
TEST_PASSWORD_HASH = bcrypt.hashpw(TEST_PASSWORD.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode(
    "utf-8"
)

# ============================================================================
# CLOCK
# ============================================================================


@pytest.fixture
def now() -> datetime:
    """A fixed naive-UTC instant in the middle of a day."""
    return datetime(2026, 3, 10, 12, 0, 0)


# ============================================================================
# MOCK MONGODB FIXTURES
# ============================================================================


def _make_collection(name: str) -> MagicMock:
    collection = MagicMock(spec=AsyncIOMotorCollection)
    collection.name = name
    collection.find_one = AsyncMock(return_value=None)
    collection.find_one_and_update = AsyncMock(return_value=None)
    collection.insert_one = AsyncMock(return_value=MagicMock(inserted_id=ObjectId()))
    collection.update_one = AsyncMock(return_value=MagicMock(modified_count=1))
    collection.update_many = AsyncMock(return_value=MagicMock(modified_count=2))
    collection.delete_one = AsyncMock(return_value=MagicMock(deleted_count=1))
    collection.delete_many = AsyncMock(return_value=MagicMock(deleted_count=2))
    collection.count_documents = AsyncMock(return_value=0)
    collection.create_index = AsyncMock(return_value="test_index")
    return collection


@pytest.fixture
def mock_mongo_collection() -> MagicMock:
    """Create a mock Motor collection."""
    return _make_collection("test_collection")


@pytest.fixture
def mock_mongo_database() -> MagicMock:
    """Create a mock Motor database; `db[name]` returns one collection per name."""
    collections: Dict[str, MagicMock] = {}

    def get_collection(self, name: str) -> MagicMock:
        if name not in collections:
            collections[name] = _make_collection(name)
        return collections[name]

    db = MagicMock()
    db.name = "test_db"
    db.__getitem__ = get_collection
    return db


# ============================================================================
# ACCOUNT FIXTURES
# ============================================================================


@pytest.fixture
def account_doc_factory() -> Callable[..., Dict[str, Any]]:
    """Build a stored account document; keyword overrides use stored field names."""

    def factory(**overrides: Any) -> Dict[str, Any]:
        doc = {
            "_id": ObjectId(),
            "email": "maker@example.com",
            "name": "Asha Maker",
            "role": "artisan",
            "passwordHash": TEST_PASSWORD_HASH,
            "phone": "+911234567890",
            "isActive": True,
            "isIdentityVerified": True,
            "isPhoneVerified": False,
            "addresses": [],
            "loginAttempts": 0,
        }
        doc.update(overrides)
        return doc

    return factory


@pytest.fixture
def account_repository(mock_mongo_collection: MagicMock) -> AccountRepository:
    """AccountRepository over a mock collection."""
    return AccountRepository(mock_mongo_collection)


@pytest.fixture
def security_config() -> SecurityConfig:
    """Valid configuration in production mode."""
    return SecurityConfig(secret_key="s" * 48, environment="production")


@pytest.fixture
def dev_security_config() -> SecurityConfig:
    """Valid configuration in development mode (OTP codes are echoed)."""
    return SecurityConfig(secret_key="s" * 48, environment="development")


@pytest.fixture
def test_password() -> str:
    """Plain-text password matching the factory's passwordHash."""
    return TEST_PASSWORD


# ============================================================================
# TESTCONTAINERS FIXTURES (Real MongoDB for Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def mongodb_container():
    """
    Start a MongoDB container for integration tests.

    Session-scoped: the container starts once and is reused by every
    integration test. Tests are skipped when Docker is not available.
    """
    mongodb = pytest.importorskip("testcontainers.mongodb")
    container = mongodb.MongoDbContainer("mongo:7.0")
    try:
        container.start()
    except Exception as e:
        pytest.skip(f"MongoDB container could not be started: {e}")
    yield container
    container.stop()


@pytest_asyncio.fixture
async def real_mongo_client(mongodb_container) -> AsyncIterator[AsyncIOMotorClient]:
    """Motor client connected to the container, closed after the test."""
    client = AsyncIOMotorClient(mongodb_container.get_connection_url())
    try:
        await client.admin.command("ping")
    except (ConnectionFailure, OSError) as e:
        pytest.fail(f"Failed to connect to MongoDB container: {e}")

    yield client

    client.close()


@pytest_asyncio.fixture
async def real_mongo_db(real_mongo_client) -> AsyncIterator[AsyncIOMotorDatabase]:
    """A database unique to the test, dropped afterwards."""
    db_name = f"rootsreach_test_{os.getpid()}_{ObjectId()}"
    yield real_mongo_client[db_name]
    await real_mongo_client.drop_database(db_name)
