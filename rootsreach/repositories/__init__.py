"""
RootsReach persistence layer.

Usage:
    from rootsreach.repositories.accounts import AccountRepository

    accounts = AccountRepository(db.users)
    account = await accounts.find_by_email("maker@example.com")
"""

from .base import Entity, camel_case
from .mongo import MongoRepository

__all__ = [
    "Entity",
    "MongoRepository",
    "camel_case",
]
