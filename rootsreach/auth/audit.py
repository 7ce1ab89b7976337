"""
Security audit trail.

Every login outcome, lockout, OTP step, refused authorization check and
flagged request is written to a MongoDB collection as one `AuditEvent`.
Documents carry an `expires_at` field backed by a TTL index, so the trail
prunes itself after `retention_days`.

Usage:
    audit = AuthAuditLog(db)
    await audit.record(
        AuditEvent(AuthAction.LOGIN_FAILED, success=False, user_email="maker@example.com")
    )
    noisy = await audit.failed_logins_by_ip(threshold=20)
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import OperationFailure

from ..constants import AUDIT_COLLECTION, AUDIT_RETENTION_DAYS
from ..models import normalize_email
from ..observability.logging import get_correlation_id
from ..utils.time import utcnow

logger = logging.getLogger(__name__)


class AuthAction(str, Enum):
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILED = "login_failed"
    ACCOUNT_LOCKED = "account_locked"

    OTP_SENT = "otp_sent"
    OTP_VERIFIED = "otp_verified"
    OTP_FAILED = "otp_failed"

    PERMISSION_DENIED = "permission_denied"
    REQUIREMENT_FAILED = "requirement_failed"

    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    SUSPICIOUS_ACTIVITY = "suspicious_activity"


@dataclass(frozen=True)
class AuditEvent:
    """One security-relevant occurrence, as stored in the audit collection."""

    action: AuthAction | str
    success: bool
    user_email: str | None = None
    user_id: str | None = None
    role: str | None = None
    ip_address: str | None = None
    path: str | None = None
    details: dict[str, Any] | None = field(default=None)

    @property
    def action_value(self) -> str:
        return self.action.value if isinstance(self.action, AuthAction) else str(self.action)

    def to_document(self, now: datetime, retention: timedelta) -> dict[str, Any]:
        doc = asdict(self)
        doc.update(
            action=self.action_value,
            timestamp=now,
            correlation_id=get_correlation_id(),
            expires_at=now + retention,
        )
        if self.user_email:
            doc["user_email"] = normalize_email(self.user_email)
        return doc

    def summary(self) -> str:
        actor = self.user_id or self.user_email or "anonymous"
        outcome = "ok" if self.success else "refused"
        return f"AUTH_AUDIT {self.action_value} {outcome} actor={actor} ip={self.ip_address}"


class AuthAuditLog:
    """
    Writes and queries `AuditEvent` documents.

    Index creation is lazy and attempted once per instance; a failure is
    logged and does not block event writes.
    """

    def __init__(
        self,
        mongo_db: AsyncIOMotorDatabase,
        retention_days: int = AUDIT_RETENTION_DAYS,
    ):
        self._collection = mongo_db[AUDIT_COLLECTION]
        self._retention = timedelta(days=retention_days)
        self._indexes_ready = False

    async def ensure_indexes(self) -> None:
        if self._indexes_ready:
            return
        self._indexes_ready = True

        indexes = [
            ([("user_email", 1), ("timestamp", -1)], {"name": "email_time_idx"}),
            ([("ip_address", 1), ("action", 1), ("timestamp", -1)], {"name": "ip_action_time_idx"}),
            ([("action", 1), ("timestamp", -1)], {"name": "action_time_idx"}),
            ("expires_at", {"name": "expires_at_ttl_idx", "expireAfterSeconds": 0}),
        ]
        try:
            for keys, options in indexes:
                await self._collection.create_index(keys, **options)
        except OperationFailure as e:
            logger.warning(f"Audit index creation failed: {e}")

    async def record(self, event: AuditEvent) -> str:
        """Persist an event and mirror a one-line summary to the log."""
        await self.ensure_indexes()
        result = await self._collection.insert_one(event.to_document(utcnow(), self._retention))
        logger.log(logging.INFO if event.success else logging.WARNING, event.summary())
        return str(result.inserted_id)

    async def count_failed_logins(
        self,
        email: str | None = None,
        ip_address: str | None = None,
        window: timedelta = timedelta(hours=1),
    ) -> int:
        query: dict[str, Any] = {
            "action": AuthAction.LOGIN_FAILED.value,
            "timestamp": {"$gte": utcnow() - window},
        }
        if email:
            query["user_email"] = normalize_email(email)
        if ip_address:
            query["ip_address"] = ip_address
        return await self._collection.count_documents(query)

    async def failed_logins_by_ip(
        self, threshold: int = 20, window: timedelta = timedelta(hours=1), limit: int = 50
    ) -> list[dict[str, Any]]:
        """
        Source addresses with at least `threshold` failed logins in `window`.

        Returns:
            [{"ip_address": str, "failures": int, "emails": [str], "last_seen": datetime}],
            noisiest first
        """
        pipeline = [
            {
                "$match": {
                    "action": AuthAction.LOGIN_FAILED.value,
                    "timestamp": {"$gte": utcnow() - window},
                }
            },
            {
                "$group": {
                    "_id": "$ip_address",
                    "failures": {"$sum": 1},
                    "emails": {"$addToSet": "$user_email"},
                    "last_seen": {"$max": "$timestamp"},
                }
            },
            {"$match": {"failures": {"$gte": threshold}}},
            {"$sort": {"failures": -1}},
            {"$limit": limit},
        ]
        rows = await self._collection.aggregate(pipeline).to_list(length=limit)
        return [
            {
                "ip_address": row["_id"],
                "failures": row["failures"],
                "emails": sorted(e for e in row["emails"] if e),
                "last_seen": row["last_seen"],
            }
            for row in rows
        ]

    async def security_violations(
        self, window: timedelta = timedelta(hours=24), limit: int = 100
    ) -> list[dict[str, Any]]:
        """Flagged requests and refused checks, newest first."""
        cursor = (
            self._collection.find(
                {
                    "action": {
                        "$in": [
                            AuthAction.SUSPICIOUS_ACTIVITY.value,
                            AuthAction.PERMISSION_DENIED.value,
                            AuthAction.RATE_LIMIT_EXCEEDED.value,
                        ]
                    },
                    "timestamp": {"$gte": utcnow() - window},
                },
                {"expires_at": 0},
            )
            .sort("timestamp", -1)
            .limit(limit)
        )
        events = await cursor.to_list(length=limit)
        for event in events:
            event["_id"] = str(event["_id"])
        return events
