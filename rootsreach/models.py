"""
Account entity.

Mirrors the marketplace user document, including the security counters that
drive lockout and OTP throttling. Attributes are stored under their camelCase
names (see `rootsreach.repositories.base`).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .repositories.base import Entity
from .security.lockout import AccountSecurityState


def normalize_email(email: str) -> str:
    """Stored form of an email address: trimmed and lower-cased."""
    return email.strip().lower()


@dataclass
class Account(Entity):
    email: str = ""
    name: str = ""
    role: str = "customer"
    password_hash: str | None = None
    phone: str | None = None
    is_active: bool = True
    is_identity_verified: bool = False
    is_phone_verified: bool = False
    phone_verified_at: datetime | None = None
    addresses: list[dict[str, Any]] = field(default_factory=list)

    # Login lockout
    login_attempts: int = 0
    lock_until: datetime | None = None

    # OTP issuance and verification
    otp_code: str | None = None
    otp_expires: datetime | None = None
    otp_attempts: int = 0
    otp_send_count: int = 0
    last_otp_sent_date: datetime | None = None
    otp_resend_count: int = 0
    last_resend_date: datetime | None = None
    last_otp_sent_at: datetime | None = None
    otp_lock_until: datetime | None = None

    @property
    def security_state(self) -> AccountSecurityState:
        return AccountSecurityState(
            login_attempts=self.login_attempts or 0, lock_until=self.lock_until
        )

    def is_locked(self, now: datetime | None = None) -> bool:
        """Computed on every call; never persisted."""
        return self.security_state.is_locked(now)

    def to_public_dict(self) -> dict[str, Any]:
        """Fields safe to return to the account owner."""
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "phone": self.phone,
            "isIdentityVerified": self.is_identity_verified,
            "isPhoneVerified": self.is_phone_verified,
            "addresses": self.addresses,
        }
