"""
Constants for RootsReach.

This module contains all shared constants used across the codebase to avoid
magic numbers and improve maintainability.
"""

from typing import Final

# ============================================================================
# ACCOUNT LOCKOUT CONSTANTS
# ============================================================================

MAX_LOGIN_ATTEMPTS: Final[int] = 5
"""Failed logins after which the account is locked."""

LOCK_DURATION_SECONDS: Final[int] = 2 * 60 * 60  # 2 hours
"""Fixed lockout duration in seconds (not progressive)."""

# ============================================================================
# OTP CONSTANTS
# ============================================================================

OTP_LENGTH: Final[int] = 6
"""Number of digits in an issued OTP."""

OTP_EXPIRY_MINUTES: Final[int] = 10
"""Minutes an issued OTP stays valid."""

OTP_MAX_RESENDS_PER_DAY: Final[int] = 5
"""Maximum resend requests per calendar day (UTC)."""

OTP_RESEND_COOLDOWN_MINUTES: Final[int] = 1
"""Minimum minutes between two OTP sends for the same account."""

OTP_MAX_VERIFICATION_ATTEMPTS: Final[int] = 5
"""Wrong codes accepted against a single OTP before the OTP lock engages."""

OTP_LOCKOUT_MINUTES: Final[int] = 30
"""Minutes OTP issuance and verification stay locked after too many attempts."""

OTP_MAX_DAILY_SENDS: Final[int] = 10
"""Maximum OTPs sent per account per calendar day (UTC)."""

# ============================================================================
# RATE LIMIT CONSTANTS
# ============================================================================

ROLE_RATE_LIMIT_WINDOW_SECONDS: Final[int] = 15 * 60  # 15 minutes
"""Window shared by every per-role request limit."""

AUTH_RATE_LIMIT_WINDOW_SECONDS: Final[int] = 15 * 60
"""Window for the login and OTP verification endpoint limits."""

AUTH_RATE_LIMIT_MAX_ATTEMPTS: Final[int] = 50
"""Maximum login or OTP verification requests per client in the window."""

OTP_RATE_LIMIT_WINDOW_SECONDS: Final[int] = 5 * 60
"""Window for the OTP send/resend endpoint limits."""

OTP_RATE_LIMIT_MAX_ATTEMPTS: Final[int] = 20
"""Maximum OTP requests per client in the window."""

GENERAL_RATE_LIMIT_WINDOW_SECONDS: Final[int] = 15 * 60
"""Window for the unauthenticated read endpoints (OTP status)."""

GENERAL_RATE_LIMIT_MAX_ATTEMPTS: Final[int] = 1000
"""Maximum requests per client IP to those endpoints in the window."""

# ============================================================================
# TOKEN MANAGEMENT CONSTANTS
# ============================================================================

ACCESS_TOKEN_TTL: Final[int] = 3600  # 1 hour
"""Default access token TTL in seconds."""

REFRESH_TOKEN_TTL: Final[int] = 604800  # 7 days
"""Default refresh token TTL in seconds."""

CURRENT_TOKEN_VERSION: Final[str] = "1.0"
"""Current token schema version for migration support."""

JWT_ALGORITHM: Final[str] = "HS256"
"""Signing algorithm for access and refresh tokens."""

MIN_SECRET_KEY_LENGTH: Final[int] = 32
"""Recommended minimum secret key length."""

# ============================================================================
# COLLECTION NAMES
# ============================================================================

ACCOUNTS_COLLECTION: Final[str] = "users"
"""Collection holding account documents."""

AUDIT_COLLECTION: Final[str] = "_rootsreach_auth_audit"
"""Collection holding authentication audit events."""

RATE_LIMIT_COLLECTION: Final[str] = "_rootsreach_rate_limits"
"""Collection holding distributed rate limit attempts."""

AUDIT_RETENTION_DAYS: Final[int] = 90
"""Default retention period for audit events."""

# ============================================================================
# REQUEST SCREENING
# ============================================================================

MAX_PUBLIC_PAGE_SIZE: Final[int] = 100
"""Largest `limit` a non-admin may request before it is flagged as scraping."""
