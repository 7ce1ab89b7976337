"""
Authentication and Authorization Module

Password login with account lockout, OTP issuance and verification, JWT
tokens, FastAPI route gates over the access policy table, rate limiting and
security audit logging.

This module is part of RootsReach.
"""

from .audit import AuditEvent, AuthAction, AuthAuditLog
from .dependencies import (enforce_role_rate_limit, ensure_resource_access,
                           get_current_account, reject_suspicious_requests,
                           require_permission, require_requirements,
                           require_roles)
from .jwt import (TokenPair, decode_jwt_token, encode_jwt_token,
                  generate_token_pair)
from .login import LoginResult, LoginStatus, authenticate
from .otp import (LoggingOTPSender, OTPIssue, OTPSender, OTPService,
                  OTPVerification)
from .passwords import hash_password, verify_password
from .rate_limiter import (DEFAULT_AUTH_RATE_LIMITS, AuthRateLimitMiddleware,
                           InMemoryRateLimitStore, MongoDBRateLimitStore,
                           RateDecision, RateLimitStore)
from .routes import router

__all__ = [
    # Login
    "authenticate",
    "LoginResult",
    "LoginStatus",
    "hash_password",
    "verify_password",
    # Tokens
    "encode_jwt_token",
    "decode_jwt_token",
    "generate_token_pair",
    "TokenPair",
    # OTP
    "OTPService",
    "OTPSender",
    "LoggingOTPSender",
    "OTPIssue",
    "OTPVerification",
    # Dependencies
    "get_current_account",
    "require_roles",
    "require_permission",
    "require_requirements",
    "ensure_resource_access",
    "enforce_role_rate_limit",
    "reject_suspicious_requests",
    # Rate limiting
    "AuthRateLimitMiddleware",
    "InMemoryRateLimitStore",
    "MongoDBRateLimitStore",
    "DEFAULT_AUTH_RATE_LIMITS",
    "RateLimitStore",
    "RateDecision",
    # Audit
    "AuthAction",
    "AuthAuditLog",
    "AuditEvent",
    # Routes
    "router",
]
