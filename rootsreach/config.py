"""
Configuration management for RootsReach.

Values come from direct parameters first, then environment variables, then
the defaults in `constants.py`.
"""

import os

from .constants import (ACCESS_TOKEN_TTL, LOCK_DURATION_SECONDS,
                        MAX_LOGIN_ATTEMPTS, MIN_SECRET_KEY_LENGTH,
                        REFRESH_TOKEN_TTL)
from .exceptions import ConfigurationError


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigurationError(
            f"{name} must be an integer", config_key=name, config_value=raw
        ) from e


def _setting(value: int | None, name: str, default: int) -> int:
    """An explicit argument wins, even when it is 0."""
    return value if value is not None else _env_int(name, default)


class SecurityConfig:
    """
    Security configuration for the RootsReach access core.

    Example:
        # Using environment variables
        config = SecurityConfig()
        config.validate()

        # Or using direct parameters
        config = SecurityConfig(secret_key="x" * 32, max_login_attempts=3)
    """

    def __init__(
        self,
        secret_key: str | None = None,
        max_login_attempts: int | None = None,
        lock_duration_seconds: int | None = None,
        access_token_ttl: int | None = None,
        refresh_token_ttl: int | None = None,
        environment: str | None = None,
        mongo_uri: str | None = None,
        db_name: str | None = None,
    ):
        """
        Initialize configuration.

        Args:
            secret_key: JWT signing key (defaults to RR_SECRET_KEY or SECRET_KEY)
            max_login_attempts: Failed logins before lockout (defaults to 5)
            lock_duration_seconds: Lockout length (defaults to 7200)
            access_token_ttl: Access token lifetime in seconds
            refresh_token_ttl: Refresh token lifetime in seconds
            environment: Deployment environment (defaults to RR_ENV or "production")
            mongo_uri: MongoDB connection URI (defaults to MONGO_URI)
            db_name: Database name (defaults to DB_NAME)
        """
        self.secret_key = (
            secret_key or os.getenv("RR_SECRET_KEY") or os.getenv("SECRET_KEY") or ""
        )
        self.max_login_attempts = _setting(
            max_login_attempts, "RR_MAX_LOGIN_ATTEMPTS", MAX_LOGIN_ATTEMPTS
        )
        self.lock_duration_seconds = _setting(
            lock_duration_seconds, "RR_LOCK_DURATION_SECONDS", LOCK_DURATION_SECONDS
        )
        self.access_token_ttl = _setting(access_token_ttl, "ACCESS_TOKEN_TTL", ACCESS_TOKEN_TTL)
        self.refresh_token_ttl = _setting(
            refresh_token_ttl, "REFRESH_TOKEN_TTL", REFRESH_TOKEN_TTL
        )
        self.environment = (environment or os.getenv("RR_ENV", "production")).lower()
        self.mongo_uri = mongo_uri or os.getenv("MONGO_URI", "")
        self.db_name = db_name or os.getenv("DB_NAME", "")

    @property
    def is_development(self) -> bool:
        """Whether OTP codes may be echoed back in API responses."""
        return self.environment == "development"

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ConfigurationError: If required configuration is missing or invalid
        """
        if not self.secret_key:
            raise ConfigurationError(
                "secret_key is required for JWT token security "
                "(set RR_SECRET_KEY or SECRET_KEY)",
                config_key="secret_key",
            )

        if len(self.secret_key) < MIN_SECRET_KEY_LENGTH:
            raise ConfigurationError(
                f"secret_key must be at least {MIN_SECRET_KEY_LENGTH} characters",
                config_key="secret_key",
            )

        if self.max_login_attempts < 1:
            raise ConfigurationError(
                f"max_login_attempts must be >= 1, got {self.max_login_attempts}",
                config_key="max_login_attempts",
                config_value=self.max_login_attempts,
            )

        if self.lock_duration_seconds < 1:
            raise ConfigurationError(
                f"lock_duration_seconds must be >= 1, got {self.lock_duration_seconds}",
                config_key="lock_duration_seconds",
                config_value=self.lock_duration_seconds,
            )

        if self.access_token_ttl < 1 or self.refresh_token_ttl < 1:
            raise ConfigurationError(
                "token TTLs must be positive",
                config_key="access_token_ttl",
                config_value=self.access_token_ttl,
            )
