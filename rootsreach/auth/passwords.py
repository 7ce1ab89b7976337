"""
Password hashing with bcrypt.

Only bcrypt hashes are accepted; anything else fails verification.
"""

import logging

import bcrypt

logger = logging.getLogger(__name__)

_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


def hash_password(password: str) -> str:
    """Hash a plain-text password with a fresh bcrypt salt."""
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str | None, password_hash: str | bytes | None) -> bool:
    """
    Check a plain-text password against a stored bcrypt hash.

    Returns False for missing input, non-bcrypt hashes and malformed hashes.
    """
    if not password or not password_hash:
        return False

    if isinstance(password_hash, str):
        if not password_hash.startswith(_BCRYPT_PREFIXES):
            logger.warning("Stored password is not a bcrypt hash; verification rejected")
            return False
        password_hash = password_hash.encode("utf-8")

    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash)
    except (ValueError, TypeError) as e:
        logger.debug(f"Bcrypt check failed: {e}")
        return False
