"""
Token and secret helpers used by the link and access services.

Pure functions with no model imports.
"""

import hashlib
import hmac
import secrets
from datetime import timedelta

from django.utils import timezone


def generate_secure_token(length=32):
    """
    Generate a cryptographically secure URL-safe token.

    Example:
        >>> len(generate_secure_token())  # ~43 chars for 32 bytes
        43
    """
    return secrets.token_urlsafe(length)


def generate_numeric_code(digits=6):
    """One-time numeric code, zero padded (e.g. ``'042917'``)."""
    return f"{secrets.randbelow(10 ** digits):0{digits}d}"


def hash_secret(value: str) -> str:
    return hashlib.sha256(value.encode()).hexdigest()


def secrets_match(value: str, expected_hash: str) -> bool:
    """Constant-time comparison of a candidate secret against a stored hash."""
    if not expected_hash:
        return False
    return hmac.compare_digest(hash_secret(value), expected_hash)


def calculate_expiry(minutes=None, days=None):
    """
    Expiry datetime from an offset; None when no offset is given.

    Example:
        >>> calculate_expiry(minutes=10)   # ten minutes from now
        >>> calculate_expiry()             # never expires
    """
    if not minutes and not days:
        return None
    return timezone.now() + timedelta(minutes=minutes or 0, days=days or 0)


def is_expired(expires_at, now=None):
    if expires_at is None:
        return False
    return (now or timezone.now()) > expires_at
