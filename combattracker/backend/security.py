"""Security helpers for session codes and token handling."""

from __future__ import annotations

import hashlib
import secrets
import string
import uuid


JOIN_CODE_LENGTH = 6
JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_token() -> str:
    """Generate an opaque UUID token for DM or player access."""
    return str(uuid.uuid4())


def generate_join_code() -> str:
    """Generate a 6-character upper-case alphanumeric join code.

    Codes are drawn from a 36^6 space and are not checked for uniqueness.
    """
    return "".join(secrets.choice(JOIN_CODE_ALPHABET) for _ in range(JOIN_CODE_LENGTH))


def normalize_join_code(code: str) -> str:
    return code.strip().upper()


def hash_token(token: str, server_salt: str) -> str:
    """Create deterministic token hash via sha256(token + server_salt)."""
    payload = f"{token}{server_salt}".encode("utf-8")
    return hashlib.sha256(payload).hexdigest()


def verify_token(raw_token: str | None, expected_hash: str | None, server_salt: str) -> bool:
    """Compare raw token against a stored hash; missing values never match."""
    if not raw_token or not expected_hash:
        return False
    return secrets.compare_digest(hash_token(raw_token, server_salt), expected_hash)
