"""Session token helpers.

Session tokens are opaque random strings handed to the client once; only
their SHA-256 digest is stored.
"""

import hashlib
import secrets
import string
from typing import Tuple

from fastapi import HTTPException, status

SESSION_TOKEN_BYTES = 32
_TOKEN_ALPHABET = frozenset(string.ascii_letters + string.digits + "-_")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def hash_token(token: str) -> str:
    """SHA-256 hex digest used to store session tokens."""
    return hashlib.sha256(token.encode()).hexdigest()


def generate_session_token() -> Tuple[str, str]:
    """
    Create a new session token.

    Returns:
        tuple[str, str]: (token, token_hash); only the hash goes to the database
    """
    token = secrets.token_urlsafe(SESSION_TOKEN_BYTES)
    return token, hash_token(token)


def verify_token_hash(token: str, stored_token_hash: str) -> bool:
    """Constant-time check of a plain token against a stored hash."""
    if not token or not stored_token_hash:
        return False
    return secrets.compare_digest(hash_token(token), stored_token_hash)


def validate_session_token_format(token: str) -> None:
    """
    Reject tokens that cannot have come from :func:`generate_session_token`.

    Raises:
        HTTPException: 401 for an empty or malformed token
    """
    if not token:
        raise _unauthorized("Session token cannot be empty")

    # token_urlsafe(32) produces 43 characters
    if not 20 <= len(token) <= 64 or not _TOKEN_ALPHABET.issuperset(token):
        raise _unauthorized("Invalid session token format")
