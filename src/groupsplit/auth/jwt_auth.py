"""Signed magic-link tokens.

A magic link carries a short-lived HS256 JWT. The token's ``jti`` is also
stored server-side so that each link can be used only once.
"""

from datetime import datetime, timezone, timedelta
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

import jwt

from ..config import get_config
from ..core.errors import DomainError, ErrorCode

MAGIC_LINK_TYPE = "magic_link"


class MagicLinkManager:
    """Issues and verifies magic-link tokens."""

    def __init__(self, secret_key: Optional[str] = None, ttl_minutes: Optional[int] = None):
        config = get_config()
        self.secret_key = secret_key or config.app.secret_key
        self.algorithm = "HS256"
        self.ttl_minutes = ttl_minutes or config.app.magic_link_ttl_minutes

    def create_token(self, email: str) -> Tuple[str, str, datetime]:
        """
        Create a magic-link token for an email address.

        Args:
            email: Normalised (lowercase) email address

        Returns:
            Tuple of (token, jti, expires_at)
        """
        now = datetime.now(timezone.utc)
        expires_at = now + timedelta(minutes=self.ttl_minutes)
        jti = uuid4().hex

        payload = {
            "sub": email,
            "type": MAGIC_LINK_TYPE,
            "jti": jti,
            "iat": now,
            "exp": expires_at,
        }
        token = jwt.encode(payload, self.secret_key, algorithm=self.algorithm)
        return token, jti, expires_at

    def verify_token(self, token: str) -> Dict[str, Any]:
        """
        Verify and decode a magic-link token.

        Returns:
            Decoded payload with ``sub`` (email) and ``jti``

        Raises:
            DomainError: TOKEN_EXPIRED or INVALID_TOKEN
        """
        try:
            payload = jwt.decode(
                token,
                self.secret_key,
                algorithms=[self.algorithm],
                options={"require": ["exp", "sub", "jti"]},
            )
        except jwt.ExpiredSignatureError:
            raise DomainError(ErrorCode.TOKEN_EXPIRED)
        except jwt.InvalidTokenError:
            raise DomainError(ErrorCode.INVALID_TOKEN)

        if payload.get("type") != MAGIC_LINK_TYPE:
            raise DomainError(ErrorCode.INVALID_TOKEN)

        return payload


_magic_links: Optional[MagicLinkManager] = None


def get_magic_link_manager() -> MagicLinkManager:
    """FastAPI dependency returning the process-wide manager."""
    global _magic_links
    if _magic_links is None:
        _magic_links = MagicLinkManager()
    return _magic_links
