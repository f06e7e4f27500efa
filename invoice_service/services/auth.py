"""
Bearer token decoding for the invoice endpoints.

Tokens are issued by the platform's user service; this service only
verifies them.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from pydantic import BaseModel

from invoice_service.config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


class TokenClaims(BaseModel):
    """Claims read from a verified access token."""
    sub: str
    exp: Optional[int] = None
    type: Optional[str] = None


def create_access_token(subject: str, expires_minutes: int = 30) -> str:
    """
    Create a signed access token.

    Used by tooling and tests; production tokens come from the user service.
    """
    expire = datetime.now(timezone.utc) + timedelta(minutes=expires_minutes)
    payload = {
        "sub": subject,
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> Optional[TokenClaims]:
    """
    Decode and validate a JWT token.

    Args:
        token: The JWT token string

    Returns:
        TokenClaims if valid, None otherwise
    """
    try:
        payload = jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        return TokenClaims(
            sub=payload["sub"],
            exp=payload.get("exp"),
            type=payload.get("type"),
        )
    except (JWTError, KeyError) as e:
        logger.warning(f"Rejected bearer token: {e}")
        return None
