"""
JWT bearer token helpers.

Tokens are minted by the marketplace session service; this service only needs
to verify them and read the ``sub`` claim (the acting user's id).
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from .config import get_settings
from .logging import get_logger

logger = get_logger(__name__)


def create_access_token(
    data: dict[str, Any], expires_delta: timedelta | None = None
) -> str:
    """
    Create a signed access token.

    Args:
        data: Claims to encode; must include ``sub`` (user id as a string)
        expires_delta: Optional lifetime, defaults to the configured expiry

    Returns:
        Encoded JWT string
    """
    settings = get_settings()
    to_encode = data.copy()
    now = datetime.now(UTC)
    expire = now + (
        expires_delta or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    )
    to_encode.update({"exp": expire, "iat": now})
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict[str, Any]:
    """
    Decode a token and check that it names a subject.

    Raises:
        JWTError: If the token is invalid, expired, or has no ``sub`` claim
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm]
        )
    except JWTError as e:
        logger.warning("auth.token_decode_failed", error=str(e))
        raise

    if payload.get("sub") is None:
        logger.warning("auth.token_missing_subject")
        raise JWTError("Token missing 'sub' claim")
    return payload
