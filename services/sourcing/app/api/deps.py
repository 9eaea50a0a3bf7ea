from collections.abc import Generator
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from ..core.auth import verify_token
from ..core.clock import Clock, utcnow
from ..core.config import get_settings
from ..core.logging import get_logger
from ..db import get_sessionmaker
from ..models.organizations import User
from ..services.notifications import Notifier
from ..services.slack_client import SlackClient

logger = get_logger(__name__)

# HTTP Bearer token scheme
security = HTTPBearer(auto_error=False)


def get_db_session() -> Generator[Session, None, None]:
    SessionLocal = get_sessionmaker()
    with SessionLocal() as session:
        yield session


def get_notifier() -> Notifier:
    """Notifier writing through fresh sessions, independent of the request session."""
    return Notifier(
        lambda: get_sessionmaker()(),
        SlackClient(get_settings().slack_webhook_url),
    )


def get_clock() -> Clock:
    return utcnow


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    session: Session = Depends(get_db_session),
) -> User:
    """
    Resolve the acting user from the bearer token.

    The token's ``sub`` claim carries the user id.

    Raises:
        HTTPException: 401 if the token is missing, invalid or names an unknown user
    """
    if not credentials:
        logger.warning("auth.missing_credentials")
        raise _unauthorized("Authentication required")

    try:
        payload = verify_token(credentials.credentials)
        user_id = int(payload["sub"])
    except (JWTError, ValueError) as e:
        logger.warning("auth.invalid_token", error=str(e))
        raise _unauthorized("Invalid authentication credentials")

    user = session.get(User, user_id)
    if user is None:
        logger.warning("auth.unknown_user", user_id=user_id)
        raise _unauthorized("Invalid authentication credentials")
    return user


def require_admin(actor: User = Depends(get_current_actor)) -> User:
    if not actor.is_admin:
        logger.warning("auth.admin_required", user_id=actor.id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return actor
