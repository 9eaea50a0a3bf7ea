"""
Best-effort notification emitter.

Notifications are written in their own session after the caller's core
transaction has committed, so a failed or deduplicated insert can never roll
back an approval decision or a policy change.
"""

from __future__ import annotations

from typing import Any, Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..core.logging import get_logger
from ..core.metrics import observe
from ..models.enums import NotificationKind, PlatformRole
from ..models.notifications import Notification
from ..models.organizations import User
from .slack_client import SlackClient

logger = get_logger(__name__)


class Notifier:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        slack: SlackClient | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._slack = slack

    def notify(
        self,
        user_id: int,
        kind: NotificationKind | str,
        title: str,
        message: str,
        metadata: dict[str, Any] | None = None,
        dedupe_key: str | None = None,
    ) -> bool:
        """Create one notification. Returns False when deduplicated or failed; never raises."""
        kind_value = kind.value if isinstance(kind, NotificationKind) else str(kind)
        try:
            with self._session_factory() as session:
                session.add(
                    Notification(
                        user_id=user_id,
                        kind=kind_value,
                        title=title,
                        message=message,
                        extra=metadata,
                        dedupe_key=dedupe_key,
                    )
                )
                session.commit()
        except IntegrityError as exc:
            if dedupe_key:
                logger.debug("notification.deduplicated", dedupe_key=dedupe_key)
                observe("notifications_total", kind_value, "deduplicated")
                return False
            logger.warning(
                "notification.failed", user_id=user_id, kind=kind_value, error=str(exc)
            )
            observe("notifications_total", kind_value, "failed")
            return False
        except Exception as exc:  # noqa: BLE001 - delivery is best-effort
            logger.warning(
                "notification.failed", user_id=user_id, kind=kind_value, error=str(exc)
            )
            observe("notifications_total", kind_value, "failed")
            return False

        observe("notifications_total", kind_value, "created")
        return True

    def admin_ids(self) -> list[int]:
        try:
            with self._session_factory() as session:
                rows = (
                    session.query(User.id)
                    .filter(User.role == PlatformRole.ADMIN.value)
                    .order_by(User.id.asc())
                    .all()
                )
                return [row[0] for row in rows]
        except Exception as exc:  # noqa: BLE001
            logger.warning("notification.admin_lookup_failed", error=str(exc))
            return []

    def notify_admins(
        self,
        kind: NotificationKind | str,
        title: str,
        message: str,
        metadata: dict[str, Any] | None = None,
        dedupe_key: str | None = None,
        admin_ids: list[int] | None = None,
    ) -> int:
        """Fan out to every platform admin; returns how many rows were created."""
        kind_value = kind.value if isinstance(kind, NotificationKind) else str(kind)
        created = 0
        for admin_id in admin_ids if admin_ids is not None else self.admin_ids():
            key = f"{dedupe_key}:{admin_id}" if dedupe_key else None
            if self.notify(admin_id, kind_value, title, message, metadata, key):
                created += 1

        if created and self._slack is not None and kind_value == NotificationKind.SLA.value:
            try:
                self._slack.post_text(f"{title}: {message}")
            except Exception as exc:  # noqa: BLE001
                logger.warning("notification.slack_failed", error=str(exc))
        return created
