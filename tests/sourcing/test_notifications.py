"""Tests for the best-effort notifier."""

from datetime import timedelta

import pytest
from sqlalchemy.orm import Session

from services.sourcing.app.models.enums import NotificationKind
from services.sourcing.app.models.notifications import Notification
from services.sourcing.app.models.rfqs import RfqEvent
from services.sourcing.app.services.notifications import Notifier
from services.sourcing.app.services.rfq_events import RFQ_PAYLOAD, latest_by_type
from tests.sourcing.factories import BASE_TIME, make_admin, make_user


@pytest.fixture
def user(db_session: Session):
    user = make_user(db_session)
    db_session.commit()
    return user


class TestNotify:
    def test_creates_row(self, db_session: Session, notifier, user):
        created = notifier.notify(
            user.id, NotificationKind.RFQ, "Hello", "World", {"rfqId": 7}
        )

        assert created is True
        note = db_session.query(Notification).one()
        assert note.kind == "RFQ"
        assert note.title == "Hello"
        assert note.extra == {"rfqId": 7}
        assert note.read_at is None

    def test_duplicate_key_returns_false(self, db_session: Session, notifier, user):
        assert notifier.notify(user.id, "SLA", "t", "m", dedupe_key="k1") is True
        assert notifier.notify(user.id, "SLA", "t", "m", dedupe_key="k1") is False

        assert db_session.query(Notification).count() == 1

    def test_rows_without_key_never_collide(self, db_session: Session, notifier, user):
        notifier.notify(user.id, "RFQ", "t", "m")
        notifier.notify(user.id, "RFQ", "t", "m")

        assert db_session.query(Notification).count() == 2

    def test_failure_is_swallowed(self, mocker):
        broken = Notifier(mocker.Mock(side_effect=RuntimeError("no database")))

        assert broken.notify(1, "RFQ", "t", "m") is False


class TestNotifyAdmins:
    def test_fans_out_with_per_admin_keys(self, db_session: Session, notifier):
        first, second = make_admin(db_session), make_admin(db_session)
        make_user(db_session)
        db_session.commit()

        created = notifier.notify_admins("RFQ", "t", "m", dedupe_key="approval:1")

        assert created == 2
        keys = {n.dedupe_key for n in db_session.query(Notification)}
        assert keys == {f"approval:1:{first.id}", f"approval:1:{second.id}"}

    def test_admin_ids_sorted(self, db_session: Session, notifier):
        admins = [make_admin(db_session) for _ in range(3)]
        db_session.commit()

        assert notifier.admin_ids() == sorted(a.id for a in admins)

    def test_admin_lookup_failure_means_no_admins(self, mocker):
        broken = Notifier(mocker.Mock(side_effect=RuntimeError("no database")))

        assert broken.admin_ids() == []
        assert broken.notify_admins("SLA", "t", "m") == 0

    def test_slack_mirror_only_for_sla(self, db_session: Session, session_factory, mock_slack_client):
        make_admin(db_session)
        db_session.commit()
        notifier = Notifier(session_factory, mock_slack_client)

        notifier.notify_admins("RFQ", "Approval requested", "m")
        notifier.notify_admins(NotificationKind.SLA, "SLA escalation warning", "late")

        mock_slack_client.post_text.assert_called_once_with("SLA escalation warning: late")

    def test_slack_skipped_when_everything_deduplicated(
        self, db_session: Session, session_factory, mock_slack_client
    ):
        make_admin(db_session)
        db_session.commit()
        notifier = Notifier(session_factory, mock_slack_client)

        notifier.notify_admins("SLA", "t", "m", dedupe_key="same")
        notifier.notify_admins("SLA", "t", "m", dedupe_key="same")

        assert mock_slack_client.post_text.call_count == 1

    def test_slack_failure_is_swallowed(self, db_session: Session, session_factory, mock_slack_client):
        make_admin(db_session)
        db_session.commit()
        mock_slack_client.post_text.side_effect = RuntimeError("webhook down")

        created = Notifier(session_factory, mock_slack_client).notify_admins("SLA", "t", "m")

        assert created == 1


@pytest.mark.unit
class TestLatestByType:
    def test_newest_matching_payload(self):
        events = [
            RfqEvent(id=1, type=RFQ_PAYLOAD, payload={"v": 1}, timestamp=BASE_TIME),
            RfqEvent(id=2, type=RFQ_PAYLOAD, payload={"v": 2}, timestamp=BASE_TIME + timedelta(hours=1)),
            RfqEvent(id=3, type="status_change", payload={"v": 3}, timestamp=BASE_TIME + timedelta(hours=2)),
        ]

        assert latest_by_type(events, RFQ_PAYLOAD) == {"v": 2}

    def test_id_breaks_timestamp_ties(self):
        events = [
            RfqEvent(id=5, type=RFQ_PAYLOAD, payload={"v": "later"}, timestamp=BASE_TIME),
            RfqEvent(id=4, type=RFQ_PAYLOAD, payload={"v": "earlier"}, timestamp=BASE_TIME),
        ]

        assert latest_by_type(events, RFQ_PAYLOAD) == {"v": "later"}

    def test_missing(self):
        assert latest_by_type([], RFQ_PAYLOAD) == {}
