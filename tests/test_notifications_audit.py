from datetime import datetime

import pytz

from movehub.models.models import AuditLog, Notification, UserNotificationPreference
from movehub.services import notifications, offers
from movehub.services.audit import create_audit_log, get_audit_logs, verify_audit_log

from conftest import make_order, make_terms


def test_emit_event_dedupes_and_skips_missing_recipients(db, world):
    created = notifications.emit_event(
        db, notifications.OFFER_SENT, [world.client.id, None, world.client.id], {"offer_id": 1}
    )
    db.commit()

    assert len(created) == 2
    assert sorted(n.channel for n in created) == ["email", "push"]
    assert all(n.event == "offer_sent" for n in created)


def test_preferences_disable_a_channel(db, world):
    db.add(UserNotificationPreference(user_id=world.client.id, push=False, email=True))
    db.commit()

    created = notifications.emit_event(db, notifications.OFFER_SENT, [world.client.id])

    assert [n.channel for n in created] == ["email"]


def test_quiet_hours_span_midnight():
    tz = pytz.timezone("Europe/Zurich")
    quiet = {"start": "22:00", "end": "07:00", "timezone": "Europe/Zurich"}

    assert notifications.is_quiet_hours(quiet, "UTC", now=tz.localize(datetime(2026, 3, 1, 23, 30)))
    assert notifications.is_quiet_hours(quiet, "UTC", now=tz.localize(datetime(2026, 3, 1, 6, 0)))
    assert not notifications.is_quiet_hours(quiet, "UTC", now=tz.localize(datetime(2026, 3, 1, 12, 0)))
    assert not notifications.is_quiet_hours(None, "UTC")
    assert not notifications.is_quiet_hours({"start": "late", "end": "07:00"}, "UTC")


def test_workflow_transitions_notify_counterparts(db, world):
    line = make_order(db, world).services[0]
    offer = offers.send_offer(db, line.id, make_terms(), actor=world.company_admin)
    offers.accept_offer(db, offer.id, actor=world.client)

    client_feed = notifications.list_notifications(db, world.client.id)
    admin_feed = notifications.list_notifications(db, world.company_admin.id)

    assert "offer_sent" in [n.event for n in client_feed]
    assert "offer_accepted" in [n.event for n in admin_feed]
    assert all(n.channel == "push" for n in client_feed)


def test_audit_entries_verify_and_detect_tampering(db, world):
    entry = create_audit_log(
        db, "offer", 42, "SEND", actor=world.company_admin,
        changes_json={"after": {"hourly_rate": 80}}, context={"order_id": 1},
    )
    db.commit()

    stored = get_audit_logs(db, entity_type="offer", entity_id="42")
    assert [e.id for e in stored] == [entry.id]
    assert stored[0].actor_role == "company_admin"
    assert verify_audit_log(stored[0])

    stored[0].changes_json = {"after": {"hourly_rate": 1}}
    assert not verify_audit_log(stored[0])


def test_system_actions_are_attributed_to_system(db, world):
    entry = create_audit_log(db, "order", 1, "CANCEL")
    db.commit()
    assert entry.actor_id is None
    assert entry.actor_role == "system"
    assert db.query(AuditLog).count() == 1
    assert db.query(Notification).count() == 0
