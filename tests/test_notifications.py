# tests/test_notifications.py

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from teamhub.errors import AuthorizationDenied, RecordNotFound, ValidationFailed
from teamhub.extensions import db
from teamhub.models import Notification, Organization, Task, User
from teamhub.services import notification_service, organization_service
from teamhub.services.inbox import NotificationInbox

NOW = datetime(2026, 3, 2, 10, 0, 0)


def _row(nid, read_at=None, message="hello", created_at="2026-03-02T10:00:00"):
    return {"id": nid, "read_at": read_at, "created_at": created_at, "payload": {"message": message}}


# ---- inbox (consumer side) ----

def test_inbox_counts_and_alerts_new_rows():
    inbox = NotificationInbox()
    assert inbox.receive(_row(1, message="one")) is True
    assert inbox.receive(_row(2, message="two")) is True
    assert inbox.unread == 2
    assert inbox.pop_alerts() == ["one", "two"]
    assert inbox.pop_alerts() == []


def test_inbox_ignores_duplicate_delivery():
    inbox = NotificationInbox([_row(1)])
    assert inbox.receive(_row(1)) is False
    assert inbox.unread == 1
    assert inbox.pop_alerts() == []


def test_inbox_read_mark_survives_out_of_order_update():
    inbox = NotificationInbox()
    inbox.receive(_row(1))
    inbox.receive(_row(1, read_at="2026-03-02T10:05:00"))
    assert inbox.unread == 0
    # a stale unread copy arrives late
    inbox.receive(_row(1))
    assert inbox.unread == 0


def test_inbox_orders_newest_first():
    inbox = NotificationInbox()
    inbox.receive(_row(2, created_at="2026-03-02T09:00:00"))
    inbox.receive(_row(1, created_at="2026-03-02T11:00:00"))
    assert [n["id"] for n in inbox.items()] == [1, 2]
    inbox.remove(1)
    assert [n["id"] for n in inbox.items()] == [2]


def test_inbox_skips_rows_without_id():
    assert NotificationInbox().receive({"payload": {"message": "x"}}) is False


def test_inbox_counts_unread_beyond_the_loaded_page():
    # one page of two rows loaded, five unread in total
    inbox = NotificationInbox([_row(10), _row(11, read_at="x")], unread_total=5)
    assert inbox.unread == 5
    inbox.receive(_row(12))
    assert inbox.unread == 6
    # an older row outside the page is marked read, another is deleted
    assert inbox.receive(_row(3, read_at="2026-03-02T11:00:00"), op="UPDATE") is False
    inbox.remove(2, _row(2))
    assert inbox.unread == 4
    assert inbox.pop_alerts() == ["hello"]


# ---- producers / store ----

def test_notify_rejects_unknown_type_and_empty_message(ctx, ids):
    with pytest.raises(ValidationFailed):
        notification_service.notify(ids.employee, "fireworks", {"message": "hi"})
    with pytest.raises(ValidationFailed):
        notification_service.notify(ids.employee, "points_earned", {"points": 1})


def test_list_mark_read_and_delete(ctx, ids, get):
    eve = get(User, ids.employee)
    for i in range(3):
        n = notification_service.notify(ids.employee, "points_earned", {"points": i + 1, "message": f"n{i}"})
        n.created_at = NOW + timedelta(minutes=i)
    db.session.commit()

    items = notification_service.list_for(eve)
    assert [n.payload["message"] for n in items] == ["n2", "n1", "n0"]
    assert notification_service.unread_count(eve) == 3

    first = notification_service.mark_read(eve, items[0].id, now=NOW)
    again = notification_service.mark_read(eve, items[0].id, now=NOW + timedelta(hours=1))
    assert again.read_at == first.read_at == NOW
    assert notification_service.unread_count(eve) == 2

    assert notification_service.delete(eve, items[0].id) is False
    assert notification_service.delete(eve, items[1].id) is True
    assert notification_service.mark_all_read(eve, now=NOW) == 1
    assert notification_service.unread_count(eve) == 0


def test_inbox_operations_are_owner_only(ctx, ids, get):
    n = notification_service.notify(ids.employee, "points_earned", {"points": 1, "message": "mine"})
    db.session.commit()
    with pytest.raises(AuthorizationDenied):
        notification_service.mark_read(get(User, ids.coworker), n.id)
    with pytest.raises(AuthorizationDenied):
        notification_service.delete(get(User, ids.coworker), n.id)
    with pytest.raises(RecordNotFound):
        notification_service.mark_read(get(User, ids.employee), 9999)


def test_due_reminders_once_per_window(ctx, ids, get):
    due_soon = get(Task, ids.brief)
    due_soon.due_date = NOW + timedelta(hours=5)
    get(Task, ids.report).due_date = NOW + timedelta(days=5)
    db.session.commit()

    created = notification_service.send_due_reminders(NOW, window_hours=24)
    assert [(n.user_id, n.payload["task_id"]) for n in created] == [(ids.employee, ids.brief)]
    assert created[0].payload["hours_until_due"] == 5

    assert notification_service.send_due_reminders(NOW + timedelta(hours=1), window_hours=24) == []


def test_done_tasks_get_no_reminder(ctx, ids, get):
    t = get(Task, ids.brief)
    t.due_date = NOW + timedelta(hours=2)
    t.status = "done"
    db.session.commit()
    assert notification_service.send_due_reminders(NOW, window_hours=24) == []


def test_member_joined_goes_to_managers(ctx, ids, get):
    newcomer = User(full_name="Nina New", email="nina@acme.com")
    db.session.add(newcomer)
    db.session.commit()

    org = get(Organization, ids.acme)
    organization_service.add_member(org, "nina@acme.com", "employee", get(User, ids.owner))

    rows = Notification.query.filter_by(type="member_joined").all()
    assert sorted(n.user_id for n in rows) == sorted([ids.owner, ids.admin])
    assert all(n.payload["new_member_name"] == "Nina New" for n in rows)
    assert all(n.payload["member_role"] == "employee" for n in rows)


def test_only_owner_grants_admin(ctx, ids, get):
    db.session.add(User(full_name="Nina New", email="nina@acme.com"))
    db.session.commit()
    org = get(Organization, ids.acme)
    with pytest.raises(ValidationFailed):
        organization_service.add_member(org, "nina@acme.com", "admin", get(User, ids.admin))
    with pytest.raises(AuthorizationDenied):
        organization_service.add_member(org, "nina@acme.com", "employee", get(User, ids.supervisor))


def test_email_copies_follow_the_setting(app, ctx, ids):
    n = notification_service.notify(ids.employee, "points_earned", {"points": 5, "message": "You earned 5 points!"})
    db.session.commit()
    assert notification_service.email_copies([n]) == 0

    app.config.update(NOTIFY_BY_EMAIL=True, MAIL_DEFAULT_SENDER="teamhub@acme.com")
    assert notification_service.email_copies([n]) == 1
