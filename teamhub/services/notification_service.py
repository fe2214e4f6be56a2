# teamhub/services/notification_service.py
"""
Notification producers and the owner-side inbox operations:
list, count, mark read, delete.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable, Optional

from flask import current_app
from flask_babel import gettext as _

from ..errors import AuthorizationDenied, RecordNotFound, ValidationFailed
from ..extensions import db
from ..models.notification import Notification, NOTIFICATION_TYPES
from ..models.organization import MANAGER_ROLES
from ..models.task import Task
from ..models.user import User
from .email_service import send_email

log = logging.getLogger(__name__)


def notify(user_id: int, type_: str, payload: dict) -> Notification:
    """Stage a notification in the current transaction; the caller commits."""
    if type_ not in NOTIFICATION_TYPES:
        raise ValidationFailed(f"unknown notification type {type_!r}")
    if not payload.get("message"):
        raise ValidationFailed("notification payload needs a message")
    n = Notification(user_id=user_id, type=type_, payload=payload)
    db.session.add(n)
    return n


def _name(user_id: Optional[int], default: str = "System") -> str:
    if not user_id:
        return default
    u = db.session.get(User, user_id)
    return u.full_name if u else default


def organization_managers(organization) -> list[int]:
    return sorted({m.user_id for m in organization.members_with_role(*MANAGER_ROLES)})


# -----------------
# Producers
# -----------------

def notify_task_assigned(task: Task, reassigned: bool = False) -> Optional[Notification]:
    if not task.assignee_id:
        return None
    message = (_('You have been reassigned to "%(title)s"', title=task.title) if reassigned
               else _('You have been assigned to "%(title)s"', title=task.title))
    return notify(task.assignee_id, "task_assigned", {
        "task_id": task.id,
        "task_title": task.title,
        "task_type": task.task_type or "task",
        "priority": task.priority,
        "due_date": task.due_date.isoformat() if task.due_date else None,
        "assigned_by": task.created_by,
        "assigner_name": _name(task.created_by),
        "project_id": task.project_id,
        "message": message,
    })


def notify_extension_requested(req) -> list[Notification]:
    task = req.task
    requester = _name(req.requester_id, default="Someone")
    out = []
    for uid in organization_managers(task.project.organization):
        out.append(notify(uid, "extension_requested", {
            "extension_request_id": req.id,
            "task_id": task.id,
            "task_title": task.title,
            "requester_id": req.requester_id,
            "requester_name": requester,
            "requested_due_at": req.requested_due_at.isoformat() if req.requested_due_at else None,
            "reason": req.reason,
            "message": _('%(name)s requested an extension for "%(title)s"', name=requester, title=task.title),
        }))
    return out


def notify_extension_decided(req) -> Notification:
    task = req.task
    approved = req.status == "approved"
    message = (_('Your extension request for "%(title)s" has been approved', title=task.title) if approved
               else _('Your extension request for "%(title)s" has been rejected', title=task.title))
    return notify(req.requester_id, "extension_approved" if approved else "extension_rejected", {
        "extension_request_id": req.id,
        "task_id": task.id,
        "task_title": task.title,
        "decided_by": req.decided_by,
        "decider_name": _name(req.decided_by),
        "decision_note": req.decision_note,
        "status": req.status,
        "message": message,
    })


def notify_points_earned(user_id: int, points: int, reason_code: str, task: Optional[Task] = None) -> Notification:
    payload = {
        "points": points,
        "reason_code": reason_code,
        "message": _("You earned %(points)s points!", points=points),
    }
    if task is not None:
        payload.update(task_id=task.id, task_title=task.title, project_id=task.project_id)
    return notify(user_id, "points_earned", payload)


def notify_member_joined(member) -> list[Notification]:
    org = member.organization
    new_name = _name(member.user_id, default="A new member")
    out = []
    for uid in organization_managers(org):
        if uid == member.user_id:
            continue
        out.append(notify(uid, "member_joined", {
            "new_member_id": member.user_id,
            "new_member_name": new_name,
            "member_role": member.role,
            "organization_id": org.id,
            "organization_name": org.name,
            "message": _("%(name)s joined %(org)s as %(role)s", name=new_name, org=org.name, role=member.role),
        }))
    return out


def send_due_reminders(now: Optional[datetime] = None, window_hours: Optional[int] = None) -> list[Notification]:
    """Remind assignees of open tasks due within the window, at most once per window."""
    now = now or datetime.utcnow()
    window = timedelta(hours=window_hours or current_app.config.get("DUE_REMINDER_HOURS", 24))
    due = (Task.query
           .filter(Task.assignee_id.isnot(None), Task.due_date.isnot(None))
           .filter(Task.status.notin_(("done", "submitted")))
           .filter(Task.due_date > now, Task.due_date <= now + window)
           .all())

    recent = {
        (n.user_id, (n.payload or {}).get("task_id"))
        for n in Notification.query
        .filter(Notification.type == "task_due_reminder", Notification.created_at >= now - window)
    }

    created = []
    for t in due:
        if (t.assignee_id, t.id) in recent:
            continue
        hours = int((t.due_date - now).total_seconds() // 3600)
        n = notify(t.assignee_id, "task_due_reminder", {
            "task_id": t.id,
            "task_title": t.title,
            "task_type": t.task_type,
            "priority": t.priority,
            "due_date": t.due_date.isoformat(),
            "hours_until_due": hours,
            "message": _('"%(title)s" is due in %(hours)s hours', title=t.title, hours=hours),
        })
        n.created_at = now
        created.append(n)
    db.session.commit()
    email_copies(created)
    log.info("due reminders sent=%s", len(created))
    return created


def email_copies(notifications: Iterable[Notification]) -> int:
    """Email a copy of committed notifications when NOTIFY_BY_EMAIL is on."""
    if not current_app.config.get("NOTIFY_BY_EMAIL"):
        return 0
    sent = 0
    for n in notifications:
        user = db.session.get(User, n.user_id)
        if not user or not user.email:
            continue
        ok = send_email(
            to=user.email,
            subject=n.payload.get("message", "TeamHub notification"),
            template="notification.html",
            user=user,
            notification=n,
        )
        sent += int(bool(ok))
    return sent


# -----------------
# Inbox (owner only)
# -----------------

def _owned(user, notification_id: int) -> Notification:
    n = db.session.get(Notification, notification_id)
    if n is None:
        raise RecordNotFound(f"notification {notification_id} not found")
    if n.user_id != user.id:
        raise AuthorizationDenied("notification belongs to another user")
    return n


def list_for(user, limit: Optional[int] = None) -> list[Notification]:
    limit = limit or current_app.config.get("NOTIFICATION_PAGE_SIZE", 50)
    return (Notification.query
            .filter_by(user_id=user.id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .all())


def unread_count(user) -> int:
    return Notification.query.filter_by(user_id=user.id, read_at=None).count()


def mark_read(user, notification_id: int, now: Optional[datetime] = None) -> Notification:
    n = _owned(user, notification_id)
    if n.read_at is None:
        n.read_at = now or datetime.utcnow()
        db.session.commit()
    return n


def mark_all_read(user, now: Optional[datetime] = None) -> int:
    now = now or datetime.utcnow()
    unread = Notification.query.filter_by(user_id=user.id, read_at=None).all()
    for n in unread:
        n.read_at = now
    db.session.commit()
    return len(unread)


def delete(user, notification_id: int) -> bool:
    """Returns True when the deleted notification was unread."""
    n = _owned(user, notification_id)
    was_unread = n.read_at is None
    db.session.delete(n)
    db.session.commit()
    return was_unread
