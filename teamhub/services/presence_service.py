# teamhub/services/presence_service.py
"""
Presence: derived display status plus the single state machine that writes it.

Stored presence is a hint. What peers see is computed at read time from the
day's attendance record and the age of the last presence write:

* no open clock-in today            -> ``offline``
* clocked in, write younger than 20m -> stored status (``online`` if unset)
* clocked in, write 20m old or more  -> ``idle``

All writes go through :class:`PresenceTracker`, fed by one event channel
(activity, explicit status change, clock in/out, timer tick).
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from ..errors import TransientFailure, ValidationFailed
from ..extensions import db
from ..models.organization import ROLES
from ..models.presence import AttendanceCheckin, PresenceRecord, PRESENCE_STATUSES
from ..models.task import Task
from ..models.user import User

log = logging.getLogger(__name__)

IDLE_AFTER = timedelta(minutes=20)
HEARTBEAT_EVERY = timedelta(seconds=30)
ACTIVE_STATUSES = ("online", "idle", "do_not_disturb")
EVENTS = ("activity", "set_status", "clock_in", "clock_out", "tick")


def idle_after() -> timedelta:
    if has_app_context():
        return timedelta(minutes=current_app.config.get("PRESENCE_IDLE_MINUTES", 20))
    return IDLE_AFTER


def heartbeat_every() -> timedelta:
    if has_app_context():
        return timedelta(seconds=current_app.config.get("PRESENCE_HEARTBEAT_SECONDS", 30))
    return HEARTBEAT_EVERY


def derive_status(checkin: Optional[AttendanceCheckin], presence: Optional[PresenceRecord],
                  now: Optional[datetime] = None, threshold: Optional[timedelta] = None) -> str:
    now = now or datetime.utcnow()
    threshold = threshold or idle_after()

    if checkin is None or not checkin.is_open or checkin.local_date != now.date():
        return "offline"
    if presence is None or presence.updated_at is None:
        return "online"
    if now - presence.updated_at < threshold:
        return presence.status or "online"
    return "idle"


# -----------------
# Storage helpers
# -----------------

def todays_checkin(user_id: int, organization_id: int, now: Optional[datetime] = None):
    now = now or datetime.utcnow()
    return (AttendanceCheckin.query
            .filter_by(user_id=user_id, organization_id=organization_id, local_date=now.date())
            .first())


def upsert_presence(user_id: int, status: str, at: Optional[datetime] = None,
                    current_task_id=None, *, commit: bool = True) -> PresenceRecord:
    """Create or overwrite the user's presence row. Last write wins."""
    if status not in PRESENCE_STATUSES:
        raise ValidationFailed(f"unknown presence status {status!r}", fields={"status": "invalid"})
    at = at or datetime.utcnow()
    try:
        rec = db.session.get(PresenceRecord, user_id)
        if rec is None:
            rec = PresenceRecord(user_id=user_id)
            db.session.add(rec)
        rec.status = status
        rec.updated_at = at
        if current_task_id is not None:
            rec.current_task_id = current_task_id or None
        if commit:
            db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        log.exception("presence upsert failed user=%s status=%s", user_id, status)
        raise TransientFailure(str(e)) from e
    return rec


# -----------------
# State machine
# -----------------

Writer = Callable[[int, str, datetime], object]


class PresenceTracker:
    """
    Presence of one user as a state machine over
    ``online | idle | do_not_disturb | offline``.

    ``clock`` is the timer service; ``writer`` persists a state. A write only
    happens on a state change, or as a heartbeat refresh when activity arrives
    and the last write is older than ``heartbeat``.
    """

    def __init__(self, user_id: int, writer: Writer, *, state: str = "offline",
                 last_write: Optional[datetime] = None,
                 clock: Callable[[], datetime] = datetime.utcnow,
                 idle_after: timedelta = IDLE_AFTER, heartbeat: timedelta = HEARTBEAT_EVERY):
        self.user_id = user_id
        self.state = state
        self.last_write = last_write
        self.last_activity = last_write
        self._writer = writer
        self._clock = clock
        self.idle_after = idle_after
        self.heartbeat = heartbeat

    @classmethod
    def from_storage(cls, user_id: int, organization_id: int, writer: Writer = None,
                     clock: Callable[[], datetime] = datetime.utcnow) -> "PresenceTracker":
        now = clock()
        rec = db.session.get(PresenceRecord, user_id)
        checkin = todays_checkin(user_id, organization_id, now)
        return cls(
            user_id,
            writer or (lambda uid, status, at: upsert_presence(uid, status, at)),
            state=derive_status(checkin, rec, now, idle_after()),
            last_write=rec.updated_at if rec else None,
            clock=clock,
            idle_after=idle_after(),
            heartbeat=heartbeat_every(),
        )

    def handle(self, event: str, status: Optional[str] = None) -> Optional[str]:
        """Apply one event; returns the state written, or None when nothing was written."""
        if event not in EVENTS:
            raise ValueError(f"unknown presence event {event!r}")
        now = self._clock()

        if event == "clock_in":
            self.last_activity = now
            return self._write("online", now, force=True)

        if event == "clock_out":
            return self._write("offline", now, force=True)

        if event == "set_status":
            if status not in PRESENCE_STATUSES:
                raise ValidationFailed(f"unknown presence status {status!r}", fields={"status": "invalid"})
            self.last_activity = now
            return self._write(status, now, force=True)

        if event == "activity":
            if self.state == "offline":
                return None
            self.last_activity = now
            if self.state == "idle":
                return self._write("online", now)
            if self.last_write is None or now - self.last_write >= self.heartbeat:
                return self._write(self.state, now, force=True)
            return None

        # tick
        if self.state in ("online", "do_not_disturb") and self.last_activity is not None \
                and now - self.last_activity >= self.idle_after:
            return self._write("idle", now)
        return None

    def _write(self, state: str, now: datetime, force: bool = False) -> Optional[str]:
        if state == self.state and not force:
            return None
        self._writer(self.user_id, state, now)
        log.debug("presence user=%s %s -> %s", self.user_id, self.state, state)
        self.state = state
        self.last_write = now
        return state


# -----------------
# Team view
# -----------------

def team_presence(organization, now: Optional[datetime] = None) -> dict:
    """Derived status of every member, grouped by role."""
    now = now or datetime.utcnow()
    threshold = idle_after()
    members = list(organization.members)
    user_ids = [m.user_id for m in members]

    try:
        checkins = {
            c.user_id: c for c in AttendanceCheckin.query
            .filter_by(organization_id=organization.id, local_date=now.date())
        }
        presences = {
            p.user_id: p for p in PresenceRecord.query.filter(PresenceRecord.user_id.in_(user_ids))
        } if user_ids else {}
    except SQLAlchemyError:
        db.session.rollback()
        log.exception("presence read failed org=%s; reporting members offline", organization.id)
        checkins, presences = {}, {}

    task_ids = {p.current_task_id for p in presences.values() if p.current_task_id}
    titles = {}
    if task_ids:
        try:
            titles = {t.id: t.title for t in Task.query.filter(Task.id.in_(task_ids))}
        except SQLAlchemyError:
            db.session.rollback()
            log.warning("current task lookup failed org=%s", organization.id)

    by_role = {role: [] for role in ROLES}
    for m in members:
        user = m.user
        if user is None:
            continue
        presence = presences.get(m.user_id)
        try:
            status = derive_status(checkins.get(m.user_id), presence, now, threshold)
        except (TypeError, ValueError, AttributeError):
            log.exception("presence derive failed user=%s", m.user_id)
            status = "offline"
        current_task_id = presence.current_task_id if presence else None
        by_role.setdefault(m.role, []).append({
            "id": user.id,
            "full_name": user.full_name,
            "email": user.email,
            "avatar_url": user.avatar_url,
            "role": m.role,
            "status": status,
            "current_task_id": current_task_id,
            "current_task_title": titles.get(current_task_id),
        })

    everyone = [u for group in by_role.values() for u in group]
    return {
        "by_role": by_role,
        "online": sum(1 for u in everyone if u["status"] in ACTIVE_STATUSES),
        "total": len(everyone),
    }


def sweep_idle(now: Optional[datetime] = None) -> int:
    """Timer tick for every stored presence; persists ``idle`` for stale active rows."""
    now = now or datetime.utcnow()
    threshold = idle_after()
    changed = 0
    stale = (PresenceRecord.query
             .filter(PresenceRecord.status.in_(("online", "do_not_disturb")))
             .filter(PresenceRecord.updated_at <= now - threshold)
             .all())
    for rec in stale:
        tracker = PresenceTracker(
            rec.user_id,
            lambda uid, status, at: upsert_presence(uid, status, at, commit=False),
            state=rec.status,
            last_write=rec.updated_at,
            clock=lambda: now,
            idle_after=threshold,
        )
        if tracker.handle("tick"):
            changed += 1
    if changed:
        db.session.commit()
    log.info("presence sweep marked %s user(s) idle", changed)
    return changed


def user_presence_summary(user: User, organization_id: int, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    rec = db.session.get(PresenceRecord, user.id)
    checkin = todays_checkin(user.id, organization_id, now)
    return {
        "user_id": user.id,
        "status": derive_status(checkin, rec, now),
        "stored_status": rec.status if rec else None,
        "clocked_in": bool(checkin and checkin.is_open),
    }
