# teamhub/services/attendance_service.py
from __future__ import annotations

import logging
from datetime import datetime, date, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError

from ..errors import Conflict, RecordNotFound
from ..extensions import db
from ..models.presence import AttendanceCheckin
from .presence_service import PresenceTracker, todays_checkin

log = logging.getLogger(__name__)


def clock_in(user, organization, now: Optional[datetime] = None) -> AttendanceCheckin:
    now = now or datetime.utcnow()
    existing = todays_checkin(user.id, organization.id, now)
    if existing is not None:
        if existing.is_open:
            raise Conflict("already clocked in today")
        raise Conflict("already clocked out today")

    checkin = AttendanceCheckin(
        organization_id=organization.id,
        user_id=user.id,
        local_date=now.date(),
        clock_in_at=now,
    )
    db.session.add(checkin)
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise Conflict("already clocked in today") from e

    PresenceTracker.from_storage(user.id, organization.id, clock=lambda: now).handle("clock_in")
    log.info("clock-in user=%s org=%s", user.id, organization.id)
    return checkin


def clock_out(user, organization, now: Optional[datetime] = None) -> AttendanceCheckin:
    now = now or datetime.utcnow()
    checkin = todays_checkin(user.id, organization.id, now)
    if checkin is None or not checkin.is_open:
        raise RecordNotFound("no open clock-in for today")

    checkin.clock_out_at = now
    db.session.commit()

    PresenceTracker.from_storage(user.id, organization.id, clock=lambda: now).handle("clock_out")
    log.info("clock-out user=%s org=%s", user.id, organization.id)
    return checkin


def _at(day: date, t) -> datetime:
    return datetime.combine(day, t)


def arrival_status(clock_in_at: Optional[datetime], organization) -> str:
    """early | on-time | late | absent, against the organization's work hours."""
    if clock_in_at is None:
        return "absent"
    day = clock_in_at.date()
    if clock_in_at > _at(day, organization.work_end_time):
        return "absent"
    diff_minutes = (clock_in_at - _at(day, organization.work_start_time)).total_seconds() / 60
    if diff_minutes <= -organization.early_threshold_minutes:
        return "early"
    if diff_minutes <= organization.late_threshold_minutes:
        return "on-time"
    return "late"


def has_overtime(clock_out_at: Optional[datetime], organization) -> bool:
    if clock_out_at is None:
        return False
    return clock_out_at > _at(clock_out_at.date(), organization.work_end_time)


def attendance_history(organization, start: date, end: date, now: Optional[datetime] = None) -> list[dict]:
    """Per-day records for every member, newest day first; members with no record on a finished day are absent."""
    now = now or datetime.utcnow()
    rows = (AttendanceCheckin.query
            .filter(AttendanceCheckin.organization_id == organization.id)
            .filter(AttendanceCheckin.local_date >= start, AttendanceCheckin.local_date <= end)
            .all())
    by_day: dict[date, dict[int, AttendanceCheckin]] = {}
    for r in rows:
        by_day.setdefault(r.local_date, {})[r.user_id] = r

    out = []
    day = end
    while day >= start:
        finished = day < now.date() or (day == now.date() and now > _at(day, organization.work_end_time))
        seen = by_day.get(day, {})
        for m in organization.members:
            rec = seen.get(m.user_id)
            if rec is not None:
                out.append({
                    **rec.to_dict(),
                    "role": m.role,
                    "status": arrival_status(rec.clock_in_at, organization),
                    "has_overtime": has_overtime(rec.clock_out_at, organization),
                })
            elif finished:
                out.append({
                    "user_id": m.user_id,
                    "local_date": day.isoformat(),
                    "role": m.role,
                    "status": "absent",
                    "has_overtime": False,
                })
        day -= timedelta(days=1)
    return out
