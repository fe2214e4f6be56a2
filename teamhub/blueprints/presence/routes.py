# teamhub/blueprints/presence/routes.py
from datetime import date, datetime, timedelta

from flask import jsonify, request
from flask_login import login_required, current_user

from ...errors import ValidationFailed
from ...models.organization import LEAD_ROLES
from ...security import require_member, roles_required
from ...services import attendance_service, presence_service
from ..utils import active_organization, body
from . import presence_bp


@presence_bp.get("/team")
@login_required
def team():
    org = active_organization()
    require_member(current_user, org.id)
    return jsonify(presence_service.team_presence(org))


@presence_bp.get("/me")
@login_required
def me():
    org = active_organization()
    return jsonify(presence_service.user_presence_summary(current_user, org.id))


@presence_bp.post("/status")
@login_required
def set_status():
    org = active_organization()
    data = body()
    current_task_id = data.get("current_task_id")
    tracker = presence_service.PresenceTracker.from_storage(
        current_user.id,
        org.id,
        writer=lambda uid, status, at: presence_service.upsert_presence(uid, status, at, current_task_id),
    )
    written = tracker.handle("set_status", data.get("status"))
    return jsonify({"status": tracker.state, "written": written})


@presence_bp.post("/heartbeat")
@login_required
def heartbeat():
    """Activity ping from the browser (mouse/keyboard/scroll/touch, throttled client-side)."""
    org = active_organization()
    event = body().get("event", "activity")
    if event not in ("activity", "tick"):
        raise ValidationFailed(f"unsupported heartbeat event {event!r}", fields={"event": "invalid"})
    tracker = presence_service.PresenceTracker.from_storage(current_user.id, org.id)
    written = tracker.handle(event)
    return jsonify({"status": tracker.state, "written": written})


@presence_bp.post("/clock-in")
@login_required
def clock_in():
    org = active_organization()
    require_member(current_user, org.id)
    checkin = attendance_service.clock_in(current_user, org)
    return jsonify({
        **checkin.to_dict(),
        "arrival": attendance_service.arrival_status(checkin.clock_in_at, org),
    }), 201


@presence_bp.post("/clock-out")
@login_required
def clock_out():
    org = active_organization()
    checkin = attendance_service.clock_out(current_user, org)
    return jsonify({
        **checkin.to_dict(),
        "has_overtime": attendance_service.has_overtime(checkin.clock_out_at, org),
    })


def _date_arg(name: str, default: date) -> date:
    raw = request.args.get(name)
    if not raw:
        return default
    try:
        return date.fromisoformat(raw)
    except ValueError as e:
        raise ValidationFailed(f"{name} must be YYYY-MM-DD", fields={name: "invalid"}) from e


@presence_bp.get("/attendance")
@login_required
@roles_required(*LEAD_ROLES)
def attendance():
    org = active_organization()
    today = datetime.utcnow().date()
    end = _date_arg("end", today)
    start = _date_arg("start", end - timedelta(days=6))
    if start > end:
        raise ValidationFailed("start must not be after end", fields={"start": "after end"})
    return jsonify(attendance_service.attendance_history(org, start, end))
