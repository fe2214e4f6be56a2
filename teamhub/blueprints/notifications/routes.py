# teamhub/blueprints/notifications/routes.py
import json
import logging
import queue

from flask import Response, current_app, jsonify, request, stream_with_context
from flask_login import login_required, current_user

from ...extensions import feed
from ...realtime import SubscriptionDropped
from ...services import notification_service
from ...services.inbox import NotificationInbox
from ...services.routing import resolve_destination
from ..utils import int_arg
from . import notifications_bp

log = logging.getLogger(__name__)


def _sse(event: str, data: dict, event_id=None) -> str:
    lines = []
    if event_id is not None:
        lines.append(f"id: {event_id}")
    lines.append(f"event: {event}")
    lines.append(f"data: {json.dumps(data, default=str)}")
    return "\n".join(lines) + "\n\n"


@notifications_bp.get("/")
@login_required
def index():
    limit = int_arg("limit", current_app.config.get("NOTIFICATION_PAGE_SIZE", 50), hi=200)
    items = notification_service.list_for(current_user, limit)
    return jsonify({
        "items": [n.to_dict() for n in items],
        "unread": notification_service.unread_count(current_user),
    })


@notifications_bp.get("/unread-count")
@login_required
def unread_count():
    return jsonify({"unread": notification_service.unread_count(current_user)})


@notifications_bp.post("/<int:notification_id>/open")
@login_required
def open_notification(notification_id):
    """Click on a notification: mark it read, then say where to navigate."""
    n = notification_service.mark_read(current_user, notification_id)
    destination = resolve_destination(n.type, n.payload, current_user.role)
    return jsonify({"notification": n.to_dict(), "destination": destination})


@notifications_bp.post("/<int:notification_id>/read")
@login_required
def mark_read(notification_id):
    n = notification_service.mark_read(current_user, notification_id)
    return jsonify(n.to_dict())


@notifications_bp.post("/read-all")
@login_required
def read_all():
    changed = notification_service.mark_all_read(current_user)
    return jsonify({"marked": changed, "unread": 0})


@notifications_bp.delete("/<int:notification_id>")
@login_required
def delete(notification_id):
    was_unread = notification_service.delete(current_user, notification_id)
    return jsonify({"deleted": notification_id, "was_unread": was_unread})


@notifications_bp.get("/stream")
@login_required
def stream():
    """Server-Sent Events: this user's notification inserts, updates and deletes."""
    user_id = current_user.id
    keepalive = current_app.config.get("SSE_KEEPALIVE_SECONDS", 30)
    # ?once=1: long-poll fallback, close after the first event or keepalive
    once = request.args.get("once") in ("1", "true")
    inbox = NotificationInbox(
        (n.to_dict() for n in notification_service.list_for(current_user)),
        unread_total=notification_service.unread_count(current_user),
    )
    sub = feed.subscribe("notification", {"user_id": user_id},
                         maxsize=current_app.config.get("SSE_QUEUE_SIZE", 100))

    def generate():
        with sub:
            yield _sse("snapshot", {"unread": inbox.unread})
            while True:
                try:
                    change = sub.get(timeout=keepalive)
                except queue.Empty:
                    if once:
                        return
                    yield ": keepalive\n\n"
                    continue
                except SubscriptionDropped:
                    # the client re-reads the list and reconnects
                    log.warning("sse stream fell behind user=%s; asking client to resync", user_id)
                    yield _sse("resync", {"reason": "lagged"})
                    return

                row = change.row
                if change.op == "DELETE":
                    inbox.remove(row["id"], row)
                    yield _sse("deleted", {"id": row["id"], "unread": inbox.unread})
                else:
                    is_new = inbox.receive(row, change.op)
                    yield _sse("notification" if is_new else "updated",
                               {"item": row, "unread": inbox.unread, "alerts": inbox.pop_alerts()},
                               event_id=row["id"])
                if once:
                    return

    log.debug("sse stream opened user=%s", user_id)
    return Response(
        stream_with_context(generate()),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
