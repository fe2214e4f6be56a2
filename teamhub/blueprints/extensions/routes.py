# teamhub/blueprints/extensions/routes.py
from flask import jsonify, request
from flask_login import login_required, current_user

from ...services import extension_service
from ..utils import active_organization, body
from . import extensions_bp


@extensions_bp.get("/")
@login_required
def index():
    """Requests for the active organization, one tab at a time (pending|approved|rejected)."""
    org = active_organization()
    tab = request.args.get("tab") or None
    rows = extension_service.list_requests(current_user, org.id, status=tab)
    return jsonify([
        {**r.to_dict(), "task_title": r.task.title, "requester_name": r.requester.full_name}
        for r in rows
    ])


@extensions_bp.post("/<int:request_id>/approve")
@login_required
def approve(request_id):
    req = extension_service.decide(request_id, current_user, True, body().get("note"))
    return jsonify(req.to_dict())


@extensions_bp.post("/<int:request_id>/reject")
@login_required
def reject(request_id):
    req = extension_service.decide(request_id, current_user, False, body().get("note"))
    return jsonify(req.to_dict())
