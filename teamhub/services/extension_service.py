# teamhub/services/extension_service.py
"""
Due-date extension requests.

An assignee asks; an owner or admin of the task's organization decides.
Input is validated before anything is looked up or written, so a bad
request never touches the database.
"""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from ..errors import AuthorizationDenied, Conflict, RecordNotFound, TransientFailure, ValidationFailed
from ..extensions import db
from ..models.extension import ExtensionRequest, EXTENSION_STATUSES
from ..models.organization import MANAGER_ROLES
from ..models.task import Project, Task
from ..security import require_member
from . import notification_service

log = logging.getLogger(__name__)


def parse_due(value) -> Optional[datetime]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    try:
        return datetime.fromisoformat(str(value).strip())
    except ValueError:
        return None


def validate_request(requested_due_at, reason) -> tuple[datetime, str]:
    errors = {}
    due = parse_due(requested_due_at)
    if requested_due_at in (None, ""):
        errors["requested_due_at"] = "required"
    elif due is None:
        errors["requested_due_at"] = "must be an ISO date"
    reason = (reason or "").strip()
    if not reason:
        errors["reason"] = "required"
    if errors:
        raise ValidationFailed("an extension needs a new due date and a reason", fields=errors)
    return due, reason


def request_extension(task_id: int, requester, requested_due_at, reason,
                      now: Optional[datetime] = None) -> ExtensionRequest:
    due, reason = validate_request(requested_due_at, reason)

    task = db.session.get(Task, task_id)
    if task is None:
        raise RecordNotFound(f"task {task_id} not found")
    if task.assignee_id != requester.id:
        raise AuthorizationDenied("only the assignee can ask for an extension")
    if task.due_date and due <= task.due_date:
        raise ValidationFailed("the new due date must be after the current one",
                               fields={"requested_due_at": "must be later than the current due date"})
    pending = ExtensionRequest.query.filter_by(task_id=task.id, requester_id=requester.id, status="pending").first()
    if pending is not None:
        raise Conflict("an extension request for this task is already pending")

    try:
        req = ExtensionRequest(
            task_id=task.id,
            requester_id=requester.id,
            requested_due_at=due,
            reason=reason,
            status="pending",
            created_at=now or datetime.utcnow(),
        )
        db.session.add(req)
        db.session.flush()
        created = notification_service.notify_extension_requested(req)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        log.exception("extension request failed task=%s", task_id)
        raise TransientFailure(str(e)) from e

    log.info("extension requested id=%s task=%s by=%s", req.id, task.id, requester.id)
    notification_service.email_copies(created)
    return req


def decide(request_id: int, decider, approve: bool, note: Optional[str] = None,
           now: Optional[datetime] = None) -> ExtensionRequest:
    req = db.session.get(ExtensionRequest, request_id)
    if req is None:
        raise RecordNotFound(f"extension request {request_id} not found")
    require_member(decider, req.task.organization_id, *MANAGER_ROLES)
    if req.status != "pending":
        raise Conflict(f"this request was already {req.status}")

    try:
        req.status = "approved" if approve else "rejected"
        req.decided_by = decider.id
        req.decided_at = now or datetime.utcnow()
        req.decision_note = (note or "").strip() or None
        if approve:
            req.task.due_date = req.requested_due_at
        created = notification_service.notify_extension_decided(req)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        log.exception("extension decision failed id=%s", request_id)
        raise TransientFailure(str(e)) from e

    log.info("extension %s id=%s by=%s", req.status, req.id, decider.id)
    notification_service.email_copies([created])
    return req


def list_requests(user, organization_id: int, status: Optional[str] = None) -> list[ExtensionRequest]:
    """Managers see the organization's requests; everyone else sees their own."""
    if status and status not in EXTENSION_STATUSES:
        raise ValidationFailed(f"unknown status {status!r}", fields={"status": "invalid"})
    m = require_member(user, organization_id)

    q = (ExtensionRequest.query
         .join(Task, ExtensionRequest.task_id == Task.id)
         .join(Project, Task.project_id == Project.id)
         .filter(Project.organization_id == organization_id))
    if m.role not in MANAGER_ROLES:
        q = q.filter(ExtensionRequest.requester_id == user.id)
    if status:
        q = q.filter(ExtensionRequest.status == status)
    return q.order_by(ExtensionRequest.created_at.desc(), ExtensionRequest.id.desc()).all()


def pending_count(organization_id: int) -> int:
    return (ExtensionRequest.query
            .join(Task, ExtensionRequest.task_id == Task.id)
            .join(Project, Task.project_id == Project.id)
            .filter(Project.organization_id == organization_id, ExtensionRequest.status == "pending")
            .count())

