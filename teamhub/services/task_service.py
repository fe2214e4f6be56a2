# teamhub/services/task_service.py
"""
Task lifecycle: start / pause / complete.

A transition is one database transaction: status update, then (for a
completion) the points credit and its notification, then the time-log
entry. Any failure rolls all of it back.

Completion credits are exactly-once per user and task, and they go to
whoever completes the task. A repeated ``complete`` by the same user (two
tabs, a double click) still records the status and its time log but
credits nothing; the ledger's unique constraint backs the in-transaction
check when two sessions race. A different user completing the same task
(a supervisor closing it after the assignee reopened it) earns their own
credit once.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..errors import AuthorizationDenied, RecordNotFound, TransientFailure, ValidationFailed
from ..extensions import db
from ..models.organization import LEAD_ROLES
from ..models.points import PointsLedgerEntry
from ..models.task import Project, Task, TASK_PRIORITIES, TASK_STATUSES, TASK_TYPES
from ..models.timelog import TimeLogEntry
from ..security import require_member
from . import notification_service, points_service

log = logging.getLogger(__name__)

ACTIONS = {
    "start": "in_progress",
    "pause": "todo",
    "complete": "done",
}
COMPLETION_REASON = "task_completion"


@dataclass
class TransitionResult:
    task: Task
    action: str
    status: str
    points_awarded: int
    time_log: TimeLogEntry
    notification: Optional[object] = None

    def to_dict(self) -> dict:
        return {
            "task": self.task.to_dict(),
            "action": self.action,
            "status": self.status,
            "points_awarded": self.points_awarded,
            "time_log": self.time_log.to_dict(),
        }


def get_task(task_id: int) -> Task:
    t = db.session.get(Task, task_id)
    if t is None:
        raise RecordNotFound(f"task {task_id} not found")
    return t


def authorize_transition(task: Task, actor) -> None:
    """The assignee drives their own task; leads of the organization may too."""
    if task.assignee_id == actor.id:
        return
    m = actor.membership_in(task.organization_id)
    if m is None or m.role not in LEAD_ROLES:
        raise AuthorizationDenied("only the assignee or a supervisor can change this task")


def _already_credited(user_id: int, task_id: int) -> bool:
    return (PointsLedgerEntry.query
            .filter_by(user_id=user_id, task_id=task_id, reason_code=COMPLETION_REASON)
            .first()) is not None


def _apply(task: Task, action: str, actor, now: datetime) -> TransitionResult:
    new_status = ACTIONS[action]
    task.status = new_status
    task.updated_at = now
    db.session.flush()

    awarded = 0
    earned = None
    points = task.completion_points or 0
    if action == "complete" and points > 0:
        if _already_credited(actor.id, task.id):
            log.info("task %s already credited to user %s; skipping points", task.id, actor.id)
        else:
            points_service.append_entry(actor.id, points, COMPLETION_REASON, task_id=task.id, now=now)
            earned = notification_service.notify_points_earned(actor.id, points, COMPLETION_REASON, task)
            awarded = points

    entry = TimeLogEntry(task_id=task.id, user_id=actor.id, action=action, created_at=now)
    db.session.add(entry)
    db.session.commit()
    return TransitionResult(task=task, action=action, status=new_status, points_awarded=awarded, time_log=entry,
                            notification=earned)


def transition(task_id: int, action: str, actor, now: Optional[datetime] = None) -> TransitionResult:
    if action not in ACTIONS:
        raise ValidationFailed(f"unknown action {action!r}", fields={"action": "invalid"})
    now = now or datetime.utcnow()

    # second pass only runs when a concurrent completion won the credit race
    for attempt in (1, 2):
        task = get_task(task_id)
        authorize_transition(task, actor)
        try:
            result = _apply(task, action, actor, now)
        except IntegrityError as e:
            db.session.rollback()
            if attempt == 2:
                log.exception("task %s %s failed twice on integrity", task_id, action)
                raise TransientFailure(str(e)) from e
            log.warning("task %s %s lost a credit race; retrying", task_id, action)
            continue
        except SQLAlchemyError as e:
            db.session.rollback()
            log.exception("task %s %s failed; rolled back", task_id, action)
            raise TransientFailure(str(e)) from e

        log.info("task %s %s by user %s -> %s (+%s pts)",
                 task_id, action, actor.id, result.status, result.points_awarded)
        if result.notification is not None:
            notification_service.email_copies([result.notification])
        return result


# -----------------
# Creation / assignment
# -----------------

def _parse_due(val):
    if val in (None, ""):
        return None
    if isinstance(val, datetime):
        return val
    try:
        return datetime.fromisoformat(str(val))
    except ValueError as e:
        raise ValidationFailed("due date must be an ISO date", fields={"due_date": "invalid"}) from e


def _check_fields(fields: dict) -> dict:
    errors = {}
    if "status" in fields and fields["status"] not in TASK_STATUSES:
        errors["status"] = "invalid"
    if "priority" in fields and fields["priority"] not in TASK_PRIORITIES:
        errors["priority"] = "invalid"
    if "task_type" in fields and fields["task_type"] not in TASK_TYPES:
        errors["task_type"] = "invalid"
    if "completion_points" in fields:
        try:
            if int(fields["completion_points"]) < 0:
                errors["completion_points"] = "must be zero or more"
        except (TypeError, ValueError):
            errors["completion_points"] = "must be a number"
    return errors


def create_task(project_id: int, actor, *, title: str, description: str = None, task_type: str = "task",
                priority: str = "medium", due_date=None, completion_points: int = 0,
                assignee_id: int = None) -> Task:
    project = db.session.get(Project, project_id)
    if project is None:
        raise RecordNotFound(f"project {project_id} not found")
    require_member(actor, project.organization_id, *LEAD_ROLES)

    title = (title or "").strip()
    errors = _check_fields({"task_type": task_type, "priority": priority, "completion_points": completion_points})
    if not title:
        errors["title"] = "required"
    if errors:
        raise ValidationFailed("task is missing or has invalid fields", fields=errors)
    if assignee_id is not None and not _is_member(assignee_id, project.organization_id):
        raise ValidationFailed("assignee is not a member of this organization", fields={"assignee_id": "invalid"})

    t = Task(
        project_id=project.id,
        title=title,
        description=description,
        task_type=task_type,
        priority=priority,
        due_date=_parse_due(due_date),
        completion_points=int(completion_points or 0),
        assignee_id=assignee_id,
        created_by=actor.id,
        status="todo",
    )
    db.session.add(t)
    db.session.flush()
    created = notification_service.notify_task_assigned(t)
    db.session.commit()
    if created is not None:
        notification_service.email_copies([created])
    log.info("task %s created in project %s by %s", t.id, project.id, actor.id)
    return t


def _is_member(user_id: int, organization_id: int) -> bool:
    from ..models.organization import OrganizationMember
    return OrganizationMember.query.filter_by(user_id=user_id, organization_id=organization_id).first() is not None


def assign_task(task_id: int, assignee_id: Optional[int], actor) -> Task:
    task = get_task(task_id)
    require_member(actor, task.organization_id, *LEAD_ROLES)
    if assignee_id is not None and not _is_member(assignee_id, task.organization_id):
        raise ValidationFailed("assignee is not a member of this organization", fields={"assignee_id": "invalid"})
    if task.assignee_id == assignee_id:
        return task

    reassigned = task.assignee_id is not None
    task.assignee_id = assignee_id
    created = notification_service.notify_task_assigned(task, reassigned=reassigned)
    db.session.commit()
    if created is not None:
        notification_service.email_copies([created])
    return task


def update_task(task_id: int, actor, **fields) -> Task:
    task = get_task(task_id)
    require_member(actor, task.organization_id, *LEAD_ROLES)
    allowed = {"title", "description", "priority", "due_date", "status", "completion_points", "task_type"}
    fields = {k: v for k, v in fields.items() if k in allowed}
    errors = _check_fields(fields)
    if "title" in fields:
        fields["title"] = str(fields["title"] or "").strip()
        if not fields["title"]:
            errors["title"] = "required"
    if errors:
        raise ValidationFailed("invalid task fields", fields=errors)
    if "due_date" in fields:
        fields["due_date"] = _parse_due(fields["due_date"])
    if "completion_points" in fields:
        fields["completion_points"] = int(fields["completion_points"])
    for k, v in fields.items():
        setattr(task, k, v)
    db.session.commit()
    return task


def tasks_for(user, include_done: bool = False) -> list[Task]:
    q = Task.query.filter_by(assignee_id=user.id)
    if not include_done:
        q = q.filter(Task.status != "done")
    return q.order_by(Task.due_date.is_(None), Task.due_date.asc(), Task.id.asc()).all()


def project_summary(project: Project, user=None, now: Optional[datetime] = None) -> dict:
    now = now or datetime.utcnow()
    tasks = [t for t in project.tasks if user is None or t.assignee_id == user.id]
    return {
        "project": project.to_dict(),
        "total": len(tasks),
        "completed": sum(1 for t in tasks if t.status == "done"),
        "in_progress": sum(1 for t in tasks if t.status == "in_progress"),
        "overdue": sum(1 for t in tasks if t.due_date and t.status != "done" and t.due_date < now),
        "total_points": sum(t.completion_points or 0 for t in tasks),
        "earned_points": sum(t.completion_points or 0 for t in tasks if t.status == "done"),
    }
