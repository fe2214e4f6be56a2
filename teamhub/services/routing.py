# teamhub/services/routing.py
"""
Where a clicked notification takes the user.

Most types map straight to a view. Task notifications need two dependent
lookups (task -> project, project -> name) because the project page is
addressed by name. Anything unroutable falls back to the role's default
list view.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional
from urllib.parse import quote

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models.task import Project, Task

log = logging.getLogger(__name__)

DEFAULT_VIEWS = {
    "employee": "/employee/projects",
    "supervisor": "/supervisor/projects",
    "admin": "/admin/task-assignment",
    "owner": "/owner/task-assignment",
}
TEAM_VIEWS = {
    "owner": "/owner/team",
    "admin": "/admin/manage-team",
}
EXTENSION_TABS = {
    "extension_requested": "pending",
    "extension_approved": "approved",
    "extension_rejected": "rejected",
}
TASK_TYPES = ("task_assigned", "task_due_reminder")
# punctuation left unescaped in the project path segment
URI_SAFE = "!~*'()"


class LookupFailed(Exception):
    pass


def _task_lookup(task_id):
    t = db.session.get(Task, task_id)
    if t is None or not t.project_id:
        raise LookupFailed(f"task {task_id} not found")
    return {"project_id": t.project_id, "task_type": t.task_type}


def _project_lookup(project_id):
    p = db.session.get(Project, project_id)
    if p is None or not p.name:
        raise LookupFailed(f"project {project_id} not found")
    return {"name": p.name}


def fallback_destination(role: Optional[str]) -> str:
    return DEFAULT_VIEWS.get(role or "", "/dashboard")


def resolve_destination(n_type: str, payload: dict, role: Optional[str],
                        lookup_task: Callable = _task_lookup,
                        lookup_project: Callable = _project_lookup) -> str:
    payload = payload or {}
    if not role:
        return fallback_destination(role)

    if n_type in EXTENSION_TABS:
        return f"/{role}/extension-requests?tab={EXTENSION_TABS[n_type]}"

    if n_type in TASK_TYPES:
        task_id = payload.get("task_id")
        if not task_id:
            return fallback_destination(role)
        try:
            task = lookup_task(task_id)
            project = lookup_project(task["project_id"])
        except (LookupFailed, SQLAlchemyError, KeyError, TypeError) as e:
            log.warning("notification route lookup failed task=%s: %s", task_id, e)
            return fallback_destination(role)
        tab = "assignments" if task.get("task_type") == "assignment" else "tasks"
        return f"/{role}/projects/{quote(project['name'], safe=URI_SAFE)}?tab={tab}"

    if n_type == "points_earned":
        return f"/{role}/shop"

    if n_type == "member_joined" and role in TEAM_VIEWS:
        return TEAM_VIEWS[role]

    return fallback_destination(role)
