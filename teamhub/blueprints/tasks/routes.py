# teamhub/blueprints/tasks/routes.py
from flask import jsonify, request
from flask_login import login_required, current_user

from ...errors import RecordNotFound
from ...extensions import db
from ...models.task import Project
from ...security import require_member
from ...services import extension_service, task_service
from ..utils import active_organization, body, check_form
from . import tasks_bp
from .forms import TaskForm, ExtensionRequestForm


@tasks_bp.get("/mine")
@login_required
def my_tasks():
    include_done = request.args.get("include_done") in ("1", "true", "yes")
    return jsonify([t.to_dict() for t in task_service.tasks_for(current_user, include_done=include_done)])


@tasks_bp.get("/projects")
@login_required
def projects():
    org = active_organization()
    require_member(current_user, org.id)
    mine = current_user.role == "employee"
    return jsonify([
        task_service.project_summary(p, user=current_user if mine else None)
        for p in sorted(org.projects, key=lambda p: p.name.lower())
    ])


@tasks_bp.get("/projects/<int:project_id>")
@login_required
def project_detail(project_id):
    project = db.session.get(Project, project_id)
    if project is None:
        raise RecordNotFound(f"project {project_id} not found")
    require_member(current_user, project.organization_id)

    tab = request.args.get("tab", "tasks")
    task_type = "assignment" if tab == "assignments" else "task"
    tasks = [t.to_dict() for t in project.tasks if t.task_type == task_type]
    return jsonify({"project": project.to_dict(), "tab": tab, "tasks": tasks})


@tasks_bp.post("/projects/<int:project_id>/tasks")
@login_required
def create(project_id):
    form = check_form(TaskForm())
    t = task_service.create_task(
        project_id,
        current_user,
        title=form.title.data,
        description=form.description.data,
        task_type=form.task_type.data,
        priority=form.priority.data,
        due_date=form.due_date.data,
        completion_points=form.completion_points.data or 0,
        assignee_id=form.assignee_id.data,
    )
    return jsonify(t.to_dict()), 201


@tasks_bp.get("/<int:task_id>")
@login_required
def detail(task_id):
    t = task_service.get_task(task_id)
    require_member(current_user, t.organization_id)
    return jsonify(t.to_dict())


@tasks_bp.patch("/<int:task_id>")
@login_required
def update(task_id):
    t = task_service.update_task(task_id, current_user, **body())
    return jsonify(t.to_dict())


@tasks_bp.post("/<int:task_id>/assign")
@login_required
def assign(task_id):
    assignee_id = body().get("assignee_id")
    t = task_service.assign_task(task_id, int(assignee_id) if assignee_id is not None else None, current_user)
    return jsonify(t.to_dict())


@tasks_bp.post("/<int:task_id>/<any(start, pause, complete):action>")
@login_required
def transition(task_id, action):
    result = task_service.transition(task_id, action, current_user)
    return jsonify(result.to_dict())


@tasks_bp.post("/<int:task_id>/extension-requests")
@login_required
def request_extension(task_id):
    # field-level validation happens before any lookup or write
    form = check_form(ExtensionRequestForm())
    req = extension_service.request_extension(task_id, current_user, form.requested_due_at.data, form.reason.data)
    return jsonify(req.to_dict()), 201
