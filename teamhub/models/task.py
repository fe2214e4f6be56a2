# teamhub/models/task.py
from datetime import datetime
from ..extensions import db

TASK_STATUSES = ("todo", "in_progress", "blocked", "done", "submitted", "overdue")
TASK_PRIORITIES = ("low", "medium", "high", "urgent")
TASK_TYPES = ("task", "assignment")


class Project(db.Model):
    __tablename__ = "project"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organization.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False, index=True)
    description = db.Column(db.Text)
    created_by = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    organization = db.relationship("Organization", back_populates="projects")
    tasks = db.relationship(
        "Task",
        back_populates="project",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "name": self.name,
            "description": self.description,
        }


class Task(db.Model):
    __tablename__ = "task"
    __feed__ = True

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(db.Integer, db.ForeignKey("project.id", ondelete="CASCADE"), nullable=False, index=True)

    title = db.Column(db.String(200), nullable=False, index=True)
    description = db.Column(db.Text)
    task_type = db.Column(db.String(20), default="task", nullable=False)       # task|assignment
    status = db.Column(db.String(20), default="todo", nullable=False, index=True)
    priority = db.Column(db.String(20), default="medium", nullable=False, index=True)
    due_date = db.Column(db.DateTime, index=True)
    completion_points = db.Column(db.Integer, default=0, nullable=False)

    assignee_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"), index=True)
    created_by = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"))

    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    project = db.relationship("Project", back_populates="tasks")
    assignee = db.relationship("User", foreign_keys=[assignee_id],
                               backref=db.backref("assigned_tasks", lazy="selectin"))
    creator = db.relationship("User", foreign_keys=[created_by])

    __table_args__ = (
        db.CheckConstraint("completion_points >= 0", name="ck_task_points_nonneg"),
    )

    @property
    def organization_id(self):
        return self.project.organization_id if self.project else None

    @property
    def is_open(self) -> bool:
        return self.status not in ("done", "submitted")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "description": self.description,
            "task_type": self.task_type,
            "status": self.status,
            "priority": self.priority,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "completion_points": self.completion_points,
            "assignee_id": self.assignee_id,
            "created_by": self.created_by,
        }

    def __repr__(self):
        return f"<Task id={self.id} status={self.status}>"
