from datetime import datetime
from ..extensions import db

EXTENSION_STATUSES = ("pending", "approved", "rejected")


class ExtensionRequest(db.Model):
    __tablename__ = "extension_request"
    __feed__ = True

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(db.Integer, db.ForeignKey("task.id", ondelete="CASCADE"), nullable=False, index=True)
    requester_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    requested_due_at = db.Column(db.DateTime, nullable=False)
    reason = db.Column(db.Text, nullable=False)

    status = db.Column(db.String(20), default="pending", nullable=False, index=True)  # pending|approved|rejected
    decided_by = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"))
    decided_at = db.Column(db.DateTime)
    decision_note = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    task = db.relationship("Task", backref=db.backref("extension_requests", lazy="selectin", cascade="all, delete-orphan"))
    requester = db.relationship("User", foreign_keys=[requester_id])
    decider = db.relationship("User", foreign_keys=[decided_by])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "requester_id": self.requester_id,
            "requested_due_at": self.requested_due_at.isoformat() if self.requested_due_at else None,
            "reason": self.reason,
            "status": self.status,
            "decided_by": self.decided_by,
            "decided_at": self.decided_at.isoformat() if self.decided_at else None,
            "decision_note": self.decision_note,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ExtensionRequest id={self.id} task_id={self.task_id} status={self.status}>"
