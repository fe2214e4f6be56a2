from datetime import datetime
from ..extensions import db

TIME_LOG_ACTIONS = ("start", "pause", "complete")


class TimeLogEntry(db.Model):
    """Append-only; one row per lifecycle transition."""
    __tablename__ = "time_log"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(db.Integer, db.ForeignKey("task.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    action = db.Column(db.String(20), nullable=False)  # start|pause|complete
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "task_id": self.task_id,
            "user_id": self.user_id,
            "action": self.action,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
