# teamhub/models/notification.py
from datetime import datetime
from ..extensions import db

NOTIFICATION_TYPES = (
    "extension_requested",
    "extension_approved",
    "extension_rejected",
    "task_assigned",
    "task_due_reminder",
    "points_earned",
    "member_joined",
)


class Notification(db.Model):
    __tablename__ = "notification"
    __feed__ = True

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    type = db.Column(db.String(40), nullable=False, index=True)
    payload = db.Column(db.JSON, nullable=False, default=dict)  # always carries "message"
    read_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    @property
    def is_read(self) -> bool:
        return self.read_at is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "payload": dict(self.payload or {}),
            "read_at": self.read_at.isoformat() if self.read_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Notification id={self.id} user={self.user_id} type={self.type}>"
