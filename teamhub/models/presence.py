# teamhub/models/presence.py
from datetime import datetime, date
from ..extensions import db

PRESENCE_STATUSES = ("online", "idle", "do_not_disturb", "offline")


class PresenceRecord(db.Model):
    """One row per user, upserted by that user's own client (last write wins)."""
    __tablename__ = "user_presence"
    __feed__ = True

    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), primary_key=True)
    status = db.Column(db.String(20))  # online|idle|do_not_disturb|offline; NULL reads as online
    current_task_id = db.Column(db.Integer, db.ForeignKey("task.id", ondelete="SET NULL"))
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "status": self.status,
            "current_task_id": self.current_task_id,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class AttendanceCheckin(db.Model):
    __tablename__ = "attendance_checkin"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "user_id", "local_date", name="uq_checkin_per_day"),
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organization.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    local_date = db.Column(db.Date, default=date.today, nullable=False, index=True)
    clock_in_at = db.Column(db.DateTime, nullable=False)
    clock_out_at = db.Column(db.DateTime)

    @property
    def is_open(self) -> bool:
        return self.clock_in_at is not None and self.clock_out_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "user_id": self.user_id,
            "local_date": self.local_date.isoformat() if self.local_date else None,
            "clock_in_at": self.clock_in_at.isoformat() if self.clock_in_at else None,
            "clock_out_at": self.clock_out_at.isoformat() if self.clock_out_at else None,
        }
