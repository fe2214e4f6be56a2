# teamhub/models/points.py
from datetime import datetime
from ..extensions import db

CREDIT_REASONS = ("task_completion", "assignment_completion")
REASON_CODES = CREDIT_REASONS + ("reward_redemption", "adjustment")


class PointsLedgerEntry(db.Model):
    """Append-only. A user's balance is the sum of their deltas."""
    __tablename__ = "points_ledger"
    __table_args__ = (
        # completion credits are awarded at most once per user and task;
        # NULL task_id rows (redemptions, adjustments) never collide
        db.UniqueConstraint("user_id", "task_id", "reason_code", name="uq_points_once_per_task"),
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    delta = db.Column(db.Integer, nullable=False)
    reason_code = db.Column(db.String(40), nullable=False, index=True)  # task_completion|assignment_completion|reward_redemption|adjustment
    task_id = db.Column(db.Integer, db.ForeignKey("task.id", ondelete="SET NULL"), index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "delta": self.delta,
            "reason_code": self.reason_code,
            "task_id": self.task_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class PointsBalance(db.Model):
    # Materialized read cache; the ledger stays authoritative
    __tablename__ = "points_balance"

    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), primary_key=True)
    balance = db.Column(db.Integer, default=0, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    reconciled_at = db.Column(db.DateTime)


class Reward(db.Model):
    __tablename__ = "reward"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organization.id", ondelete="CASCADE"), nullable=False, index=True)
    title = db.Column(db.String(160), nullable=False)
    description = db.Column(db.Text)
    points_cost = db.Column(db.Integer, nullable=False)
    stock = db.Column(db.Integer)  # None = unlimited
    active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    __table_args__ = (
        db.CheckConstraint("points_cost > 0", name="ck_reward_cost_positive"),
    )

    @property
    def in_stock(self) -> bool:
        return self.stock is None or self.stock > 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "title": self.title,
            "description": self.description,
            "points_cost": self.points_cost,
            "stock": self.stock,
            "active": self.active,
        }


class Redemption(db.Model):
    __tablename__ = "redemption"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    reward_id = db.Column(db.Integer, db.ForeignKey("reward.id", ondelete="CASCADE"), nullable=False, index=True)
    points_spent = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), default="pending", nullable=False, index=True)  # pending|fulfilled|cancelled
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    reward = db.relationship("Reward")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "reward_id": self.reward_id,
            "points_spent": self.points_spent,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
