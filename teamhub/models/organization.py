# teamhub/models/organization.py
from datetime import datetime, time
from ..extensions import db

ROLES = ("owner", "admin", "supervisor", "employee")
MANAGER_ROLES = ("owner", "admin")
LEAD_ROLES = ("owner", "admin", "supervisor")


class Organization(db.Model):
    __tablename__ = "organization"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(160), nullable=False)

    # Work hours used for attendance classification (local time)
    work_start_time = db.Column(db.Time, default=time(9, 0), nullable=False)
    work_end_time = db.Column(db.Time, default=time(17, 0), nullable=False)
    early_threshold_minutes = db.Column(db.Integer, default=15, nullable=False)
    late_threshold_minutes = db.Column(db.Integer, default=15, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    members = db.relationship(
        "OrganizationMember",
        back_populates="organization",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    projects = db.relationship(
        "Project",
        back_populates="organization",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def members_with_role(self, *roles):
        return [m for m in self.members if m.role in roles]

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "work_start_time": self.work_start_time.strftime("%H:%M:%S") if self.work_start_time else None,
            "work_end_time": self.work_end_time.strftime("%H:%M:%S") if self.work_end_time else None,
            "early_threshold_minutes": self.early_threshold_minutes,
            "late_threshold_minutes": self.late_threshold_minutes,
        }


class OrganizationMember(db.Model):
    __tablename__ = "organization_member"
    __table_args__ = (
        db.UniqueConstraint("organization_id", "user_id", name="uq_org_member"),
    )

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organization.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="CASCADE"), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default="employee", index=True)  # owner|admin|supervisor|employee
    joined_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    organization = db.relationship("Organization", back_populates="members")
    user = db.relationship("User", back_populates="memberships")

    def __repr__(self):
        return f"<OrganizationMember org={self.organization_id} user={self.user_id} role={self.role}>"


class OrganizationInvite(db.Model):
    """A join code for an organization; claimed once, expires after INVITE_TTL_DAYS."""
    __tablename__ = "organization_invite"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organization.id", ondelete="CASCADE"), nullable=False, index=True)
    code = db.Column(db.String(16), unique=True, nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default="employee")
    email = db.Column(db.String(255))  # None = anyone holding the code
    created_by = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"))
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    expires_at = db.Column(db.DateTime, nullable=False)
    used_at = db.Column(db.DateTime)
    used_by = db.Column(db.Integer, db.ForeignKey("user.id", ondelete="SET NULL"))

    organization = db.relationship("Organization")

    def status(self, now=None) -> str:
        if self.used_at is not None:
            return "used"
        if self.expires_at <= (now or datetime.utcnow()):
            return "expired"
        return "active"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "organization_id": self.organization_id,
            "code": self.code,
            "role": self.role,
            "email": self.email,
            "status": self.status(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "used_at": self.used_at.isoformat() if self.used_at else None,
        }
