# teamhub/models/user.py
from datetime import datetime
from werkzeug.security import generate_password_hash, check_password_hash
from flask_login import UserMixin
from ..extensions import db


class User(UserMixin, db.Model):
    __tablename__ = "user"

    id = db.Column(db.Integer, primary_key=True)
    full_name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    avatar_url = db.Column(db.String(512))
    language = db.Column(db.String(10))

    password_hash = db.Column(db.String(255))

    # Organization picked in the org selector; scopes every role check
    active_organization_id = db.Column(db.Integer, db.ForeignKey("organization.id", ondelete="SET NULL"), index=True)

    last_login_at = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    memberships = db.relationship(
        "OrganizationMember",
        back_populates="user",
        lazy="selectin",
        cascade="all, delete-orphan",
    )
    active_organization = db.relationship("Organization", foreign_keys=[active_organization_id])

    # --- Auth helpers ---
    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return bool(self.password_hash) and check_password_hash(self.password_hash, password)

    def mark_login(self):
        self.last_login_at = datetime.utcnow()

    # --- Membership helpers ---
    def membership_in(self, organization_id):
        for m in self.memberships:
            if m.organization_id == organization_id:
                return m
        return None

    @property
    def membership(self):
        if self.active_organization_id is None:
            return None
        return self.membership_in(self.active_organization_id)

    @property
    def role(self):
        m = self.membership
        return m.role if m else None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "full_name": self.full_name,
            "email": self.email,
            "avatar_url": self.avatar_url,
            "active_organization_id": self.active_organization_id,
            "role": self.role,
        }

    def __repr__(self):
        return f"<User id={self.id} email={self.email}>"
