# teamhub/blueprints/auth/routes.py
import logging
from datetime import datetime
from typing import Optional

from flask import current_app, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from flask_wtf.csrf import generate_csrf
from itsdangerous import URLSafeTimedSerializer, BadSignature, SignatureExpired

from ...errors import AuthorizationDenied, ValidationFailed
from ...extensions import db
from ...models.organization import Organization, OrganizationMember
from ...models.user import User
from ...services import organization_service
from ...services.email_service import send_email
from ..utils import check_form
from . import auth_bp
from .forms import (
    RegisterForm,
    LoginForm,
    ChangePasswordForm,
    ForgotPasswordForm,
    ResetPasswordForm,
    SwitchOrganizationForm,
    JoinOrganizationForm,
)

log = logging.getLogger(__name__)


# -----------------
# Utilities
# -----------------

def _ts() -> URLSafeTimedSerializer:
    secret_key = current_app.config.get("SECRET_KEY")
    salt = current_app.config.get("SECURITY_PASSWORD_SALT", "pwd-reset")
    return URLSafeTimedSerializer(secret_key=secret_key, salt=salt)


def issue_reset_token(user: User) -> str:
    # the hash fragment makes a token single-use: it dies once the password changes
    return _ts().dumps({"uid": user.id, "ph": (user.password_hash or "")[-12:], "ts": datetime.utcnow().isoformat()})


def verify_reset_token(token: str, max_age: int = 60 * 60 * 24) -> Optional[User]:
    try:
        data = _ts().loads(token, max_age=max_age)
        user = db.session.get(User, int(data.get("uid")))
    except (BadSignature, SignatureExpired, ValueError, TypeError):
        return None
    if user is None or (user.password_hash or "")[-12:] != data.get("ph"):
        return None
    return user


def _me(user: User) -> dict:
    data = user.to_dict()
    data["organizations"] = [
        {"id": m.organization_id, "name": m.organization.name, "role": m.role}
        for m in user.memberships
    ]
    return data


@auth_bp.get("/csrf")
def csrf_token():
    """Token the browser echoes back in X-CSRFToken on writes."""
    return jsonify({"csrf_token": generate_csrf()})


# -----------------
# Register
# -----------------

@auth_bp.post("/register")
def register():
    form = check_form(RegisterForm())

    user = User(
        full_name=form.full_name.data.strip(),
        email=form.email.data.strip().lower(),
        language=(form.language.data or "").strip() or None,
    )
    user.set_password(form.password.data)
    db.session.add(user)
    db.session.flush()  # get user.id

    org_name = (form.organization_name.data or "").strip()
    if org_name:
        org = Organization(name=org_name)
        db.session.add(org)
        db.session.flush()
        db.session.add(OrganizationMember(organization_id=org.id, user_id=user.id, role="owner"))
        user.active_organization_id = org.id

    db.session.commit()
    log.info("user registered id=%s org=%s", user.id, user.active_organization_id)
    login_user(user)
    return jsonify(_me(user)), 201


# -----------------
# Login / Logout
# -----------------

@auth_bp.post("/login")
def login():
    form = check_form(LoginForm())
    user = User.query.filter_by(email=form.email.data.strip().lower()).first()
    if not user or not user.check_password(form.password.data):
        log.info("failed login for %s", form.email.data)
        raise ValidationFailed("Invalid email or password.", fields={"email": "invalid credentials"})

    # default to the first organization when none was picked yet
    if user.active_organization_id is None and user.memberships:
        user.active_organization_id = user.memberships[0].organization_id
    user.mark_login()
    db.session.commit()
    login_user(user, remember=bool(form.remember.data))
    return jsonify(_me(user))


@auth_bp.post("/logout")
@login_required
def logout():
    logout_user()
    return jsonify({"ok": True})


@auth_bp.get("/me")
@login_required
def me():
    return jsonify(_me(current_user))


@auth_bp.post("/switch-organization")
@login_required
def switch_organization():
    form = check_form(SwitchOrganizationForm())
    if current_user.membership_in(form.organization_id.data) is None:
        raise AuthorizationDenied("not a member of this organization")
    current_user.active_organization_id = form.organization_id.data
    db.session.commit()
    return jsonify(_me(current_user))


@auth_bp.post("/join")
@login_required
def join_organization():
    """Claim an invitation code; the caller is clocked in to the new organization."""
    form = check_form(JoinOrganizationForm())
    organization_service.join_with_code(current_user, form.code.data)
    return jsonify(_me(current_user)), 201


@auth_bp.post("/change-password")
@login_required
def change_password():
    form = check_form(ChangePasswordForm())
    if not current_user.check_password(form.current_password.data):
        raise ValidationFailed("Current password is incorrect.", fields={"current_password": "incorrect"})
    current_user.set_password(form.password.data)
    db.session.commit()
    return jsonify({"ok": True})


# -----------------
# Password reset
# -----------------

@auth_bp.post("/forgot-password")
def forgot_password():
    form = check_form(ForgotPasswordForm())
    user = User.query.filter_by(email=form.email.data.strip().lower()).first()
    if user is not None:
        base = (current_app.config.get("EXTERNAL_BASE_URL") or "").rstrip("/")
        send_email(
            to=user.email,
            subject="Reset your TeamHub password",
            template="password_reset.html",
            user=user,
            link=f"{base}/reset-password?token={issue_reset_token(user)}",
        )
    # same answer either way so the endpoint does not reveal who is registered
    return jsonify({"ok": True})


@auth_bp.post("/reset-password")
def reset_password():
    form = check_form(ResetPasswordForm())
    user = verify_reset_token(form.token.data)
    if user is None:
        raise ValidationFailed("This reset link is invalid or has expired.", fields={"token": "invalid"})
    user.set_password(form.password.data)
    db.session.commit()
    log.info("password reset user=%s", user.id)
    return jsonify({"ok": True})
