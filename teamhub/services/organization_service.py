# teamhub/services/organization_service.py
"""Membership, invitation codes, projects and work-hour settings of an organization."""
from __future__ import annotations

import logging
import secrets
from datetime import datetime, time, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import AuthorizationDenied, Conflict, RecordNotFound, ValidationFailed
from ..extensions import db
from ..models.organization import (
    LEAD_ROLES,
    MANAGER_ROLES,
    ROLES,
    Organization,
    OrganizationInvite,
    OrganizationMember,
)
from ..models.task import Project
from ..models.user import User
from ..security import require_member
from . import attendance_service, notification_service

log = logging.getLogger(__name__)

# an inviter may hand out their own role or anything below it
ROLE_LEVELS = {"owner": 4, "admin": 3, "supervisor": 2, "employee": 1}


def _check_role(role: str) -> str:
    if role not in ROLES:
        raise ValidationFailed(f"unknown role {role!r}", fields={"role": "invalid"})
    return role


def _assignable(actor, organization_id: int, role: str) -> None:
    # only owners hand out owner/admin
    m = require_member(actor, organization_id, *MANAGER_ROLES)
    if role in MANAGER_ROLES and m.role != "owner":
        raise ValidationFailed("only an owner can grant owner or admin", fields={"role": "not allowed"})


def add_member(organization: Organization, email: str, role: str, actor) -> OrganizationMember:
    _check_role(role)
    _assignable(actor, organization.id, role)
    user = User.query.filter_by(email=(email or "").strip().lower()).first()
    if user is None:
        raise RecordNotFound(f"no account registered for {email}")
    if user.membership_in(organization.id) is not None:
        raise Conflict("already a member of this organization")

    member = OrganizationMember(organization_id=organization.id, user_id=user.id, role=role)
    db.session.add(member)
    if user.active_organization_id is None:
        user.active_organization_id = organization.id
    try:
        db.session.flush()
    except IntegrityError as e:
        db.session.rollback()
        raise Conflict("already a member of this organization") from e

    created = notification_service.notify_member_joined(member)
    db.session.commit()
    notification_service.email_copies(created)
    log.info("member added org=%s user=%s role=%s by=%s", organization.id, user.id, role, actor.id)
    return member


def _member(organization: Organization, user_id: int) -> OrganizationMember:
    m = OrganizationMember.query.filter_by(organization_id=organization.id, user_id=user_id).first()
    if m is None:
        raise RecordNotFound(f"user {user_id} is not a member")
    return m


def _keeps_an_owner(organization: Organization, member: OrganizationMember) -> bool:
    owners = [m for m in organization.members_with_role("owner") if m.id != member.id]
    return bool(owners)


def change_role(organization: Organization, user_id: int, role: str, actor) -> OrganizationMember:
    _check_role(role)
    _assignable(actor, organization.id, role)
    member = _member(organization, user_id)
    if member.role == "owner" and role != "owner" and not _keeps_an_owner(organization, member):
        raise Conflict("an organization needs at least one owner")
    member.role = role
    db.session.commit()
    return member


def remove_member(organization: Organization, user_id: int, actor) -> None:
    require_member(actor, organization.id, *MANAGER_ROLES)
    member = _member(organization, user_id)
    if member.role == "owner" and not _keeps_an_owner(organization, member):
        raise Conflict("an organization needs at least one owner")
    user = member.user
    db.session.delete(member)
    if user is not None and user.active_organization_id == organization.id:
        user.active_organization_id = None
    db.session.commit()
    log.info("member removed org=%s user=%s by=%s", organization.id, user_id, actor.id)


def create_project(organization: Organization, name: str, actor, description: Optional[str] = None) -> Project:
    require_member(actor, organization.id, *MANAGER_ROLES)
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("a project needs a name", fields={"name": "required"})
    if Project.query.filter_by(organization_id=organization.id, name=name).first() is not None:
        raise Conflict(f"a project named {name!r} already exists")
    p = Project(organization_id=organization.id, name=name, description=description, created_by=actor.id)
    db.session.add(p)
    db.session.commit()
    return p


def _parse_time(value, field: str) -> time:
    if isinstance(value, time):
        return value
    try:
        return time.fromisoformat(str(value))
    except ValueError as e:
        raise ValidationFailed(f"{field} must be HH:MM", fields={field: "invalid"}) from e


def update_work_hours(organization: Organization, actor, **fields) -> Organization:
    require_member(actor, organization.id, *MANAGER_ROLES)
    if "work_start_time" in fields:
        organization.work_start_time = _parse_time(fields["work_start_time"], "work_start_time")
    if "work_end_time" in fields:
        organization.work_end_time = _parse_time(fields["work_end_time"], "work_end_time")
    for key in ("early_threshold_minutes", "late_threshold_minutes"):
        if key in fields:
            try:
                val = int(fields[key])
            except (TypeError, ValueError):
                val = -1
            if val < 0:
                raise ValidationFailed(f"{key} must be zero or more", fields={key: "invalid"})
            setattr(organization, key, val)
    if organization.work_end_time <= organization.work_start_time:
        db.session.rollback()
        raise ValidationFailed("work must end after it starts", fields={"work_end_time": "before start"})
    db.session.commit()
    return organization


# -----------------
# Invitation codes
# -----------------

def can_invite(inviter_role: Optional[str], role: str) -> bool:
    return ROLE_LEVELS.get(inviter_role or "", 0) >= ROLE_LEVELS.get(role, 99)


def _new_code() -> str:
    while True:
        code = secrets.token_hex(4).upper()
        if OrganizationInvite.query.filter_by(code=code).first() is None:
            return code


def create_invite(organization: Organization, actor, role: str = "employee", email: Optional[str] = None,
                  now: Optional[datetime] = None) -> OrganizationInvite:
    _check_role(role)
    m = require_member(actor, organization.id, *LEAD_ROLES)
    if not can_invite(m.role, role):
        raise AuthorizationDenied(f"a {m.role} cannot invite a {role}")

    now = now or datetime.utcnow()
    invite = OrganizationInvite(
        organization_id=organization.id,
        code=_new_code(),
        role=role,
        email=(email or "").strip().lower() or None,
        created_by=actor.id,
        created_at=now,
        expires_at=now + timedelta(days=current_app.config.get("INVITE_TTL_DAYS", 7)),
    )
    db.session.add(invite)
    db.session.commit()
    log.info("invite created org=%s role=%s by=%s", organization.id, role, actor.id)
    return invite


def list_invites(organization: Organization, actor) -> list[OrganizationInvite]:
    require_member(actor, organization.id, *LEAD_ROLES)
    return (OrganizationInvite.query
            .filter_by(organization_id=organization.id)
            .order_by(OrganizationInvite.created_at.desc(), OrganizationInvite.id.desc())
            .all())


def revoke_invite(organization: Organization, invite_id: int, actor) -> None:
    m = require_member(actor, organization.id, *LEAD_ROLES)
    invite = db.session.get(OrganizationInvite, invite_id)
    if invite is None or invite.organization_id != organization.id:
        raise RecordNotFound(f"invite {invite_id} not found")
    if not can_invite(m.role, invite.role):
        raise AuthorizationDenied(f"a {m.role} cannot revoke a {invite.role} invite")
    db.session.delete(invite)
    db.session.commit()


def join_with_code(user, code: str, now: Optional[datetime] = None) -> OrganizationMember:
    """
    Claim an invitation code: the user joins with the invite's role, the
    organization becomes their active one, managers get ``member_joined``
    and the user is clocked in for the day.
    """
    code = (code or "").strip().upper()
    if not code:
        raise ValidationFailed("an invitation code is required", fields={"code": "required"})
    now = now or datetime.utcnow()

    invite = (OrganizationInvite.query.filter_by(code=code)
              .with_for_update().populate_existing().first())
    if invite is None:
        raise RecordNotFound("invitation code not found")
    status = invite.status(now)
    if status != "active":
        raise Conflict(f"this invitation code is {status}")
    if invite.email and invite.email != (user.email or "").lower():
        raise AuthorizationDenied("this invitation was issued to another email address")
    organization = invite.organization
    if user.membership_in(organization.id) is not None:
        raise Conflict("already a member of this organization")

    member = OrganizationMember(organization_id=organization.id, user_id=user.id, role=invite.role, joined_at=now)
    db.session.add(member)
    invite.used_at = now
    invite.used_by = user.id
    user.active_organization_id = organization.id
    try:
        db.session.flush()
    except IntegrityError as e:
        db.session.rollback()
        raise Conflict("already a member of this organization") from e

    created = notification_service.notify_member_joined(member)
    db.session.commit()
    notification_service.email_copies(created)
    log.info("member joined by code org=%s user=%s role=%s", organization.id, user.id, member.role)

    try:
        attendance_service.clock_in(user, organization, now=now)
    except Conflict:
        log.info("join: user %s already clocked in to org %s today", user.id, organization.id)
    return member
