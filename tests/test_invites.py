# tests/test_invites.py

from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from teamhub.errors import AuthorizationDenied, Conflict, RecordNotFound
from teamhub.models import (
    AttendanceCheckin,
    Notification,
    Organization,
    OrganizationInvite,
    OrganizationMember,
    User,
)
from teamhub.services import organization_service

NOW = datetime(2026, 3, 2, 10, 0, 0)


@pytest.mark.parametrize("inviter, role, allowed", [
    ("owner", "owner", True),
    ("admin", "admin", True),
    ("admin", "owner", False),
    ("supervisor", "supervisor", True),
    ("supervisor", "employee", True),
    ("supervisor", "admin", False),
    ("employee", "employee", False),
    (None, "employee", False),
])
def test_role_hierarchy(inviter, role, allowed):
    assert organization_service.can_invite(inviter, role) is allowed


def test_supervisor_invites_within_their_level(ctx, ids, get):
    acme, sam = get(Organization, ids.acme), get(User, ids.supervisor)
    invite = organization_service.create_invite(acme, sam, role="supervisor", now=NOW)
    assert invite.status(NOW) == "active"
    assert invite.expires_at == NOW + timedelta(days=7)
    assert len(invite.code) == 8

    with pytest.raises(AuthorizationDenied):
        organization_service.create_invite(acme, sam, role="admin", now=NOW)
    with pytest.raises(AuthorizationDenied):
        organization_service.create_invite(acme, get(User, ids.employee), now=NOW)
    assert [i.id for i in organization_service.list_invites(acme, sam)] == [invite.id]


def test_join_with_code_adds_member_notifies_managers_and_clocks_in(ctx, ids, get):
    acme = get(Organization, ids.acme)
    invite = organization_service.create_invite(acme, get(User, ids.admin), role="supervisor", now=NOW)
    zed = get(User, ids.outsider)

    member = organization_service.join_with_code(zed, f"  {invite.code.lower()} ", now=NOW + timedelta(hours=1))

    assert (member.organization_id, member.role) == (ids.acme, "supervisor")
    assert zed.active_organization_id == ids.acme
    assert get(OrganizationInvite, invite.id).status() == "used"
    joined = Notification.query.filter_by(type="member_joined").all()
    assert sorted(n.user_id for n in joined) == sorted([ids.owner, ids.admin])
    checkin = AttendanceCheckin.query.filter_by(organization_id=ids.acme, user_id=ids.outsider).one()
    assert checkin.is_open

    with pytest.raises(Conflict):
        organization_service.join_with_code(get(User, ids.outsider), invite.code, now=NOW + timedelta(hours=2))


def test_expired_unknown_and_addressed_codes(ctx, ids, get):
    acme, olivia = get(Organization, ids.acme), get(User, ids.owner)
    expired = organization_service.create_invite(acme, olivia, now=NOW - timedelta(days=8))
    addressed = organization_service.create_invite(acme, olivia, email="Rita@Startup.com", now=NOW)
    expired_code, addressed_code = expired.code, addressed.code
    zed = get(User, ids.outsider)

    with pytest.raises(Conflict):
        organization_service.join_with_code(zed, expired_code, now=NOW)
    with pytest.raises(RecordNotFound):
        organization_service.join_with_code(get(User, ids.outsider), "NOPE0000", now=NOW)
    with pytest.raises(AuthorizationDenied):
        organization_service.join_with_code(get(User, ids.outsider), addressed_code, now=NOW)
    assert OrganizationMember.query.filter_by(user_id=ids.outsider, organization_id=ids.acme).count() == 0


def test_revoke_respects_the_hierarchy(ctx, ids, get):
    acme = get(Organization, ids.acme)
    admin_invite = organization_service.create_invite(acme, get(User, ids.owner), role="admin", now=NOW)
    invite_id = admin_invite.id

    with pytest.raises(RecordNotFound):
        organization_service.revoke_invite(get(Organization, ids.other), invite_id, get(User, ids.outsider))
    with pytest.raises(AuthorizationDenied):
        organization_service.revoke_invite(get(Organization, ids.acme), invite_id, get(User, ids.supervisor))
    organization_service.revoke_invite(get(Organization, ids.acme), invite_id, get(User, ids.admin))
    assert get(OrganizationInvite, invite_id) is None


def test_invite_and_join_over_http(app, client, login, ids):
    login("sam@acme.com")
    resp = client.post("/admin/invites", json={"role": "employee"})
    assert resp.status_code == 201, resp.get_json()
    code = resp.get_json()["code"]
    assert client.post("/admin/invites", json={"role": "admin"}).status_code == 403
    assert [i["code"] for i in client.get("/admin/invites").get_json()] == [code]
    client.post("/auth/logout")

    login("zed@other.com")
    resp = client.post("/auth/join", json={"code": code})
    assert resp.status_code == 201, resp.get_json()
    assert resp.get_json()["role"] == "employee"
    assert client.post("/auth/join", json={"code": ""}).status_code == 422

    with app.app_context():
        assert OrganizationMember.query.filter_by(user_id=ids.outsider, organization_id=ids.acme).one().role == "employee"
