from flask import jsonify
from flask_login import login_required, current_user
from ...models.organization import LEAD_ROLES, MANAGER_ROLES
from ...security import roles_required
from ...services import organization_service
from ..utils import active_organization, body
from . import admin_bp


# ---- Members ----

@admin_bp.get('/members')
@login_required
@roles_required(*MANAGER_ROLES)
def members_list():
    org = active_organization()
    return jsonify([
        {
            'user_id': m.user_id,
            'full_name': m.user.full_name if m.user else None,
            'email': m.user.email if m.user else None,
            'role': m.role,
            'joined_at': m.joined_at.isoformat() if m.joined_at else None,
        }
        for m in sorted(org.members, key=lambda m: m.joined_at or m.id)
    ])


@admin_bp.post('/members')
@login_required
@roles_required(*MANAGER_ROLES)
def members_add():
    data = body()
    member = organization_service.add_member(
        active_organization(), data.get('email'), data.get('role') or 'employee', current_user
    )
    return jsonify({'user_id': member.user_id, 'role': member.role}), 201


@admin_bp.patch('/members/<int:user_id>')
@login_required
@roles_required(*MANAGER_ROLES)
def members_change_role(user_id):
    member = organization_service.change_role(active_organization(), user_id, body().get('role'), current_user)
    return jsonify({'user_id': member.user_id, 'role': member.role})


@admin_bp.delete('/members/<int:user_id>')
@login_required
@roles_required(*MANAGER_ROLES)
def members_remove(user_id):
    organization_service.remove_member(active_organization(), user_id, current_user)
    return jsonify({'removed': user_id})


# ---- Invitation codes ----

@admin_bp.get('/invites')
@login_required
@roles_required(*LEAD_ROLES)
def invites_list():
    invites = organization_service.list_invites(active_organization(), current_user)
    return jsonify([i.to_dict() for i in invites])


@admin_bp.post('/invites')
@login_required
@roles_required(*LEAD_ROLES)
def invites_create():
    data = body()
    invite = organization_service.create_invite(
        active_organization(), current_user, role=data.get('role') or 'employee', email=data.get('email')
    )
    return jsonify(invite.to_dict()), 201


@admin_bp.delete('/invites/<int:invite_id>')
@login_required
@roles_required(*LEAD_ROLES)
def invites_revoke(invite_id):
    organization_service.revoke_invite(active_organization(), invite_id, current_user)
    return jsonify({'revoked': invite_id})


# ---- Projects / work hours ----

@admin_bp.post('/projects')
@login_required
@roles_required(*MANAGER_ROLES)
def projects_create():
    data = body()
    p = organization_service.create_project(
        active_organization(), data.get('name'), current_user, description=data.get('description')
    )
    return jsonify(p.to_dict()), 201


@admin_bp.patch('/organization')
@login_required
@roles_required(*MANAGER_ROLES)
def organization_update():
    allowed = ('work_start_time', 'work_end_time', 'early_threshold_minutes', 'late_threshold_minutes')
    fields = {k: v for k, v in body().items() if k in allowed}
    org = organization_service.update_work_hours(active_organization(), current_user, **fields)
    return jsonify(org.to_dict())
