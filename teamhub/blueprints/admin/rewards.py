from flask import jsonify
from flask_login import login_required, current_user
from ...errors import RecordNotFound, ValidationFailed
from ...extensions import db
from ...models.organization import MANAGER_ROLES
from ...models.points import Reward
from ...security import require_member, roles_required
from ...services import points_service
from ..utils import active_organization, body
from . import admin_bp


def _reward_fields(data: dict, partial: bool = False) -> dict:
    out, errors = {}, {}
    if 'title' in data or not partial:
        title = (data.get('title') or '').strip()
        if not title:
            errors['title'] = 'required'
        out['title'] = title
    if 'description' in data:
        out['description'] = data.get('description')
    if 'points_cost' in data or not partial:
        try:
            cost = int(data.get('points_cost'))
        except (TypeError, ValueError):
            cost = 0
        if cost <= 0:
            errors['points_cost'] = 'must be a positive number'
        out['points_cost'] = cost
    if 'stock' in data:
        stock = data.get('stock')
        if stock is not None:
            try:
                stock = int(stock)
            except (TypeError, ValueError):
                stock = -1
            if stock < 0:
                errors['stock'] = 'must be zero or more (or null for unlimited)'
        out['stock'] = stock
    if 'active' in data:
        out['active'] = bool(data.get('active'))
    if errors:
        raise ValidationFailed('please check the reward fields', fields=errors)
    return out


def _org_reward(reward_id: int) -> Reward:
    r = db.session.get(Reward, reward_id)
    if r is None or r.organization_id != current_user.active_organization_id:
        raise RecordNotFound(f'reward {reward_id} not found')
    return r


# ---- Rewards ----

@admin_bp.get('/rewards')
@login_required
@roles_required(*MANAGER_ROLES)
def rewards_list():
    org = active_organization()
    return jsonify([r.to_dict() for r in points_service.rewards_for(org.id, include_inactive=True)])


@admin_bp.post('/rewards')
@login_required
@roles_required(*MANAGER_ROLES)
def rewards_create():
    org = active_organization()
    r = Reward(organization_id=org.id, **_reward_fields(body()))
    db.session.add(r)
    db.session.commit()
    return jsonify(r.to_dict()), 201


@admin_bp.patch('/rewards/<int:reward_id>')
@login_required
@roles_required(*MANAGER_ROLES)
def rewards_update(reward_id):
    r = _org_reward(reward_id)
    for k, v in _reward_fields(body(), partial=True).items():
        setattr(r, k, v)
    db.session.commit()
    return jsonify(r.to_dict())


# ---- Points ----

@admin_bp.post('/points/adjust')
@login_required
@roles_required(*MANAGER_ROLES)
def points_adjust():
    data = body()
    try:
        user_id, delta = int(data.get('user_id')), int(data.get('delta'))
    except (TypeError, ValueError):
        raise ValidationFailed('user_id and delta must be numbers', fields={'delta': 'invalid'})
    org = active_organization()
    if not any(m.user_id == user_id for m in org.members):
        raise RecordNotFound(f'user {user_id} is not a member')
    require_member(current_user, org.id, *MANAGER_ROLES)
    entry = points_service.adjust(user_id, delta)
    return jsonify({'entry': entry.to_dict(), 'balance': points_service.balance(user_id)}), 201


@admin_bp.post('/points/reconcile')
@login_required
@roles_required('owner')
def points_reconcile():
    fixed = points_service.reconcile()
    return jsonify({'repaired': fixed, 'count': len(fixed)})
