# teamhub/blueprints/points/routes.py
from flask import jsonify
from flask_login import login_required, current_user

from ...models.points import Redemption
from ...security import require_member
from ...services import points_service
from ..utils import active_organization, int_arg
from . import points_bp


@points_bp.get("/balance")
@login_required
def balance():
    return jsonify({"user_id": current_user.id, "balance": points_service.balance(current_user.id)})


@points_bp.get("/ledger")
@login_required
def ledger():
    entries = points_service.ledger_for(current_user.id, limit=int_arg("limit", 100))
    return jsonify([e.to_dict() for e in entries])


@points_bp.get("/rewards")
@login_required
def rewards():
    org = active_organization()
    require_member(current_user, org.id)
    return jsonify([r.to_dict() for r in points_service.rewards_for(org.id)])


@points_bp.post("/rewards/<int:reward_id>/redeem")
@login_required
def redeem(reward_id):
    redemption = points_service.redeem(current_user, reward_id)
    return jsonify({
        "redemption": redemption.to_dict(),
        "balance": points_service.balance(current_user.id),
    }), 201


@points_bp.get("/redemptions")
@login_required
def redemptions():
    rows = (Redemption.query
            .filter_by(user_id=current_user.id)
            .order_by(Redemption.created_at.desc())
            .all())
    return jsonify([r.to_dict() for r in rows])


@points_bp.get("/leaderboard")
@login_required
def leaderboard():
    org = active_organization()
    require_member(current_user, org.id)
    return jsonify(points_service.leaderboard(org, limit=int_arg("limit", 10, hi=100)))
