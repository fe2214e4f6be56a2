# teamhub/services/points_service.py
"""
Points ledger.

The ledger is append-only and authoritative: a balance is always
``sum(delta)`` over the user's entries. ``PointsBalance`` is a read cache
bumped in the same transaction as each append and repaired by
:func:`reconcile`.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from ..errors import Conflict, RecordNotFound, TransientFailure, ValidationFailed
from ..extensions import db
from ..models.points import (
    CREDIT_REASONS,
    REASON_CODES,
    PointsBalance,
    PointsLedgerEntry,
    Redemption,
    Reward,
)
from ..security import require_member

log = logging.getLogger(__name__)


def balance(user_id: int) -> int:
    total = (db.session.query(func.coalesce(func.sum(PointsLedgerEntry.delta), 0))
             .filter(PointsLedgerEntry.user_id == user_id)
             .scalar())
    return int(total or 0)


def cached_balance(user_id: int) -> Optional[int]:
    rec = db.session.get(PointsBalance, user_id)
    return rec.balance if rec else None


def ledger_for(user_id: int, limit: int = 100) -> list[PointsLedgerEntry]:
    return (PointsLedgerEntry.query
            .filter_by(user_id=user_id)
            .order_by(PointsLedgerEntry.created_at.desc(), PointsLedgerEntry.id.desc())
            .limit(limit)
            .all())


def check_entry(delta: int, reason_code: str, task_id=None) -> None:
    """Same rules the ledger's insert policy enforces."""
    if reason_code not in REASON_CODES:
        raise ValidationFailed(f"unknown reason code {reason_code!r}", fields={"reason_code": "invalid"})
    if not isinstance(delta, int) or delta == 0:
        raise ValidationFailed("delta must be a non-zero integer", fields={"delta": "invalid"})
    if reason_code in CREDIT_REASONS and (task_id is None or delta <= 0):
        raise ValidationFailed("completion credits need a task and a positive delta")
    if reason_code == "reward_redemption" and delta >= 0:
        raise ValidationFailed("redemptions must debit points")


def append_entry(user_id: int, delta: int, reason_code: str, task_id=None,
                 now: Optional[datetime] = None) -> PointsLedgerEntry:
    """Stage a ledger entry and the cache bump; the caller commits."""
    check_entry(delta, reason_code, task_id)

    cache = db.session.get(PointsBalance, user_id)
    if cache is None:
        cache = PointsBalance(user_id=user_id, balance=balance(user_id) + delta)
        db.session.add(cache)
    else:
        cache.balance = (cache.balance or 0) + delta

    entry = PointsLedgerEntry(
        user_id=user_id,
        delta=delta,
        reason_code=reason_code,
        task_id=task_id,
        created_at=now or datetime.utcnow(),
    )
    db.session.add(entry)
    return entry


def adjust(user_id: int, delta: int) -> PointsLedgerEntry:
    try:
        entry = append_entry(user_id, delta, "adjustment")
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        log.exception("points adjustment failed user=%s", user_id)
        raise TransientFailure(str(e)) from e
    log.info("points adjustment user=%s delta=%s", user_id, delta)
    return entry


def reconcile(now: Optional[datetime] = None) -> list[dict]:
    """Repair cache rows that drifted from the ledger; returns what was fixed."""
    now = now or datetime.utcnow()
    sums = dict(
        db.session.query(PointsLedgerEntry.user_id, func.sum(PointsLedgerEntry.delta))
        .group_by(PointsLedgerEntry.user_id)
        .all()
    )
    caches = {c.user_id: c for c in PointsBalance.query.all()}

    mismatches = []
    for user_id in set(sums) | set(caches):
        actual = int(sums.get(user_id) or 0)
        cache = caches.get(user_id)
        if cache is None:
            cache = PointsBalance(user_id=user_id, balance=actual)
            db.session.add(cache)
            mismatches.append({"user_id": user_id, "cached": None, "actual": actual})
        elif cache.balance != actual:
            mismatches.append({"user_id": user_id, "cached": cache.balance, "actual": actual})
            cache.balance = actual
        cache.reconciled_at = now
    db.session.commit()

    if mismatches:
        log.warning("points cache drift repaired for %s user(s)", len(mismatches))
    return mismatches


# -----------------
# Rewards
# -----------------

def rewards_for(organization_id: int, include_inactive: bool = False) -> list[Reward]:
    q = Reward.query.filter_by(organization_id=organization_id)
    if not include_inactive:
        q = q.filter_by(active=True)
    return q.order_by(Reward.points_cost.asc()).all()


def redeem(user, reward_id: int, now: Optional[datetime] = None) -> Redemption:
    """
    Spend points on a reward. The reward row and the user's balance row are
    locked and re-read before the checks, and stock is claimed with a
    conditional update, so concurrent redemptions cannot overdraw the
    balance or push stock below zero.
    """
    # populate_existing: the locked read must replace whatever the session cached
    reward = (Reward.query.filter_by(id=reward_id)
              .with_for_update().populate_existing().first())
    if reward is None:
        raise RecordNotFound(f"reward {reward_id} not found")
    require_member(user, reward.organization_id)
    (PointsBalance.query.filter_by(user_id=user.id)
     .with_for_update().populate_existing().first())

    try:
        if not reward.active:
            raise Conflict("this reward is no longer available")
        if not reward.in_stock:
            raise Conflict("this reward is currently out of stock")
        if balance(user.id) < reward.points_cost:
            raise Conflict("you don't have enough points for this reward")

        if reward.stock is not None:
            claimed = (Reward.query
                       .filter(Reward.id == reward.id, Reward.stock > 0)
                       .update({Reward.stock: Reward.stock - 1}, synchronize_session="fetch"))
            if not claimed:
                raise Conflict("this reward is currently out of stock")
        append_entry(user.id, -reward.points_cost, "reward_redemption", now=now)
        redemption = Redemption(
            user_id=user.id,
            reward_id=reward.id,
            points_spent=reward.points_cost,
            status="pending",
            created_at=now or datetime.utcnow(),
        )
        db.session.add(redemption)
        db.session.commit()
    except Conflict:
        db.session.rollback()
        raise
    except SQLAlchemyError as e:
        db.session.rollback()
        log.exception("redeem failed user=%s reward=%s", user.id, reward_id)
        raise TransientFailure(str(e)) from e

    log.info("reward redeemed user=%s reward=%s cost=%s", user.id, reward.id, reward.points_cost)
    return redemption


def leaderboard(organization, limit: int = 10) -> list[dict]:
    # served from the cache so the page never aggregates the whole ledger
    ids = [m.user_id for m in organization.members]
    if not ids:
        return []
    rows = (PointsBalance.query
            .filter(PointsBalance.user_id.in_(ids))
            .order_by(PointsBalance.balance.desc(), PointsBalance.user_id.asc())
            .limit(limit)
            .all())
    return [{"user_id": r.user_id, "points": r.balance} for r in rows]
