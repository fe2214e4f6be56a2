# tests/test_points.py

from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy import text

from teamhub.errors import Conflict, ValidationFailed
from teamhub.extensions import db
from teamhub.models import Organization, PointsBalance, PointsLedgerEntry, Redemption, Reward, User
from teamhub.services import points_service, task_service

NOW = datetime(2026, 3, 2, 10, 0, 0)


def test_balance_is_sum_of_ledger(ctx, ids):
    for delta in (7, -3, 12, -1, 4):
        points_service.adjust(ids.employee, delta)
    assert points_service.balance(ids.employee) == 19
    assert points_service.cached_balance(ids.employee) == 19
    assert sum(e.delta for e in points_service.ledger_for(ids.employee)) == 19


def test_balance_of_user_without_entries_is_zero(ctx, ids):
    assert points_service.balance(ids.owner) == 0
    assert points_service.cached_balance(ids.owner) is None


@pytest.mark.parametrize("delta, reason, task_id", [
    (5, "task_completion", None),       # credit without task
    (-5, "task_completion", 1),         # negative credit
    (5, "reward_redemption", None),     # redemption must debit
    (0, "adjustment", None),
    (3, "bonus", None),
])
def test_ledger_policy(delta, reason, task_id):
    with pytest.raises(ValidationFailed):
        points_service.check_entry(delta, reason, task_id)


def test_reconcile_repairs_drift(ctx, ids, get):
    points_service.adjust(ids.employee, 10)
    points_service.adjust(ids.coworker, 4)
    get(PointsBalance, ids.employee).balance = 999
    db.session.delete(get(PointsBalance, ids.coworker))
    db.session.commit()

    fixed = points_service.reconcile(NOW)
    assert sorted(fixed, key=lambda r: r["user_id"]) == sorted([
        {"user_id": ids.employee, "cached": 999, "actual": 10},
        {"user_id": ids.coworker, "cached": None, "actual": 4},
    ], key=lambda r: r["user_id"])
    assert get(PointsBalance, ids.employee).balance == 10
    assert get(PointsBalance, ids.coworker).balance == 4
    assert points_service.reconcile(NOW) == []


def test_redeem_debits_and_decrements_stock(ctx, ids, get):
    eve = get(User, ids.employee)
    task_service.transition(ids.brief, "complete", eve, now=NOW)

    redemption = points_service.redeem(eve, ids.coffee, now=NOW)
    assert redemption.status == "pending"
    assert redemption.points_spent == 5
    assert points_service.balance(ids.employee) == 0
    assert get(Reward, ids.coffee).stock == 0
    debit = PointsLedgerEntry.query.filter_by(reason_code="reward_redemption").one()
    assert debit.delta == -5

    task_service.transition(ids.report, "complete", eve, now=NOW)
    with pytest.raises(Conflict):
        points_service.redeem(eve, ids.coffee, now=NOW)


def test_redeem_rereads_stock_claimed_elsewhere(ctx, ids, get):
    eve = get(User, ids.employee)
    points_service.adjust(ids.employee, 50)
    assert get(Reward, ids.coffee).stock == 1  # cached in this session

    # another session claims the last unit behind this session's back
    db.session.connection().execute(text("UPDATE reward SET stock = 0 WHERE id = :id"), {"id": ids.coffee})

    with pytest.raises(Conflict):
        points_service.redeem(eve, ids.coffee, now=NOW)
    assert Redemption.query.count() == 0
    assert points_service.balance(ids.employee) == 50


def test_redeem_needs_enough_points(ctx, ids, get):
    with pytest.raises(Conflict):
        points_service.redeem(get(User, ids.employee), ids.day_off)
    assert Redemption.query.count() == 0
    assert PointsLedgerEntry.query.count() == 0


def test_inactive_reward_cannot_be_redeemed(ctx, ids, get):
    points_service.adjust(ids.employee, 500)
    get(Reward, ids.day_off).active = False
    db.session.commit()
    with pytest.raises(Conflict):
        points_service.redeem(get(User, ids.employee), ids.day_off)


def test_leaderboard_reads_cache_in_order(ctx, ids, get):
    points_service.adjust(ids.employee, 30)
    points_service.adjust(ids.coworker, 50)
    points_service.adjust(ids.outsider, 900)  # other organization

    board = points_service.leaderboard(get(Organization, ids.acme))
    assert board == [
        {"user_id": ids.coworker, "points": 50},
        {"user_id": ids.employee, "points": 30},
    ]
