# tests/test_presence.py

from __future__ import annotations

from datetime import date, datetime, timedelta
from types import SimpleNamespace

import pytest
from sqlalchemy.exc import SQLAlchemyError

from teamhub.errors import ValidationFailed
from teamhub.extensions import db
from teamhub.models import AttendanceCheckin, Organization, PresenceRecord, User
from teamhub.services import attendance_service, presence_service
from teamhub.services.presence_service import PresenceTracker, derive_status

NOW = datetime(2026, 3, 2, 10, 0, 0)
TWENTY = timedelta(minutes=20)


def _checkin(day: date = NOW.date(), open_: bool = True):
    return SimpleNamespace(local_date=day, is_open=open_)


def _presence(status, age: timedelta):
    return SimpleNamespace(status=status, updated_at=NOW - age)


# ---- derivation ----

@pytest.mark.parametrize("stored", ["online", "do_not_disturb", "idle", None])
def test_offline_without_checkin_whatever_is_stored(stored):
    assert derive_status(None, _presence(stored, timedelta(seconds=5)), NOW, TWENTY) == "offline"


def test_offline_after_clock_out():
    assert derive_status(_checkin(open_=False), _presence("online", timedelta(minutes=1)), NOW, TWENTY) == "offline"


def test_offline_when_open_checkin_is_from_yesterday():
    yesterday = NOW.date() - timedelta(days=1)
    assert derive_status(_checkin(day=yesterday), _presence("online", timedelta(minutes=1)), NOW, TWENTY) == "offline"


def test_fresh_write_shows_stored_status():
    assert derive_status(_checkin(), _presence("do_not_disturb", timedelta(minutes=19)), NOW, TWENTY) == "do_not_disturb"


def test_unset_stored_status_reads_online():
    assert derive_status(_checkin(), _presence(None, timedelta(minutes=1)), NOW, TWENTY) == "online"


def test_clocked_in_without_presence_row_is_online():
    assert derive_status(_checkin(), None, NOW, TWENTY) == "online"


@pytest.mark.parametrize("age", [timedelta(minutes=20), timedelta(hours=3)])
def test_idle_once_last_write_reaches_threshold(age):
    assert derive_status(_checkin(), _presence("online", age), NOW, TWENTY) == "idle"


# ---- state machine ----

class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kw) -> None:
        self.now += timedelta(**kw)


@pytest.fixture()
def tracker():
    writes = []
    clock = Clock(NOW)
    t = PresenceTracker(
        7,
        lambda uid, status, at: writes.append((uid, status, at)),
        clock=clock,
        idle_after=TWENTY,
        heartbeat=timedelta(seconds=30),
    )
    return SimpleNamespace(t=t, writes=writes, clock=clock)


def test_activity_while_offline_writes_nothing(tracker):
    assert tracker.t.handle("activity") is None
    assert tracker.writes == []


def test_clock_in_writes_online(tracker):
    assert tracker.t.handle("clock_in") == "online"
    assert tracker.writes == [(7, "online", NOW)]


def test_activity_bursts_are_coalesced(tracker):
    tracker.t.handle("clock_in")
    for _ in range(10):
        tracker.clock.advance(seconds=2)
        tracker.t.handle("activity")
    # 20 seconds of activity, under one heartbeat: only the clock-in write
    assert len(tracker.writes) == 1

    tracker.clock.advance(seconds=15)
    assert tracker.t.handle("activity") == "online"
    assert len(tracker.writes) == 2


def test_tick_marks_idle_once_then_activity_restores(tracker):
    tracker.t.handle("clock_in")
    tracker.clock.advance(minutes=19)
    assert tracker.t.handle("tick") is None

    tracker.clock.advance(minutes=1)
    assert tracker.t.handle("tick") == "idle"
    assert tracker.t.handle("tick") is None
    assert [w[1] for w in tracker.writes] == ["online", "idle"]

    tracker.clock.advance(seconds=1)
    assert tracker.t.handle("activity") == "online"
    assert tracker.t.state == "online"


def test_dnd_goes_idle_too(tracker):
    tracker.t.handle("clock_in")
    tracker.t.handle("set_status", "do_not_disturb")
    tracker.clock.advance(minutes=25)
    assert tracker.t.handle("tick") == "idle"


def test_clock_in_forces_write_even_when_already_online(tracker):
    tracker.t.handle("clock_in")
    tracker.clock.advance(seconds=1)
    assert tracker.t.handle("clock_in") == "online"
    assert len(tracker.writes) == 2


def test_clock_out_goes_offline_and_stops_ticks(tracker):
    tracker.t.handle("clock_in")
    assert tracker.t.handle("clock_out") == "offline"
    tracker.clock.advance(hours=1)
    assert tracker.t.handle("tick") is None


def test_bad_status_and_event_are_rejected(tracker):
    with pytest.raises(ValidationFailed):
        tracker.t.handle("set_status", "away")
    with pytest.raises(ValueError):
        tracker.t.handle("sneeze")


# ---- storage-backed ----

def test_clock_in_then_team_view(ctx, ids, get):
    org = get(Organization, ids.acme)
    employee = get(User, ids.employee)

    attendance_service.clock_in(employee, org, now=NOW)
    rec = get(PresenceRecord, ids.employee)
    assert rec.status == "online"

    view = presence_service.team_presence(org, now=NOW + timedelta(minutes=5))
    by_id = {u["id"]: u for group in view["by_role"].values() for u in group}
    assert by_id[ids.employee]["status"] == "online"
    assert by_id[ids.owner]["status"] == "offline"
    assert view["online"] == 1
    assert view["total"] == 5
    assert [u["id"] for u in view["by_role"]["owner"]] == [ids.owner]

    later = presence_service.team_presence(org, now=NOW + timedelta(minutes=21))
    by_id = {u["id"]: u for group in later["by_role"].values() for u in group}
    assert by_id[ids.employee]["status"] == "idle"
    # idle still counts as present
    assert later["online"] == 1


def test_stored_online_without_checkin_reads_offline(ctx, ids, get):
    presence_service.upsert_presence(ids.coworker, "online", NOW)
    org = get(Organization, ids.acme)
    view = presence_service.team_presence(org, now=NOW + timedelta(minutes=1))
    by_id = {u["id"]: u for group in view["by_role"].values() for u in group}
    assert by_id[ids.coworker]["status"] == "offline"


def test_current_task_title_in_team_view(ctx, ids, get):
    org = get(Organization, ids.acme)
    db.session.add(AttendanceCheckin(organization_id=org.id, user_id=ids.employee,
                                     local_date=NOW.date(), clock_in_at=NOW))
    db.session.commit()
    presence_service.upsert_presence(ids.employee, "do_not_disturb", NOW, current_task_id=ids.brief)

    view = presence_service.team_presence(org, now=NOW + timedelta(minutes=2))
    eve = next(u for u in view["by_role"]["employee"] if u["id"] == ids.employee)
    assert eve["status"] == "do_not_disturb"
    assert eve["current_task_title"] == "Write brief"


def test_sweep_marks_stale_rows_idle(ctx, ids):
    presence_service.upsert_presence(ids.employee, "online", NOW - timedelta(minutes=30))
    presence_service.upsert_presence(ids.coworker, "online", NOW - timedelta(minutes=5))
    presence_service.upsert_presence(ids.supervisor, "offline", NOW - timedelta(hours=5))

    assert presence_service.sweep_idle(NOW) == 1
    assert db.session.get(PresenceRecord, ids.employee).status == "idle"
    assert db.session.get(PresenceRecord, ids.coworker).status == "online"
    assert db.session.get(PresenceRecord, ids.supervisor).status == "offline"
    # second sweep has nothing left to do
    assert presence_service.sweep_idle(NOW) == 0


# ---- failures stay local ----

def _statuses(view) -> dict:
    return {u["id"]: u["status"] for group in view["by_role"].values() for u in group}


def test_one_member_failing_to_derive_does_not_hide_the_team(ctx, ids, get, monkeypatch):
    org = get(Organization, ids.acme)
    attendance_service.clock_in(get(User, ids.employee), org, now=NOW)
    attendance_service.clock_in(get(User, ids.coworker), org, now=NOW)

    real = presence_service.derive_status

    def flaky(checkin, presence, now, threshold):
        if presence is not None and presence.user_id == ids.coworker:
            raise TypeError("corrupt presence row")
        return real(checkin, presence, now, threshold)

    monkeypatch.setattr(presence_service, "derive_status", flaky)
    view = presence_service.team_presence(org, now=NOW + timedelta(minutes=1))
    statuses = _statuses(view)
    assert statuses[ids.coworker] == "offline"
    assert statuses[ids.employee] == "online"
    assert view["total"] == 5
    assert view["online"] == 1


class _Unreachable:
    @property
    def query(self):
        raise SQLAlchemyError("database is locked")


def test_storage_failure_reports_everyone_offline(ctx, ids, get, monkeypatch):
    org = get(Organization, ids.acme)
    attendance_service.clock_in(get(User, ids.employee), org, now=NOW)

    monkeypatch.setattr(presence_service, "AttendanceCheckin", _Unreachable())
    view = presence_service.team_presence(org, now=NOW + timedelta(minutes=1))
    assert view["total"] == 5
    assert view["online"] == 0
    assert set(_statuses(view).values()) == {"offline"}
