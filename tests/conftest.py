# tests/conftest.py

from __future__ import annotations

from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from teamhub import create_app
from teamhub.config import TestConfig
from teamhub.extensions import db
from teamhub.models import (
    Organization,
    OrganizationMember,
    Project,
    Reward,
    Task,
    User,
)

PASSWORD = "secret123"


def _user(name: str, email: str) -> User:
    u = User(full_name=name, email=email)
    u.set_password(PASSWORD)
    db.session.add(u)
    return u


def _seed() -> SimpleNamespace:
    """
    One organization with a member of every role, a project named "Atlas"
    holding a task and an assignment for the employee, plus a second
    organization with an outsider.
    """
    acme = Organization(name="Acme")
    other = Organization(name="Other Co")
    db.session.add_all([acme, other])

    owner = _user("Olivia Owner", "olivia@acme.com")
    admin = _user("Adam Admin", "adam@acme.com")
    supervisor = _user("Sam Supervisor", "sam@acme.com")
    employee = _user("Eve Employee", "eve@acme.com")
    coworker = _user("Ed Employee", "ed@acme.com")
    outsider = _user("Zed Outsider", "zed@other.com")
    db.session.flush()

    for user, role in ((owner, "owner"), (admin, "admin"), (supervisor, "supervisor"),
                       (employee, "employee"), (coworker, "employee")):
        db.session.add(OrganizationMember(organization_id=acme.id, user_id=user.id, role=role))
        user.active_organization_id = acme.id
    db.session.add(OrganizationMember(organization_id=other.id, user_id=outsider.id, role="owner"))
    outsider.active_organization_id = other.id

    atlas = Project(organization_id=acme.id, name="Atlas", created_by=owner.id)
    db.session.add(atlas)
    db.session.flush()

    due = datetime.utcnow() + timedelta(days=3)
    brief = Task(project_id=atlas.id, title="Write brief", task_type="task", completion_points=5,
                 assignee_id=employee.id, created_by=supervisor.id, due_date=due)
    report = Task(project_id=atlas.id, title="Quarterly report", task_type="assignment", completion_points=10,
                  assignee_id=employee.id, created_by=supervisor.id, due_date=due)
    chore = Task(project_id=atlas.id, title="Tidy backlog", task_type="task", completion_points=0,
                 assignee_id=employee.id, created_by=supervisor.id)
    coffee = Reward(organization_id=acme.id, title="Coffee voucher", points_cost=5, stock=1)
    day_off = Reward(organization_id=acme.id, title="Day off", points_cost=100)
    db.session.add_all([brief, report, chore, coffee, day_off])
    db.session.commit()

    return SimpleNamespace(
        acme=acme.id, other=other.id, atlas=atlas.id,
        owner=owner.id, admin=admin.id, supervisor=supervisor.id,
        employee=employee.id, coworker=coworker.id, outsider=outsider.id,
        brief=brief.id, report=report.id, chore=chore.id,
        coffee=coffee.id, day_off=day_off.id,
    )


@pytest.fixture()
def app():
    app = create_app(TestConfig)
    with app.app_context():
        db.create_all()
        app.config["SEED"] = _seed()
        db.session.remove()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def ids(app) -> SimpleNamespace:
    """Primary keys of the seeded rows."""
    return app.config["SEED"]


@pytest.fixture()
def ctx(app):
    """App context for calling services directly (not shared with client requests)."""
    with app.app_context():
        yield
        db.session.remove()


@pytest.fixture()
def get():
    """Fetch a row by primary key inside the current app context."""
    def _get(model, pk):
        return db.session.get(model, pk)
    return _get


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def login(client):
    def _login(email: str, password: str = PASSWORD):
        resp = client.post("/auth/login", json={"email": email, "password": password})
        assert resp.status_code == 200, resp.get_json()
        return resp.get_json()
    return _login
