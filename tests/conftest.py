"""
Shared pytest fixtures for the Partner Hub test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - org / owner / manager / assignee / project / partner: base entities
    - make_task / make_rule: factories for the escalation tests
"""

import os
from datetime import date, timedelta

import pytest
from cryptography.fernet import Fernet

# Fernet key must exist before anything encrypts SMS tokens
if not os.environ.get("ENCRYPTION_KEY"):
    os.environ["ENCRYPTION_KEY"] = Fernet.generate_key().decode()

from partnerhub import create_app
from partnerhub.models import db as _db
from partnerhub.models.escalation import EscalationRule
from partnerhub.models.organization import Organization, User
from partnerhub.models.project import Partner, Project, Task

# Fixed "today" for date-sensitive tests
TODAY = date(2026, 3, 16)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Entity fixtures ──────────────────────────────────────────────────────


def make_org(name="Acme Partners", slug="acme"):
    org = Organization(name=name, slug=slug)
    _db.session.add(org)
    _db.session.commit()
    return org


def make_user(org, email, full_name=None):
    user = User(organization_id=org.id, email=email, full_name=full_name or email.split("@")[0])
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def org():
    return make_org()


@pytest.fixture()
def owner(org):
    return make_user(org, "owner@acme.test", "Olivia Owner")


@pytest.fixture()
def manager(org):
    return make_user(org, "manager@acme.test", "Max Manager")


@pytest.fixture()
def assignee(org):
    return make_user(org, "assignee@acme.test", "Ada Assignee")


@pytest.fixture()
def project(org, owner, manager):
    p = Project(organization_id=org.id, code="PRJ-1", name="Launch", owner_id=owner.id, manager_id=manager.id)
    _db.session.add(p)
    _db.session.commit()
    return p


@pytest.fixture()
def partner(org):
    p = Partner(organization_id=org.id, name="Kaito Trading", email="ops@kaito.test",
                sms_phone_number="090-1234-5678")
    _db.session.add(p)
    _db.session.commit()
    return p


@pytest.fixture()
def make_task(project, assignee):
    """Factory: make_task(due_in=-3, progress=0, ...) — due_in is days from TODAY."""

    def _make(title="Deliver specs", *, due_in=0, progress=0, status="in_progress",
              assignee_id="default", partner_id=None, project_id=None):
        task = Task(
            project_id=project_id or project.id,
            title=title,
            status=status,
            progress=progress,
            due_date=TODAY + timedelta(days=due_in) if due_in is not None else None,
            assignee_id=assignee.id if assignee_id == "default" else assignee_id,
            partner_id=partner_id,
        )
        _db.session.add(task)
        _db.session.commit()
        return task

    return _make


@pytest.fixture()
def make_rule(org):
    """Factory: make_rule("days_after_due", 1, "notify_owner", ...)."""

    def _make(trigger_type="days_after_due", trigger_value=1, action="notify_owner", *,
              name=None, priority=1, status="active", project_id=None,
              escalate_to_user_id=None, organization_id=None):
        rule = EscalationRule(
            organization_id=organization_id or org.id,
            project_id=project_id,
            name=name or f"{trigger_type}:{trigger_value}:{action}",
            trigger_type=trigger_type,
            trigger_value=trigger_value,
            action=action,
            status=status,
            priority=priority,
            escalate_to_user_id=escalate_to_user_id,
        )
        _db.session.add(rule)
        _db.session.commit()
        return rule

    return _make


@pytest.fixture()
def today():
    return TODAY
