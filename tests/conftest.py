"""
Shared pytest fixtures for the financing portal test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - directory fixtures: district, branch, product (+ a second of each)
    - principal fixtures: branch_user, approver, admin (User rows)
    - make_user factory
"""

import pytest

from loan_portal import create_app
from loan_portal.models import db as _db
from loan_portal.models.auth import ROLE_ADMIN, ROLE_APPROVER, ROLE_BRANCH_USER, User
from loan_portal.models.directory import Branch, District, Product


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


# ── Directory fixtures ───────────────────────────────────────────────────


@pytest.fixture()
def district():
    d = District(name="Central", code="CEN")
    _db.session.add(d)
    _db.session.commit()
    return d


@pytest.fixture()
def other_district():
    d = District(name="Coastal", code="CST")
    _db.session.add(d)
    _db.session.commit()
    return d


@pytest.fixture()
def branch(district):
    b = Branch(district_id=district.id, name="Main Street", code="MS01")
    _db.session.add(b)
    _db.session.commit()
    return b


@pytest.fixture()
def other_branch(other_district):
    b = Branch(district_id=other_district.id, name="Harbour Road", code="HR01")
    _db.session.add(b)
    _db.session.commit()
    return b


@pytest.fixture()
def product():
    p = Product(name="Home Financing", product_code="HF")
    _db.session.add(p)
    _db.session.commit()
    return p


@pytest.fixture()
def other_product():
    p = Product(name="Auto Financing", product_code="AF")
    _db.session.add(p)
    _db.session.commit()
    return p


# ── Principals ───────────────────────────────────────────────────────────


@pytest.fixture()
def make_user():
    """Factory: make_user(role, branch=None, email=None, is_active=True) -> User."""
    counter = {"n": 0}

    def _make(role, branch=None, email=None, full_name=None, is_active=True):
        counter["n"] += 1
        user = User(
            email=email or f"{role}.{counter['n']}@portal.test",
            full_name=full_name or f"{role.replace('_', ' ').title()} {counter['n']}",
            role=role,
            branch_id=branch.id if branch is not None else None,
            is_active=is_active,
        )
        _db.session.add(user)
        _db.session.commit()
        return user

    return _make


@pytest.fixture()
def branch_user(make_user, branch):
    return make_user(ROLE_BRANCH_USER, branch=branch, full_name="Teller One")


@pytest.fixture()
def approver(make_user):
    return make_user(ROLE_APPROVER, full_name="Approver One")


@pytest.fixture()
def admin(make_user):
    return make_user(ROLE_ADMIN, full_name="Admin One")
