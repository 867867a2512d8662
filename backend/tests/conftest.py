"""
Shared fixtures: an in-memory SQLite database per test, entity factories
and a TestClient whose get_db dependency yields the test session.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ADMIN_EMAILS"] = "admin@typingdesk.test"
os.environ.setdefault("LOG_LEVEL", "WARNING")

import uuid

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from typingdesk.auth import create_access_token
from typingdesk.database import Base, configure_sqlite, get_db
from typingdesk.main import app
from typingdesk.models import Admin, Batch, Shift, Student, Test


@pytest.fixture
def engine():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False},
                           poolclass=StaticPool)
    configure_sqlite(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


# ── Factories ────────────────────────────────────────────────

def _new_id():
    return str(uuid.uuid4())


@pytest.fixture
def make_admin(db):
    def _make(email="admin@typingdesk.test", name="Admin"):
        admin = Admin(id=_new_id(), auth_subject="sub-{}".format(email), email=email,
                      name=name, role="admin", is_active=True)
        db.add(admin)
        db.commit()
        return admin
    return _make


@pytest.fixture
def admin(make_admin):
    return make_admin()


@pytest.fixture
def make_student(db):
    counter = {"n": 0}

    def _make(name=None, approved=True, blocked=False):
        counter["n"] += 1
        name = name or "Student {}".format(counter["n"])
        email = "student{}@typingdesk.test".format(counter["n"])
        student = Student(id=_new_id(), auth_subject="sub-{}".format(email), email=email,
                          name=name, is_approved=approved, is_blocked=blocked)
        db.add(student)
        db.commit()
        return student
    return _make


@pytest.fixture
def make_batch(db, admin):
    counter = {"n": 0}

    def _make(name=None, max_students=50, is_active=True):
        counter["n"] += 1
        batch = Batch(id=_new_id(), name=name or "Batch {}".format(counter["n"]),
                      created_by=admin.id, max_students=max_students, is_active=is_active)
        db.add(batch)
        db.commit()
        return batch
    return _make


@pytest.fixture
def make_test(db, admin):
    def _make(title="Dictation", is_active=True):
        test = Test(id=_new_id(), title=title, reference_text="The quick brown fox.",
                    uploaded_by=admin.id, is_active=is_active)
        db.add(test)
        db.commit()
        return test
    return _make


@pytest.fixture
def make_shift(db):
    def _make(name="Shift A", test_id=None):
        shift = Shift(id=_new_id(), name=name, duration_minutes=30, test_id=test_id)
        db.add(shift)
        db.commit()
        return shift
    return _make


@pytest.fixture
def auth_headers():
    def _headers(user):
        token = create_access_token(user.auth_subject, user.email, user.name)
        return {"Authorization": "Bearer {}".format(token)}
    return _headers
