"""
Shared fixtures: an in-memory database per test, user factories and an
API client wired to the same database.
"""
import itertools
import os
import tempfile

# Must be set before firstmoments reads its configuration
os.environ.setdefault("FIRST_MOMENTS_DATABASE_URL", "sqlite://")
os.environ["FIRST_MOMENTS_BCRYPT_ROUNDS"] = "4"
os.environ["FIRST_MOMENTS_RATE_LIMIT_ENABLED"] = "false"
os.environ["FIRST_MOMENTS_CLEANUP_ENABLED"] = "false"
os.environ.pop("FIRST_MOMENTS_SMTP_HOST", None)
os.environ.setdefault("FIRST_MOMENTS_LOG_DIR", tempfile.mkdtemp(prefix="first-moments-logs-"))

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from firstmoments.auth import hash_password, create_access_token
from firstmoments.constants import ROLE_ADMIN
from firstmoments.database import Base, get_db
from firstmoments.models import User, Profile, AchievementTemplate

DEFAULT_PASSWORD = "Secret123"


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def client(session_factory):
    from firstmoments.main import app

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db_session):
    counter = itertools.count(1)

    def _make_user(username=None, email=None, password=DEFAULT_PASSWORD, **fields):
        n = next(counter)
        user = User(
            username=username or f"user{n}",
            email=email or f"user{n}@example.com",
            password_hash=hash_password(password),
            **fields
        )
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def user(make_user):
    return make_user(username="alice", email="alice@example.com")


@pytest.fixture
def other_user(make_user):
    return make_user(username="bob", email="bob@example.com")


@pytest.fixture
def admin_user(make_user):
    return make_user(username="admin", email="admin@example.com", role=ROLE_ADMIN)


@pytest.fixture
def auth_headers():
    def _auth_headers(user):
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}
    return _auth_headers


@pytest.fixture
def make_profile(db_session):
    def _make_profile(owner, name="My life", **fields):
        profile = Profile(user_id=owner.id, name=name, **fields)
        db_session.add(profile)
        db_session.commit()
        db_session.refresh(profile)
        return profile
    return _make_profile


@pytest.fixture
def make_template(db_session):
    counter = itertools.count(1)

    def _make_template(**fields):
        n = next(counter)
        values = {
            "name": f"Template {n}",
            "description": "Record your moments",
            "type": "collection",
            "category": "records",
            "difficulty": "easy",
            "icon": "star",
            "points": 10,
            "condition_type": "count",
            "condition_target": 3,
        }
        values.update(fields)
        template = AchievementTemplate(**values)
        db_session.add(template)
        db_session.commit()
        db_session.refresh(template)
        return template

    return _make_template
