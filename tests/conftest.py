import datetime
import io
import os
import uuid

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["MAIL_SUPPRESS_SEND"] = "true"
os.environ.pop("ADMIN_PASSWORD", None)

import pytest
from apscheduler.schedulers.background import BackgroundScheduler
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import meetinghub.models.meeting  # noqa: F401
from meetinghub.auth.rules import ADMIN_ROLE, USER_ROLE, Actor
from meetinghub.auth.utils import get_password_hash
from meetinghub.core.db import enable_sqlite_foreign_keys, get_db
from meetinghub.core.errors import DependencyFailureError
from meetinghub.main import app
from meetinghub.models.user import Base, Role, User, UserRole, new_id
from meetinghub.scheduler.reminder import ReminderScheduler, get_reminder_scheduler
from meetinghub.services.identity_service import ensure_roles_exist
from meetinghub.storage.object_store import UploadedFile, get_object_store

# Fixed clock for service-level tests
NOW = datetime.datetime(2030, 1, 1, 9, 0, 0)

# Hashing is the slow part of creating users
_PASSWORD = "Secret#123"
_PASSWORD_HASH = get_password_hash(_PASSWORD)


class FakeObjectStore:
    """In-memory stand-in for ObjectStore with switchable failures."""

    def __init__(self):
        self.objects = {}
        self.put_calls = 0
        self.fail_put_after = None
        self.fail_delete = False

    def put(self, bucket, key, upload, allow_compression=False):
        if self.fail_put_after is not None and self.put_calls >= self.fail_put_after:
            raise DependencyFailureError(f"Could not store '{upload.filename}'.")
        self.put_calls += 1
        self.objects[(bucket, key)] = upload.stream.read()

    def delete(self, bucket, key):
        if self.fail_delete:
            raise DependencyFailureError(f"Could not delete object '{key}'.")
        self.objects.pop((bucket, key), None)

    def presigned_get_url(self, bucket, key, expires_seconds=300):
        return f"http://objects.test/{bucket}/{key}?expires={expires_seconds}"

    def keys(self, bucket):
        return sorted(key for b, key in self.objects if b == bucket)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def make_upload():
    def _make_upload(filename="notes.txt", data=b"hello", content_type="text/plain"):
        return UploadedFile(filename=filename, content_type=content_type, size=len(data), stream=io.BytesIO(data))

    return _make_upload


@pytest.fixture
def engine():
    test_engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_foreign_keys(test_engine)
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    ensure_roles_exist(session)
    yield session
    session.close()


@pytest.fixture
def scheduler():
    # Never started: added jobs stay pending and can be inspected or removed
    return BackgroundScheduler(timezone=datetime.timezone.utc)


@pytest.fixture
def reminders(scheduler):
    return ReminderScheduler(scheduler, offset_minutes=15)


@pytest.fixture
def store():
    return FakeObjectStore()


@pytest.fixture
def make_user(db):
    """
    Factory fixture creating a user directly via the ORM.
    Returns the user and the matching Actor.
    """
    def _make_user(name=None, email=None, admin=False):
        name = name or f"user_{uuid.uuid4().hex[:6]}"
        user = User(
            id=new_id(),
            name=name,
            email=(email or f"{name}@example.com").lower(),
            hashed_password=_PASSWORD_HASH,
        )
        role_names = [USER_ROLE] + ([ADMIN_ROLE] if admin else [])
        for role_name in role_names:
            role = db.query(Role).filter(Role.name == role_name).one()
            user.roles.append(UserRole(role=role))
        db.add(user)
        db.commit()
        return user, Actor(id=user.id, roles=frozenset(role_names))

    return _make_user


@pytest.fixture
def client(session_factory, db, store, reminders):
    """TestClient without startup hooks, wired to the in-memory database and fakes."""

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_object_store] = lambda: store
    app.dependency_overrides[get_reminder_scheduler] = lambda: reminders
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    def _login(email, password=_PASSWORD):
        resp = client.post("/auth/login", data={"username": email, "password": password})
        assert resp.status_code == 200, resp.text
        return {"Authorization": f"Bearer {resp.json()['access_token']}"}

    return _login
