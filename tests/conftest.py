import os

# Must be set before app.db.session builds its engine.
os.environ["DATABASE_URL"] = "sqlite://"

import time
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import Settings, get_settings
from app.db.base import Base
from app.db.session import get_db
from app.dependencies.services import get_mailer, get_storage
from app.main import app
from app.models import AdminEmail, DownloadHistory, DownloadToken
from app.services.storage import StorageError

JWT_SECRET = "test-supabase-jwt-secret-0123456789abcdef"
WEBHOOK_SECRET = "whsec_test_secret"
T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


def make_token(user_id, email=None, secret=JWT_SECRET, expires_in=3600, audience="authenticated"):
    payload = {
        "sub": user_id,
        "aud": audience,
        "role": "authenticated",
        "exp": int(time.time()) + expires_in,
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, secret, algorithm="HS256")


def auth_headers(user_id, email=None):
    return {"Authorization": f"Bearer {make_token(user_id, email)}"}


def add_tokens(db, user_id, count, start=T0, paid=True):
    """Insert `count` credits created one minute apart, oldest first. Returns their ids."""
    ids = []
    for i in range(count):
        token = DownloadToken(
            user_id=user_id,
            paid=paid,
            file_path="pack",
            file_name="pack",
            mastering_target="beatport",
            amount_cents=500,
            created_at=start + timedelta(minutes=i),
        )
        db.add(token)
        db.flush()
        ids.append(token.id)
    db.commit()
    return ids


def add_admin(db, email):
    db.add(AdminEmail(email=email))
    db.commit()


_OWN_FOLDER = object()


def add_history(db, user_id, expires_at, storage_path=_OWN_FOLDER, file_name="song.mp3",
                target="spotify", created_at=T0):
    if storage_path is _OWN_FOLDER:
        storage_path = f"{user_id}/master.wav"
    record = DownloadHistory(
        user_id=user_id,
        file_name=file_name,
        mastering_target=target,
        amount_cents=500,
        storage_path=storage_path,
        created_at=created_at,
        expires_at=expires_at,
    )
    db.add(record)
    db.commit()
    return record.id


def credits_of(db, user_id):
    db.expire_all()
    return db.query(DownloadToken).filter(DownloadToken.user_id == user_id, DownloadToken.paid.is_(True)).count()


class FakeStorage:
    def __init__(self):
        self.objects = {}
        self.calls = []
        self.fail = False

    def download(self, path):
        self.calls.append(("download", path))
        if self.fail or path not in self.objects:
            raise StorageError(f"object {path} not found")
        return self.objects[path]

    def create_signed_url(self, path, expires_in=60, download=True):
        self.calls.append(("sign", path, expires_in))
        if self.fail:
            raise StorageError("sign failed")
        return f"https://proj.supabase.co/storage/v1/object/sign/mastered/{path}?token=signed&download="


class FakeMailer:
    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, to_email, subject, html):
        if self.fail:
            raise RuntimeError("resend is down")
        self.sent.append((to_email, subject, html))


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    Session = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        supabase_url="https://proj.supabase.co",
        supabase_jwt_secret=JWT_SECRET,
        supabase_service_key="service-role-key",
        stripe_secret_key="sk_test_123",
        stripe_webhook_secret=WEBHOOK_SECRET,
        resend_api_key="re_test_123",
        notify_email="admin@example.com",
    )


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def client(db_session, settings, storage, mailer):
    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_storage] = lambda: storage
    app.dependency_overrides[get_mailer] = lambda: mailer
    yield TestClient(app)
    app.dependency_overrides.clear()
