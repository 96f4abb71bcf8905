"""
Shared fixtures: in-memory SQLite, a TestClient, users with tokens and
recording fake senders so nothing leaves the process.
"""
import os
import tempfile

# Must be set before anything under app/ reads settings
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["ZEPTO_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["TWILIO_ACCOUNT_SID"] = ""
os.environ["TWILIO_AUTH_TOKEN"] = ""
os.environ["TWILIO_FROM_NUMBER"] = ""
os.environ["IMPORT_API_KEY"] = "test-import-key"
os.environ["GENIUS_SEND_STAGGER_SECONDS"] = "0"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="clinic-logos-")
os.environ["MAX_LOGO_BYTES"] = "1024"

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from app.core.database import Base, SessionLocal, engine, get_db
from app.core.security import create_access_token, get_password_hash
from app.main import app
from app.models.clinic import Clinic, ClinicUser
from app.models.user import User

TEST_PASSWORD = "s3cret-pass"


def override_get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def reset_database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


def _make_user(db, email, role):
    user = User(
        email=email,
        password_hash=get_password_hash(TEST_PASSWORD),
        first_name="Test",
        last_name=role.title(),
        role=role,
        is_active=True,
        created_at=datetime.utcnow(),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user):
    token = create_access_token({"sub": user.email, "id": user.id, "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_user(db):
    return _make_user(db, "admin@example.com", "admin")


@pytest.fixture
def clinic_user(db):
    return _make_user(db, "owner@example.com", "clinic")


@pytest.fixture
def admin_headers(admin_user):
    return auth_headers(admin_user)


@pytest.fixture
def clinic_headers(clinic_user):
    return auth_headers(clinic_user)


@pytest.fixture
def clinic(db, clinic_user):
    """A clinic owned by ``clinic_user``."""
    record = Clinic(name="Bright Smiles", slug="bright-smiles", owner_id=clinic_user.id)
    db.add(record)
    db.flush()
    db.add(ClinicUser(clinic_id=record.id, user_id=clinic_user.id, role="owner"))
    db.commit()
    db.refresh(record)
    return record


@pytest.fixture
def other_clinic(db):
    record = Clinic(name="Other Dental", slug="other-dental")
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


class FakeEmailSender:
    def __init__(self, fail_for=()):
        self.calls = []
        self.fail_for = set(fail_for)

    def __call__(self, to_email, subject, html, text=None):
        self.calls.append({"to": to_email, "subject": subject, "html": html, "text": text})
        if to_email in self.fail_for:
            return False, "Provider rejected message"
        return True, None


class FakeTextSender:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def __call__(self, channel, to_phone, body):
        self.calls.append({"channel": channel, "to": to_phone, "body": body})
        if self.fail:
            return False, "Twilio error"
        return True, None


@pytest.fixture
def email_sender():
    return FakeEmailSender()


@pytest.fixture
def text_sender():
    return FakeTextSender()
