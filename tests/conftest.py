"""
Pytest configuration: in-memory SQLite database, service fixtures and an
HTTP client wired to the same session.
"""

import uuid
from datetime import date

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from atom_portal.database.orm_models import Base, Profile, Subscription
from atom_portal.dependencies import get_db_session, get_email_service
from atom_portal.services.auth_service import hash_password
from atom_portal.services.email_service import EmailSendError, EmailService
from atom_portal.utils import add_days, add_months, member_qr_code

TODAY = date(2025, 1, 15)
PASSWORD = "correct-horse-1"
_PASSWORD_HASH = hash_password(PASSWORD)


class FakeEmailService(EmailService):
    """Records messages instead of calling the provider."""

    def __init__(self, configured=True, fail_for=()):
        super().__init__(api_key="re_test" if configured else "", mail_from="gym@example.com" if configured else "")
        self.sent = []
        self.fail_for = set(fail_for)

    def send(self, to, subject, text, html=None):
        if to in self.fail_for:
            raise EmailSendError("provider rejected")
        self.sent.append({"to": to, "subject": subject, "text": text})
        return {"id": f"msg_{len(self.sent)}"}


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    monkeypatch.setenv("APP_TIMEZONE", "UTC")
    monkeypatch.setenv("NEXT_PUBLIC_APP_URL", "https://portal.example.com")
    for key in ("RESEND_API_KEY", "MAIL_FROM", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY", "S3_BUCKET"):
        monkeypatch.delenv(key, raising=False)


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
def session(engine):
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    db = factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def two_sessions(tmp_path):
    """Two sessions on their own connections to a file database."""
    engine = create_engine(f"sqlite:///{tmp_path / 'atom.db'}")
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    first, second = factory(), factory()
    try:
        yield first, second
    finally:
        first.close()
        second.close()
        engine.dispose()


@pytest.fixture
def seed_profile():
    def _seed(db, role="member"):
        uid = str(uuid.uuid4())
        profile = Profile(user_id=uid, email=f"{role}-{uid[:8]}@example.com", role=role, qr_code=member_qr_code(uid))
        db.add(profile)
        db.commit()
        return profile

    return _seed


@pytest.fixture
def today():
    return TODAY


@pytest.fixture
def make_profile(session):
    def _make(role="member", email=None, first_name="Test", last_name="User", phone=None, password=True):
        uid = str(uuid.uuid4())
        profile = Profile(
            user_id=uid,
            email=email or f"{role}-{uid[:8]}@example.com",
            first_name=first_name,
            last_name=last_name,
            phone=phone,
            role=role,
            qr_code=member_qr_code(uid),
            password_hash=_PASSWORD_HASH if password else None,
        )
        session.add(profile)
        session.commit()
        return profile

    return _make


@pytest.fixture
def make_subscription(session):
    def _make(member, plan="1m", start=TODAY, end=None, status="active", sessions_total=None,
              sessions_used=0, amount=None, paid_at=None):
        is_pack = plan == "sessions"
        sub = Subscription(
            member_id=member.user_id,
            plan=plan,
            subscription_type="sessions" if is_pack else "time",
            start_date=start,
            end_date=end or (add_days(start, 45) if is_pack else add_months(start, 1)),
            sessions_total=sessions_total if is_pack else None,
            sessions_used=sessions_used,
            status=status,
            amount=amount,
            paid_at=paid_at,
        )
        session.add(sub)
        session.commit()
        return sub

    return _make


@pytest.fixture
def fake_email():
    return FakeEmailService()


@pytest.fixture
def client(session, fake_email):
    from atom_portal.main import create_app

    app = create_app()

    def _db():
        yield session

    app.dependency_overrides[get_db_session] = _db
    app.dependency_overrides[get_email_service] = lambda: fake_email
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def login(client):
    def _login(profile):
        resp = client.post("/api/auth/login", json={"email": profile.email, "password": PASSWORD})
        assert resp.status_code == 200, resp.text
        return resp.json()["user"]

    return _login


@pytest.fixture
def email_factory():
    return FakeEmailService
