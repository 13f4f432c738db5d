"""
Shared test fixtures.

Sets up an isolated SQLite database so tests never touch the real
one, and replaces outbound mail with an in-memory outbox.
"""

import re
from dataclasses import dataclass

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from maker_checker.main import app
from maker_checker.models.base import Base, get_db
from maker_checker.models.enums import UserRole
from maker_checker.models.user import User
from maker_checker.services.auth_service import hash_password
from maker_checker.services.notification_service import Mailer, MailResult, get_mailer


TEST_DATABASE_URL = "sqlite:///./test.db"

engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
)

TestSessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)

TEST_PASSWORD = "secret-pass"


@dataclass
class SentMail:
    to: str
    subject: str
    text_body: str


class FakeMailer(Mailer):
    """Records every message. Set fail=True to simulate an outage."""

    def __init__(self):
        self.outbox: list[SentMail] = []
        self.fail = False

    def send_mail(self, to, subject, html_body, text_body) -> MailResult:
        if self.fail:
            return MailResult(success=False, error="SMTP unavailable")
        self.outbox.append(SentMail(to, subject, text_body))
        return MailResult(success=True, message_id=f"<fake-{len(self.outbox)}@test>")

    def last_code(self, to: str | None = None) -> str:
        """The 6-digit code in the most recent message (to one address)."""
        for mail in reversed(self.outbox):
            if to is None or mail.to == to:
                match = re.search(r"\b(\d{6})\b", mail.text_body)
                if match:
                    return match.group(1)
        raise AssertionError(f"No code was mailed to {to or 'anyone'}")


@pytest.fixture(autouse=True)
def setup_database():
    """Create all tables before each test, drop them after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session():
    """Provide a database session for direct service testing."""
    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def client(db_session, mailer):
    """Test client wired to the test session and the fake mailer."""
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer
    yield TestClient(app)
    app.dependency_overrides.clear()


def make_user(db_session, role=UserRole.MAKER, email=None, first_name="Test", **fields):
    user = User(
        email=email or f"{role.value}@example.com",
        first_name=first_name,
        last_name="User",
        password_hash=hash_password(TEST_PASSWORD),
        role=role,
        email_verified=True,
        **fields,
    )
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture
def maker(db_session):
    return make_user(db_session, UserRole.MAKER, first_name="Maya")


@pytest.fixture
def checker(db_session):
    return make_user(db_session, UserRole.CHECKER, first_name="Chen")


@pytest.fixture
def admin(db_session):
    return make_user(db_session, UserRole.ADMIN, first_name="Ada")


@pytest.fixture
def superadmin(db_session):
    return make_user(db_session, UserRole.SUPERADMIN, first_name="Sam")


def auth_headers(user) -> dict:
    return {"X-User-Id": str(user.id)}
