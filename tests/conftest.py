"""Pytest configuration and shared fixtures."""

import os
import tempfile
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

# The app reads its configuration once, on first import
_TEST_DIR = Path(tempfile.mkdtemp(prefix="groupsplit-tests-"))
TEST_DB_URL = f"sqlite:///{_TEST_DIR / 'groupsplit.db'}"
FRONTEND_URL = "http://localhost:5173"

os.environ["GROUPSPLIT_DATABASE_URL"] = TEST_DB_URL
os.environ["GROUPSPLIT_LOG_TO_FILE"] = "0"
os.environ["GROUPSPLIT_SECRET_KEY"] = "Qm7vT2xK9pL4wR8nZ3cY6hJ1fB5dG0sA-test-signing-key"
os.environ["GROUPSPLIT_FRONTEND_URL"] = FRONTEND_URL
os.environ.pop("GROUPSPLIT_SMTP_HOST", None)
os.environ.pop("GROUPSPLIT_CONFIG_FILE", None)

import pytest
from alembic import command
from alembic.config import Config
from fastapi.testclient import TestClient

from groupsplit.auth.rate_limiter import get_rate_limiter
from groupsplit.auth.security import generate_session_token
from groupsplit.config import SmtpConfig
from groupsplit.db.database import Base, SessionLocal, engine, get_db
from groupsplit.db.models import User, UserSession
from groupsplit.services.email import Mailer, get_mailer
from groupsplit.utils.dates import utc_now

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def _run_alembic_migrations(db_url: str) -> None:
    """Run Alembic migrations programmatically for the test database."""
    alembic_cfg = Config()
    alembic_cfg.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", db_url)
    command.upgrade(alembic_cfg, "head")


@pytest.fixture(scope="session", autouse=True)
def migrated_database():
    """Create the schema once for the whole run."""
    _run_alembic_migrations(TEST_DB_URL)
    yield TEST_DB_URL
    engine.dispose()


@pytest.fixture(autouse=True)
def clean_state():
    """Empty every table and forget rate-limit counters after each test."""
    get_rate_limiter().reset()
    yield
    with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            conn.execute(table.delete())
    get_rate_limiter().reset()


@pytest.fixture
def db_session():
    """A session on the test database."""
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture
def mailer() -> Mailer:
    """Mailer without SMTP: messages land in ``mailer.outbox``."""
    return Mailer(smtp=SmtpConfig(), app_name="GroupSplit")


@pytest.fixture
def app():
    from groupsplit.main import app

    return app


@pytest.fixture
def client(app, mailer):
    """Create a test client with database and mailer overrides."""

    def override_get_db():
        # Use a fresh session per request in tests
        db = SessionLocal()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_mailer] = lambda: mailer

    with TestClient(app) as test_client:
        yield test_client

    # Clear overrides to avoid affecting other tests
    app.dependency_overrides.clear()


@dataclass
class AuthenticatedUser:
    """A user with an open session, as the API sees it."""

    id: UUID
    email: str
    name: Optional[str]
    token: str

    @property
    def headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}


@pytest.fixture
def make_user(db_session):
    """Factory for users that already hold a valid session token."""

    def _make(email: str, name: Optional[str] = None) -> AuthenticatedUser:
        user = User(email=email.lower(), name=name, email_verified=True)
        db_session.add(user)
        db_session.flush()
        user_id = user.id

        token, token_hash = generate_session_token()
        db_session.add(
            UserSession(
                user_id=user_id,
                token_hash=token_hash,
                expires_at=utc_now() + timedelta(days=7),
            )
        )
        db_session.commit()
        return AuthenticatedUser(id=user_id, email=email.lower(), name=name, token=token)

    return _make


@pytest.fixture
def alice(make_user) -> AuthenticatedUser:
    return make_user("alice@example.com", "Alice")


@pytest.fixture
def bob(make_user) -> AuthenticatedUser:
    return make_user("bob@example.com", "Bob")


@pytest.fixture
def carol(make_user) -> AuthenticatedUser:
    return make_user("carol@example.com", "Carol")


@pytest.fixture
def create_group(client):
    """Factory creating a group through the API; returns the group detail."""

    def _create(owner: AuthenticatedUser, name: str = "Colocation", **fields: Any) -> Dict:
        response = client.post("/api/groups", json={"name": name, **fields}, headers=owner.headers)
        assert response.status_code == 201, response.text
        return response.json()

    return _create


@pytest.fixture
def invite(client):
    """Factory sending an invitation; returns the invitation."""

    def _invite(group_id: str, inviter: AuthenticatedUser, email: str, name: Optional[str] = None):
        body = {"email": email}
        if name is not None:
            body["name"] = name
        response = client.post(
            f"/api/groups/{group_id}/invitations", json=body, headers=inviter.headers
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _invite


@pytest.fixture
def invitation_token(client):
    """Look up the link token of an invitation from the invitee's pending list."""

    def _token(group_id: str, invitee: AuthenticatedUser) -> str:
        response = client.get("/api/invitations/pending", headers=invitee.headers)
        assert response.status_code == 200, response.text
        return next(
            i["token"] for i in response.json()["invitations"] if i["group"]["id"] == group_id
        )

    return _token


@pytest.fixture
def add_member(client, invite, invitation_token):
    """Factory inviting a user and accepting for them; returns their member id."""

    def _add(group_id: str, inviter: AuthenticatedUser, invitee: AuthenticatedUser) -> str:
        invite(group_id, inviter, invitee.email)
        token = invitation_token(group_id, invitee)
        response = client.post(f"/api/invitations/{token}/accept", headers=invitee.headers)
        assert response.status_code == 200, response.text

        me = client.get(f"/api/groups/{group_id}/members/me", headers=invitee.headers)
        assert me.status_code == 200, me.text
        return me.json()["id"]

    return _add


@pytest.fixture
def shared_group(alice, bob, create_group, add_member) -> SimpleNamespace:
    """Alice's group with Bob as a joined member, both without declared income."""
    group = create_group(alice)
    bob_member = add_member(group["id"], alice, bob)
    return SimpleNamespace(id=group["id"], alice_member=group["my_member_id"], bob_member=bob_member)


@pytest.fixture
def add_expense(client):
    """Factory recording an expense through the API; returns the expense detail."""

    def _add(
        group_id: str,
        author: AuthenticatedUser,
        paid_by: str,
        amount: int,
        participants: List[Union[str, Dict]],
        description: str = "Courses",
        date: str = "2024-03-10",
    ) -> Dict:
        body = {
            "paid_by": paid_by,
            "amount": amount,
            "description": description,
            "date": date,
            "participants": [
                p if isinstance(p, dict) else {"member_id": p} for p in participants
            ],
        }
        response = client.post(
            f"/api/groups/{group_id}/expenses", json=body, headers=author.headers
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _add


@pytest.fixture
def add_settlement(client):
    """Factory recording a repayment from ``payer`` through the API."""

    def _add(
        group_id: str, payer: AuthenticatedUser, to_member: str, amount: int, date: str = "2024-03-15"
    ) -> Dict:
        response = client.post(
            f"/api/groups/{group_id}/settlements",
            json={"to_member": to_member, "amount": amount, "date": date},
            headers=payer.headers,
        )
        assert response.status_code == 201, response.text
        return response.json()

    return _add
