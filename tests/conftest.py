"""Shared fixtures.

The database URL and secrets are set before any linkauth module is imported,
because settings and the engine are built at import time. Tests run against
a throwaway SQLite file; every table is emptied after each test.
"""

import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path

_TEST_DIR = Path(tempfile.mkdtemp(prefix="linkauth-tests-"))
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR / 'linkauth.db'}"
os.environ["JWT_SECRET"] = "access-secret-for-tests-0123456789abcdef"
os.environ["JWT_REFRESH_SECRET"] = "refresh-secret-for-tests-0123456789abcdef"
os.environ["EMAIL_BACKEND"] = "log"
os.environ["SEED_ADMIN_EMAIL"] = ""

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import update  # noqa: E402

from linkauth.database import Base, engine, init_db, session_scope  # noqa: E402
from linkauth.main import app  # noqa: E402
from linkauth.models.schema.magic_link import MagicLinkEntry  # noqa: E402
from linkauth.services import email as email_service  # noqa: E402
from linkauth.services.tokens import sign_access  # noqa: E402
from linkauth.services.users import user_store  # noqa: E402


@pytest.fixture(autouse=True)
def database():
    init_db()
    yield
    with engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())


class Outbox:
    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []
        self.fail = False

    def send(self, to_email: str, token: str) -> None:
        if self.fail:
            raise email_service.EmailSendError("SMTP relay unavailable")
        self.sent.append((to_email, token))

    def last_token(self, email: str) -> str:
        for to_email, token in reversed(self.sent):
            if to_email == email:
                return token
        raise AssertionError(f"no magic link sent to {email}")


@pytest.fixture()
def outbox(monkeypatch) -> Outbox:
    box = Outbox()
    monkeypatch.setattr(email_service, "send_magic_link_email", box.send)
    return box


@pytest.fixture()
def client():
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture()
def make_user():
    def _make(email: str, role: str = "user"):
        return user_store.create_user(email, role=role)

    return _make


def bearer(user) -> dict:
    token, _ = sign_access(user.id, user.email, user.role)
    return {"Authorization": f"Bearer {token}"}


def expire_link(token: str) -> None:
    with session_scope() as session:
        session.execute(
            update(MagicLinkEntry)
            .where(MagicLinkEntry.token == token)
            .values(expires_at=datetime.now(timezone.utc))
        )


def login(client: TestClient, outbox: Outbox, email: str) -> dict:
    response = client.post("/auth/magic-link/request", json={"email": email})
    assert response.status_code == 200
    verify = client.post(
        "/auth/magic-link/verify", json={"token": outbox.last_token(email)}
    )
    assert verify.status_code == 200, verify.text
    return verify.json()
