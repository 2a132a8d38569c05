"""
Shared pytest fixtures for the MemberDesk test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - make_member / member / responsable / presidence: pre-created members
    - auth_headers: Bearer headers for a member (session registered with
      the inactivity policy)
    - fake_llm: fake Completion Service provider wired into the gateway
"""

import pytest

from memberdesk import create_app
from memberdesk.ai.gateway import LLMGateway, LLMProvider
from memberdesk.core.exceptions import GenerationError
from memberdesk.models import db as _db
from memberdesk.models.member import Member
from memberdesk.services.jwt_service import generate_access_token
from memberdesk.services.session_policy import InactivityPolicy
from memberdesk.storage.local import LocalStorage
from memberdesk.utils.crypto import hash_password

TEST_PASSWORD = "motdepasse123"

# bcrypt is slow on purpose; hash the shared test password once
_PASSWORD_HASH = None


def _password_hash():
    global _PASSWORD_HASH
    if _PASSWORD_HASH is None:
        _PASSWORD_HASH = hash_password(TEST_PASSWORD)
    return _PASSWORD_HASH


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app(tmp_path_factory):
    """Create the Flask application once per test session."""
    application = create_app("testing")
    application.config["STORAGE_ROOT"] = str(tmp_path_factory.mktemp("storage"))
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
def session(app, _setup_db, tmp_path):
    """Per-test: fresh storage, sessions and gateway; rollback + recreate tables."""
    app.extensions["storage"] = LocalStorage(str(tmp_path / "storage"))
    app.extensions["inactivity_policy"] = InactivityPolicy(timeout_seconds=3600)
    app.extensions.pop("llm_gateway", None)
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Members & auth ───────────────────────────────────────────────────────


@pytest.fixture()
def make_member():
    """Factory: make_member(email, role="normal", pole="etude", full_name=None)."""

    def _make(email, role="normal", pole="etude", full_name=None):
        m = Member(
            email=email,
            password_hash=_password_hash(),
            full_name=full_name or email.split("@")[0].title(),
            role=role,
            pole=pole,
        )
        _db.session.add(m)
        _db.session.commit()
        return m

    return _make


@pytest.fixture()
def member(make_member):
    return make_member("lea@capisen.fr", full_name="Léa Martin")


@pytest.fixture()
def responsable(make_member):
    return make_member("resp@capisen.fr", role="responsable", pole="etude", full_name="Hugo Resp")


@pytest.fixture()
def presidence(make_member):
    return make_member("pres@capisen.fr", role="presidence", pole="presidence", full_name="Inès Prez")


@pytest.fixture()
def auth_headers(app):
    """auth_headers(member) → {"Authorization": "Bearer ..."}"""

    def _headers(m):
        token, session_id = generate_access_token(m.id, m.role, m.pole)
        app.extensions["inactivity_policy"].start(session_id, m.id)
        return {"Authorization": f"Bearer {token}"}

    return _headers


# ── Completion Service fake ──────────────────────────────────────────────


class FakeProvider(LLMProvider):
    """Records every call; replies from ``replies`` or raises ``error``."""

    def __init__(self):
        self.calls = []
        self.replies = []
        self.error = None

    def chat(self, messages, model, *, system=None, max_tokens=1500):
        self.calls.append({
            "messages": [dict(m) for m in messages],
            "model": model,
            "system": system,
            "max_tokens": max_tokens,
        })
        if self.error is not None:
            raise self.error
        text = self.replies.pop(0) if self.replies else f"Réponse {len(self.calls)}"
        return {"content": text, "prompt_tokens": 12, "completion_tokens": 8, "model": model}


@pytest.fixture()
def fake_llm(app):
    provider = FakeProvider()
    app.extensions["llm_gateway"] = LLMGateway(app=app, providers={"anthropic": provider})
    return provider


@pytest.fixture()
def upstream_error():
    return GenerationError("Overloaded", upstream_status=529)


@pytest.fixture()
def password():
    """Plain-text password of every member built by ``make_member``."""
    return TEST_PASSWORD
