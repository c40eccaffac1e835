"""Shared test fixtures: webhook secrets, signing helpers and a temporary database."""

import base64
import hashlib
import hmac
import json

import pytest

from gateway.core.config import Settings
from gateway.db.base import close_db, get_engine, get_session_factory, init_db

CLERK_KEY = b"clerk-test-signing-key-0123456789"
CLERK_WEBHOOK_SECRET = "whsec_" + base64.b64encode(CLERK_KEY).decode("ascii")
STRIPE_WEBHOOK_SECRET = "whsec_stripe_test_secret"


def _encode(payload) -> bytes:
    if isinstance(payload, bytes):
        return payload
    return json.dumps(payload).encode("utf-8")


@pytest.fixture
def sign_clerk():
    """Return a helper that builds svix headers for a body.

    Usage: ``body, headers = sign_clerk(payload, msg_id="msg_1")``
    """

    def _sign(payload, msg_id: str = "msg_test_1", timestamp: str = "1700000000", key: bytes = CLERK_KEY):
        body = _encode(payload)
        signed = f"{msg_id}.{timestamp}.".encode("utf-8") + body
        signature = base64.b64encode(hmac.new(key, signed, hashlib.sha256).digest()).decode("ascii")
        headers = {
            "svix-id": msg_id,
            "svix-timestamp": timestamp,
            "svix-signature": f"v1,{signature}",
            "Content-Type": "application/json",
        }
        return body, headers

    return _sign


@pytest.fixture
def sign_stripe():
    """Return a helper that builds a stripe-signature header for a body."""

    def _sign(payload, timestamp: str = "1700000000", secret: str = STRIPE_WEBHOOK_SECRET):
        body = _encode(payload)
        signed = f"{timestamp}.".encode("utf-8") + body
        signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        headers = {
            "stripe-signature": f"t={timestamp},v1={signature}",
            "Content-Type": "application/json",
        }
        return body, headers

    return _sign


@pytest.fixture
def database_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'gateway.db'}"


@pytest.fixture
def settings(database_url) -> Settings:
    return Settings(
        _env_file=None,
        database_url=database_url,
        clerk_webhook_secret=CLERK_WEBHOOK_SECRET,
        stripe_webhook_secret=STRIPE_WEBHOOK_SECRET,
        stripe_secret_key="",
        webhook_tolerance_seconds=0,
    )


@pytest.fixture
async def engine(database_url):
    """Initialize the global engine on a fresh SQLite file and create tables."""
    await init_db(database_url)
    yield get_engine()
    await close_db()


@pytest.fixture
async def db_session(engine):
    async with get_session_factory()() as session:
        yield session
