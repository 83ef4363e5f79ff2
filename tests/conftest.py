"""
tests/conftest.py -- Shared test fixtures for authgate unit and integration tests.

This module provides:
  - FrozenClock / RecordingDelivery: deterministic collaborators
  - settings: a Settings instance with a fixed secret and cheap bcrypt rounds
  - store: an isolated in-memory AccountStore per test
  - hasher / codec / reset_tokens / service: the auth components, wired the
    same way api.main.configure_auth() wires them
  - api_client: TestClient over the real app with a patched lifespan

Design: the API fixture uses a file-backed SQLite database under tmp_path
rather than :memory:. TestClient runs sync route handlers in a thread pool,
and a file database gives every worker thread the same schema and data
without relying on SQLite's shared-cache mode.

bcrypt_rounds=4 is bcrypt's minimum cost. It keeps the suite fast; the
production default (12) is exercised only by test_config.py's defaults check.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from api.main import app, configure_auth
from auth.passwords import CredentialHasher
from auth.reset import ResetTokenManager
from auth.service import AuthService
from auth.store import AccountStore
from auth.tokens import TokenCodec
from core.config import Settings

TEST_SECRET = "test-secret-key-0123456789abcdef-0123456789"

# ---------------------------------------------------------------------------
# Deterministic collaborators
# ---------------------------------------------------------------------------


class FrozenClock:
    """Callable clock that only moves when a test advances it."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class RecordingDelivery:
    """ResetDelivery that remembers what it was asked to send."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, str]] = []

    def send_reset(self, email: str, token: str) -> None:
        self.sent.append((email, token))

    @property
    def last_token(self) -> str:
        assert self.sent, "no reset token was delivered"
        return self.sent[-1][1]


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(secret_key=TEST_SECRET, debug=False, bcrypt_rounds=4, expose_reset_tokens=False)


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def delivery() -> RecordingDelivery:
    return RecordingDelivery()


@pytest.fixture
def store() -> Generator[AccountStore, None, None]:
    s = AccountStore("sqlite:///:memory:")
    yield s
    s.close()


@pytest.fixture
def hasher() -> CredentialHasher:
    return CredentialHasher(min_length=6, rounds=4)


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(TEST_SECRET)


@pytest.fixture
def reset_tokens(store: AccountStore) -> ResetTokenManager:
    return ResetTokenManager(store)


@pytest.fixture
def service(
    store: AccountStore,
    hasher: CredentialHasher,
    codec: TokenCodec,
    reset_tokens: ResetTokenManager,
    delivery: RecordingDelivery,
    clock: FrozenClock,
) -> AuthService:
    return AuthService(store, hasher, codec, reset_tokens=reset_tokens, delivery=delivery, clock=clock)


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(settings: Settings, store: AccountStore, delivery: RecordingDelivery):
    """Return an async context manager that replaces the real lifespan.

    Wires the test store and recording delivery into app.state through the
    same configure_auth() the production lifespan uses.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        configure_auth(app, settings, store, delivery=delivery)
        yield

    return test_lifespan


@pytest.fixture
def api_store(tmp_path) -> Generator[AccountStore, None, None]:
    s = AccountStore(f"sqlite:///{tmp_path / 'api_auth.db'}")
    yield s
    s.close()


@pytest.fixture
def api_client(
    settings: Settings,
    api_store: AccountStore,
    delivery: RecordingDelivery,
) -> Generator[tuple[TestClient, RecordingDelivery], None, None]:
    """Yield (client, delivery) for API integration tests.

    The TestClient uses the real FastAPI app with a patched lifespan so tests
    hit real route handlers, the real guard and the real error handlers.
    """
    app.router.lifespan_context = _patch_lifespan(settings, api_store, delivery)
    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, delivery
