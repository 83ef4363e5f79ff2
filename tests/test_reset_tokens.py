"""Unit tests for auth/reset.py -- ResetTokenManager.

Covers:
- create() persists a 1-hour, unused, high-entropy token
- consume() success, then ResetTokenAlreadyUsedError on the second attempt
- unknown token -> ResetTokenNotFoundError
- expiry is checked before the used flag and wins after the 1-hour window
- N concurrent consume() calls on one token: exactly one succeeds
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from threading import Barrier

import pytest

from auth.errors import ResetTokenAlreadyUsedError, ResetTokenExpiredError, ResetTokenNotFoundError
from auth.reset import ResetTokenManager
from auth.store import AccountStore

NOW = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


class TestCreate:
    def test_create_persists_token(self, reset_tokens: ResetTokenManager, store: AccountStore) -> None:
        created = reset_tokens.create("acc1", NOW)
        stored = store.find_reset_token(created.token)
        assert stored is not None
        assert stored.account_id == "acc1"
        assert stored.expires_at == NOW + timedelta(hours=1)
        assert stored.created_at == NOW
        assert stored.used is False

    def test_tokens_are_unique_and_long(self, reset_tokens: ResetTokenManager) -> None:
        tokens = {reset_tokens.create("acc1", NOW).token for _ in range(20)}
        assert len(tokens) == 20
        # token_urlsafe(32) -> 43 characters of base64url
        assert all(len(t) >= 43 for t in tokens)

    def test_custom_ttl(self, store: AccountStore) -> None:
        manager = ResetTokenManager(store, ttl_seconds=600)
        created = manager.create("acc1", NOW)
        assert created.expires_at == NOW + timedelta(minutes=10)


class TestConsume:
    def test_consume_returns_account_id(self, reset_tokens: ResetTokenManager) -> None:
        token = reset_tokens.create("acc1", NOW).token
        assert reset_tokens.consume(token, NOW + timedelta(minutes=5)) == "acc1"

    def test_second_consume_fails(self, reset_tokens: ResetTokenManager) -> None:
        token = reset_tokens.create("acc1", NOW).token
        reset_tokens.consume(token, NOW)
        with pytest.raises(ResetTokenAlreadyUsedError):
            reset_tokens.consume(token, NOW)

    def test_unknown_token(self, reset_tokens: ResetTokenManager) -> None:
        with pytest.raises(ResetTokenNotFoundError):
            reset_tokens.consume("does-not-exist", NOW)

    def test_valid_at_exact_expiry(self, reset_tokens: ResetTokenManager) -> None:
        token = reset_tokens.create("acc1", NOW).token
        assert reset_tokens.consume(token, NOW + timedelta(hours=1)) == "acc1"

    def test_expired_token(self, reset_tokens: ResetTokenManager, store: AccountStore) -> None:
        token = reset_tokens.create("acc1", NOW).token
        with pytest.raises(ResetTokenExpiredError):
            reset_tokens.consume(token, NOW + timedelta(hours=1, seconds=1))
        assert store.find_reset_token(token).used is False, "expired tokens are not marked"

    def test_expired_takes_precedence_over_used(self, reset_tokens: ResetTokenManager) -> None:
        token = reset_tokens.create("acc1", NOW).token
        reset_tokens.consume(token, NOW)
        with pytest.raises(ResetTokenExpiredError):
            reset_tokens.consume(token, NOW + timedelta(hours=2))

    def test_used_and_expired_tokens_are_kept(self, reset_tokens: ResetTokenManager, store: AccountStore) -> None:
        used = reset_tokens.create("acc1", NOW).token
        reset_tokens.consume(used, NOW)
        stale = reset_tokens.create("acc1", NOW).token
        with pytest.raises(ResetTokenExpiredError):
            reset_tokens.consume(stale, NOW + timedelta(days=1))
        assert store.find_reset_token(used) is not None
        assert store.find_reset_token(stale) is not None


def test_concurrent_consume_has_single_winner(tmp_path) -> None:
    """Eight threads race to consume one token; the conditional UPDATE lets one through."""
    store = AccountStore(f"sqlite:///{tmp_path / 'race.db'}", timeout_seconds=30)
    try:
        manager = ResetTokenManager(store)
        token = manager.create("acc1", NOW).token
        workers = 8
        barrier = Barrier(workers)

        def attempt() -> str:
            barrier.wait()
            try:
                return manager.consume(token, NOW)
            except ResetTokenAlreadyUsedError:
                return "already_used"

        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(lambda _: attempt(), range(workers)))

        assert results.count("acc1") == 1, f"expected exactly one winner, got {results}"
        assert results.count("already_used") == workers - 1
        assert store.find_reset_token(token).used is True
    finally:
        store.close()
