"""
auth/reset.py -- Password reset token lifecycle.

A reset token is a single-use, time-bounded secret that authorizes exactly one
password change for its owning account.

  Generation: secrets.token_urlsafe(32) -- 32 random bytes, 256 bits of
      entropy, URL-safe so it can travel in a reset link unescaped.

  Consumption order: unknown -> expired -> already used -> atomic mark.
      The final mark is the store's conditional UPDATE, so when several callers
      race past the "used" check only one of them actually wins; the rest get
      ResetTokenAlreadyUsedError exactly as a sequential retry would.

  Retention: expired and used tokens are left in place as an audit trail.
      Cleanup belongs to whoever operates the database.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import datetime, timedelta

from auth.errors import ResetTokenAlreadyUsedError, ResetTokenExpiredError, ResetTokenNotFoundError
from auth.models import ResetToken
from auth.store import AccountStore

logger = logging.getLogger("authgate.auth")

# Default reset window: 1 hour from creation.
DEFAULT_TTL_SECONDS = 3600

_TOKEN_BYTES = 32


class ResetTokenManager:
    """Creates and consumes password reset tokens against an AccountStore."""

    def __init__(self, store: AccountStore, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds

    def using(self, store: AccountStore) -> ResetTokenManager:
        """Return a manager with the same policy bound to another store handle.

        Used with AccountStore.transaction() so consumption joins the caller's
        transaction.
        """
        return ResetTokenManager(store, ttl_seconds=self.ttl_seconds)

    def create(self, account_id: str, now: datetime) -> ResetToken:
        """Generate, persist and return a fresh reset token for account_id."""
        reset_token = ResetToken(
            id=uuid.uuid4().hex,
            account_id=account_id,
            token=secrets.token_urlsafe(_TOKEN_BYTES),
            expires_at=now + timedelta(seconds=self.ttl_seconds),
            created_at=now,
            used=False,
        )
        self.store.insert_reset_token(reset_token)
        logger.info("Reset token %s created for account %s", reset_token.id, account_id)
        return reset_token

    def consume(self, token: str, now: datetime) -> str:
        """Mark a reset token used and return the owning account id.

        Raises ResetTokenNotFoundError, ResetTokenExpiredError or
        ResetTokenAlreadyUsedError. Exactly one caller can consume a given
        token, however many try at once.
        """
        reset_token = self.store.find_reset_token(token)
        if reset_token is None:
            raise ResetTokenNotFoundError()
        if reset_token.is_expired(now):
            raise ResetTokenExpiredError()
        if reset_token.used:
            raise ResetTokenAlreadyUsedError()
        if not self.store.mark_reset_token_used(token):
            # Lost the race to a concurrent consumer.
            raise ResetTokenAlreadyUsedError()
        logger.info("Reset token %s consumed for account %s", reset_token.id, reset_token.account_id)
        return reset_token.account_id
