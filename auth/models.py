"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Dataclasses own
domain shape; the store and service do the work.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime


@dataclass
class Account:
    """A registered identity.

    id is a uuid4 hex string (128 random bits) assigned by the service.
    email is stored normalized (trimmed, lowercase) and is unique in the store.

    password_hash is excluded from repr so it cannot leak through log lines or
    tracebacks. It never leaves the service -- callers get an AccountView.
    """

    id: str
    email: str
    password_hash: str = field(repr=False)
    created_at: datetime
    updated_at: datetime

    def view(self) -> AccountView:
        return AccountView(
            id=self.id,
            email=self.email,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@dataclass(frozen=True)
class AccountView:
    """Public projection of an Account. Safe to return to HTTP clients."""

    id: str
    email: str
    created_at: datetime
    updated_at: datetime


@dataclass
class ResetToken:
    """A single-use, time-bounded password reset secret.

    token is URL-safe random text with 256 bits of entropy. used flips from
    False to True exactly once, through AccountStore.mark_reset_token_used().
    Rows are kept after use or expiry as an audit trail.
    """

    id: str
    account_id: str
    token: str = field(repr=False)
    expires_at: datetime
    created_at: datetime
    used: bool = False

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at
