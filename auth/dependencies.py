"""
auth/dependencies.py -- Access guard and FastAPI Depends() helpers.

Each protected request moves through:
  Unauthenticated -> TokenExtracted -> TokenVerified -> IdentityResolved

and ends either Authorized (the AccountView is attached to request.state) or
Rejected with one of:
  MissingTokenError      -- no Authorization header, wrong scheme, empty token
  TokenMalformedError    -- bad signature or structure
  TokenExpiredError      -- validity window elapsed
  AccountNotFoundError   -- token is fine but the account no longer exists

The guard raises; it never returns None. The app-level AuthError handler turns
the error into 401 (token problems) or 404 (account gone).

Layer rule: no imports from api/ or core/.
  auth/dependencies.py may import from fastapi (for Request) because this
  module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timezone

from fastapi import Request

from auth.errors import AccountNotFoundError, MissingTokenError
from auth.models import AccountView
from auth.store import AccountStore
from auth.tokens import TokenCodec

_BEARER_SCHEME = "bearer"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def extract_bearer_token(authorization: str | None) -> str:
    """Return the token from an `Authorization: Bearer <token>` header value.

    The scheme is matched case-insensitively. Raises MissingTokenError when the
    header is absent, uses another scheme, or carries no token.
    """
    if not authorization:
        raise MissingTokenError()
    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != _BEARER_SCHEME or not token or " " in token:
        raise MissingTokenError()
    return token


class AccessGuard:
    """Resolves an Authorization header to the account it proves."""

    def __init__(self, codec: TokenCodec, store: AccountStore, clock: Callable[[], datetime] = _utcnow) -> None:
        self.codec = codec
        self.store = store
        self.clock = clock

    def authorize(self, authorization: str | None) -> AccountView:
        token = extract_bearer_token(authorization)
        account_id = self.codec.verify(token, self.clock())
        account = self.store.find_by_id(account_id)
        if account is None:
            # Token outlived its account.
            raise AccountNotFoundError()
        return account.view()


def get_current_account(request: Request) -> AccountView:
    """Require a valid bearer token. Raises an AuthError subclass otherwise.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(account: AccountView = Depends(get_current_account)): ...
    """
    guard: AccessGuard = request.app.state.access_guard
    account = guard.authorize(request.headers.get("Authorization"))
    request.state.account = account
    return account
