"""
auth/tokens.py -- Bearer token (JWT) issuance and verification.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry only {sub, iat, exp}: the account
       id and the validity window. Anything else about the account is looked
       up fresh by the access guard, so a token never carries stale data.

  Expiry is checked against the caller-supplied `now` rather than the wall
       clock inside python-jose (verify_exp is disabled and re-implemented
       here). The comparison is exact unless a leeway is configured. Claims
       are whole epoch seconds; a sub-second issue time pushes exp up to the
       next second, never down.

  Failure modes are kept apart: signature or structure problems raise
       TokenMalformedError, an elapsed window raises TokenExpiredError. The
       HTTP layer reports both as 401 with distinct codes.

  The signing secret is injected at construction from Settings.secret_key.
       There is no module-level secret, so tests can run codecs with distinct
       keys side by side.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import math
from datetime import datetime

from jose import JWTError, jwt

from auth.errors import TokenExpiredError, TokenMalformedError

_ALGORITHM = "HS256"

# Default bearer token lifetime: 24 hours from issuance.
DEFAULT_EXPIRE_SECONDS = 24 * 3600


class TokenCodec:
    """Signs and verifies stateless bearer tokens.

    Usage:
        codec = TokenCodec(settings.secret_key)
        token = codec.issue(account.id, now)
        account_id = codec.verify(token, now)
    """

    def __init__(
        self,
        secret_key: str,
        expire_seconds: int = DEFAULT_EXPIRE_SECONDS,
        leeway_seconds: int = 0,
    ) -> None:
        if not secret_key:
            raise ValueError("TokenCodec requires a non-empty secret key.")
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds
        self.leeway_seconds = leeway_seconds

    def issue(self, account_id: str, now: datetime) -> str:
        """Encode a signed JWT for account_id, valid for expire_seconds from now."""
        # Claims are whole seconds. iat rounds down and exp rounds up, so a
        # token never lives shorter than expire_seconds.
        issued_at = now.timestamp()
        payload = {
            "sub": account_id,
            "iat": math.floor(issued_at),
            "exp": math.ceil(issued_at) + self.expire_seconds,
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str, now: datetime) -> str:
        """Verify a JWT and return the account id it was issued for.

        Raises TokenMalformedError on a bad signature, a structurally invalid
        token or missing claims; TokenExpiredError once now is past exp.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret_key,
                algorithms=[_ALGORITHM],
                options={"verify_exp": False},
            )
        except JWTError as exc:
            raise TokenMalformedError() from exc

        account_id = payload.get("sub")
        expires_at = payload.get("exp")
        if not isinstance(account_id, str) or not account_id:
            raise TokenMalformedError()
        if not isinstance(expires_at, int) or isinstance(expires_at, bool):
            raise TokenMalformedError()

        if now.timestamp() > expires_at + self.leeway_seconds:
            raise TokenExpiredError()
        return account_id
