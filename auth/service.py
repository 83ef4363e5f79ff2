"""
auth/service.py -- Registration, login and password-reset orchestration.

AuthService composes the credential hasher, token codec, reset token manager,
account store and reset delivery. It is the only place that sees password
hashes together with account data; every public method returns an AccountView.

Security design decisions:
  Enumeration-safe login: an unknown email still runs a bcrypt verify against
      the hasher's decoy hash before raising InvalidCredentialsError, so "no
      such account" and "wrong password" cost the same and raise the same error.

  Enumeration-safe forgot-password: the method returns normally for unknown
      emails, malformed emails, directory outages and delivery failures alike.
      Unexpected errors on this path are logged with a traceback and dropped.
      The route therefore always answers with the same generic message.

  Validation before storage: password policy and email format are checked
      before the directory is touched.

  Reset atomicity: token consumption and the password overwrite share one
      directory transaction. If the overwrite fails, the token stays unused.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable
from datetime import datetime, timezone

from auth.delivery import LoggingResetDelivery, ResetDelivery
from auth.errors import (
    AccountNotFoundError,
    DeliveryError,
    InvalidCredentialsError,
    InvalidEmailError,
    StorageUnavailableError,
)
from auth.models import Account, AccountView
from auth.passwords import CredentialHasher
from auth.reset import ResetTokenManager
from auth.store import AccountStore
from auth.tokens import TokenCodec

logger = logging.getLogger("authgate.auth")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    """Trim and lowercase an email address."""
    return email.strip().lower()


# Longest address an SMTP path can carry (RFC 5321).
MAX_EMAIL_LENGTH = 254


def _is_valid_email(email: str) -> bool:
    if len(email) > MAX_EMAIL_LENGTH:
        return False
    local, sep, domain = email.partition("@")
    return bool(sep) and bool(local) and bool(domain) and "@" not in domain and not any(c.isspace() for c in email)


class AuthService:
    """Account lifecycle operations on top of the auth components.

    Usage:
        service = AuthService(store, CredentialHasher(), TokenCodec(secret))
        service.register("a@x.com", "secret1")
        account, token = service.login("a@x.com", "secret1")
    """

    def __init__(
        self,
        store: AccountStore,
        hasher: CredentialHasher,
        codec: TokenCodec,
        reset_tokens: ResetTokenManager | None = None,
        delivery: ResetDelivery | None = None,
        expose_reset_tokens: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.store = store
        self.hasher = hasher
        self.codec = codec
        self.reset_tokens = reset_tokens or ResetTokenManager(store)
        self.delivery = delivery or LoggingResetDelivery()
        self.expose_reset_tokens = expose_reset_tokens
        self.clock = clock

    @property
    def token_lifetime_seconds(self) -> int:
        return self.codec.expire_seconds

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    def register(self, email: str, password: str) -> AccountView:
        """Create an account. Raises WeakInputError, InvalidEmailError or DuplicateAccountError."""
        email = normalize_email(email)
        if not _is_valid_email(email):
            raise InvalidEmailError()
        password_hash = self.hasher.hash(password)

        now = self.clock()
        account = Account(
            id=uuid.uuid4().hex,
            email=email,
            password_hash=password_hash,
            created_at=now,
            updated_at=now,
        )
        self.store.insert_account(account)
        logger.info("Account %s registered", account.id)
        return account.view()

    def login(self, email: str, password: str) -> tuple[AccountView, str]:
        """Verify credentials and issue a bearer token.

        Always runs bcrypt whether or not the account exists. Do NOT add an
        early return before the decoy verify -- that re-opens the timing side
        channel for email enumeration.
        """
        email = normalize_email(email)
        account = self.store.find_by_email(email) if _is_valid_email(email) else None
        if account is None:
            self.hasher.verify_decoy(password)
            logger.warning("Failed login: unknown email")
            raise InvalidCredentialsError()
        if not self.hasher.verify(password, account.password_hash):
            logger.warning("Failed login for account %s: wrong password", account.id)
            raise InvalidCredentialsError()

        token = self.codec.issue(account.id, self.clock())
        logger.info("Account %s logged in", account.id)
        return account.view(), token

    def get_account(self, account_id: str) -> AccountView:
        """Return the account view for account_id. Raises AccountNotFoundError."""
        account = self.store.find_by_id(account_id)
        if account is None:
            raise AccountNotFoundError()
        return account.view()

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def forgot_password(self, email: str) -> str | None:
        """Start a reset for email if such an account exists.

        Returns the raw reset token when expose_reset_tokens is enabled and an
        account was found (development shortcut), otherwise None. Never raises
        for conditions that would tell the caller whether the account exists.
        """
        email = normalize_email(email)
        if not _is_valid_email(email):
            logger.info("Forgot-password for malformed email ignored")
            return None
        try:
            account = self.store.find_by_email(email)
            if account is None:
                logger.info("Forgot-password for unknown email ignored")
                return None
            reset_token = self.reset_tokens.create(account.id, self.clock())
            self.delivery.send_reset(account.email, reset_token.token)
        except (StorageUnavailableError, DeliveryError) as exc:
            logger.error("Forgot-password could not be completed: %s", exc.code)
            return None
        except Exception:
            # Must look the same as an unknown email to the caller.
            logger.exception("Forgot-password failed unexpectedly")
            return None

        if self.expose_reset_tokens:
            return reset_token.token
        return None

    def reset_password(self, token: str, new_password: str) -> AccountView:
        """Consume a reset token and set a new password for its account.

        The strength check and hashing happen before the directory is touched.
        Consumption and the hash overwrite run in one transaction, so a failed
        overwrite leaves the token unused.
        """
        new_hash = self.hasher.hash(new_password)

        with self.store.transaction() as tx:
            now = self.clock()
            account_id = self.reset_tokens.using(tx).consume(token, now)
            tx.update_password_hash(account_id, new_hash, now)
            account = tx.find_by_id(account_id)

        logger.info("Password reset completed for account %s", account_id)
        return account.view()
