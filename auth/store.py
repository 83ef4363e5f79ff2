"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper. AccountStore is the repository (the
account directory the auth core talks to); _row_to_account / _row_to_reset_token
are the mappers. Service and route code never touches SQL directly.

Concurrency guarantees live here, not in the service:
  Email uniqueness is a UNIQUE constraint. Two concurrent registrations with the
  same email produce one row; the loser's IntegrityError becomes
  DuplicateAccountError.

  Reset token consumption is a single conditional UPDATE
  (... SET used = 1 WHERE token = :token AND used = 0). Exactly one concurrent
  caller sees rowcount == 1; everyone else sees 0.

  transaction() yields a store bound to one connection inside engine.begin(),
  so a multi-step operation (consume reset token + overwrite password hash)
  commits or rolls back as a unit.

Failure handling:
  Any SQLAlchemy error other than IntegrityError (locked database, timeout,
  lost connection, driver faults) surfaces as StorageUnavailableError. It is
  never retried here. IntegrityError propagates so callers can map
  constraint violations themselves.

Security:
  All queries use bound parameters. No f-strings in SQL.

Timestamps are stored as ISO 8601 UTC strings and parsed back into aware
datetimes by the mappers.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import Column, Index, Integer, MetaData, String, Table, Text, create_engine, event, text
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.errors import AccountNotFoundError, DuplicateAccountError, StorageUnavailableError
from auth.models import Account, ResetToken

logger = logging.getLogger("authgate.auth.store")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", String(32), primary_key=True),  # uuid4 hex
    Column("email", String(255), nullable=False, unique=True),  # normalized lowercase
    Column("password_hash", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_reset_tokens = Table(
    "password_reset_tokens",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("account_id", String(32), nullable=False),
    Column("token", String(64), nullable=False, unique=True),
    Column("expires_at", String(32), nullable=False),
    Column("used", Integer, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Index("idx_password_reset_tokens_account_id", "account_id"),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers do not block behind a writer.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat()


def _from_iso(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class AccountStore:
    """Repository for Account and ResetToken entities.

    Usage:
        store = AccountStore("sqlite:///:memory:")
        store.insert_account(account)
        found = store.find_by_email("a@x.com")
        with store.transaction() as tx:
            tx.mark_reset_token_used(token)
            tx.update_password_hash(account_id, new_hash, now)
        store.close()
    """

    def __init__(self, db_url: str, timeout_seconds: float = 5.0) -> None:
        connect_args: dict = {}
        engine_kwargs: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            # sqlite3 waits this long on a locked database before raising
            # OperationalError, which becomes StorageUnavailableError.
            connect_args["timeout"] = timeout_seconds
        else:
            engine_kwargs["pool_timeout"] = timeout_seconds
        self.engine: Engine = create_engine(db_url, connect_args=connect_args, **engine_kwargs)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)
        self._conn: Connection | None = None

    @classmethod
    def _bound_to(cls, engine: Engine, conn: Connection) -> AccountStore:
        """Return a store whose every call runs on conn (no per-call commit)."""
        bound = cls.__new__(cls)
        bound.engine = engine
        bound._conn = conn
        return bound

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        try:
            if self._conn is not None:
                # The enclosing transaction() owns commit and rollback.
                yield self._conn
            else:
                with self.engine.begin() as conn:
                    yield conn
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            logger.error("Account directory unavailable: %s", exc.orig if exc.orig is not None else exc)
            raise StorageUnavailableError() from exc

    @contextmanager
    def transaction(self) -> Iterator[AccountStore]:
        """Run several directory calls as one unit: all commit or none do."""
        if self._conn is not None:
            yield self
            return
        try:
            with self.engine.begin() as conn:
                yield AccountStore._bound_to(self.engine, conn)
        except IntegrityError:
            raise
        except SQLAlchemyError as exc:
            logger.error("Account directory unavailable: %s", exc.orig if exc.orig is not None else exc)
            raise StorageUnavailableError() from exc

    def ping(self) -> bool:
        """Return True if the directory answers a trivial query."""
        try:
            with self._connect() as conn:
                conn.execute(text("SELECT 1"))
        except StorageUnavailableError:
            return False
        return True

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def find_by_email(self, email: str) -> Account | None:
        """Look up an account by normalized email. Returns None if not found."""
        with self._connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.email == email)).fetchone()
        return _row_to_account(row) if row is not None else None

    def find_by_id(self, account_id: str) -> Account | None:
        """Look up an account by primary key. Returns None if not found."""
        with self._connect() as conn:
            row = conn.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def insert_account(self, account: Account) -> None:
        """Insert a new account.

        Raises DuplicateAccountError if the email (or id) is already taken.
        The UNIQUE constraint makes this safe against concurrent registrations.
        """
        try:
            with self._connect() as conn:
                conn.execute(
                    _accounts.insert().values(
                        id=account.id,
                        email=account.email,
                        password_hash=account.password_hash,
                        created_at=_to_iso(account.created_at),
                        updated_at=_to_iso(account.updated_at),
                    )
                )
        except IntegrityError as exc:
            raise DuplicateAccountError() from exc

    def update_password_hash(self, account_id: str, password_hash: str, now: datetime) -> None:
        """Overwrite an account's password hash and bump updated_at.

        Raises AccountNotFoundError if no row matched.
        """
        with self._connect() as conn:
            result = conn.execute(
                _accounts.update()
                .where(_accounts.c.id == account_id)
                .values(password_hash=password_hash, updated_at=_to_iso(now))
            )
        if result.rowcount == 0:
            raise AccountNotFoundError()

    # ------------------------------------------------------------------
    # Reset tokens
    # ------------------------------------------------------------------

    def insert_reset_token(self, reset_token: ResetToken) -> None:
        with self._connect() as conn:
            conn.execute(
                _reset_tokens.insert().values(
                    id=reset_token.id,
                    account_id=reset_token.account_id,
                    token=reset_token.token,
                    expires_at=_to_iso(reset_token.expires_at),
                    used=1 if reset_token.used else 0,
                    created_at=_to_iso(reset_token.created_at),
                )
            )

    def find_reset_token(self, token: str) -> ResetToken | None:
        """Look up a reset token by its secret value. O(1) via UNIQUE index."""
        with self._connect() as conn:
            row = conn.execute(_reset_tokens.select().where(_reset_tokens.c.token == token)).fetchone()
        return _row_to_reset_token(row) if row is not None else None

    def mark_reset_token_used(self, token: str) -> bool:
        """Flip used from 0 to 1 in a single conditional UPDATE.

        Returns True for the one caller that performed the flip, False if the
        token is absent or was already used (including by a concurrent caller).
        """
        with self._connect() as conn:
            result = conn.execute(
                _reset_tokens.update()
                .where((_reset_tokens.c.token == token) & (_reset_tokens.c.used == 0))
                .values(used=1)
            )
        return result.rowcount == 1

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        created_at=_from_iso(row.created_at),
        updated_at=_from_iso(row.updated_at),
    )


def _row_to_reset_token(row) -> ResetToken:
    return ResetToken(
        id=row.id,
        account_id=row.account_id,
        token=row.token,
        expires_at=_from_iso(row.expires_at),
        created_at=_from_iso(row.created_at),
        used=bool(row.used),
    )
