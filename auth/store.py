"""
auth/store.py -- SQLAlchemy Core persistence layer for credential entities.

Pattern: Repository + Data Mapper. CredentialStore is the repository (one
section per entity: accounts, sessions, recovery codes); the _row_to_*
functions are the mappers. Managers and routes never touch SQL directly and
only ever see the dataclasses from auth/models.py.

Transactions:
  Every method takes an optional ``conn``. Without it the method runs in its
  own short transaction. With it the call joins the caller's transaction,
  opened through transaction():

      with store.transaction() as conn:
          store.create_recovery_code(code, conn=conn)
          publisher.publish(...)       # raises -> everything rolls back

  transaction() commits on normal exit and rolls back on any exception,
  including task cancellation. A caller may also roll back explicitly with
  conn.rollback(); the context manager then skips the commit.

Constraints:
  UNIQUE(email), UNIQUE(username), UNIQUE(account_id, ip_address, user_agent)
  on sessions and UNIQUE(account_id) on recovery_codes are enforced by the
  database. IntegrityError is translated to ConflictError so concurrent
  writers see a distinguishable conflict, never a crash.

Security:
  All queries use bound parameters. No f-strings in SQL.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    select,
    text,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError

from auth.models import Account, DeviceSession, RecoveryCode, Role
from core.errors import ConflictError

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_accounts = Table(
    "accounts",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(320), nullable=False, unique=True),
    Column("username", String(20), unique=True),  # NULL allowed, unique when set
    Column("hashed_password", Text),  # NULL for OAuth-only accounts
    Column("role", String(10), nullable=False, server_default=Role.USER.value),
    Column("avatar_url", Text),
    Column("is_activated", Boolean, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("account_id", Integer, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False),
    Column("hashed_refresh_token", Text),  # NULL = logged out on this device
    Column("ip_address", String(45), nullable=False),
    Column("user_agent", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    UniqueConstraint("account_id", "ip_address", "user_agent", name="uq_sessions_device"),
)

_recovery_codes = Table(
    "recovery_codes",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column(
        "account_id",
        Integer,
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    ),
    Column("code", String(6), nullable=False),
    Column("expires_at", BigInteger, nullable=False),  # epoch milliseconds
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

# Columns update_account() may write. Anything else is a programming error.
_ACCOUNT_FIELDS = frozenset({"email", "username", "hashed_password", "role", "avatar_url", "is_activated"})

# Dialects with a native single-statement upsert.
_UPSERT_INSERTS = {
    "sqlite": sqlite_insert,
    "postgresql": pg_insert,
}


# ---------------------------------------------------------------------------
# SQLite connection setup
# ---------------------------------------------------------------------------


def _configure_sqlite(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode and foreign-key enforcement.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. foreign_keys=ON is what makes the
    ON DELETE CASCADE clauses take effect.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")
    dbapi_conn.execute("PRAGMA foreign_keys=ON")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class CredentialStore:
    """Repository for Account, DeviceSession and RecoveryCode entities.

    Usage:
        store = CredentialStore("sqlite:///auth.db")
        account = store.create_account(Account(email="a@x.com", hashed_password=hash_password("...")))
        store.upsert_session(account.id, "10.0.0.1", "Firefox", fingerprint)
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _configure_sqlite)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    @contextmanager
    def transaction(self) -> Iterator[Connection]:
        """Yield a connection inside one transaction.

        Commit on normal exit (unless the caller already rolled back), roll
        back on any exception and re-raise. BaseException is caught so that
        cancellation also aborts the transaction instead of leaving it open.
        """
        conn = self.engine.connect()
        trans = conn.begin()
        try:
            yield conn
        except BaseException:
            if trans.is_active:
                trans.rollback()
            raise
        else:
            if trans.is_active:
                trans.commit()
        finally:
            conn.close()

    @contextmanager
    def _use(self, conn: Connection | None) -> Iterator[Connection]:
        """Join the caller's transaction, or open a short one of our own."""
        if conn is not None:
            yield conn
        else:
            with self.transaction() as own:
                yield own

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            return conn.execute(text("SELECT 1")).scalar() == 1

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def create_account(self, account: Account, *, conn: Connection | None = None) -> Account | None:
        """Insert a new account and return it as stored.

        Returns None when the driver did not report the new primary key;
        callers re-fetch by email in that case.
        Raises ConflictError if the email or username is already taken.
        """
        now = _now_iso()
        with self._use(conn) as c:
            try:
                result = c.execute(
                    _accounts.insert().values(
                        email=account.email,
                        username=account.username,
                        hashed_password=account.hashed_password,
                        role=Role(account.role).value,
                        avatar_url=account.avatar_url,
                        is_activated=account.is_activated,
                        created_at=now,
                        updated_at=now,
                    )
                )
            except IntegrityError as exc:
                raise ConflictError("An account with this email or username already exists.") from exc
            new_id = result.inserted_primary_key[0] if result.inserted_primary_key else None
            if new_id is None:
                return None
            row = c.execute(_accounts.select().where(_accounts.c.id == new_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_account_by_id(self, account_id: int, *, conn: Connection | None = None) -> Account | None:
        with self._use(conn) as c:
            row = c.execute(_accounts.select().where(_accounts.c.id == account_id)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_account_by_email(self, email: str, *, conn: Connection | None = None) -> Account | None:
        """Look up an account by exact email (case-sensitive, as stored)."""
        with self._use(conn) as c:
            row = c.execute(_accounts.select().where(_accounts.c.email == email)).fetchone()
        return _row_to_account(row) if row is not None else None

    def get_account_by_username(self, username: str, *, conn: Connection | None = None) -> Account | None:
        with self._use(conn) as c:
            row = c.execute(_accounts.select().where(_accounts.c.username == username)).fetchone()
        return _row_to_account(row) if row is not None else None

    def update_account(self, account_id: int, *, conn: Connection | None = None, **fields) -> bool:
        """Update mutable fields on an existing account.

        Accepted fields: email, username, hashed_password, role, avatar_url,
        is_activated. Unknown keys raise ValueError. Callers are responsible
        for hashing: hashed_password must already be a bcrypt hash.

        Returns True if a row was updated, False if account_id was not found.
        Raises ConflictError on an email/username uniqueness violation.
        """
        unknown = set(fields) - _ACCOUNT_FIELDS
        if unknown:
            raise ValueError(f"Unknown account fields: {unknown!r}")
        if not fields:
            return False
        if "role" in fields:
            fields["role"] = Role(fields["role"]).value
        fields["updated_at"] = _now_iso()
        with self._use(conn) as c:
            try:
                result = c.execute(_accounts.update().where(_accounts.c.id == account_id).values(**fields))
            except IntegrityError as exc:
                raise ConflictError("An account with this email or username already exists.") from exc
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Sessions (one row per account + device)
    # ------------------------------------------------------------------

    def get_session(
        self, account_id: int, ip_address: str, user_agent: str, *, conn: Connection | None = None
    ) -> DeviceSession | None:
        with self._use(conn) as c:
            row = c.execute(
                _sessions.select().where(
                    (_sessions.c.account_id == account_id)
                    & (_sessions.c.ip_address == ip_address)
                    & (_sessions.c.user_agent == user_agent)
                )
            ).fetchone()
        return _row_to_session(row) if row is not None else None

    def list_sessions(self, account_id: int, *, conn: Connection | None = None) -> list[DeviceSession]:
        """Return every device session of an account, most recently updated first."""
        with self._use(conn) as c:
            rows = c.execute(
                _sessions.select().where(_sessions.c.account_id == account_id).order_by(_sessions.c.updated_at.desc())
            ).fetchall()
        return [_row_to_session(r) for r in rows]

    def upsert_session(
        self,
        account_id: int,
        ip_address: str,
        user_agent: str,
        hashed_refresh_token: str,
        *,
        conn: Connection | None = None,
    ) -> None:
        """Insert the device session, or replace its token hash if the row exists.

        SQLite and PostgreSQL get a single INSERT ... ON CONFLICT DO UPDATE
        statement, so two concurrent logins from the same device can never
        produce a partial row or a duplicate; the last writer wins. Other
        dialects fall back to update-then-insert inside the transaction.
        """
        now = _now_iso()
        values = {
            "account_id": account_id,
            "ip_address": ip_address,
            "user_agent": user_agent,
            "hashed_refresh_token": hashed_refresh_token,
            "created_at": now,
            "updated_at": now,
        }
        with self._use(conn) as c:
            insert = _UPSERT_INSERTS.get(c.dialect.name)
            if insert is not None:
                stmt = insert(_sessions).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["account_id", "ip_address", "user_agent"],
                    set_={
                        "hashed_refresh_token": stmt.excluded.hashed_refresh_token,
                        "updated_at": stmt.excluded.updated_at,
                    },
                )
                c.execute(stmt)
                return
            result = c.execute(
                _sessions.update()
                .where(
                    (_sessions.c.account_id == account_id)
                    & (_sessions.c.ip_address == ip_address)
                    & (_sessions.c.user_agent == user_agent)
                )
                .values(hashed_refresh_token=hashed_refresh_token, updated_at=now)
            )
            if result.rowcount == 0:
                try:
                    c.execute(_sessions.insert().values(**values))
                except IntegrityError as exc:
                    raise ConflictError("Session was created concurrently for this device.") from exc

    def clear_session_token(
        self, account_id: int, ip_address: str, user_agent: str, *, conn: Connection | None = None
    ) -> bool:
        """Null out the token hash for one device. Never creates a row.

        Returns True if a session row existed for the device.
        """
        with self._use(conn) as c:
            result = c.execute(
                _sessions.update()
                .where(
                    (_sessions.c.account_id == account_id)
                    & (_sessions.c.ip_address == ip_address)
                    & (_sessions.c.user_agent == user_agent)
                )
                .values(hashed_refresh_token=None, updated_at=_now_iso())
            )
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Recovery codes (at most one per account)
    # ------------------------------------------------------------------

    def get_recovery_code(
        self, account_id: int, *, conn: Connection | None = None, for_update: bool = False
    ) -> RecoveryCode | None:
        """Return the account's recovery code row, or None.

        for_update=True takes a row lock on databases that support it
        (PostgreSQL); SQLite serializes writers at the file level instead.
        """
        query = select(_recovery_codes).where(_recovery_codes.c.account_id == account_id)
        if for_update:
            query = query.with_for_update()
        with self._use(conn) as c:
            row = c.execute(query).fetchone()
        return _row_to_recovery_code(row) if row is not None else None

    def create_recovery_code(self, code: RecoveryCode, *, conn: Connection | None = None) -> None:
        """Insert the first recovery code for an account.

        Raises ConflictError if a row already exists (UNIQUE(account_id)) --
        this is how the loser of a concurrent first request is detected.
        """
        now = _now_iso()
        with self._use(conn) as c:
            try:
                c.execute(
                    _recovery_codes.insert().values(
                        account_id=code.account_id,
                        code=code.code,
                        expires_at=code.expires_at,
                        created_at=now,
                        updated_at=now,
                    )
                )
            except IntegrityError as exc:
                raise ConflictError("A recovery code already exists for this account.") from exc

    def renew_recovery_code_if_expired(
        self,
        account_id: int,
        code: str,
        expires_at: int,
        now_ms: int,
        *,
        conn: Connection | None = None,
    ) -> bool:
        """Replace the code and expiry in place, but only if the current one has expired.

        The expiry check lives in the WHERE clause so two concurrent renewals
        cannot both succeed: the second sees the fresh expiry and matches no
        row. Returns True if this call performed the renewal.
        """
        with self._use(conn) as c:
            result = c.execute(
                _recovery_codes.update()
                .where((_recovery_codes.c.account_id == account_id) & (_recovery_codes.c.expires_at <= now_ms))
                .values(code=code, expires_at=expires_at, updated_at=_now_iso())
            )
        return result.rowcount == 1

    def delete_recovery_code(self, account_id: int, *, conn: Connection | None = None) -> bool:
        with self._use(conn) as c:
            result = c.execute(_recovery_codes.delete().where(_recovery_codes.c.account_id == account_id))
        return result.rowcount > 0

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_account(row) -> Account:
    return Account(
        id=row.id,
        email=row.email,
        username=row.username,
        hashed_password=row.hashed_password,
        role=Role(row.role),
        avatar_url=row.avatar_url,
        is_activated=bool(row.is_activated),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_session(row) -> DeviceSession:
    return DeviceSession(
        id=row.id,
        account_id=row.account_id,
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        hashed_refresh_token=row.hashed_refresh_token,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_recovery_code(row) -> RecoveryCode:
    return RecoveryCode(
        id=row.id,
        account_id=row.account_id,
        code=row.code,
        expires_at=int(row.expires_at),
    )
