"""
auth/store.py -- SQLAlchemy Core persistence layer for identities.

Pattern: Repository + Data Mapper.
IdentityStore is the repository; _row_to_identity is the mapper. Service and
route code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  Email uniqueness is a UNIQUE column. insert_identity() lets the resulting
  IntegrityError propagate; the credential manager turns it into a
  CredentialsTakenError.

Rotation state:
  refresh_token_hash / refresh_token_expires_at are only ever written by
  update_identity_refresh_state(), which is a single UPDATE statement. When
  the caller passes expected_hash, the stored digest is part of the WHERE
  clause, so two concurrent rotations of the same token cannot both land.

Timestamps are stored as fixed-width UTC ISO-8601 strings (always with
microseconds and +00:00), so comparing them as strings in SQL is the same as
comparing them chronologically.

DB path: auth/refreshgate_auth.db unless DATABASE_URL says otherwise.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine

from auth.models import Identity

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_identities = Table(
    "identities",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("password_hash", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
    Column("refresh_token_hash", String(64)),  # HMAC-SHA256 hex, NULL until first issue
    Column("refresh_token_expires_at", String(32)),
)


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode so readers are not blocked by a rotation write.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_iso(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _now_iso() -> str:
    return _to_iso(datetime.now(timezone.utc))


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class IdentityStore:
    """Repository for Identity records.

    Usage:
        store = IdentityStore()
        identity = store.insert_identity("a@x.com", hash_password("secret"))
        store.update_identity_refresh_state(identity.id, digest, expires_at)
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        connect_args: dict = {}
        if db_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
        self.engine: Engine = create_engine(db_url, connect_args=connect_args)
        if db_url.startswith("sqlite"):
            event.listen(self.engine, "connect", _set_wal_mode)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Identity queries
    # ------------------------------------------------------------------

    def insert_identity(self, email: str, password_hash: str) -> Identity:
        """Insert a new identity and return it with its assigned id.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        """
        created_at = _now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _identities.insert().values(
                    email=email,
                    password_hash=password_hash,
                    created_at=created_at,
                )
            )
            conn.commit()
            identity_id = result.inserted_primary_key[0]
        return Identity(
            id=identity_id,
            email=email,
            password_hash=password_hash,
            created_at=_from_iso(created_at),
        )

    def find_identity_by_email(self, email: str) -> Identity | None:
        """Look up an identity by exact email (case-sensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_identities.select().where(_identities.c.email == email)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def find_identity_by_id(self, identity_id: int) -> Identity | None:
        """Look up an identity by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_identities.select().where(_identities.c.id == identity_id)).fetchone()
        return _row_to_identity(row) if row is not None else None

    def find_identity_by_id_with_valid_refresh(self, identity_id: int, now: datetime) -> Identity | None:
        """Return the identity only if it holds a refresh digest whose stored expiry is after now.

        This is the server-side expiry gate for refresh. It is independent of
        the exp claim inside the token itself; the refresh flow requires both.
        """
        with self.engine.connect() as conn:
            row = conn.execute(
                _identities.select().where(
                    (_identities.c.id == identity_id)
                    & (_identities.c.refresh_token_hash.is_not(None))
                    & (_identities.c.refresh_token_expires_at > _to_iso(now))
                )
            ).fetchone()
        return _row_to_identity(row) if row is not None else None

    def update_identity_refresh_state(
        self,
        identity_id: int,
        refresh_token_hash: str,
        expires_at: datetime,
        expected_hash: str | None = None,
    ) -> bool:
        """Overwrite the identity's refresh digest and expiry.

        With expected_hash set, the update only applies while the stored digest
        still equals expected_hash (compare-and-swap). Without it the write is
        unconditional.

        Returns True if a row was updated, False if the identity was not found
        or the swap lost to another rotation.
        """
        condition = _identities.c.id == identity_id
        if expected_hash is not None:
            condition = condition & (_identities.c.refresh_token_hash == expected_hash)
        with self.engine.connect() as conn:
            result = conn.execute(
                _identities.update()
                .where(condition)
                .values(
                    refresh_token_hash=refresh_token_hash,
                    refresh_token_expires_at=_to_iso(expires_at),
                )
            )
            conn.commit()
        return result.rowcount > 0

    def count_identities(self) -> int:
        """Return the number of identity records."""
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_identities)).scalar()
        return result or 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_identity(row) -> Identity:
    return Identity(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        created_at=_from_iso(row.created_at),
        refresh_token_hash=row.refresh_token_hash,
        refresh_token_expires_at=_from_iso(row.refresh_token_expires_at),
    )
