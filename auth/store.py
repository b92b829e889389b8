"""
auth/store.py -- SQLAlchemy Core persistence for user records.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Service and dependency code never touches SQL directly.

The store does not enforce role policy (who may become owner, last-owner
protection). Those invariants live in auth/registry.py and auth/bootstrap.py;
the store only guarantees that role is one of the four known values, via a
CHECK constraint.

Security:
  All queries use bound parameters. No f-strings in SQL.

Email handling:
  Every write and lookup goes through normalize_email(), so the UNIQUE index
  on email is effectively case-insensitive.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    create_engine,
    event,
    func,
    select,
)
from sqlalchemy.engine import Engine

from auth.models import OWNER, ROLES, User
from core.config import get_settings

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(50), nullable=False),
    Column("email", String(255), nullable=False, unique=True),
    Column("hashed_password", Text, nullable=False),
    Column("role", String(20), nullable=False, server_default="viewer"),
    Column("is_active", Integer, nullable=False, server_default="1"),
    Column("avatar", Text),
    Column("last_login", String(32)),
    Column("reset_token_hash", String(64), index=True),
    Column("reset_token_expires_at", String(32)),
    Column("created_at", String(32), nullable=False),
    CheckConstraint(f"role IN ({', '.join(repr(r) for r in ROLES)})", name="ck_users_role"),
)

# Fields update_user() accepts. Anything else is a programming error.
_MUTABLE_FIELDS = {
    "name",
    "role",
    "is_active",
    "avatar",
    "hashed_password",
    "last_login",
    "reset_token_hash",
    "reset_token_expires_at",
}


# ---------------------------------------------------------------------------
# WAL mode
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str) -> Engine:
    """Create an engine with the SQLite settings every store in auth/ shares."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        # FastAPI runs sync route handlers in a thread pool.
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def now_iso() -> str:
    # Fixed microsecond precision keeps ISO strings lexically comparable in SQL.
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def normalize_email(email: str) -> str:
    return email.strip().lower()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records.

    Usage:
        store = UserStore("sqlite:///:memory:")
        uid = store.create_user(User(name="Ada", email="ada@x.com", role="viewer", hashed_password=h))
        user = store.get_by_email("ADA@x.com")
        store.close()
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned database ID.

        Raises sqlalchemy.exc.IntegrityError if the email already exists or
        the role is not one of the four known values. Callers translate the
        duplicate case; a concurrent insert of the same email loses here.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _users.insert().values(
                    name=user.name,
                    email=normalize_email(user.email),
                    hashed_password=user.hashed_password,
                    role=user.role,
                    is_active=1 if user.is_active else 0,
                    avatar=user.avatar,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_id(self, user_id: int) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Look up a user by email, case-insensitively. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_reset_token_hash(self, token_hash: str, now: str | None = None) -> User | None:
        """Return the user holding an unexpired reset token with this digest."""
        now = now or now_iso()
        with self.engine.connect() as conn:
            row = conn.execute(
                _users.select().where(
                    (_users.c.reset_token_hash == token_hash) & (_users.c.reset_token_expires_at > now)
                )
            ).fetchone()
        return _row_to_user(row) if row is not None else None

    def list_users(self) -> list[User]:
        """Return all users, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(_users.select().order_by(_users.c.created_at.desc(), _users.c.id.desc())).fetchall()
        return [_row_to_user(r) for r in rows]

    def update_user(self, user_id: int, **fields) -> bool:
        """Update mutable fields on an existing user.

        is_active must be passed as bool; this method converts to int for SQLite.
        Returns True if a row was updated, False if user_id was not found.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if "is_active" in fields:
            fields["is_active"] = 1 if fields["is_active"] else 0
        with self.engine.connect() as conn:
            result = conn.execute(_users.update().where(_users.c.id == user_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def count_active_owners(self, exclude_user_id: int | None = None) -> int:
        """Return the number of active owners, optionally ignoring one user.

        Read at the moment of each mutating role/activation call; there is no
        cached counter to drift out of sync.
        """
        query = select(func.count()).select_from(_users).where((_users.c.role == OWNER) & (_users.c.is_active == 1))
        if exclude_user_id is not None:
            query = query.where(_users.c.id != exclude_user_id)
        with self.engine.connect() as conn:
            result = conn.execute(query).scalar()
        return result or 0

    def update_last_login(self, user_id: int) -> None:
        """Stamp the current UTC timestamp as last_login for the given user."""
        self.update_user(user_id, last_login=now_iso())

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        with self.engine.connect() as conn:
            conn.execute(select(1))
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        name=row.name,
        email=row.email,
        hashed_password=row.hashed_password,
        role=row.role,
        is_active=bool(row.is_active),
        avatar=row.avatar,
        last_login=row.last_login,
        reset_token_hash=row.reset_token_hash,
        reset_token_expires_at=row.reset_token_expires_at,
        created_at=row.created_at,
    )
