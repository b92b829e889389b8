"""
auth/refresh_store.py -- Persistence and rotation for refresh credentials.

Pattern: Repository + Data Mapper (same as auth/store.py).

Rotation protocol:
  rotate() marks the presented token revoked AND inserts its successor in a
  single transaction. The UPDATE is conditional on the presented row still
  being active, unrevoked and unexpired at the moment of the write, so two
  concurrent refreshes presenting the same token serialize on the database
  write lock and exactly one of them matches a row. The loser sees
  rowcount == 0 and the transaction is rolled back without inserting
  anything.

  If inserting the successor fails, the transaction rolls back and the
  presented token is left untouched: it stays valid until it expires rather
  than locking the user out.

Records are never deleted by normal operation. purge_expired() exists for
retention housekeeping and is only called from the maintenance CLI.
"""

from __future__ import annotations

import logging
from datetime import datetime

from sqlalchemy import Column, Integer, MetaData, String, Table
from sqlalchemy.engine import Engine

from auth.models import RefreshToken
from auth.store import make_engine, now_iso, to_iso
from core.config import get_settings

logger = logging.getLogger("trafficauth.refresh")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_refresh_tokens = Table(
    "refresh_tokens",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("token", String(128), nullable=False, unique=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("expires_at", String(32), nullable=False, index=True),
    Column("created_by_ip", String(64)),
    Column("created_at", String(32), nullable=False),
    Column("revoked_at", String(32)),
    Column("revoked_by_ip", String(64)),
    # Successor in the rotation chain; NULL for logout / bulk revocation.
    Column("replaced_by_token", String(128)),
    Column("is_active", Integer, nullable=False, server_default="1"),
)


def _still_valid(now: str):
    """SQL form of RefreshToken.is_valid()."""
    return (
        (_refresh_tokens.c.is_active == 1)
        & (_refresh_tokens.c.revoked_at.is_(None))
        & (_refresh_tokens.c.expires_at > now)
    )


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class RefreshTokenStore:
    """Repository for RefreshToken records.

    Usage:
        store = RefreshTokenStore("sqlite:///:memory:")
        store.create(RefreshToken(token=t, user_id=1, expires_at=iso))
        rotated = store.rotate(t, successor, ip="10.0.0.1")
    """

    def __init__(self, db_url: str | None = None) -> None:
        self.engine: Engine = make_engine(db_url or get_settings().database_url)
        _metadata.create_all(self.engine)

    def create(self, record: RefreshToken) -> int:
        """Insert a refresh record and return its ID.

        Raises on any persistence failure; the caller must not hand out the
        token in that case.
        """
        with self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.insert().values(**_record_values(record)))
            conn.commit()
            return result.inserted_primary_key[0]

    def get_by_token(self, token: str) -> RefreshToken | None:
        with self.engine.connect() as conn:
            row = conn.execute(_refresh_tokens.select().where(_refresh_tokens.c.token == token)).fetchone()
        return _row_to_refresh_token(row) if row is not None else None

    def list_active_for_user(self, user_id: int) -> list[RefreshToken]:
        """Return the user's currently valid sessions, newest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _refresh_tokens.select()
                .where((_refresh_tokens.c.user_id == user_id) & _still_valid(now_iso()))
                .order_by(_refresh_tokens.c.created_at.desc())
            ).fetchall()
        return [_row_to_refresh_token(r) for r in rows]

    def rotate(self, presented: str, successor: RefreshToken, ip: str | None) -> bool:
        """Atomically revoke `presented` and persist `successor`.

        Returns True if this call won the rotation, False if the presented
        token was no longer valid at write time (already rotated, revoked or
        expired). Persistence errors propagate after rollback.
        """
        now = now_iso()
        with self.engine.connect() as conn:
            result = conn.execute(
                _refresh_tokens.update()
                .where((_refresh_tokens.c.token == presented) & _still_valid(now))
                .values(
                    revoked_at=now,
                    revoked_by_ip=ip,
                    is_active=0,
                    replaced_by_token=successor.token,
                )
            )
            if result.rowcount == 0:
                conn.rollback()
                return False
            conn.execute(_refresh_tokens.insert().values(**_record_values(successor)))
            conn.commit()
        return True

    def revoke_one(self, token: str, ip: str | None) -> bool:
        """Revoke a single token. Returns True if a row changed.

        Unknown or already-inactive tokens are not an error; logout is
        idempotent.
        """
        with self.engine.connect() as conn:
            result = conn.execute(
                _refresh_tokens.update()
                .where((_refresh_tokens.c.token == token) & (_refresh_tokens.c.is_active == 1))
                .values(revoked_at=now_iso(), revoked_by_ip=ip, is_active=0)
            )
            conn.commit()
        return result.rowcount > 0

    def revoke_all(self, user_id: int, ip: str | None) -> int:
        """Revoke every active token the user holds. Returns the number revoked."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _refresh_tokens.update()
                .where((_refresh_tokens.c.user_id == user_id) & (_refresh_tokens.c.is_active == 1))
                .values(revoked_at=now_iso(), revoked_by_ip=ip, is_active=0)
            )
            conn.commit()
        if result.rowcount:
            logger.info("Revoked %d refresh token(s) for user_id=%s", result.rowcount, user_id)
        return result.rowcount

    def purge_expired(self, before: datetime) -> int:
        """Delete records whose expiry is earlier than `before`. Returns the count."""
        with self.engine.connect() as conn:
            result = conn.execute(_refresh_tokens.delete().where(_refresh_tokens.c.expires_at < to_iso(before)))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Mappers
# ---------------------------------------------------------------------------


def _record_values(record: RefreshToken) -> dict:
    return {
        "token": record.token,
        "user_id": record.user_id,
        "expires_at": record.expires_at,
        "created_by_ip": record.created_by_ip,
        "created_at": record.created_at or now_iso(),
        "revoked_at": record.revoked_at,
        "revoked_by_ip": record.revoked_by_ip,
        "replaced_by_token": record.replaced_by_token,
        "is_active": 1 if record.is_active else 0,
    }


def _row_to_refresh_token(row) -> RefreshToken:
    return RefreshToken(
        id=row.id,
        token=row.token,
        user_id=row.user_id,
        expires_at=row.expires_at,
        created_by_ip=row.created_by_ip,
        created_at=row.created_at,
        revoked_at=row.revoked_at,
        revoked_by_ip=row.revoked_by_ip,
        replaced_by_token=row.replaced_by_token,
        is_active=bool(row.is_active),
    )
