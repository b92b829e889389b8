"""
auth/issuer.py -- Mints access/refresh credential pairs.

Access tokens are pure (no I/O). Refresh tokens are only returned to a caller
after they have been written: issue_refresh_token() persists before it
returns, and build_refresh_token() hands back an unsaved record for the
rotation path, where RefreshTokenStore.rotate() persists it in the same
transaction that revokes its predecessor.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from auth.models import RefreshToken, User
from auth.refresh_store import RefreshTokenStore
from auth.store import to_iso
from auth.tokens import create_access_token, generate_refresh_token
from core.config import get_settings


class CredentialIssuer:
    def __init__(self, refresh_store: RefreshTokenStore, refresh_ttl: timedelta | None = None) -> None:
        self.refresh_store = refresh_store
        self.refresh_ttl = refresh_ttl or timedelta(days=get_settings().refresh_token_expire_days)

    def issue_access_token(self, user: User) -> str:
        return create_access_token(user.id, user.email, user.role)

    def build_refresh_token(self, user_id: int, ip: str | None) -> RefreshToken:
        now = datetime.now(timezone.utc)
        return RefreshToken(
            token=generate_refresh_token(),
            user_id=user_id,
            expires_at=to_iso(now + self.refresh_ttl),
            created_by_ip=ip,
            created_at=to_iso(now),
        )

    def issue_refresh_token(self, user_id: int, ip: str | None) -> RefreshToken:
        """Build and persist a refresh record. Persistence errors propagate."""
        record = self.build_refresh_token(user_id, ip)
        record.id = self.refresh_store.create(record)
        return record

    def issue_pair(self, user: User, ip: str | None) -> tuple[str, RefreshToken]:
        # The refresh record is written before any token is returned.
        refresh = self.issue_refresh_token(user.id, ip)
        return self.issue_access_token(user), refresh
