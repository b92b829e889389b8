"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, almost no logic). Dataclasses own
domain shape; stores and services do the work. The one exception is
RefreshToken.is_valid(), which is the validity predicate every caller must
agree on.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

OWNER = "owner"
ADMIN = "admin"
OPERATOR = "operator"
VIEWER = "viewer"

ROLES: tuple[str, ...] = (OWNER, ADMIN, OPERATOR, VIEWER)

# Roles the administrative API may assign. Owner is only ever granted by
# auth/bootstrap.py.
MANAGEABLE_ROLES: tuple[str, ...] = (ADMIN, OPERATOR, VIEWER)


@dataclass
class User:
    """An identity known to the registry.

    email is always stored stripped and lowercased; the store normalizes on
    every write and lookup so "A@X.com" and "a@x.com" are the same account.

    reset_token_hash / reset_token_expires_at are only set between a
    forgot-password request and the matching reset (or expiry).
    """

    name: str
    email: str
    role: str  # "owner", "admin", "operator", "viewer"
    id: int | None = None
    hashed_password: str | None = None
    is_active: bool = True
    avatar: str | None = None
    last_login: str | None = None
    reset_token_hash: str | None = None
    reset_token_expires_at: str | None = None
    created_at: str | None = None


@dataclass
class RefreshToken:
    """A server-side refresh credential.

    Records are never deleted by the core: a revoked or expired record stays
    as an audit trail. replaced_by_token links a rotated record to its
    successor, forming the rotation chain in a flat table.
    """

    token: str
    user_id: int
    expires_at: str  # ISO 8601 UTC
    id: int | None = None
    created_by_ip: str | None = None
    created_at: str | None = None
    revoked_at: str | None = None
    revoked_by_ip: str | None = None
    replaced_by_token: str | None = None
    is_active: bool = True

    def is_expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return now >= datetime.fromisoformat(self.expires_at)

    def is_valid(self, now: datetime | None = None) -> bool:
        """Active, never revoked, and not yet expired."""
        return self.is_active and self.revoked_at is None and not self.is_expired(now)


@dataclass(frozen=True)
class Principal:
    """The authenticated caller attached to request.state by the authenticator."""

    id: int
    role: str
    email: str


@dataclass
class AuthResult:
    """Outcome of register, login and refresh: the user plus a fresh credential pair."""

    user: User
    access_token: str
    refresh_token: str
