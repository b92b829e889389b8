"""
auth/tokens.py -- JWT, password hashing, opaque token and authentication utilities.

Security design decisions:
  JWT: python-jose with HS256. Access tokens are signed with SECRET_KEY and
       carry user_id, email, role, issue time and expiry. They are NOT checked
       against storage: a leaked access token stays usable until its short TTL
       elapses, even after logout. That is the accepted cost of stateless
       verification; refresh tokens are the revocable part of a session.

  Passwords: bcrypt used directly. The _DUMMY_HASH constant enables timing
       equalization in authenticate_user() so response time does not reveal
       whether an email is registered [C1].

  Refresh / reset tokens: secrets.token_hex() gives 320 / 256 bits of
       entropy. Reset tokens are stored as SHA-256 digests so a DB leak does
       not hand out working reset links. A fast hash is enough for
       high-entropy random values.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import bcrypt
from jose import JWTError, jwt

from auth.errors import AuthenticationError, AuthorizationError, NotFoundError
from auth.models import Principal
from core.config import get_settings

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("trafficauth.auth")

# ---------------------------------------------------------------------------
# Config -- read once at module load via the lru_cache singleton [M6]
# ---------------------------------------------------------------------------

_settings = get_settings()

_ALGORITHM = "HS256"

# ---------------------------------------------------------------------------
# Password hashing (bcrypt -- direct usage, no passlib wrapper)
# ---------------------------------------------------------------------------


def hash_password(plain: str) -> str:
    """Return a bcrypt hash of the given plaintext password.

    bcrypt truncates input beyond 72 bytes. The API layer caps password
    length at 128 characters, and the hash is only as strong as the first
    72 bytes anyway.
    """
    salt = bcrypt.gensalt(rounds=_settings.password_hash_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Malformed stored hash -- treat as a mismatch, never as a match.
        return False


# Timing equalization dummy hash [C1]. Computed once at module load so the
# first login attempt is not measurably slower than subsequent ones.
_DUMMY_HASH: str = hash_password("trafficauth_timing_dummy")


# ---------------------------------------------------------------------------
# JWT encode / decode
# ---------------------------------------------------------------------------


def create_access_token(user_id: int, email: str, role: str, expire_seconds: int = 0) -> str:
    """Encode a signed JWT with user identity and a short expiry.

    Args:
        user_id:        Numeric user ID stored in the DB.
        email:          Normalized email, also used as the subject claim.
        role:           One of auth.models.ROLES.
        expire_seconds: Token lifetime. If 0 (default), uses
                        Settings.access_token_expire_seconds.
    """
    duration = expire_seconds if expire_seconds > 0 else _settings.access_token_expire_seconds
    now = datetime.now(timezone.utc)
    payload = {
        "sub": email,
        "user_id": user_id,
        "email": email,
        "role": role,
        "iat": now,
        "exp": now + timedelta(seconds=duration),
    }
    return jwt.encode(payload, _settings.secret_key, algorithm=_ALGORITHM)


def decode_access_token(token: str) -> dict | None:
    """Decode and verify a JWT. Returns the payload dict or None on any failure.

    Covers bad signatures, expired tokens and structurally valid tokens that
    lack the claims this service issues.
    """
    try:
        payload = jwt.decode(token, _settings.secret_key, algorithms=[_ALGORITHM])
    except JWTError:
        return None
    if not isinstance(payload.get("user_id"), int) or "role" not in payload:
        return None
    return payload


# ---------------------------------------------------------------------------
# Opaque tokens
# ---------------------------------------------------------------------------


def generate_refresh_token() -> str:
    """Return 40 random bytes as 80 hex characters."""
    return secrets.token_hex(40)


def generate_reset_token() -> str:
    return secrets.token_hex(32)


def hash_reset_token(raw_token: str) -> str:
    """SHA-256 digest of a reset token. Deterministic, so the store can look it up directly."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


# ---------------------------------------------------------------------------
# Password login (constant-time) [C1]
# ---------------------------------------------------------------------------


def authenticate_user(store: UserStore, email: str, password: str) -> User:
    """Verify an email/password login with timing equalization.

    Always runs bcrypt whether or not the user exists:
    - Unknown email: bcrypt runs against _DUMMY_HASH (same cost as real check)
    - Wrong password: bcrypt runs against the real hash (same cost)

    Both cases raise the same AuthenticationError. The active flag is checked
    only after the password matched, so a 403 never leaks to a caller who
    does not know the password.
    """
    user = store.get_by_email(email)
    if user is None or user.hashed_password is None:
        # Equalize timing -- do NOT return early before running bcrypt [C1]
        verify_password(password, _DUMMY_HASH)
        raise AuthenticationError("Invalid credentials.")
    if not verify_password(password, user.hashed_password):
        raise AuthenticationError("Invalid credentials.")
    if not user.is_active:
        raise AuthorizationError("Account is deactivated. Please contact an administrator.")
    return user


# ---------------------------------------------------------------------------
# Access-token verification
# ---------------------------------------------------------------------------


def resolve_principal(store: UserStore, token: str | None) -> Principal:
    """Verify a presented access token and resolve the calling principal.

    Pure verify-then-lookup; performs no writes.

    Raises:
        AuthenticationError: token absent, badly signed, expired or malformed.
        NotFoundError:       token valid but the user no longer exists.
        AuthorizationError:  token valid but the account is deactivated.
    """
    if not token:
        raise AuthenticationError()
    payload = decode_access_token(token)
    if payload is None:
        raise AuthenticationError()
    user = store.get_by_id(payload["user_id"])
    if user is None:
        raise NotFoundError("User not found.")
    if not user.is_active:
        raise AuthorizationError("Account is deactivated.")
    # Role and email come from the store, not the token.
    return Principal(id=user.id, role=user.role, email=user.email)
