"""
auth/service.py -- Account flows: register, login, refresh, logout, passwords.

AuthService composes the registry, the issuer and the refresh store. Route
handlers call one method per endpoint and translate nothing: every failure is
an auth.errors.AuthError subclass that the API maps to a status code.

Enumeration resistance:
  login() and refresh() collapse "no such user" into the same 401 as a bad
  password or a bad token. forgot_password() returns the same result whether
  or not the email is registered.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from auth.errors import AuthenticationError, ValidationError
from auth.issuer import CredentialIssuer
from auth.models import AuthResult, User
from auth.refresh_store import RefreshTokenStore
from auth.registry import IdentityRegistry
from auth.store import UserStore, to_iso
from auth.tokens import authenticate_user, generate_reset_token, hash_reset_token, verify_password
from core.config import get_settings

logger = logging.getLogger("trafficauth.service")

# Out-of-band delivery hook for reset tokens: (user, raw_token) -> None.
ResetTokenSender = Callable[[User, str], None]


def log_reset_token(user: User, raw_token: str) -> None:
    """Default delivery: write the reset token to the server log.

    Email delivery is an external collaborator; deployments that have one
    pass their own sender to AuthService.
    """
    logger.warning("Password reset token for %s: %s", user.email, raw_token)


class AuthService:
    def __init__(
        self,
        user_store: UserStore,
        refresh_store: RefreshTokenStore,
        reset_sender: ResetTokenSender | None = None,
    ) -> None:
        self.user_store = user_store
        self.refresh_store = refresh_store
        self.registry = IdentityRegistry(user_store)
        self.issuer = CredentialIssuer(refresh_store)
        self.reset_sender = reset_sender or log_reset_token
        self._reset_ttl = timedelta(minutes=get_settings().reset_token_expire_minutes)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def register(self, name: str, email: str, password: str, ip: str | None) -> AuthResult:
        user = self.registry.register_self(name, email, password)
        access, refresh = self.issuer.issue_pair(user, ip)
        return AuthResult(user=user, access_token=access, refresh_token=refresh.token)

    def login(self, email: str, password: str, ip: str | None) -> AuthResult:
        try:
            user = authenticate_user(self.user_store, email, password)
        except AuthenticationError:
            logger.info("Failed login from %s", ip)
            raise
        access, refresh = self.issuer.issue_pair(user, ip)
        self.user_store.update_last_login(user.id)
        return AuthResult(user=self.registry.get_user(user.id), access_token=access, refresh_token=refresh.token)

    def refresh(self, presented: str, ip: str | None) -> AuthResult:
        """Exchange a valid refresh token for a new pair, revoking the old one.

        Exactly one of several concurrent calls presenting the same token
        succeeds; the others get the same 401 as an unknown token.
        """
        record = self.refresh_store.get_by_token(presented)
        if record is None or not record.is_valid():
            raise AuthenticationError("Invalid or expired refresh token.")
        user = self.user_store.get_by_id(record.user_id)
        if user is None or not user.is_active:
            raise AuthenticationError("Invalid or expired refresh token.")

        access = self.issuer.issue_access_token(user)
        successor = self.issuer.build_refresh_token(user.id, ip)
        if not self.refresh_store.rotate(presented, successor, ip):
            logger.warning("Refresh token reuse or race for user_id=%s from %s", user.id, ip)
            raise AuthenticationError("Invalid or expired refresh token.")
        return AuthResult(user=user, access_token=access, refresh_token=successor.token)

    def logout(self, presented: str | None, ip: str | None) -> None:
        if presented:
            self.refresh_store.revoke_one(presented, ip)

    def logout_all(self, user_id: int, ip: str | None) -> int:
        return self.refresh_store.revoke_all(user_id, ip)

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------

    def change_password(self, user_id: int, current: str, new: str, ip: str | None) -> int:
        """Set a new password and revoke every session. Returns sessions revoked."""
        user = self.registry.get_user(user_id)
        if user.hashed_password is None or not verify_password(current, user.hashed_password):
            raise AuthenticationError("Current password is incorrect.")
        self.registry.set_password(user_id, new)
        return self.refresh_store.revoke_all(user_id, ip)

    def forgot_password(self, email: str) -> None:
        """Issue a reset token if the account exists. Never reports which case applied."""
        user = self.user_store.get_by_email(email)
        if user is None or not user.is_active:
            return
        raw = generate_reset_token()
        expires_at = datetime.now(timezone.utc) + self._reset_ttl
        self.user_store.update_user(
            user.id,
            reset_token_hash=hash_reset_token(raw),
            reset_token_expires_at=to_iso(expires_at),
        )
        self.reset_sender(user, raw)

    def reset_password(self, reset_token: str, new_password: str, ip: str | None) -> int:
        user = self.user_store.get_by_reset_token_hash(hash_reset_token(reset_token))
        if user is None:
            raise ValidationError("Invalid or expired reset token.")
        self.registry.set_password(user.id, new_password)
        return self.refresh_store.revoke_all(user.id, ip)
