"""
auth/registry.py -- Identity Registry: user creation and role invariants.

Invariants enforced here:
  - Self-registration always produces a viewer. register_self() has no role
    parameter at all.
  - The administrative API can only assign admin, operator or viewer.
    Owner is granted exclusively by auth/bootstrap.py.
  - An owner's role cannot be changed and an owner cannot be deleted.
  - Nobody can delete or deactivate their own account.
  - Once bootstrapped, at least one active owner exists. The count is read
    from the store at each mutating call, never cached.

Removal policy: delete_user() is a soft delete (is_active=False). Records are
never removed, so activate_user() can reverse it and the refresh-token audit
trail keeps pointing at a real user.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.errors import AuthorizationError, NotFoundError, ValidationError
from auth.models import MANAGEABLE_ROLES, OWNER, VIEWER, User
from auth.store import UserStore, normalize_email
from auth.tokens import hash_password

logger = logging.getLogger("trafficauth.registry")


class IdentityRegistry:
    def __init__(self, store: UserStore) -> None:
        self.store = store

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def register_self(self, name: str, email: str, password: str) -> User:
        """Create a viewer account from a public registration."""
        return self._create(name, email, password, VIEWER)

    def create_managed(self, name: str, email: str, password: str, role: str) -> User:
        """Create an account on behalf of an owner. Owner role is never accepted."""
        if role not in MANAGEABLE_ROLES:
            raise ValidationError("Role must be admin, operator, or viewer.")
        return self._create(name, email, password, role)

    def _create(self, name: str, email: str, password: str, role: str) -> User:
        email = normalize_email(email)
        if self.store.get_by_email(email) is not None:
            raise ValidationError("A user with this email already exists.")
        user = User(name=name, email=email, role=role, hashed_password=hash_password(password))
        try:
            user_id = self.store.create_user(user)
        except IntegrityError as exc:
            # A concurrent registration won the UNIQUE(email) race.
            raise ValidationError("A user with this email already exists.") from exc
        logger.info("Created user id=%s role=%s", user_id, role)
        return self.get_user(user_id)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_user(self, user_id: int) -> User:
        user = self.store.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found.")
        return user

    def list_users(self) -> list[User]:
        return self.store.list_users()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def change_role(self, target_id: int, new_role: str) -> User:
        if new_role not in MANAGEABLE_ROLES:
            raise ValidationError("Role must be admin, operator, or viewer.")
        target = self.get_user(target_id)
        if target.role == OWNER:
            raise ValidationError("Cannot change the role of an owner.")
        self._ensure_owner_remains(target, losing_owner=target.role == OWNER and target.is_active)
        self.store.update_user(target_id, role=new_role)
        logger.info("Role of user id=%s changed %s -> %s", target_id, target.role, new_role)
        return self.get_user(target_id)

    def delete_user(self, requester_id: int, target_id: int) -> None:
        """Soft-delete (deactivate) a user. Repeating the call is harmless."""
        target = self.get_user(target_id)
        if target.role == OWNER:
            raise AuthorizationError("Cannot delete an owner account.")
        if target.id == requester_id:
            raise AuthorizationError("Cannot delete your own account.")
        self._ensure_owner_remains(target, losing_owner=target.role == OWNER and target.is_active)
        self.store.update_user(target_id, is_active=False)
        logger.info("User id=%s deactivated by user id=%s", target_id, requester_id)

    def activate_user(self, target_id: int, desired_active: bool, requester_id: int | None = None) -> User:
        target = self.get_user(target_id)
        if not desired_active:
            if requester_id is not None and target.id == requester_id:
                raise AuthorizationError("You cannot deactivate your own account.")
            self._ensure_owner_remains(target, losing_owner=target.role == OWNER and target.is_active)
        self.store.update_user(target_id, is_active=desired_active)
        logger.info("User id=%s is_active=%s", target_id, desired_active)
        return self.get_user(target_id)

    def update_profile(self, user_id: int, name: str | None = None, avatar: str | None = None) -> User:
        fields: dict = {}
        if name is not None:
            fields["name"] = name
        if avatar is not None:
            fields["avatar"] = avatar
        if not fields:
            raise ValidationError("No fields to update.")
        self.get_user(user_id)
        self.store.update_user(user_id, **fields)
        return self.get_user(user_id)

    def set_password(self, user_id: int, password: str) -> None:
        """Replace the password hash and clear any pending reset token."""
        self.store.update_user(
            user_id,
            hashed_password=hash_password(password),
            reset_token_hash=None,
            reset_token_expires_at=None,
        )

    # ------------------------------------------------------------------
    # Invariants
    # ------------------------------------------------------------------

    def _ensure_owner_remains(self, target: User, losing_owner: bool) -> None:
        if losing_owner and self.store.count_active_owners(exclude_user_id=target.id) == 0:
            raise AuthorizationError("Cannot remove the last active owner.")
