"""
api/routes/v1/admin.py -- Owner-only user management.

Routes:
  GET    /api/v1/admin/users                -- list all users
  POST   /api/v1/admin/users                -- create admin/operator/viewer
  GET    /api/v1/admin/users/{id}           -- get one user
  PATCH  /api/v1/admin/users/{id}/role      -- change role (never to/from owner)
  PATCH  /api/v1/admin/users/{id}/activate  -- activate or deactivate
  DELETE /api/v1/admin/users/{id}           -- soft delete (deactivate)

Every route is gated by require_role("owner"), which authenticates on its own:
no token -> 401, non-owner -> 403. The owner-protection rules live in
auth/registry.py, not here.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.models import ActivationChange, MessageResponse, RoleChange, UserCreate, UserResponse
from auth.dependencies import require_role
from auth.models import OWNER, Principal
from auth.registry import IdentityRegistry

router = APIRouter()

_owner_only = require_role(OWNER)


def _registry(request: Request) -> IdentityRegistry:
    return request.app.state.auth_service.registry


@router.get("/admin/users", response_model=list[UserResponse])
def list_users(request: Request, principal: Principal = Depends(_owner_only)) -> list[UserResponse]:
    return [UserResponse.from_user(u) for u in _registry(request).list_users()]


@router.post("/admin/users", response_model=UserResponse, status_code=201)
def create_user(
    request: Request,
    body: UserCreate,
    principal: Principal = Depends(_owner_only),
) -> UserResponse:
    """Create an admin, operator or viewer. role="owner" is a 400."""
    user = _registry(request).create_managed(body.name, body.email, body.password, body.role)
    return UserResponse.from_user(user)


@router.get("/admin/users/{user_id}", response_model=UserResponse)
def get_user(request: Request, user_id: int, principal: Principal = Depends(_owner_only)) -> UserResponse:
    return UserResponse.from_user(_registry(request).get_user(user_id))


@router.patch("/admin/users/{user_id}/role", response_model=UserResponse)
def change_role(
    request: Request,
    user_id: int,
    body: RoleChange,
    principal: Principal = Depends(_owner_only),
) -> UserResponse:
    return UserResponse.from_user(_registry(request).change_role(user_id, body.role))


@router.patch("/admin/users/{user_id}/activate", response_model=UserResponse)
def activate_user(
    request: Request,
    user_id: int,
    body: ActivationChange,
    principal: Principal = Depends(_owner_only),
) -> UserResponse:
    user = _registry(request).activate_user(user_id, body.is_active, requester_id=principal.id)
    return UserResponse.from_user(user)


@router.delete("/admin/users/{user_id}", response_model=MessageResponse)
def delete_user(request: Request, user_id: int, principal: Principal = Depends(_owner_only)) -> MessageResponse:
    """Deactivate a user. Owners and the caller themself are protected (403)."""
    _registry(request).delete_user(principal.id, user_id)
    return MessageResponse(message="User deleted successfully.")
