"""
auth/dependencies.py -- FastAPI Depends() helpers for authentication and authorization.

Authentication reads the `Authorization: Bearer <token>` header only. Errors
are raised as auth.errors types; api/main.py maps them to status codes.

get_current_user() is the authenticator: 401 for a missing or invalid token,
404 if the token's user no longer exists, 403 if the account is deactivated.
On success the Principal is also attached to request.state.principal.

require_role(*roles) and require_permission(cap) are self-contained gates:
each runs the full authenticator first, so a route needs only one
dependency. A missing or invalid credential always surfaces as 401, never as
403; only an authenticated caller with the wrong role gets 403.

Layer rule: the only module in auth/ allowed to import fastapi.
"""

from __future__ import annotations

from collections.abc import Callable

from fastapi import Request

from auth.errors import AuthorizationError
from auth.models import Principal
from auth.permissions import has_permission
from auth.tokens import resolve_principal


def _bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get("Authorization", "")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


def get_current_user(request: Request) -> Principal:
    """Require authentication.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(principal: Principal = Depends(get_current_user)): ...
    """
    principal = resolve_principal(request.app.state.user_store, _bearer_token(request))
    request.state.principal = principal
    return principal


def require_role(*roles: str) -> Callable[[Request], Principal]:
    """Build a dependency that admits only the given roles.

    Use as a FastAPI dependency:
        @router.get("/admin/users")
        def route(principal: Principal = Depends(require_role("owner"))): ...
    """
    allowed = frozenset(roles)

    def dependency(request: Request) -> Principal:
        principal = get_current_user(request)
        if principal.role not in allowed:
            raise AuthorizationError(f"User role '{principal.role}' is not authorized to access this route.")
        return principal

    return dependency


def require_permission(capability: str) -> Callable[[Request], Principal]:
    """Build a dependency that admits roles whose permission row grants `capability`."""

    def dependency(request: Request) -> Principal:
        principal = get_current_user(request)
        if not has_permission(principal.role, capability):
            raise AuthorizationError(f"Role '{principal.role}' does not have permission to {capability}.")
        return principal

    return dependency
