"""
auth/permissions.py -- Static role -> capability table.

Every role lists every capability explicitly; there is no inheritance. The
dashboard frontend renders from the same table via GET /api/v1/auth/permissions.
"""

from __future__ import annotations

from auth.models import ADMIN, OPERATOR, OWNER, VIEWER

CAPABILITIES: tuple[str, ...] = (
    "view_dashboard",
    "view_map",
    "view_analytics",
    "modify_signals",
    "override_signals",
    "manage_emergencies",
    "manage_users",
    "view_settings",
    "modify_settings",
)

PERMISSIONS: dict[str, dict[str, bool]] = {
    OWNER: {
        "view_dashboard": True,
        "view_map": True,
        "view_analytics": True,
        "modify_signals": True,
        "override_signals": True,
        "manage_emergencies": True,
        "manage_users": True,
        "view_settings": True,
        "modify_settings": True,
    },
    ADMIN: {
        "view_dashboard": True,
        "view_map": True,
        "view_analytics": True,
        "modify_signals": True,
        "override_signals": True,
        "manage_emergencies": True,
        "manage_users": True,
        "view_settings": True,
        "modify_settings": True,
    },
    OPERATOR: {
        "view_dashboard": True,
        "view_map": True,
        "view_analytics": True,
        "modify_signals": True,
        "override_signals": False,
        "manage_emergencies": True,
        "manage_users": False,
        "view_settings": True,
        "modify_settings": False,
    },
    VIEWER: {
        "view_dashboard": True,
        "view_map": True,
        "view_analytics": True,
        "modify_signals": False,
        "override_signals": False,
        "manage_emergencies": False,
        "manage_users": False,
        "view_settings": False,
        "modify_settings": False,
    },
}


def permissions_for(role: str) -> dict[str, bool]:
    """Return a copy of the role's capability row; unknown roles get nothing."""
    return dict(PERMISSIONS.get(role, {}))


def has_permission(role: str, capability: str) -> bool:
    return PERMISSIONS.get(role, {}).get(capability, False)


def has_any_permission(role: str, capabilities: list[str]) -> bool:
    return any(has_permission(role, c) for c in capabilities)


def has_all_permissions(role: str, capabilities: list[str]) -> bool:
    return all(has_permission(role, c) for c in capabilities)
