"""
Console navigation and its permission filter.

Menu entries may carry the permission key that guards their screen. The
filter only hides entries, it never reorders or rewrites them.
"""
from collections.abc import Iterable, Mapping
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict

from admin_console.features.permissions.evaluation import has_permission, normalize_grants


class NavigationItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    to: str
    label: str
    icon: Optional[str] = None
    permission: Optional[str] = None


DEFAULT_NAVIGATION: List[NavigationItem] = [
    NavigationItem(to="/dashboard", label="Dashboard", icon="layout-dashboard", permission="dashboard.read"),
    NavigationItem(to="/plans", label="Plans", icon="badge-percent", permission="subscriptions.read"),
    NavigationItem(to="/users", label="Users", icon="users", permission="users.read"),
    NavigationItem(to="/staff", label="Staff", icon="user-cog", permission="staff.read"),
    NavigationItem(
        to="/roles-permissions",
        label="Roles & Permissions",
        icon="shield-check",
        permission="roles_permissions.read",
    ),
    NavigationItem(to="/properties", label="Manage Properties", icon="building-2", permission="properties.read"),
    NavigationItem(to="/billing", label="Billing", icon="receipt", permission="subscriptions.read"),
    NavigationItem(to="/support", label="Support Requests", icon="life-buoy", permission="support.read"),
    NavigationItem(to="/notifications", label="Manage Notifications", icon="bell", permission="notifications.read"),
]


# First path segment of a console route -> permission needed to open it
MODULE_PERMISSIONS: Dict[str, str] = {
    "dashboard": "dashboard.read",
    "users": "users.read",
    "staff": "staff.read",
    "roles-permissions": "roles_permissions.read",
    "properties": "properties.read",
    "plans": "subscriptions.read",
    "billing": "subscriptions.read",
    "support": "support.read",
    "notifications": "notifications.read",
}


def _required_permission(item: Any) -> Optional[str]:
    if isinstance(item, Mapping):
        return item.get("permission")
    return getattr(item, "permission", None)


def get_filtered_navigation_items(items: Iterable[Any], granted: Any) -> List[Any]:
    """
    Keep the navigation entries the grant set may see.

    Args:
        items: NavigationItem models or mappings with an optional "permission"
        granted: Permission keys of the session

    Returns:
        A new list holding the visible entries in their original order
    """
    granted = normalize_grants(granted)
    visible = []
    for item in items:
        permission = _required_permission(item)
        if not permission or has_permission(granted, permission):
            visible.append(item)
    return visible


def can_access_route(route: str, granted: Any) -> bool:
    """
    Whether a console route may be opened, judged on its first path segment.
    Routes without a mapped permission are open.
    """
    module = route.lstrip("/").split("/", 1)[0]
    permission = MODULE_PERMISSIONS.get(module)
    if permission is None:
        return True
    return has_permission(granted, permission)
