"""
Default catalog for the in-process directory.

Creates the console's modules (each with the default read/add/update/delete
permissions), the default roles, and, when SEED_ADMIN_PASSWORD is set, a
super admin staff account.
"""
from typing import Optional

from admin_console.core import config
from admin_console.features.permissions.memory import InMemoryDirectory
from admin_console.features.permissions.models import RoleScope
from admin_console.utils import get_logger


log = get_logger(__name__)


# (name, display name, description)
DEFAULT_MODULES = [
    ("dashboard", "Dashboard", "Platform statistics"),
    ("users", "Users", "Platform user accounts"),
    ("staff", "Staff", "Console staff accounts"),
    ("roles_permissions", "Roles & Permissions", "Roles, modules and permission assignment"),
    ("properties", "Properties", "Property listings"),
    ("subscriptions", "Plans & Billing", "Subscription plans, providers and invoices"),
    ("support", "Support", "Support tickets"),
    ("notifications", "Notifications", "Push, email and in-app notifications"),
]


DEFAULT_ROLES = {
    "super_admin": {
        "description": "Full access to every module",
        "scope": RoleScope.ADMIN,
        "permissions": ["*"],
    },
    "support_agent": {
        "description": "Handles support tickets and looks up users",
        "scope": RoleScope.STAFF,
        "permissions": [
            "dashboard.read",
            "support.*",
            "users.read",
            "notifications.read", "notifications.add",
        ],
    },
    "property_manager": {
        "description": "Reviews and edits property listings",
        "scope": RoleScope.STAFF,
        "permissions": [
            "dashboard.read",
            "properties.*",
            "users.read",
        ],
    },
    "billing_clerk": {
        "description": "Read access to plans and billing",
        "scope": RoleScope.STAFF,
        "permissions": [
            "dashboard.read",
            "subscriptions.read",
        ],
    },
}


def seed_directory(directory: Optional[InMemoryDirectory] = None) -> InMemoryDirectory:
    """
    Populate a directory with the default modules and roles.

    Returns:
        The seeded directory (a new one when none is given)
    """
    directory = directory or InMemoryDirectory()

    for order, (name, display_name, description) in enumerate(DEFAULT_MODULES, start=1):
        directory.add_module(name, display_name, description, order=order)
    log.info(f"Seeded {len(DEFAULT_MODULES)} modules")

    roles = {}
    for role_name, role_config in DEFAULT_ROLES.items():
        roles[role_name] = directory.add_role(
            role_name,
            role_config["description"],
            role_config["scope"],
            role_config["permissions"],
        )
        log.debug(f"Seeded role '{role_name}' with {len(role_config['permissions'])} permissions")

    if config.SEED_ADMIN_PASSWORD:
        directory.add_staff(
            "Super Admin",
            config.SEED_ADMIN_EMAIL,
            config.SEED_ADMIN_PASSWORD,
            role_id=roles["super_admin"].id,
        )
        log.info(f"Seeded super admin {config.SEED_ADMIN_EMAIL}")

    return directory
