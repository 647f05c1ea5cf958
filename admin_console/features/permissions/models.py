"""
Permission, Module, Role and Staff records for the console's RBAC.

These are read-only reference data owned by the directory service. Field
names follow Python conventions; the directory's camelCase JSON is accepted
and emitted through aliases.
"""
from datetime import datetime
from enum import Enum
from typing import List, NamedTuple, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# Canonical actions generated for a module created with default permissions
DEFAULT_ACTIONS = ("read", "add", "update", "delete")


class DirectoryModel(BaseModel):
    """Base for records exchanged with the directory service."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Permission keys
# ============================================================================

class PermissionKey(NamedTuple):
    """
    A "<module>.<action>" permission key, split once.

    The module is everything before the first dot; a key without a dot has
    an empty action.
    """
    module: str
    action: str

    @classmethod
    def parse(cls, key: str) -> "PermissionKey":
        if not isinstance(key, str):
            raise TypeError(f"Permission key must be a string, got {type(key).__name__}")
        module, _, action = key.partition(".")
        return cls(module, action)

    @property
    def key(self) -> str:
        return f"{self.module}.{self.action}" if self.action else self.module

    @property
    def module_wildcard(self) -> str:
        return f"{self.module}.*"

    def __str__(self) -> str:
        return self.key


def default_permission_keys(module_name: str) -> List[str]:
    """Keys of the default permission set of a module, in canonical order."""
    return [f"{module_name}.{action}" for action in DEFAULT_ACTIONS]


# ============================================================================
# Catalog records
# ============================================================================

class Permission(DirectoryModel):
    """
    A single grantable capability, e.g. key="users.read".
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    key: str = Field(..., min_length=1)
    description: Optional[str] = None

    @property
    def parsed(self) -> PermissionKey:
        return PermissionKey.parse(self.key)

    @property
    def module(self) -> str:
        return self.parsed.module

    @property
    def action(self) -> str:
        return self.parsed.action


class Module(DirectoryModel):
    """
    A named group of permissions, e.g. name="properties" owning
    properties.read / properties.add / properties.update / properties.delete.
    """
    id: str
    name: str
    display_name: str
    description: Optional[str] = None
    order: int = 1
    is_active: bool = True
    permissions: List[Permission] = Field(default_factory=list)

    def permission_ids(self) -> List[str]:
        return [permission.id for permission in self.permissions]


class RoleScope(str, Enum):
    ADMIN = "admin"
    STAFF = "staff"


class Role(DirectoryModel):
    """
    A named set of permissions. Display order of the permissions is kept,
    evaluation treats them as a set.
    """
    id: str
    name: str
    description: Optional[str] = None
    scope: RoleScope = RoleScope.STAFF
    permissions: List[Permission] = Field(default_factory=list, alias="Permissions")
    created_at: Optional[datetime] = None

    def permission_keys(self) -> List[str]:
        return [permission.key for permission in self.permissions]

    def permission_ids(self) -> List[str]:
        return [permission.id for permission in self.permissions]


class Staff(DirectoryModel):
    id: str
    name: str
    email: str
    role_id: Optional[str] = None
    is_active: bool = True


class StaffPermissionGrant(DirectoryModel):
    """Per-staff override of a module permission."""
    module_permission_id: str
    is_granted: bool


# ============================================================================
# Paginated listings
# ============================================================================

class ModulePage(DirectoryModel):
    data: List[Module] = Field(default_factory=list)
    total_pages: int = 1


class Pagination(DirectoryModel):
    page: int = 1
    limit: int = 10
    total: int = 0
    total_pages: int = 1


class RolePage(DirectoryModel):
    data: List[Role] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=Pagination)


# ============================================================================
# Principal
# ============================================================================

class DisplayIdentity(DirectoryModel):
    name: str
    email: str


class RoleDescriptor(DirectoryModel):
    name: str
    scope: RoleScope


class PrincipalRecord(DirectoryModel):
    """
    The server-issued record of an authenticated principal, as loaded into
    the session cache at login.
    """
    token: str
    user: DisplayIdentity
    role: RoleDescriptor
    permissions: List[str] = Field(default_factory=list)

    @field_validator("permissions")
    @classmethod
    def unique_keys(cls, v: List[str]) -> List[str]:
        """Drop duplicate keys, keeping first occurrence."""
        return list(dict.fromkeys(v))


def resolve_principal(staff: Staff, role: Role, token: str) -> PrincipalRecord:
    """
    Flatten a staff member's resolved role into a principal record.

    The permission list is computed once here; later role edits do not
    reach an already-issued record.
    """
    return PrincipalRecord(
        token=token,
        user=DisplayIdentity(name=staff.name, email=staff.email),
        role=RoleDescriptor(name=role.name, scope=role.scope),
        permissions=role.permission_keys(),
    )
