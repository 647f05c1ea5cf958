"""
In-process directory service.

Backs the development server and the test suite. Behaves like the remote
directory where the console can observe it: replace-set role assignment,
default module permissions, cascading module deletes, paginated listings.
Set ``available = False`` to simulate an outage.
"""
import math
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from admin_console.core.database.base import generate_ulid
from admin_console.core.exceptions import (
    AssignmentConflict,
    DirectoryConflict,
    DirectoryUnavailable,
    InvalidCredentials,
    NotFound,
)
from admin_console.features.permissions.directory import DirectoryService
from admin_console.features.permissions.models import (
    Module,
    ModulePage,
    Pagination,
    Permission,
    PermissionKey,
    PrincipalRecord,
    Role,
    RolePage,
    RoleScope,
    Staff,
    StaffPermissionGrant,
    default_permission_keys,
    resolve_principal,
)
from admin_console.utils import get_logger


log = get_logger(__name__)

MODULE_FIELDS = {"name", "display_name", "description", "order", "is_active"}


@dataclass
class _ModuleEntry:
    id: str
    name: str
    display_name: str
    description: Optional[str]
    order: int
    is_active: bool = True
    permission_ids: List[str] = field(default_factory=list)


@dataclass
class _RoleEntry:
    id: str
    name: str
    description: Optional[str]
    scope: RoleScope
    created_at: datetime
    permission_ids: List[str] = field(default_factory=list)


def _total_pages(total: int, limit: int) -> int:
    return max(1, math.ceil(total / limit)) if limit else 1


class InMemoryDirectory(DirectoryService):
    """Directory service kept in process memory."""

    def __init__(self):
        self.available = True
        self._permissions: Dict[str, Permission] = {}
        self._modules: Dict[str, _ModuleEntry] = {}
        self._roles: Dict[str, _RoleEntry] = {}
        self._staff: Dict[str, Staff] = {}
        self._passwords: Dict[str, str] = {}
        self._staff_grants: Dict[str, Dict[str, bool]] = {}
        self._tokens: Dict[str, str] = {}

    def _ensure_available(self):
        if not self.available:
            raise DirectoryUnavailable()

    # ------------------------------------------------------------------
    # Seeding helpers (synchronous, not part of the service interface)
    # ------------------------------------------------------------------

    def add_permission(self, key: str, description: Optional[str] = None, module_id: Optional[str] = None) -> Permission:
        permission = Permission(id=generate_ulid(), key=key, description=description)
        self._permissions[permission.id] = permission
        if module_id is not None:
            self._modules[module_id].permission_ids.append(permission.id)
        return permission

    def add_module(
        self,
        name: str,
        display_name: str,
        description: Optional[str] = None,
        order: int = 1,
        create_default_permissions: bool = True,
    ) -> Module:
        if any(entry.name == name for entry in self._modules.values()):
            raise DirectoryConflict(f"Module '{name}' already exists")

        entry = _ModuleEntry(
            id=generate_ulid(),
            name=name,
            display_name=display_name,
            description=description,
            order=order,
        )
        self._modules[entry.id] = entry
        if create_default_permissions:
            for key in default_permission_keys(name):
                action = key.split(".", 1)[1]
                self.add_permission(key, f"{action.capitalize()} {display_name}", module_id=entry.id)
        log.debug(f"Created module {name} with {len(entry.permission_ids)} permissions")
        return self._module(entry)

    def add_role(
        self,
        name: str,
        description: Optional[str] = None,
        scope: RoleScope = RoleScope.STAFF,
        permission_keys: Sequence[str] = (),
    ) -> Role:
        if any(entry.name == name for entry in self._roles.values()):
            raise DirectoryConflict(f"Role '{name}' already exists")

        by_key = {permission.key: permission.id for permission in self._permissions.values()}
        entry = _RoleEntry(
            id=generate_ulid(),
            name=name,
            description=description,
            scope=scope,
            created_at=datetime.now(timezone.utc),
        )
        for key in permission_keys:
            if key not in by_key:
                # Wildcard grants are catalog entries of their own
                by_key[key] = self.add_permission(key).id
            entry.permission_ids.append(by_key[key])
        self._roles[entry.id] = entry
        return self._role(entry)

    def add_staff(
        self,
        name: str,
        email: str,
        password: str,
        role_id: Optional[str] = None,
        is_active: bool = True,
    ) -> Staff:
        staff = Staff(id=generate_ulid(), name=name, email=email.lower(), role_id=role_id, is_active=is_active)
        self._staff[staff.id] = staff
        self._passwords[staff.email] = password
        return staff

    def find_role(self, name: str) -> Role:
        for entry in self._roles.values():
            if entry.name == name:
                return self._role(entry)
        raise NotFound("Role", name)

    # ------------------------------------------------------------------
    # Record builders
    # ------------------------------------------------------------------

    def _module(self, entry: _ModuleEntry) -> Module:
        return Module(
            id=entry.id,
            name=entry.name,
            display_name=entry.display_name,
            description=entry.description,
            order=entry.order,
            is_active=entry.is_active,
            permissions=[self._permissions[pid] for pid in entry.permission_ids],
        )

    def _role(self, entry: _RoleEntry) -> Role:
        return Role(
            id=entry.id,
            name=entry.name,
            description=entry.description,
            scope=entry.scope,
            created_at=entry.created_at,
            permissions=[self._permissions[pid] for pid in entry.permission_ids if pid in self._permissions],
        )

    def _role_entry(self, role_id: str) -> _RoleEntry:
        entry = self._roles.get(role_id)
        if entry is None:
            raise NotFound("Role", role_id)
        return entry

    def _module_entry(self, module_id: str) -> _ModuleEntry:
        entry = self._modules.get(module_id)
        if entry is None:
            raise NotFound("Module", module_id)
        return entry

    # ------------------------------------------------------------------
    # Permission catalog
    # ------------------------------------------------------------------

    async def list_permissions(self) -> List[Permission]:
        self._ensure_available()
        return list(self._permissions.values())

    async def list_modules(self, page: Optional[int] = None, limit: Optional[int] = None) -> ModulePage:
        self._ensure_available()
        entries = sorted(self._modules.values(), key=lambda entry: (entry.order, entry.name))
        if page is None or limit is None:
            return ModulePage(data=[self._module(entry) for entry in entries], total_pages=1)

        start = (max(page, 1) - 1) * limit
        return ModulePage(
            data=[self._module(entry) for entry in entries[start:start + limit]],
            total_pages=_total_pages(len(entries), limit),
        )

    async def get_module(self, module_id: str) -> Module:
        self._ensure_available()
        return self._module(self._module_entry(module_id))

    async def create_module(
        self,
        name: str,
        display_name: str,
        description: Optional[str] = None,
        order: int = 1,
        create_default_permissions: bool = True,
    ) -> Module:
        self._ensure_available()
        return self.add_module(name, display_name, description, order, create_default_permissions)

    async def update_module(self, module_id: str, **fields: Any) -> Module:
        self._ensure_available()
        unknown = set(fields) - MODULE_FIELDS
        if unknown:
            raise TypeError(f"Unknown module fields: {', '.join(sorted(unknown))}")

        entry = self._module_entry(module_id)
        new_name = fields.get("name")
        if new_name and new_name != entry.name and any(m.name == new_name for m in self._modules.values()):
            raise DirectoryConflict(f"Module '{new_name}' already exists")

        old_name = entry.name
        for key, value in fields.items():
            if value is not None:
                setattr(entry, key, value)
        if entry.name != old_name:
            self._rekey_permissions(entry, old_name)
        return self._module(entry)

    def _rekey_permissions(self, entry: _ModuleEntry, old_name: str):
        """Move every key under the old module name, wildcards included, to the new name."""
        for permission_id, permission in list(self._permissions.items()):
            if permission.module == old_name:
                key = PermissionKey(entry.name, permission.action).key
                self._permissions[permission_id] = permission.model_copy(update={"key": key})
        log.debug(f"Renamed module {old_name} to {entry.name}")

    async def delete_module(self, module_id: str) -> None:
        self._ensure_available()
        entry = self._modules.pop(module_id, None)
        if entry is None:
            raise NotFound("Module", module_id)

        removed = set(entry.permission_ids)
        for permission_id in removed:
            self._permissions.pop(permission_id, None)
        for role in self._roles.values():
            role.permission_ids = [pid for pid in role.permission_ids if pid not in removed]
        for grants in self._staff_grants.values():
            for permission_id in removed:
                grants.pop(permission_id, None)
        log.debug(f"Deleted module {entry.name} and {len(removed)} permissions")

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    async def list_roles(
        self,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        scope: Optional[RoleScope] = None,
        search: Optional[str] = None,
    ) -> RolePage:
        self._ensure_available()
        page = max(page or 1, 1)
        limit = limit or 10

        entries = list(self._roles.values())
        if scope is not None:
            entries = [entry for entry in entries if entry.scope == scope]
        if search:
            needle = search.lower()
            entries = [
                entry for entry in entries
                if needle in entry.name.lower() or needle in (entry.description or "").lower()
            ]

        start = (page - 1) * limit
        return RolePage(
            data=[self._role(entry) for entry in entries[start:start + limit]],
            pagination=Pagination(
                page=page,
                limit=limit,
                total=len(entries),
                total_pages=_total_pages(len(entries), limit),
            ),
        )

    async def get_role(self, role_id: str) -> Role:
        self._ensure_available()
        return self._role(self._role_entry(role_id))

    async def create_role(self, name: str, description: Optional[str], scope: RoleScope) -> Role:
        self._ensure_available()
        return self.add_role(name, description, RoleScope(scope))

    async def update_role(self, role_id: str, name: str, description: Optional[str], scope: RoleScope) -> Role:
        self._ensure_available()
        entry = self._role_entry(role_id)
        if name != entry.name and any(role.name == name for role in self._roles.values()):
            raise DirectoryConflict(f"Role '{name}' already exists")

        entry.name = name
        entry.description = description
        entry.scope = RoleScope(scope)
        return self._role(entry)

    async def delete_role(self, role_id: str) -> None:
        self._ensure_available()
        if self._roles.pop(role_id, None) is None:
            raise NotFound("Role", role_id)
        for staff_id, staff in list(self._staff.items()):
            if staff.role_id == role_id:
                self._staff[staff_id] = staff.model_copy(update={"role_id": None})

    async def assign_role_permissions(self, role_id: str, permission_ids: Sequence[str]) -> None:
        self._ensure_available()
        entry = self._roles.get(role_id)
        if entry is None:
            raise AssignmentConflict(f"Role {role_id} no longer exists")

        unknown = [pid for pid in permission_ids if pid not in self._permissions]
        if unknown:
            raise AssignmentConflict(f"Unknown permissions: {', '.join(unknown)}")

        entry.permission_ids = list(dict.fromkeys(permission_ids))
        log.debug(f"Role {entry.name} now holds {len(entry.permission_ids)} permissions")

    # ------------------------------------------------------------------
    # Staff
    # ------------------------------------------------------------------

    async def get_staff(self, staff_id: str) -> Staff:
        self._ensure_available()
        staff = self._staff.get(staff_id)
        if staff is None:
            raise NotFound("Staff", staff_id)
        return staff

    async def get_staff_permissions(self, staff_id: str) -> List[StaffPermissionGrant]:
        staff = await self.get_staff(staff_id)
        overrides = self._staff_grants.get(staff_id, {})
        role_permission_ids = set()
        if staff.role_id in self._roles:
            role_permission_ids = set(self._roles[staff.role_id].permission_ids)

        grants = []
        for entry in sorted(self._modules.values(), key=lambda m: (m.order, m.name)):
            for permission_id in entry.permission_ids:
                grants.append(StaffPermissionGrant(
                    module_permission_id=permission_id,
                    is_granted=overrides.get(permission_id, permission_id in role_permission_ids),
                ))
        return grants

    async def update_staff_permissions(self, staff_id: str, grants: Sequence[StaffPermissionGrant]) -> None:
        await self.get_staff(staff_id)
        unknown = [grant.module_permission_id for grant in grants if grant.module_permission_id not in self._permissions]
        if unknown:
            raise AssignmentConflict(f"Unknown permissions: {', '.join(unknown)}")

        self._staff_grants[staff_id] = {grant.module_permission_id: grant.is_granted for grant in grants}

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    async def login(self, email: str, password: str) -> PrincipalRecord:
        self._ensure_available()
        email = email.strip().lower()
        expected = self._passwords.get(email)
        if expected is None or not secrets.compare_digest(expected.encode(), password.encode()):
            raise InvalidCredentials()

        staff = next(staff for staff in self._staff.values() if staff.email == email)
        if not staff.is_active:
            raise InvalidCredentials("Account is deactivated")

        role_entry = self._roles.get(staff.role_id) if staff.role_id else None
        if role_entry is None:
            raise InvalidCredentials("Account has no role assigned")

        token = secrets.token_urlsafe(32)
        self._tokens[token] = staff.id
        principal = resolve_principal(staff, self._role(role_entry), token)

        overrides = self._staff_grants.get(staff.id)
        if overrides:
            granted = [self._permissions[pid].key for pid, on in overrides.items() if on and pid in self._permissions]
            revoked = {self._permissions[pid].key for pid, on in overrides.items() if not on and pid in self._permissions}
            keys = [key for key in principal.permissions if key not in revoked] + granted
            principal = principal.model_copy(update={"permissions": list(dict.fromkeys(keys))})
        return principal

    async def logout(self, token: str) -> None:
        self._ensure_available()
        self._tokens.pop(token, None)
