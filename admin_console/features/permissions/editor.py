"""
Role, module and staff permission editing.

The per-module checkbox state is never stored: it is derived from the
selected permission ids and the module's permission ids every time it is
asked for, so a module checkbox cannot drift from its children.

Editors talk to the directory only on load and save. A save replaces the
whole permission set and is committed locally only once the directory
acknowledges it.
"""
import asyncio
from collections.abc import Collection, Iterable
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from pydantic import ValidationError

from admin_console.core.exceptions import (
    DirectoryConflict,
    DirectoryUnavailable,
    FormValidationError,
    NotFound,
)
from admin_console.core.notices import Notice
from admin_console.features.permissions.directory import DirectoryService
from admin_console.features.permissions.models import Module, Permission, Role, StaffPermissionGrant
from admin_console.features.permissions.schemas import ModuleForm, ModuleUpdate, RoleForm
from admin_console.utils import get_logger


log = get_logger(__name__)


# ============================================================================
# Tri-state selection
# ============================================================================

class SelectionState(str, Enum):
    ALL = "all"
    NONE = "none"
    PARTIAL = "partial"


def selection_state(module_ids: Collection[str], selected: Collection[str]) -> SelectionState:
    """
    State of a module's checkbox.

    ALL iff the module is non-empty and fully selected, NONE iff no id of
    the module is selected, PARTIAL otherwise.
    """
    chosen = sum(1 for permission_id in set(module_ids) if permission_id in selected)
    if chosen == 0:
        return SelectionState.NONE
    if chosen == len(set(module_ids)):
        return SelectionState.ALL
    return SelectionState.PARTIAL


def toggle_all(module_ids: Iterable[str], selected: Iterable[str]) -> FrozenSet[str]:
    """
    Toggle a whole module.

    A fully selected module is cleared; a partially or un-selected module
    becomes fully selected.
    """
    module_ids = frozenset(module_ids)
    selected = frozenset(selected)
    if selection_state(module_ids, selected) is SelectionState.ALL:
        return selected - module_ids
    return selected | module_ids


def toggle_one(permission_id: str, selected: Iterable[str]) -> FrozenSet[str]:
    selected = frozenset(selected)
    if permission_id in selected:
        return selected - {permission_id}
    return selected | {permission_id}


# ============================================================================
# Catalog grouped by module
# ============================================================================

class PermissionCatalog:
    """
    Permissions grouped by module, modules in first-seen order and
    permissions in catalog order.
    """

    def __init__(self, groups: Mapping[str, List[Permission]]):
        self._groups: Dict[str, Tuple[Permission, ...]] = {
            module: tuple(permissions) for module, permissions in groups.items()
        }
        self._ids: Dict[str, Tuple[str, ...]] = {
            module: tuple(permission.id for permission in permissions)
            for module, permissions in self._groups.items()
        }

    @classmethod
    def from_permissions(cls, permissions: Iterable[Permission]) -> "PermissionCatalog":
        """Group a flat permission list on the module part of each key."""
        groups: Dict[str, List[Permission]] = {}
        for permission in permissions:
            groups.setdefault(permission.module, []).append(permission)
        return cls(groups)

    @classmethod
    def from_modules(cls, modules: Iterable[Module]) -> "PermissionCatalog":
        return cls({module.name: list(module.permissions) for module in modules})

    @classmethod
    def from_permission_ids(cls, groups: Mapping[str, Iterable[str]]) -> "PermissionCatalog":
        """Catalog known only by ids, e.g. one posted back by a client."""
        catalog = cls({})
        catalog._ids = {module: tuple(dict.fromkeys(ids)) for module, ids in groups.items()}
        return catalog

    @property
    def modules(self) -> List[str]:
        return list(self._ids)

    def permissions(self, module: str) -> Tuple[Permission, ...]:
        return self._groups.get(module, ())

    def permission_ids(self, module: str) -> List[str]:
        return list(self._ids.get(module, ()))

    def all_permission_ids(self) -> List[str]:
        return [pid for ids in self._ids.values() for pid in ids]

    def __contains__(self, module: object) -> bool:
        return module in self._ids

    def __len__(self) -> int:
        return len(self._ids)


class PermissionSelection:
    """
    Selected permission ids over a catalog, with derived module states.
    """

    def __init__(self, catalog: PermissionCatalog, selected: Iterable[str] = ()):
        self.catalog = catalog
        self.selected: FrozenSet[str] = frozenset(selected)

    def module_state(self, module: str) -> SelectionState:
        return selection_state(self.catalog.permission_ids(module), self.selected)

    def module_states(self) -> Dict[str, SelectionState]:
        return {module: self.module_state(module) for module in self.catalog.modules}

    def toggle_all(self, module: str) -> FrozenSet[str]:
        if module not in self.catalog:
            raise KeyError(module)
        self.selected = toggle_all(self.catalog.permission_ids(module), self.selected)
        return self.selected

    def toggle_one(self, permission_id: str) -> FrozenSet[str]:
        self.selected = toggle_one(permission_id, self.selected)
        return self.selected

    def ordered_selection(self) -> List[str]:
        """Selected ids in catalog order, followed by ids the catalog does not list."""
        ordered = [pid for pid in self.catalog.all_permission_ids() if pid in self.selected]
        known = set(ordered)
        return ordered + sorted(pid for pid in self.selected if pid not in known)

    def summary(self) -> List[Dict[str, Any]]:
        rows = []
        for module in self.catalog.modules:
            ids = self.catalog.permission_ids(module)
            rows.append({
                "module": module,
                "state": self.module_state(module).value,
                "selected": sum(1 for pid in ids if pid in self.selected),
                "total": len(ids),
            })
        return rows


# ============================================================================
# Form validation
# ============================================================================

def _form_errors(exc: ValidationError) -> Dict[str, str]:
    errors = {}
    for error in exc.errors():
        key = str(error["loc"][-1]) if error.get("loc") else "root"
        errors[key] = error["msg"]
    return errors


def validate_role_form(data: Mapping[str, Any]) -> RoleForm:
    """
    Validate a role form before any directory call.

    Raises:
        FormValidationError: If the name is missing or a field is invalid
    """
    try:
        return RoleForm.model_validate(data)
    except ValidationError as exc:
        raise FormValidationError(_form_errors(exc)) from exc


def validate_module_form(data: Mapping[str, Any], creating: bool = True) -> ModuleForm:
    """
    Validate a module form before any directory call.

    New modules default to generating the default permission set; edits
    never do.
    """
    schema = ModuleForm if creating else ModuleUpdate
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise FormValidationError(_form_errors(exc)) from exc


# ============================================================================
# Editors
# ============================================================================

class _DirectoryEditor:
    """
    Load/save bookkeeping shared by the editors.

    Every load takes a new generation number; a response whose generation
    is no longer current, or that arrives after dispose(), is dropped.
    """

    def __init__(self, directory: DirectoryService):
        self.directory = directory
        self.selection = PermissionSelection(PermissionCatalog({}))
        self.persisted: FrozenSet[str] = frozenset()
        self.notices: List[Notice] = []
        self.disposed = False
        self.loaded = False
        self._generation = 0
        self._saving = False

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _is_stale(self, generation: int) -> bool:
        return self.disposed or generation != self._generation

    def _notify(self, notice: Notice) -> Notice:
        self.notices.append(notice)
        return notice

    def dispose(self):
        """Detach the editor; late responses are ignored from now on."""
        self.disposed = True

    @property
    def selected(self) -> FrozenSet[str]:
        return self.selection.selected

    @property
    def dirty(self) -> bool:
        return self.selection.selected != self.persisted

    def module_state(self, module: str) -> SelectionState:
        return self.selection.module_state(module)

    def module_states(self) -> Dict[str, SelectionState]:
        return self.selection.module_states()

    def toggle_all(self, module: str) -> FrozenSet[str]:
        return self.selection.toggle_all(module)

    def toggle_one(self, permission_id: str) -> FrozenSet[str]:
        return self.selection.toggle_one(permission_id)

    async def _submit(self) -> None:
        raise NotImplementedError

    async def save(self) -> Optional[Notice]:
        """
        Send the current selection to the directory as a whole.

        Nothing is sent until a load has succeeded, and only one save runs
        at a time. The selection is kept as is when the directory rejects
        it, so the user can retry. Returns None when the editor was
        disposed meanwhile.
        """
        if self.disposed:
            return None
        if not self.loaded:
            return self._notify(Notice.error("Permissions have not been loaded", retryable=True))
        if self._saving:
            return self._notify(Notice.error("A save is already in progress", retryable=True))

        submitted = frozenset(self.selection.selected)
        self._saving = True
        try:
            await self._submit()
        except (DirectoryConflict, NotFound) as exc:
            if self.disposed:
                return None
            log.info(f"Save rejected by the directory: {exc.message}")
            return self._notify(Notice.error(exc.message, retryable=True))
        except DirectoryUnavailable as exc:
            if self.disposed:
                return None
            log.warning(f"Failed to save permissions: {exc.message}")
            return self._notify(Notice.error("Failed to update permissions", retryable=True))
        finally:
            self._saving = False

        if self.disposed:
            return None
        self.persisted = submitted
        return self._notify(Notice.success("Permissions updated successfully"))


class RolePermissionEditor(_DirectoryEditor):
    """
    Assign permissions to a role through per-module bulk toggles.

    Usage:
        editor = RolePermissionEditor(directory, role_id)
        await editor.load()
        editor.toggle_all("properties")
        notice = await editor.save()
    """

    def __init__(self, directory: DirectoryService, role_id: str):
        super().__init__(directory)
        self.role_id = role_id
        self.role: Optional[Role] = None

    async def load(self) -> Optional[Notice]:
        """
        Fetch the permission catalog and the role together.

        Returns:
            An error notice if the directory failed, otherwise None
        """
        generation = self._next_generation()
        try:
            permissions, role = await asyncio.gather(
                self.directory.list_permissions(),
                self.directory.get_role(self.role_id),
            )
        except (DirectoryUnavailable, NotFound) as exc:
            if self._is_stale(generation):
                return None
            log.warning(f"Failed to load role {self.role_id} for editing: {exc.message}")
            return self._notify(Notice.error(exc.message or "Failed to load role"))

        if self._is_stale(generation):
            log.debug(f"Dropping stale load of role {self.role_id}")
            return None

        self.role = role
        self.persisted = frozenset(role.permission_ids())
        self.selection = PermissionSelection(PermissionCatalog.from_permissions(permissions), self.persisted)
        self.loaded = True
        return None

    async def _submit(self) -> None:
        """Replace the role's permission set with the current selection."""
        await self.directory.assign_role_permissions(self.role_id, self.selection.ordered_selection())


class StaffPermissionEditor(_DirectoryEditor):
    """
    Grant or revoke module permissions of a single staff member.
    """

    def __init__(self, directory: DirectoryService, staff_id: str):
        super().__init__(directory)
        self.staff_id = staff_id

    async def load(self) -> Optional[Notice]:
        generation = self._next_generation()
        try:
            module_page, grants = await asyncio.gather(
                self.directory.list_modules(),
                self.directory.get_staff_permissions(self.staff_id),
            )
        except (DirectoryUnavailable, NotFound) as exc:
            if self._is_stale(generation):
                return None
            log.warning(f"Failed to load permissions of staff {self.staff_id}: {exc.message}")
            return self._notify(Notice.error("Failed to load permissions"))

        if self._is_stale(generation):
            return None

        granted = frozenset(grant.module_permission_id for grant in grants if grant.is_granted)
        self.persisted = granted
        self.selection = PermissionSelection(PermissionCatalog.from_modules(module_page.data), granted)
        self.loaded = True
        return None

    def grants(self) -> List[StaffPermissionGrant]:
        """Every catalog permission with its current granted flag."""
        return [
            StaffPermissionGrant(module_permission_id=pid, is_granted=pid in self.selection.selected)
            for pid in self.selection.catalog.all_permission_ids()
        ]

    async def _submit(self) -> None:
        await self.directory.update_staff_permissions(self.staff_id, self.grants())


# ============================================================================
# Role and module forms
# ============================================================================

async def submit_role(
    directory: DirectoryService,
    form: Any,
    role_id: Optional[str] = None,
) -> Role:
    """
    Create a role, or update it when role_id is given.

    A mapping is validated first; nothing is sent to the directory for an
    invalid form.
    """
    if not isinstance(form, RoleForm):
        form = validate_role_form(form)

    if role_id is None:
        return await directory.create_role(form.name, form.description, form.scope)
    return await directory.update_role(role_id, form.name, form.description, form.scope)


async def submit_module(
    directory: DirectoryService,
    form: Any,
    module_id: Optional[str] = None,
) -> Module:
    """
    Create a module, or update it when module_id is given.

    Only creation may generate the default read/add/update/delete
    permissions.
    """
    creating = module_id is None
    if not isinstance(form, ModuleForm):
        form = validate_module_form(form, creating=creating)

    if creating:
        return await directory.create_module(
            form.name,
            form.display_name,
            form.description,
            form.order,
            form.create_default_permissions,
        )

    fields = form.model_dump(exclude={"create_default_permissions"}, exclude_none=True)
    return await directory.update_module(module_id, **fields)
