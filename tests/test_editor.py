import asyncio

import pytest

from admin_console.core.exceptions import FormValidationError
from admin_console.core.notices import NoticeLevel
from admin_console.features.permissions.editor import (
    PermissionCatalog,
    PermissionSelection,
    RolePermissionEditor,
    SelectionState,
    StaffPermissionEditor,
    selection_state,
    submit_module,
    submit_role,
    toggle_all,
    toggle_one,
    validate_module_form,
    validate_role_form,
)
from admin_console.features.permissions.memory import InMemoryDirectory
from admin_console.features.permissions.models import RoleScope


# ============================================================================
# Tri-state selection
# ============================================================================

def test_partial_module_toggles_to_all_then_none() -> None:
    module = {"1", "2"}
    selected = frozenset({"1"})

    assert selection_state(module, selected) is SelectionState.PARTIAL

    selected = toggle_all(module, selected)
    assert selected == {"1", "2"}
    assert selection_state(module, selected) is SelectionState.ALL

    selected = toggle_all(module, selected)
    assert selected == frozenset()
    assert selection_state(module, selected) is SelectionState.NONE


def test_toggle_all_is_not_idempotent() -> None:
    module = frozenset({"1", "2"})
    once = toggle_all(module, module)
    twice = toggle_all(module, once)

    assert once != twice
    assert once == frozenset()
    assert twice == module


def test_partial_exactly_when_some_but_not_all_selected() -> None:
    module = {"1", "2", "3"}
    candidates = ["1", "2", "3", "9"]

    for mask in range(1 << len(candidates)):
        selected = {pid for bit, pid in enumerate(candidates) if mask & (1 << bit)}
        chosen = len(module & selected)

        state = selection_state(module, selected)

        assert (state is SelectionState.PARTIAL) == (0 < chosen < len(module)), selected
        assert (state is SelectionState.ALL) == (chosen == len(module)), selected
        assert (state is SelectionState.NONE) == (chosen == 0), selected


def test_toggle_all_leaves_other_modules_alone() -> None:
    assert toggle_all({"1", "2"}, {"1", "9"}) == {"1", "2", "9"}
    assert toggle_all({"1", "2"}, {"1", "2", "9"}) == {"9"}


def test_empty_module_is_none() -> None:
    assert selection_state(set(), {"1"}) is SelectionState.NONE


def test_toggle_one_flips_membership() -> None:
    assert toggle_one("3", {"1"}) == {"1", "3"}
    assert toggle_one("1", {"1", "3"}) == {"3"}


def test_selection_over_catalog() -> None:
    catalog = PermissionCatalog.from_permission_ids({"users": ["u1", "u2"], "staff": ["s1"]})
    selection = PermissionSelection(catalog, ["u2"])

    assert selection.module_states() == {"users": SelectionState.PARTIAL, "staff": SelectionState.NONE}

    selection.toggle_all("staff")
    selection.toggle_one("u1")

    assert selection.ordered_selection() == ["u1", "u2", "s1"]
    assert selection.summary() == [
        {"module": "users", "state": "all", "selected": 2, "total": 2},
        {"module": "staff", "state": "all", "selected": 1, "total": 1},
    ]


def test_toggle_all_unknown_module() -> None:
    selection = PermissionSelection(PermissionCatalog({}))

    with pytest.raises(KeyError):
        selection.toggle_all("missing")


# ============================================================================
# Role editor
# ============================================================================

def _property_ids(directory: InMemoryDirectory) -> set:
    module = next(entry for entry in directory._modules.values() if entry.name == "properties")
    return set(module.permission_ids)


@pytest.mark.asyncio
async def test_role_editor_load_groups_catalog(directory: InMemoryDirectory) -> None:
    role = directory.find_role("billing_clerk")
    editor = RolePermissionEditor(directory, role.id)

    assert await editor.load() is None

    assert editor.loaded
    assert editor.selected == set(role.permission_ids())
    assert editor.module_state("subscriptions") is SelectionState.PARTIAL
    assert editor.module_state("properties") is SelectionState.NONE
    assert not editor.dirty


@pytest.mark.asyncio
async def test_role_editor_save_replaces_permission_set(directory: InMemoryDirectory) -> None:
    role = directory.find_role("billing_clerk")
    editor = RolePermissionEditor(directory, role.id)
    await editor.load()

    editor.toggle_all("properties")
    editor.toggle_all("dashboard")
    editor.toggle_all("dashboard")
    assert editor.dirty

    notice = await editor.save()

    assert notice.level is NoticeLevel.SUCCESS
    assert not editor.dirty
    saved = await directory.get_role(role.id)
    assert set(saved.permission_ids()) == editor.selected
    assert _property_ids(directory) <= set(saved.permission_ids())
    assert "dashboard.read" not in saved.permission_keys()


@pytest.mark.asyncio
async def test_role_editor_keeps_selection_on_conflict(directory: InMemoryDirectory) -> None:
    role = directory.find_role("billing_clerk")
    editor = RolePermissionEditor(directory, role.id)
    await editor.load()
    editor.toggle_all("properties")
    selection = editor.selected

    await directory.delete_role(role.id)
    notice = await editor.save()

    assert notice.level is NoticeLevel.ERROR
    assert notice.retryable
    assert editor.selected == selection
    assert editor.dirty


@pytest.mark.asyncio
async def test_role_editor_reports_outage(directory: InMemoryDirectory) -> None:
    role = directory.find_role("billing_clerk")
    editor = RolePermissionEditor(directory, role.id)
    await editor.load()
    editor.toggle_all("users")

    directory.available = False
    notice = await editor.save()

    assert notice.message == "Failed to update permissions"
    assert notice.retryable
    assert editor.dirty


@pytest.mark.asyncio
async def test_role_editor_load_failure_returns_notice(directory: InMemoryDirectory) -> None:
    directory.available = False
    editor = RolePermissionEditor(directory, "missing")

    notice = await editor.load()

    assert notice.level is NoticeLevel.ERROR
    assert not editor.loaded


class _SlowDirectory(InMemoryDirectory):
    def __init__(self, source: InMemoryDirectory):
        super().__init__()
        self.__dict__.update(source.__dict__)
        self.release = asyncio.Event()

    async def get_role(self, role_id):
        await self.release.wait()
        return await super().get_role(role_id)


@pytest.mark.asyncio
async def test_disposed_editor_ignores_late_load(directory: InMemoryDirectory) -> None:
    slow = _SlowDirectory(directory)
    editor = RolePermissionEditor(slow, slow.find_role("billing_clerk").id)

    task = asyncio.create_task(editor.load())
    await asyncio.sleep(0)
    editor.dispose()
    slow.release.set()

    assert await task is None
    assert not editor.loaded
    assert editor.role is None


@pytest.mark.asyncio
async def test_stale_load_is_dropped(directory: InMemoryDirectory) -> None:
    slow = _SlowDirectory(directory)
    editor = RolePermissionEditor(slow, slow.find_role("billing_clerk").id)

    first = asyncio.create_task(editor.load())
    await asyncio.sleep(0)
    second = asyncio.create_task(editor.load())
    await asyncio.sleep(0)
    slow.release.set()
    await asyncio.gather(first, second)

    assert editor.loaded
    assert editor._generation == 2


@pytest.mark.asyncio
async def test_disposed_editor_does_not_save(directory: InMemoryDirectory) -> None:
    role = directory.find_role("billing_clerk")
    editor = RolePermissionEditor(directory, role.id)
    await editor.load()
    editor.toggle_all("properties")
    editor.dispose()

    assert await editor.save() is None
    assert set((await directory.get_role(role.id)).permission_ids()) == editor.persisted


@pytest.mark.asyncio
async def test_role_editor_does_not_save_before_load(directory: InMemoryDirectory) -> None:
    role = directory.find_role("billing_clerk")
    before = set(role.permission_ids())
    editor = RolePermissionEditor(directory, role.id)

    directory.available = False
    await editor.load()
    directory.available = True
    notice = await editor.save()

    assert notice.level is NoticeLevel.ERROR
    assert notice.retryable
    assert set((await directory.get_role(role.id)).permission_ids()) == before

    never_loaded = await RolePermissionEditor(directory, role.id).save()
    assert never_loaded.retryable
    assert set((await directory.get_role(role.id)).permission_ids()) == before


# ============================================================================
# Staff editor
# ============================================================================

@pytest.mark.asyncio
async def test_staff_editor_saves_full_grant_list(directory: InMemoryDirectory) -> None:
    role = directory.find_role("billing_clerk")
    staff = directory.add_staff("Eve", "eve@example.com", "pw", role_id=role.id)
    editor = StaffPermissionEditor(directory, staff.id)
    await editor.load()

    assert editor.module_state("subscriptions") is SelectionState.PARTIAL

    editor.toggle_all("support")
    notice = await editor.save()

    assert notice.level is NoticeLevel.SUCCESS
    grants = await directory.get_staff_permissions(staff.id)
    granted = {grant.module_permission_id for grant in grants if grant.is_granted}
    assert granted == editor.selected
    assert len(grants) == len(editor.grants())


@pytest.mark.asyncio
async def test_staff_overrides_reach_login(directory: InMemoryDirectory) -> None:
    role = directory.find_role("billing_clerk")
    staff = directory.add_staff("Eve", "eve@example.com", "pw", role_id=role.id)
    editor = StaffPermissionEditor(directory, staff.id)
    await editor.load()
    editor.toggle_all("support")
    await editor.save()

    principal = await directory.login("eve@example.com", "pw")

    assert "support.update" in principal.permissions
    assert "subscriptions.read" in principal.permissions


# ============================================================================
# Forms
# ============================================================================

def test_role_form_requires_name() -> None:
    with pytest.raises(FormValidationError) as info:
        validate_role_form({"name": "   "})

    assert "name" in info.value.errors


def test_module_form_defaults() -> None:
    form = validate_module_form({"name": "reports", "displayName": "Reports"})

    assert form.order == 1
    assert form.create_default_permissions is True


def test_module_form_rejects_key_characters() -> None:
    with pytest.raises(FormValidationError):
        validate_module_form({"name": "re.ports", "displayName": "Reports"})


@pytest.mark.asyncio
async def test_invalid_form_never_reaches_directory(directory: InMemoryDirectory) -> None:
    directory.available = False

    with pytest.raises(FormValidationError):
        await submit_role(directory, {"description": "no name"})


@pytest.mark.asyncio
async def test_submit_module_creates_default_permissions(directory: InMemoryDirectory) -> None:
    module = await submit_module(directory, {"name": "reports", "displayName": "Reports"})

    assert [permission.key for permission in module.permissions] == [
        "reports.read", "reports.add", "reports.update", "reports.delete",
    ]

    updated = await submit_module(directory, {"name": "reports", "displayName": "Reporting", "order": 3}, module.id)

    assert updated.display_name == "Reporting"
    assert updated.order == 3
    assert len(updated.permissions) == 4


@pytest.mark.asyncio
async def test_submit_role_create_and_update(directory: InMemoryDirectory) -> None:
    role = await submit_role(directory, {"name": "auditor", "scope": "admin"})

    assert role.scope is RoleScope.ADMIN

    updated = await submit_role(directory, {"name": "auditor", "description": "Reads logs"}, role.id)

    assert updated.description == "Reads logs"
    assert updated.scope is RoleScope.STAFF


@pytest.mark.asyncio
async def test_staff_editor_does_not_save_before_load(directory: InMemoryDirectory) -> None:
    staff = directory.add_staff("Eve", "eve@example.com", "pw", role_id=directory.find_role("billing_clerk").id)
    before = await directory.get_staff_permissions(staff.id)
    editor = StaffPermissionEditor(directory, staff.id)

    directory.available = False
    await editor.load()
    directory.available = True
    notice = await editor.save()

    assert notice.level is NoticeLevel.ERROR
    assert notice.retryable
    assert await directory.get_staff_permissions(staff.id) == before
    assert "subscriptions.read" in (await directory.login("eve@example.com", "pw")).permissions


class _HeldStaffDirectory(InMemoryDirectory):
    def __init__(self, source: InMemoryDirectory):
        super().__init__()
        self.__dict__.update(source.__dict__)
        self.release = asyncio.Event()
        self.saves = 0

    async def update_staff_permissions(self, staff_id, grants):
        self.saves += 1
        await self.release.wait()
        return await super().update_staff_permissions(staff_id, grants)


@pytest.mark.asyncio
async def test_staff_editor_allows_one_save_at_a_time(directory: InMemoryDirectory) -> None:
    staff = directory.add_staff("Eve", "eve@example.com", "pw", role_id=directory.find_role("billing_clerk").id)
    held = _HeldStaffDirectory(directory)
    editor = StaffPermissionEditor(held, staff.id)
    await editor.load()
    editor.toggle_all("support")

    first = asyncio.create_task(editor.save())
    await asyncio.sleep(0)
    second = await editor.save()
    held.release.set()

    assert second.message == "A save is already in progress"
    assert second.retryable
    assert (await first).level is NoticeLevel.SUCCESS
    assert held.saves == 1
    assert not editor.dirty
