"""
Role, module and permission management API routes.

Listing endpoints degrade to an empty list plus a notice when the directory
is down. Write endpoints let directory errors reach the application's
exception handlers, which turn them into notices.
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, HTTPException, Query, status

from admin_console.core.exceptions import DirectoryUnavailable
from admin_console.core.notices import Notice
from admin_console.features.permissions.dependencies import (
    get_directory,
    require_any_permission,
    require_permission,
)
from admin_console.features.permissions.directory import DirectoryService
from admin_console.features.permissions.editor import (
    PermissionCatalog,
    PermissionSelection,
    RolePermissionEditor,
    submit_module,
    submit_role,
)
from admin_console.features.permissions.models import RoleScope
from admin_console.features.permissions.schemas import (
    AssignRolePermissions,
    ModuleForm,
    ModuleListResponse,
    ModuleResponse,
    ModuleSelectionState,
    ModuleUpdate,
    NoticeResponse,
    PermissionListResponse,
    RoleEditorResponse,
    RoleForm,
    RoleListResponse,
    RoleResponse,
    SelectionAction,
    SelectionRequest,
    SelectionResponse,
    StaffPermissionsResponse,
    StaffPermissionsUpdate,
)
from admin_console.features.session.cache import SessionSnapshot
from admin_console.utils import get_logger


log = get_logger(__name__)
router = APIRouter()

Directory = Annotated[DirectoryService, Depends(get_directory)]


# ============================================================================
# Permission Routes
# ============================================================================

@router.get("/permissions", response_model=PermissionListResponse)
async def list_permissions(
    directory: Directory,
    snapshot: SessionSnapshot = Depends(require_permission("roles_permissions.read")),
):
    """List the whole permission catalog."""
    try:
        return PermissionListResponse(data=await directory.list_permissions())
    except DirectoryUnavailable as exc:
        log.warning(f"Failed to load permissions: {exc.message}")
        return PermissionListResponse(data=[], notice=Notice.error("Failed to load permissions"))


# ============================================================================
# Module Routes
# ============================================================================

@router.get("/modules", response_model=ModuleListResponse)
async def list_modules(
    directory: Directory,
    page: Optional[int] = Query(None, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    snapshot: SessionSnapshot = Depends(require_permission("roles_permissions.read")),
):
    """List modules with their permissions."""
    try:
        result = await directory.list_modules(page, limit)
    except DirectoryUnavailable as exc:
        log.warning(f"Failed to load modules: {exc.message}")
        return ModuleListResponse(data=[], notice=Notice.error("Failed to load modules"))
    return ModuleListResponse(data=result.data, total_pages=result.total_pages)


@router.post("/modules", response_model=ModuleResponse, status_code=status.HTTP_201_CREATED)
async def create_module(
    form: ModuleForm,
    directory: Directory,
    snapshot: SessionSnapshot = Depends(require_permission("roles_permissions.add")),
):
    """Create a module, by default with read/add/update/delete permissions."""
    module = await submit_module(directory, form)
    log.info(f"Module {module.name} created with {len(module.permissions)} permissions")
    return ModuleResponse(data=module, notice=Notice.success("Module created successfully"))


@router.get("/modules/{module_id}", response_model=ModuleResponse)
async def get_module(
    module_id: str,
    directory: Directory,
    snapshot: SessionSnapshot = Depends(require_permission("roles_permissions.read")),
):
    return ModuleResponse(data=await directory.get_module(module_id))


@router.put("/modules/{module_id}", response_model=ModuleResponse)
async def update_module(
    module_id: str,
    form: ModuleUpdate,
    directory: Directory,
    snapshot: SessionSnapshot = Depends(require_permission("roles_permissions.update")),
):
    module = await submit_module(directory, form, module_id=module_id)
    return ModuleResponse(data=module, notice=Notice.success("Module updated successfully"))


@router.delete("/modules/{module_id}", response_model=NoticeResponse)
async def delete_module(
    module_id: str,
    directory: Directory,
    snapshot: SessionSnapshot = Depends(require_permission("roles_permissions.delete")),
):
    """Delete a module together with its permissions."""
    await directory.delete_module(module_id)
    log.info(f"Module {module_id} deleted")
    return NoticeResponse(notice=Notice.success("Module deleted successfully"))


# ============================================================================
# Role Routes
# ============================================================================

@router.get("/roles", response_model=RoleListResponse)
async def list_roles(
    directory: Directory,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    scope: Optional[RoleScope] = None,
    search: Optional[str] = None,
    snapshot: SessionSnapshot = Depends(require_permission("roles_permissions.read")),
):
    """List roles with optional scope filter and search."""
    try:
        result = await directory.list_roles(page, limit, scope, search or None)
    except DirectoryUnavailable as exc:
        log.warning(f"Failed to load roles: {exc.message}")
        return RoleListResponse(data=[], notice=Notice.error("Failed to load roles"))
    return RoleListResponse(data=result.data, total_pages=result.pagination.total_pages)


@router.post("/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    form: RoleForm,
    directory: Directory,
    snapshot: SessionSnapshot = Depends(require_permission("roles_permissions.add")),
):
    role = await submit_role(directory, form)
    log.info(f"Role {role.name} created")
    return RoleResponse(data=role, notice=Notice.success("Role created successfully"))


@router.get("/roles/{role_id}", response_model=RoleResponse)
async def get_role(
    role_id: str,
    directory: Directory,
    snapshot: SessionSnapshot = Depends(require_permission("roles_permissions.read")),
):
    """Get a role with its permissions."""
    return RoleResponse(data=await directory.get_role(role_id))


@router.put("/roles/{role_id}", response_model=RoleResponse)
async def update_role(
    role_id: str,
    form: RoleForm,
    directory: Directory,
    snapshot: SessionSnapshot = Depends(require_permission("roles_permissions.update")),
):
    role = await submit_role(directory, form, role_id=role_id)
    return RoleResponse(data=role, notice=Notice.success("Role updated successfully"))


@router.delete("/roles/{role_id}", response_model=NoticeResponse)
async def delete_role(
    role_id: str,
    directory: Directory,
    snapshot: SessionSnapshot = Depends(require_permission("roles_permissions.delete")),
):
    await directory.delete_role(role_id)
    log.info(f"Role {role_id} deleted")
    return NoticeResponse(notice=Notice.success("Role deleted successfully"))


@router.put("/roles/{role_id}/permissions", response_model=NoticeResponse)
async def assign_role_permissions(
    role_id: str,
    assignment: AssignRolePermissions,
    directory: Directory,
    snapshot: SessionSnapshot = Depends(require_permission("roles_permissions.update")),
):
    """Replace the role's permission set."""
    await directory.assign_role_permissions(role_id, assignment.permission_ids)
    log.info(f"Role {role_id} assigned {len(assignment.permission_ids)} permissions")
    return NoticeResponse(notice=Notice.success("Permissions updated successfully"))


@router.get("/roles/{role_id}/editor", response_model=RoleEditorResponse)
async def role_editor(
    role_id: str,
    directory: Directory,
    snapshot: SessionSnapshot = Depends(require_permission("roles_permissions.update")),
):
    """Catalog grouped by module with the role's selection and module states."""
    editor = RolePermissionEditor(directory, role_id)
    notice = await editor.load()
    if notice is not None:
        return RoleEditorResponse(notice=notice)
    return RoleEditorResponse(
        role=editor.role,
        selected=editor.selection.ordered_selection(),
        modules=[ModuleSelectionState(**row) for row in editor.selection.summary()],
    )


# ============================================================================
# Bulk selection
# ============================================================================

@router.post("/selection", response_model=SelectionResponse)
async def apply_selection(
    payload: SelectionRequest,
    snapshot: SessionSnapshot = Depends(require_any_permission("roles_permissions.update", "staff.update")),
):
    """Apply a single toggle to a posted selection."""
    catalog = PermissionCatalog.from_permission_ids(payload.modules)
    selection = PermissionSelection(catalog, payload.selected)

    if payload.action is SelectionAction.TOGGLE_ALL:
        if payload.target not in catalog:
            raise HTTPException(status_code=400, detail=f"Unknown module {payload.target}")
        selection.toggle_all(payload.target)
    else:
        selection.toggle_one(payload.target)

    return SelectionResponse(
        selected=selection.ordered_selection(),
        modules=[ModuleSelectionState(**row) for row in selection.summary()],
    )


# ============================================================================
# Staff permission Routes
# ============================================================================

@router.get("/staff/{staff_id}/permissions", response_model=StaffPermissionsResponse)
async def get_staff_permissions(
    staff_id: str,
    directory: Directory,
    snapshot: SessionSnapshot = Depends(require_any_permission("staff.read", "staff.update")),
):
    try:
        grants = await directory.get_staff_permissions(staff_id)
    except DirectoryUnavailable as exc:
        log.warning(f"Failed to load permissions of staff {staff_id}: {exc.message}")
        return StaffPermissionsResponse(notice=Notice.error("Failed to load permissions"))
    return StaffPermissionsResponse(module_permissions=grants)


@router.put("/staff/{staff_id}/permissions", response_model=NoticeResponse)
async def update_staff_permissions(
    staff_id: str,
    update: StaffPermissionsUpdate,
    directory: Directory,
    snapshot: SessionSnapshot = Depends(require_permission("staff.update")),
):
    await directory.update_staff_permissions(staff_id, update.module_permissions)
    return NoticeResponse(notice=Notice.success("Permissions updated successfully"))
