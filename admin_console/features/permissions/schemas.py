"""
Pydantic schemas for role, module and permission management.

Request and response models for the RBAC routes and the editors' forms.
"""
from enum import Enum
from typing import Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from admin_console.core.notices import Notice
from admin_console.features.permissions.models import (
    Module,
    Permission,
    Role,
    RoleScope,
    StaffPermissionGrant,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _required(v: str) -> str:
    v = v.strip()
    if not v:
        raise ValueError("must not be blank")
    return v


# ============================================================================
# Role Schemas
# ============================================================================

class RoleForm(CamelModel):
    """Schema for creating or updating a role."""
    name: str = Field(..., max_length=50, description="Role name")
    description: Optional[str] = Field(None, max_length=1000, description="Role description")
    scope: RoleScope = Field(RoleScope.STAFF, description="Audience of the role")

    @field_validator("name")
    @classmethod
    def name_required(cls, v: str) -> str:
        """Reject blank role names."""
        return _required(v)


class RoleResponse(CamelModel):
    data: Optional[Role] = None
    notice: Optional[Notice] = None


class RoleListResponse(CamelModel):
    data: List[Role] = []
    total_pages: int = 1
    notice: Optional[Notice] = None


# ============================================================================
# Module Schemas
# ============================================================================

class ModuleForm(CamelModel):
    """Schema for creating a module."""
    name: str = Field(..., max_length=100, description="Machine name, e.g. 'properties'")
    display_name: str = Field(..., max_length=100, description="Name shown in the console")
    description: Optional[str] = Field(None, max_length=1000)
    order: int = Field(1, ge=0, description="Sort rank")
    create_default_permissions: bool = Field(
        True, description="Generate read/add/update/delete permissions on creation"
    )

    @field_validator("name", "display_name")
    @classmethod
    def required(cls, v: str) -> str:
        return _required(v)

    @field_validator("name")
    @classmethod
    def name_format(cls, v: str) -> str:
        """Module names become permission key prefixes."""
        if "." in v or "*" in v or not v.replace("_", "").replace("-", "").isalnum():
            raise ValueError("must contain only alphanumeric characters, underscores and hyphens")
        return v


class ModuleUpdate(ModuleForm):
    """Schema for editing a module; default permissions are only generated on create."""
    create_default_permissions: bool = False
    is_active: Optional[bool] = None


class ModuleResponse(CamelModel):
    data: Optional[Module] = None
    notice: Optional[Notice] = None


class ModuleListResponse(CamelModel):
    data: List[Module] = []
    total_pages: int = 1
    notice: Optional[Notice] = None


# ============================================================================
# Permission catalog / assignment Schemas
# ============================================================================

class PermissionListResponse(CamelModel):
    data: List[Permission] = []
    notice: Optional[Notice] = None


class AssignRolePermissions(CamelModel):
    """Replace the role's permission set with these ids."""
    permission_ids: List[str] = Field(default_factory=list)


class StaffPermissionsUpdate(CamelModel):
    module_permissions: List[StaffPermissionGrant] = Field(default_factory=list)


class StaffPermissionsResponse(CamelModel):
    module_permissions: List[StaffPermissionGrant] = []
    notice: Optional[Notice] = None


class NoticeResponse(CamelModel):
    notice: Notice


# ============================================================================
# Bulk selection Schemas
# ============================================================================

class SelectionAction(str, Enum):
    TOGGLE_ALL = "toggle_all"
    TOGGLE_ONE = "toggle_one"


class ModuleSelectionState(CamelModel):
    module: str
    state: str
    selected: int
    total: int


class SelectionRequest(CamelModel):
    """
    Apply one toggle to a selection.

    `modules` maps module name to its permission ids; `target` is a module
    name for toggle_all and a permission id for toggle_one.
    """
    modules: Dict[str, List[str]]
    selected: List[str] = Field(default_factory=list)
    action: SelectionAction
    target: str


class SelectionResponse(CamelModel):
    selected: List[str]
    modules: List[ModuleSelectionState]


class RoleEditorResponse(CamelModel):
    role: Optional[Role] = None
    selected: List[str] = []
    modules: List[ModuleSelectionState] = []
    notice: Optional[Notice] = None
