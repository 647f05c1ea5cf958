"""
Directory service interface.

The directory owns roles, modules, permissions and staff. The console only
talks to it through this interface; implementations translate their own
failures into DirectoryUnavailable, AssignmentConflict, NotFound and
InvalidCredentials, and own their timeouts.
"""
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence

from admin_console.features.permissions.models import (
    Module,
    ModulePage,
    Permission,
    PrincipalRecord,
    Role,
    RolePage,
    RoleScope,
    Staff,
    StaffPermissionGrant,
)


class DirectoryService(ABC):
    """Asynchronous client of the external directory service."""

    # ------------------------------------------------------------------
    # Permission catalog
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_permissions(self) -> List[Permission]:
        ...

    @abstractmethod
    async def list_modules(self, page: Optional[int] = None, limit: Optional[int] = None) -> ModulePage:
        ...

    @abstractmethod
    async def get_module(self, module_id: str) -> Module:
        ...

    @abstractmethod
    async def create_module(
        self,
        name: str,
        display_name: str,
        description: Optional[str] = None,
        order: int = 1,
        create_default_permissions: bool = True,
    ) -> Module:
        ...

    @abstractmethod
    async def update_module(self, module_id: str, **fields: Any) -> Module:
        ...

    @abstractmethod
    async def delete_module(self, module_id: str) -> None:
        """Delete a module; its permissions go with it."""

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    @abstractmethod
    async def list_roles(
        self,
        page: Optional[int] = None,
        limit: Optional[int] = None,
        scope: Optional[RoleScope] = None,
        search: Optional[str] = None,
    ) -> RolePage:
        ...

    @abstractmethod
    async def get_role(self, role_id: str) -> Role:
        """Get a role with its nested permissions."""

    @abstractmethod
    async def create_role(self, name: str, description: Optional[str], scope: RoleScope) -> Role:
        ...

    @abstractmethod
    async def update_role(self, role_id: str, name: str, description: Optional[str], scope: RoleScope) -> Role:
        ...

    @abstractmethod
    async def delete_role(self, role_id: str) -> None:
        ...

    @abstractmethod
    async def assign_role_permissions(self, role_id: str, permission_ids: Sequence[str]) -> None:
        """Replace the role's whole permission set with permission_ids."""

    # ------------------------------------------------------------------
    # Staff
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_staff(self, staff_id: str) -> Staff:
        ...

    @abstractmethod
    async def get_staff_permissions(self, staff_id: str) -> List[StaffPermissionGrant]:
        ...

    @abstractmethod
    async def update_staff_permissions(self, staff_id: str, grants: Sequence[StaffPermissionGrant]) -> None:
        ...

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    @abstractmethod
    async def login(self, email: str, password: str) -> PrincipalRecord:
        """Authenticate and return the issued principal record."""

    @abstractmethod
    async def logout(self, token: str) -> None:
        ...
