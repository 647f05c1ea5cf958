"""
Route protection for the console.

Implements:
- The route guard: render a screen or redirect, decided from the session
  snapshot alone (never from the directory)
- API permission dependencies answering 403
- Access to the configured directory service
"""
from typing import Annotated, NamedTuple, Optional
from fastapi import Depends, HTTPException, Request, status

from admin_console.core import config
from admin_console.core.exceptions import RouteDenied
from admin_console.features.permissions.directory import DirectoryService
from admin_console.features.permissions.evaluation import Requested, has_permission
from admin_console.features.session.cache import SessionSnapshot
from admin_console.features.session.dependencies import get_session_snapshot
from admin_console.utils import get_logger


log = get_logger(__name__)


def get_directory(request: Request) -> DirectoryService:
    """The directory service configured on the application."""
    return request.app.state.directory


# ============================================================================
# Route guard
# ============================================================================

class GuardDecision(NamedTuple):
    allowed: bool
    redirect_to: Optional[str] = None


def guard(
    granted,
    required_permission: Optional[Requested],
    fallback_route: str = config.DEFAULT_FALLBACK_ROUTE,
) -> GuardDecision:
    """
    Decide whether a protected screen may render.

    Args:
        granted: Permission keys of the session (malformed means none)
        required_permission: Key the screen requires; None means no requirement
        fallback_route: Where a denied caller is sent

    Returns:
        GuardDecision(True) to render, or GuardDecision(False, fallback_route)
    """
    if required_permission is None:
        return GuardDecision(True)
    if has_permission(granted, required_permission):
        return GuardDecision(True)
    return GuardDecision(False, fallback_route)


def guard_route(
    required_permission: Optional[Requested],
    fallback_route: str = config.DEFAULT_FALLBACK_ROUTE,
):
    """
    FastAPI dependency protecting a console screen.

    Without a loaded session the caller is sent to the sign-in route. A
    denied caller is sent to fallback_route by a redirect, and the handler
    body never runs. When the fallback is the requested path itself the
    caller goes to sign-in instead.

    Usage:
        @router.get("/staff")
        async def staff_screen(snapshot: SessionSnapshot = Depends(guard_route("staff.read"))):
            ...
    """
    async def guard_dependency(
        request: Request,
        snapshot: Annotated[SessionSnapshot, Depends(get_session_snapshot)],
    ) -> SessionSnapshot:
        if not snapshot.is_loaded:
            raise RouteDenied(config.SIGN_IN_ROUTE, required_permission and str(required_permission))

        decision = guard(snapshot.permissions, required_permission, fallback_route)
        if decision.allowed:
            return snapshot

        redirect_to = decision.redirect_to
        if redirect_to == request.url.path:
            redirect_to = config.SIGN_IN_ROUTE
        log.debug(f"Route {request.url.path} denied, missing {required_permission}")
        raise RouteDenied(redirect_to, str(required_permission))

    return guard_dependency


# ============================================================================
# API dependencies
# ============================================================================

async def require_session(
    snapshot: Annotated[SessionSnapshot, Depends(get_session_snapshot)],
) -> SessionSnapshot:
    if not snapshot.is_loaded:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not signed in",
        )
    return snapshot


def require_permission(permission: Requested):
    """
    FastAPI dependency to require a specific permission on an API endpoint.

    Usage:
        @router.delete("/roles/{role_id}")
        async def delete_role(
            role_id: str,
            snapshot: SessionSnapshot = Depends(require_permission("roles_permissions.delete"))
        ):
            ...

    Raises:
        HTTPException: 401 without a session, 403 if the permission is missing
    """
    async def permission_dependency(
        snapshot: Annotated[SessionSnapshot, Depends(require_session)],
    ) -> SessionSnapshot:
        if not snapshot.has_permission(permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Permission denied: {permission}",
            )
        return snapshot

    return permission_dependency


def require_any_permission(*permissions: Requested):
    """
    FastAPI dependency to require ANY of the given permissions.
    """
    async def permission_dependency(
        snapshot: Annotated[SessionSnapshot, Depends(require_session)],
    ) -> SessionSnapshot:
        if any(snapshot.has_permission(permission) for permission in permissions):
            return snapshot
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Permission denied: requires one of {', '.join(map(str, permissions))}",
        )

    return permission_dependency
