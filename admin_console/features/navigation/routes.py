"""
Navigation menu and guarded console screens.

Both answer from the session snapshot only; the directory is never asked.
"""
from typing import Annotated, Dict
from fastapi import APIRouter, Depends, HTTPException, status

from admin_console.core import config
from admin_console.core.exceptions import RouteDenied
from admin_console.features.navigation.menu import (
    DEFAULT_NAVIGATION,
    NavigationItem,
    get_filtered_navigation_items,
)
from admin_console.features.navigation.schemas import NavigationResponse, ScreenResponse
from admin_console.features.permissions.dependencies import guard, guard_route
from admin_console.features.session.cache import SessionSnapshot
from admin_console.features.session.dependencies import get_session_snapshot
from admin_console.utils import get_logger


log = get_logger(__name__)
router = APIRouter()

SCREENS: Dict[str, NavigationItem] = {item.to.lstrip("/"): item for item in DEFAULT_NAVIGATION}


async def guard_screen(
    screen: str,
    snapshot: Annotated[SessionSnapshot, Depends(get_session_snapshot)],
) -> NavigationItem:
    """
    Resolve a screen and apply the route guard to it.

    A screen whose own route is the fallback sends a denied caller to
    sign-in, so the redirect cannot loop.
    """
    item = SCREENS.get(screen)
    if item is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Screen not found")

    if not snapshot.is_loaded:
        raise RouteDenied(config.SIGN_IN_ROUTE, item.permission)

    decision = guard(snapshot.permissions, item.permission)
    if decision.allowed:
        return item

    redirect_to = decision.redirect_to
    if redirect_to == item.to:
        redirect_to = config.SIGN_IN_ROUTE
    log.debug(f"Screen {screen} denied, missing {item.permission}")
    raise RouteDenied(redirect_to, item.permission)


@router.get("/navigation", response_model=NavigationResponse)
async def navigation(
    snapshot: Annotated[SessionSnapshot, Depends(guard_route(None))],
):
    """The console menu, reduced to what the caller may open."""
    return NavigationResponse(items=get_filtered_navigation_items(DEFAULT_NAVIGATION, snapshot.permissions))


@router.get("/screens/{screen}", response_model=ScreenResponse)
async def open_screen(
    screen: str,
    item: Annotated[NavigationItem, Depends(guard_screen)],
    snapshot: Annotated[SessionSnapshot, Depends(get_session_snapshot)],
):
    module = item.permission.split(".", 1)[0] if item.permission else screen
    return ScreenResponse(
        screen=screen,
        label=item.label,
        path=item.to,
        permission=item.permission,
        can_write=snapshot.can_write(module),
        can_delete=snapshot.can_delete(module),
    )
