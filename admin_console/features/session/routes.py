"""
Session routes: sign in, inspect and sign out.
"""
from typing import Annotated, Optional
from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import RedirectResponse
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from admin_console.core import config
from admin_console.core.database.base import generate_ulid
from admin_console.core.database.engine import get_db
from admin_console.core.exceptions import DirectoryUnavailable
from admin_console.core.limiter import limiter
from admin_console.core.notices import Notice
from admin_console.features.permissions.dependencies import get_directory
from admin_console.features.permissions.directory import DirectoryService
from admin_console.features.session.cache import SessionCache, SessionSnapshot
from admin_console.features.session.dependencies import get_session_cache, get_session_id, get_session_snapshot
from admin_console.features.session.schemas import LoginRequest, SessionResponse
from admin_console.features.session.store import SessionStore
from admin_console.utils import get_logger


log = get_logger(__name__)
router = APIRouter()


@router.post("", response_model=SessionResponse)
@limiter.limit(config.LOGIN_RATE_LIMIT, key_func=get_remote_address)
async def login(
    request: Request,
    response: Response,
    credentials: LoginRequest,
    directory: Annotated[DirectoryService, Depends(get_directory)],
    db: Annotated[AsyncSession, Depends(get_db)],
    previous_session: Annotated[Optional[str], Depends(get_session_id)],
):
    """
    Authenticate against the directory and load a fresh session.

    The previous session, if any, is cleared first and a new session id is
    issued, so a sign-in never inherits another principal's permissions.
    """
    principal = await directory.login(credentials.email, credentials.password)

    if previous_session:
        await SessionCache(SessionStore(db, previous_session)).clear_session()

    session_id = generate_ulid()
    snapshot = await SessionCache(SessionStore(db, session_id)).load_session(principal)
    response.set_cookie(
        config.SESSION_COOKIE_NAME,
        session_id,
        httponly=True,
        samesite="lax",
        secure=config.SESSION_COOKIE_SECURE,
    )
    return SessionResponse.from_snapshot(snapshot, Notice.success("Signed in successfully"))


@router.get("", response_model=SessionResponse)
async def current_session(
    snapshot: Annotated[SessionSnapshot, Depends(get_session_snapshot)],
):
    """Get the caller's session state, identity and permission keys."""
    return SessionResponse.from_snapshot(snapshot)


@router.post("/logout")
async def logout(
    directory: Annotated[DirectoryService, Depends(get_directory)],
    cache: Annotated[SessionCache, Depends(get_session_cache)],
):
    """
    Sign out and go back to the sign-in route.

    The local session is cleared even when the directory cannot be told
    about the logout.
    """
    snapshot = await cache.snapshot()
    if snapshot.token:
        try:
            await directory.logout(snapshot.token)
        except DirectoryUnavailable as exc:
            log.warning(f"Directory logout failed, clearing session anyway: {exc.message}")

    await cache.clear_session()
    response = RedirectResponse(config.SIGN_IN_ROUTE, status_code=status.HTTP_303_SEE_OTHER)
    response.delete_cookie(config.SESSION_COOKIE_NAME)
    return response
