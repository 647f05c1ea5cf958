"""
FastAPI dependencies resolving the caller's session.
"""
from typing import Annotated, Optional
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from admin_console.core import config
from admin_console.core.database.engine import get_db
from admin_console.features.session.cache import SessionCache, SessionSnapshot
from admin_console.features.session.store import SessionStore


def get_session_id(request: Request) -> Optional[str]:
    return request.cookies.get(config.SESSION_COOKIE_NAME)


async def get_session_cache(
    db: Annotated[AsyncSession, Depends(get_db)],
    session_id: Annotated[Optional[str], Depends(get_session_id)],
) -> SessionCache:
    return SessionCache(SessionStore(db, session_id))


async def get_session_snapshot(
    cache: Annotated[SessionCache, Depends(get_session_cache)],
) -> SessionSnapshot:
    """
    The caller's immutable session snapshot.

    Usage:
        @router.get("/navigation")
        async def navigation(snapshot: SessionSnapshot = Depends(get_session_snapshot)):
            ...
    """
    return await cache.snapshot()
