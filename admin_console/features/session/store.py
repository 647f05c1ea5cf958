"""
Key-value storage for a console session.

Each mutating call runs in one transaction, so a login write or a logout
clear is seen entirely or not at all.
"""
from typing import Dict, Iterable, Mapping, Optional
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from admin_console.features.session.models import SessionEntry
from admin_console.utils import get_logger


log = get_logger(__name__)


class SessionStore:
    """
    String key-value store scoped to one session namespace.

    A store without a namespace (no session cookie) reads as empty.
    """

    def __init__(self, db: AsyncSession, namespace: Optional[str]):
        self.db = db
        self.namespace = namespace

    def _require_namespace(self) -> str:
        if not self.namespace:
            raise ValueError("Session store has no namespace")
        return self.namespace

    async def get_item(self, key: str) -> Optional[str]:
        if not self.namespace:
            return None
        stmt = select(SessionEntry.value).where(
            SessionEntry.namespace == self.namespace,
            SessionEntry.key == key,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_items(self) -> Dict[str, str]:
        if not self.namespace:
            return {}
        stmt = select(SessionEntry.key, SessionEntry.value).where(SessionEntry.namespace == self.namespace)
        result = await self.db.execute(stmt)
        return {key: value for key, value in result.all()}

    async def set_items(self, items: Mapping[str, str]):
        """Write several keys, replacing previous values, in one commit."""
        namespace = self._require_namespace()
        try:
            await self.db.execute(
                delete(SessionEntry).where(
                    SessionEntry.namespace == namespace,
                    SessionEntry.key.in_(list(items)),
                )
            )
            self.db.add_all(
                SessionEntry(namespace=namespace, key=key, value=value)
                for key, value in items.items()
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

    async def remove_items(self, keys: Iterable[str]):
        """Remove several keys in one commit."""
        if not self.namespace:
            return
        try:
            await self.db.execute(
                delete(SessionEntry).where(
                    SessionEntry.namespace == self.namespace,
                    SessionEntry.key.in_(list(keys)),
                )
            )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        log.debug(f"Removed session keys of {self.namespace}")
