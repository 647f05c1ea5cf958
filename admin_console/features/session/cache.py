"""
Session permission cache.

Holds the authenticated principal's flat permission keys, role and display
identity. Consumers never share a mutable cache: they receive an immutable
SessionSnapshot, and only SessionCache.load_session / clear_session issue
new state, each as a single replacement of every persisted key.

States:
    unloaded -> loaded   (login)
    loaded   -> cleared  (logout)
    cleared  -> loaded   (next login)

Anything read before a successful load, or any corrupt entry, evaluates as
deny-all.
"""
import json
from enum import Enum
from typing import Any, FrozenSet, Optional
from pydantic import BaseModel, ConfigDict, ValidationError

from admin_console.core.exceptions import MalformedCache
from admin_console.features.permissions import evaluation
from admin_console.features.permissions.evaluation import Requested
from admin_console.features.permissions.models import DisplayIdentity, PrincipalRecord, RoleDescriptor
from admin_console.features.session.store import SessionStore
from admin_console.utils import get_logger


log = get_logger(__name__)


# Persisted keys
AUTH_TOKEN_KEY = "auth_token"
PERMISSIONS_KEY = "user_permissions"
ROLE_KEY = "user_role"
USER_DATA_KEY = "user_data"
# Flags older console builds check for
AUTH_FLAG_KEY = "auth"
USER_TYPE_KEY = "user_type"

SESSION_KEYS = (
    AUTH_TOKEN_KEY,
    PERMISSIONS_KEY,
    ROLE_KEY,
    USER_DATA_KEY,
    AUTH_FLAG_KEY,
    USER_TYPE_KEY,
)


class SessionState(str, Enum):
    UNLOADED = "unloaded"
    LOADED = "loaded"
    CLEARED = "cleared"


class SessionSnapshot(BaseModel):
    """
    Immutable view of a session, passed to the navigation filter and the
    route guard.
    """
    model_config = ConfigDict(frozen=True)

    state: SessionState = SessionState.UNLOADED
    permissions: FrozenSet[str] = frozenset()
    role: Optional[RoleDescriptor] = None
    identity: Optional[DisplayIdentity] = None
    token: Optional[str] = None

    @property
    def is_loaded(self) -> bool:
        return self.state is SessionState.LOADED

    def has_permission(self, key: Requested) -> bool:
        return evaluation.has_permission(self.permissions, key)

    def has_any_permission(self, module: str) -> bool:
        return evaluation.has_any_permission(self.permissions, module)

    def can_read(self, module: str) -> bool:
        return evaluation.can_read(self.permissions, module)

    def can_write(self, module: str) -> bool:
        return evaluation.can_write(self.permissions, module)

    def can_delete(self, module: str) -> bool:
        return evaluation.can_delete(self.permissions, module)


EMPTY_SNAPSHOT = SessionSnapshot()
CLEARED_SNAPSHOT = SessionSnapshot(state=SessionState.CLEARED)


def decode_permissions(raw: Optional[str]) -> FrozenSet[str]:
    """
    Decode the persisted permission list.

    Raises:
        MalformedCache: If the value is not a JSON array of strings
    """
    if raw is None:
        return frozenset()
    try:
        value = json.loads(raw)
    except ValueError as exc:
        raise MalformedCache(PERMISSIONS_KEY) from exc
    if not isinstance(value, list) or not all(isinstance(key, str) for key in value):
        raise MalformedCache(PERMISSIONS_KEY)
    return frozenset(value)


def _decode_model(raw: Optional[str], model: Any, key: str) -> Any:
    if raw is None:
        return None
    try:
        return model.model_validate_json(raw)
    except ValidationError:
        log.warning(f"Ignoring malformed session entry {key}")
        return None


class SessionCache:
    """
    Owner of one session's persisted state.

    Usage:
        cache = SessionCache(SessionStore(db, session_id))
        snapshot = await cache.load_session(principal)
        ...
        await cache.clear_session()
    """

    def __init__(self, store: SessionStore):
        self.store = store
        self._cleared = False

    async def load_session(self, principal: PrincipalRecord) -> SessionSnapshot:
        """
        Replace the session with a freshly authenticated principal.
        """
        await self.store.set_items({
            AUTH_TOKEN_KEY: principal.token,
            PERMISSIONS_KEY: json.dumps(principal.permissions),
            ROLE_KEY: principal.role.model_dump_json(),
            USER_DATA_KEY: principal.user.model_dump_json(),
            AUTH_FLAG_KEY: "true",
            USER_TYPE_KEY: principal.role.scope.value,
        })
        self._cleared = False
        log.info(f"Loaded session for {principal.user.email} with {len(principal.permissions)} permissions")
        return SessionSnapshot(
            state=SessionState.LOADED,
            permissions=frozenset(principal.permissions),
            role=principal.role,
            identity=principal.user,
            token=principal.token,
        )

    async def clear_session(self) -> SessionSnapshot:
        """Remove every persisted key of the session at once."""
        await self.store.remove_items(SESSION_KEYS)
        self._cleared = True
        log.info("Session cleared")
        return CLEARED_SNAPSHOT

    async def snapshot(self) -> SessionSnapshot:
        """
        Build the current snapshot from storage.

        A session counts as loaded once its permission list and token are
        present. Corrupt permission data keeps the session loaded but
        grants nothing.
        """
        if self._cleared:
            return CLEARED_SNAPSHOT

        items = await self.store.get_items()
        if PERMISSIONS_KEY not in items or AUTH_TOKEN_KEY not in items:
            return EMPTY_SNAPSHOT

        try:
            permissions = decode_permissions(items[PERMISSIONS_KEY])
        except MalformedCache as exc:
            log.warning(f"{exc.message}, denying all permissions")
            permissions = frozenset()

        return SessionSnapshot(
            state=SessionState.LOADED,
            permissions=permissions,
            role=_decode_model(items.get(ROLE_KEY), RoleDescriptor, ROLE_KEY),
            identity=_decode_model(items.get(USER_DATA_KEY), DisplayIdentity, USER_DATA_KEY),
            token=items[AUTH_TOKEN_KEY],
        )
