"""
Permission evaluation.

Decides whether a held set of permission keys satisfies a requested key or
module. Pure and synchronous; the only input is the granted set, never the
directory.

Precedence of has_permission:
1. global wildcard ("*" or "all")
2. exact key
3. module wildcard ("<module>.*")
4. deny

Anything that is not a proper collection of strings (None, a bare string,
corrupt cache content) is treated as an empty grant set: every request is
denied, nothing is raised.
"""
from collections.abc import Iterable, Mapping
from typing import Any, FrozenSet, Union

from admin_console.features.permissions.models import PermissionKey
from admin_console.utils import get_logger


log = get_logger(__name__)

# Both spellings are honoured; some principals are issued "all"
GLOBAL_WILDCARDS = frozenset({"*", "all"})

EMPTY_GRANTS: FrozenSet[str] = frozenset()

Requested = Union[str, PermissionKey]


def normalize_grants(granted: Any) -> FrozenSet[str]:
    """
    Coerce a granted permission collection into a frozenset of keys.

    Malformed input degrades to the empty set.
    """
    if isinstance(granted, frozenset) and all(isinstance(key, str) for key in granted):
        return granted
    if granted is None:
        return EMPTY_GRANTS
    if isinstance(granted, (str, bytes, Mapping)) or not isinstance(granted, Iterable):
        log.warning(f"Malformed permission set of type {type(granted).__name__}, denying all")
        return EMPTY_GRANTS

    keys = list(granted)
    if not all(isinstance(key, str) for key in keys):
        log.warning("Permission set contains non-string entries, denying all")
        return EMPTY_GRANTS
    return frozenset(keys)


def _parse_requested(requested: Requested) -> PermissionKey:
    if isinstance(requested, PermissionKey):
        return requested
    if isinstance(requested, str):
        return PermissionKey.parse(requested)
    raise TypeError(f"Requested permission must be a string, got {type(requested).__name__}")


def _key_of(requested: Requested) -> str:
    return requested.key if isinstance(requested, PermissionKey) else requested


def has_global_wildcard(granted: Any) -> bool:
    return not GLOBAL_WILDCARDS.isdisjoint(normalize_grants(granted))


def has_permission(granted: Any, requested: Requested) -> bool:
    """
    Check whether the granted set satisfies a requested key.

    Args:
        granted: Held permission keys (may contain "<module>.*", "*" or "all")
        requested: Key such as "users.read", or a parsed PermissionKey

    Returns:
        True if granted, False otherwise (including for malformed grants)

    Raises:
        TypeError: If requested is not a string or PermissionKey
    """
    parsed = _parse_requested(requested)
    grants = normalize_grants(granted)

    if not GLOBAL_WILDCARDS.isdisjoint(grants):
        return True
    if _key_of(requested) in grants:
        return True
    return parsed.module_wildcard in grants


def has_any_permission(granted: Any, module: str) -> bool:
    """
    Check whether the granted set holds any permission within a module.
    """
    if not isinstance(module, str):
        raise TypeError(f"Module must be a string, got {type(module).__name__}")
    grants = normalize_grants(granted)

    if not GLOBAL_WILDCARDS.isdisjoint(grants):
        return True
    prefix = f"{module}."
    return any(key == f"{module}.*" or key.startswith(prefix) for key in grants)


def can_read(granted: Any, module: str) -> bool:
    return has_permission(granted, f"{module}.read")


def can_write(granted: Any, module: str) -> bool:
    return has_permission(granted, f"{module}.add") or has_permission(granted, f"{module}.update")


def can_delete(granted: Any, module: str) -> bool:
    return has_permission(granted, f"{module}.delete")
