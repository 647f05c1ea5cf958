"""
Error taxonomy of the console.

Directory failures are recovered at the route boundary and turned into
notices; only programming errors (e.g. a non-string permission key) are
allowed to propagate.
"""
from typing import Dict, Optional


class ConsoleError(Exception):
    """Base class for errors raised by the console."""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class DirectoryUnavailable(ConsoleError):
    """The directory service could not be reached or failed to answer."""

    def __init__(self, message: str = "Directory service unavailable"):
        super().__init__(message)


class MalformedCache(ConsoleError):
    """Persisted session data could not be decoded."""

    def __init__(self, key: str, message: str = "Malformed session entry"):
        super().__init__(f"{message}: {key}")
        self.key = key


class FormValidationError(ConsoleError):
    """A role or module form is missing required fields."""

    def __init__(self, errors: Dict[str, str]):
        super().__init__("; ".join(f"{field}: {msg}" for field, msg in errors.items()))
        self.errors = errors


class DirectoryConflict(ConsoleError):
    """The directory refused a write that clashes with its current state."""

    def __init__(self, message: str = "Conflicting directory entry"):
        super().__init__(message)


class AssignmentConflict(DirectoryConflict):
    """The directory rejected a permission assignment (stale role, unknown ids)."""

    def __init__(self, message: str = "Permission assignment rejected"):
        super().__init__(message)


class InvalidCredentials(ConsoleError):
    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message)


class NotFound(ConsoleError):
    def __init__(self, resource: str, resource_id: Optional[str] = None):
        detail = f"{resource} not found" if resource_id is None else f"{resource} {resource_id} not found"
        super().__init__(detail)
        self.resource = resource
        self.resource_id = resource_id


class RouteDenied(ConsoleError):
    """Raised by the route guard; answered with a redirect, never with content."""

    def __init__(self, redirect_to: str, required_permission: Optional[str] = None):
        super().__init__(f"Access denied, redirecting to {redirect_to}")
        self.redirect_to = redirect_to
        self.required_permission = required_permission
