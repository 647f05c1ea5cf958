"""
Pydantic schemas for signing in and out of the console.
"""
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from admin_console.core.notices import Notice
from admin_console.features.permissions.models import DisplayIdentity, RoleDescriptor
from admin_console.features.session.cache import SessionSnapshot, SessionState


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1)


class SessionResponse(BaseModel):
    """The caller's session, without its token."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    state: SessionState
    identity: Optional[DisplayIdentity] = None
    role: Optional[RoleDescriptor] = None
    permissions: List[str] = []
    notice: Optional[Notice] = None

    @classmethod
    def from_snapshot(cls, snapshot: SessionSnapshot, notice: Optional[Notice] = None) -> "SessionResponse":
        return cls(
            state=snapshot.state,
            identity=snapshot.identity,
            role=snapshot.role,
            permissions=sorted(snapshot.permissions),
            notice=notice,
        )
