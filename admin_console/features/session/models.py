"""
Persisted session entries.

One row per (namespace, key). A namespace is the value of the console's
session cookie; the keys are the ones the browser console kept in its
local storage (auth_token, user_permissions, user_role, user_data, ...).
"""
from sqlalchemy import String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from admin_console.core.database.base import Base, TimestampMixin, generate_ulid


class SessionEntry(Base, TimestampMixin):
    __tablename__ = "session_entries"
    __table_args__ = (UniqueConstraint("namespace", "key", name="uq_session_entries_namespace_key"),)

    # Primary key using ULID
    id: Mapped[str] = mapped_column(String(26), primary_key=True, default=generate_ulid)

    namespace: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    key: Mapped[str] = mapped_column(String(64), nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False)

    def __repr__(self) -> str:
        return f"<SessionEntry(namespace={self.namespace}, key={self.key!r})>"
