"""Session management models."""

from datetime import datetime
from typing import NewType
from uuid import UUID

from pydantic import BaseModel, Field

from authgate.core.db import MongoModel

AuthToken = NewType("AuthToken", str)


class Session(MongoModel):
    """Server-side record binding an opaque token to a principal.

    Indexed on token - unique, principal_id, expires_at (TTL, expire at the stored time).
    """

    token: str
    principal_id: UUID
    created_at: datetime
    expires_at: datetime
    last_activity_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None


class SessionView(BaseModel):
    """Login response payload."""

    token: str = Field(..., description="Session token for subsequent requests")
    expires_at: datetime = Field(..., description="Session expiry time")

    @classmethod
    def from_domain(cls, session: Session) -> "SessionView":
        return cls(token=session.token, expires_at=session.expires_at)
