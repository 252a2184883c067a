"""Security audit trail."""

from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from authgate.core.db import MongoModel
from authgate.utils import now


class SecurityEventType(StrEnum):
    LOGIN_SUCCESS = "login_success"
    LOGIN_FAILURE = "login_failure"
    ACCOUNT_LOCKED = "account_locked"
    LOGOUT = "logout"
    SESSIONS_REVOKED = "sessions_revoked"
    ALL_SESSIONS_REVOKED = "all_sessions_revoked"
    PASSWORD_CHANGED = "password_changed"
    PRINCIPAL_CREATED = "principal_created"
    PRINCIPAL_DEACTIVATED = "principal_deactivated"
    PRINCIPAL_ACTIVATED = "principal_activated"
    PRINCIPAL_UNLOCKED = "principal_unlocked"
    RATE_LIMITED = "rate_limited"
    ACCESS_DENIED = "access_denied"


class SecurityEvent(MongoModel):
    """One security-relevant event.

    Indexed on created_at (TTL, retention from config) and principal_id.
    `details` carries the internal failure kind; it is never returned to
    unauthenticated callers.
    """

    event_type: SecurityEventType
    success: bool
    principal_id: UUID | None = None
    email: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=now)


class SecurityEventView(BaseModel):
    id: UUID
    event_type: SecurityEventType
    success: bool
    principal_id: UUID | None
    email: str | None
    ip_address: str | None
    details: dict[str, Any]
    created_at: datetime

    @classmethod
    def from_domain(cls, event: SecurityEvent) -> "SecurityEventView":
        return cls(
            id=event.id,
            event_type=event.event_type,
            success=event.success,
            principal_id=event.principal_id,
            email=event.email,
            ip_address=event.ip_address,
            details=event.details,
            created_at=event.created_at,
        )
