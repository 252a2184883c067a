from datetime import datetime
from enum import StrEnum
from uuid import UUID

from pydantic import BaseModel, Field

from authgate.core.db import MongoModel
from authgate.utils import now


class Role(StrEnum):
    """Closed set of roles. No role implies another."""

    ADMIN = "admin"
    COMPANY_ADMIN = "company_admin"
    TECHNICIAN = "technician"
    TESTER = "tester"
    CUSTOMER = "customer"


class Principal(MongoModel):
    """An account that can authenticate.

    Indexed on email - unique. Email is stored normalized (trimmed, lowercase).
    """

    email: str
    role: Role
    password_hash: str  # tagged, see PasswordHasher
    is_active: bool = True
    failed_login_attempts: int = 0
    locked_until: datetime | None = None
    last_login_at: datetime | None = None
    created_at: datetime = Field(default_factory=now)


class PrincipalView(BaseModel):
    """Principal as returned by the API. The password hash and lock counters never leave the server."""

    id: UUID = Field(..., description="Principal ID")
    email: str = Field(..., description="Login email")
    role: Role = Field(..., description="Role")
    is_active: bool = Field(..., description="Whether the account may log in")
    last_login_at: datetime | None = Field(None, description="Last successful login")

    @classmethod
    def from_domain(cls, principal: Principal) -> "PrincipalView":
        return cls(
            id=principal.id,
            email=principal.email,
            role=principal.role,
            is_active=principal.is_active,
            last_login_at=principal.last_login_at,
        )


class PrincipalAdminView(PrincipalView):
    """Principal as seen by account administrators, including lock state."""

    failed_login_attempts: int = Field(..., description="Consecutive failed logins")
    locked_until: datetime | None = Field(None, description="Account locked until this time")

    @classmethod
    def from_domain(cls, principal: Principal) -> "PrincipalAdminView":
        return cls(
            id=principal.id,
            email=principal.email,
            role=principal.role,
            is_active=principal.is_active,
            last_login_at=principal.last_login_at,
            failed_login_attempts=principal.failed_login_attempts,
            locked_until=principal.locked_until,
        )
