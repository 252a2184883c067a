"""Values returned by the auth gate.

Expected failures are returned, not raised: callers branch on `AuthFailure.kind`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from authgate.core.modules.principal.models import Principal
    from authgate.core.modules.session.models import Session


class AuthErrorKind(StrEnum):
    INVALID_CREDENTIALS = "invalid_credentials"
    ACCOUNT_LOCKED = "account_locked"
    ACCOUNT_DISABLED = "account_disabled"
    UNAUTHENTICATED = "unauthenticated"
    SESSION_EXPIRED = "session_expired"
    FORBIDDEN = "forbidden"
    RATE_LIMITED = "rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"


@dataclass(frozen=True, slots=True)
class AuthFailure:
    kind: AuthErrorKind
    retry_after: timedelta | None = None  # only for ACCOUNT_LOCKED and RATE_LIMITED


@dataclass(frozen=True, slots=True)
class LoginResult:
    principal: Principal
    session: Session


@dataclass(frozen=True, slots=True)
class ClientInfo:
    """Where a request came from. Recorded on sessions and security events."""

    ip_address: str | None = None
    user_agent: str | None = None


@dataclass(frozen=True, slots=True)
class AuthPolicy:
    session_ttl: timedelta = timedelta(hours=24)
    idle_timeout: timedelta | None = None
    max_failed_attempts: int = 5
    lockout_duration: timedelta = timedelta(minutes=15)
