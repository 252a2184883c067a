"""Persistence contracts consumed by the auth gate.

The gate never talks to a database directly. Production implementations are
`PrincipalService` and `SessionService` (MongoDB); tests build in-memory ones.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Protocol
from uuid import UUID

if TYPE_CHECKING:
    from authgate.core.modules.principal.models import Principal
    from authgate.core.modules.session.models import AuthToken, Session


class StoreError(Exception):
    """A store call failed. The gate turns this into a fail-closed result."""


class CredentialStore(Protocol):
    async def find_by_email(self, email: str) -> Principal | None: ...

    async def find_by_id(self, principal_id: UUID) -> Principal | None: ...

    async def record_failed_attempt(self, principal_id: UUID, *, threshold: int, locked_until: datetime) -> None:
        """Increment the failure counter; set `locked_until` once the counter reaches `threshold`."""
        ...

    async def clear_failed_attempts(self, principal_id: UUID, *, now: datetime) -> None:
        """Reset the counter and lock, stamp the login time."""
        ...

    async def update_password_hash(self, principal_id: UUID, password_hash: str) -> None: ...


class SessionStore(Protocol):
    async def create(
        self,
        principal_id: UUID,
        ttl: timedelta,
        *,
        now: datetime,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Session: ...

    async def find_by_token(self, token: AuthToken) -> Session | None: ...

    async def touch(self, token: AuthToken, now: datetime) -> None: ...

    async def delete_by_token(self, token: AuthToken) -> None: ...

    async def delete_all_for_principal(self, principal_id: UUID) -> int: ...

    async def delete_all(self) -> int: ...

    async def delete_expired(self, now: datetime) -> int: ...
