from collections.abc import AsyncGenerator, Collection
from contextlib import asynccontextmanager
from typing import Any, NoReturn
from uuid import UUID

from authgate.config import Config
from authgate.core.clock import Clock
from authgate.core.core import Core, Services
from authgate.core.modules.access import roles
from authgate.core.modules.access.models import AuthErrorKind, AuthFailure, ClientInfo, LoginResult
from authgate.core.modules.audit.models import SecurityEvent, SecurityEventType, SecurityEventView
from authgate.core.modules.principal.models import Principal, PrincipalAdminView, PrincipalView, Role
from authgate.core.modules.ratelimit.models import Blocked, RateLimitedOperation
from authgate.core.modules.session.models import AuthToken
from authgate.errors import (
    AccessDeniedError,
    AuthenticationError,
    RateLimitedError,
    ServiceUnavailableError,
    ValidationError,
)
from authgate.utils import normalize_email


class App:
    """Facade for all application operations, validates sessions and roles before delegating to Core."""

    def __init__(self, config: Config, services: Services | None = None, clock: Clock | None = None) -> None:
        self._core = Core(config, services=services, clock=clock)

    @property
    def config(self) -> Config:
        return self._core.config

    @asynccontextmanager
    async def lifespan(self) -> AsyncGenerator[None]:
        """Application lifespan management - delegates to Core."""
        async with self._core.lifespan():
            yield

    # === Authentication ===

    async def login(self, email: str, password: str, client: ClientInfo) -> LoginResult:
        """Authenticate by email and password and open a session."""
        await self._check_rate_limit(client.ip_address or "unknown", RateLimitedOperation.LOGIN, client)

        result = await self._core.gate.authenticate(email, password, client)
        if isinstance(result, AuthFailure):
            event_type = (
                SecurityEventType.ACCOUNT_LOCKED
                if result.kind == AuthErrorKind.ACCOUNT_LOCKED
                else SecurityEventType.LOGIN_FAILURE
            )
            await self._audit(event_type, False, client, email=normalize_email(email), details={"reason": result.kind})
            _raise_failure(result)

        await self._audit(
            SecurityEventType.LOGIN_SUCCESS, True, client, principal=result.principal, details={"role": result.principal.role}
        )
        return result

    async def authenticate(self, auth_token: str | None) -> Principal:
        """Resolve a session token to its principal or raise."""
        result = await self._core.gate.validate_session(auth_token)
        if isinstance(result, AuthFailure):
            _raise_failure(result)
        return result

    async def require_roles(
        self, auth_token: str | None, required_roles: Collection[Role], client: ClientInfo | None = None
    ) -> Principal:
        """Resolve the principal and check its role against an explicit role set."""
        principal = await self.authenticate(auth_token)
        result = self._core.gate.authorize(principal, required_roles)
        if isinstance(result, AuthFailure):
            await self._audit(
                SecurityEventType.ACCESS_DENIED,
                False,
                client,
                principal=principal,
                details={"role": principal.role, "required": sorted(required_roles)},
            )
            _raise_failure(result)
        return result

    async def logout(self, auth_token: AuthToken | None, client: ClientInfo) -> None:
        """End the current session.

        Unknown, expired and missing tokens are not an error: there is nothing
        left to end, and the caller still gets its cookie cleared.
        """
        if not auth_token:
            return
        result = await self._core.gate.validate_session(auth_token)
        if isinstance(result, AuthFailure) and result.kind == AuthErrorKind.SERVICE_UNAVAILABLE:
            _raise_failure(result)
        _ok(await self._core.gate.revoke_session(auth_token))
        if not isinstance(result, AuthFailure):
            await self._audit(SecurityEventType.LOGOUT, True, client, principal=result)

    async def logout_everywhere(self, auth_token: AuthToken, client: ClientInfo) -> int:
        """End every session of the current principal, on every device."""
        principal = await self.require_roles(auth_token, roles.EVERYONE, client)
        count = _ok(await self._core.gate.revoke_all_for_principal(principal.id))
        await self._audit(SecurityEventType.SESSIONS_REVOKED, True, client, principal=principal, details={"count": count})
        return count

    # === Profile ===

    async def get_current_principal(self, auth_token: AuthToken) -> PrincipalView:
        return PrincipalView.from_domain(await self.require_roles(auth_token, roles.EVERYONE))

    async def change_password(
        self, auth_token: AuthToken, old_password: str, new_password: str, client: ClientInfo
    ) -> None:
        """Change the caller's password, then end all of its sessions."""
        principal = await self.require_roles(auth_token, roles.EVERYONE, client)
        await self._check_rate_limit(str(principal.id), RateLimitedOperation.PASSWORD_CHANGE, client)

        if not await self._core.gate.verify_password(principal, old_password):
            await self._audit(SecurityEventType.PASSWORD_CHANGED, False, client, principal=principal)
            raise ValidationError("Invalid current password")

        await self._core.services.principal.change_password(principal.id, new_password)
        _ok(await self._core.gate.revoke_all_for_principal(principal.id))
        await self._audit(SecurityEventType.PASSWORD_CHANGED, True, client, principal=principal)

    # === Principal administration ===

    async def list_principals(self, auth_token: AuthToken) -> list[PrincipalAdminView]:
        """List all principals (account admins only)."""
        await self.require_roles(auth_token, roles.ACCOUNT_ADMINS)
        principals = await self._core.services.principal.list_principals()
        return [PrincipalAdminView.from_domain(p) for p in principals]

    async def create_principal(
        self, auth_token: AuthToken, email: str, password: str, role: Role, client: ClientInfo
    ) -> PrincipalAdminView:
        """Create a principal (account admins only; only admins may create admins)."""
        current = await self.require_roles(auth_token, roles.ACCOUNT_ADMINS, client)
        if role == Role.ADMIN and current.role not in roles.ADMIN_ONLY:
            await self._audit(
                SecurityEventType.ACCESS_DENIED, False, client, principal=current, details={"requested_role": role}
            )
            raise AccessDeniedError
        await self._check_rate_limit(str(current.id), RateLimitedOperation.REGISTRATION, client)

        principal = await self._core.services.principal.create_principal(email, password, role)
        await self._audit(
            SecurityEventType.PRINCIPAL_CREATED,
            True,
            client,
            principal=current,
            details={"created_id": str(principal.id), "role": role},
        )
        return PrincipalAdminView.from_domain(principal)

    async def deactivate_principal(self, auth_token: AuthToken, principal_id: UUID, client: ClientInfo) -> PrincipalAdminView:
        """Disable an account and end its sessions (account admins only, not yourself)."""
        current, target = await self._resolve_managed_principal(auth_token, principal_id, client)
        if target.id == current.id:
            raise ValidationError("Cannot deactivate yourself")

        principal = await self._core.services.principal.set_active(target.id, False)
        _ok(await self._core.gate.revoke_all_for_principal(target.id))
        await self._audit(
            SecurityEventType.PRINCIPAL_DEACTIVATED, True, client, principal=current, details={"target_id": str(target.id)}
        )
        return PrincipalAdminView.from_domain(principal)

    async def activate_principal(self, auth_token: AuthToken, principal_id: UUID, client: ClientInfo) -> PrincipalAdminView:
        current, target = await self._resolve_managed_principal(auth_token, principal_id, client)
        principal = await self._core.services.principal.set_active(target.id, True)
        await self._audit(
            SecurityEventType.PRINCIPAL_ACTIVATED, True, client, principal=current, details={"target_id": str(target.id)}
        )
        return PrincipalAdminView.from_domain(principal)

    async def unlock_principal(self, auth_token: AuthToken, principal_id: UUID, client: ClientInfo) -> PrincipalAdminView:
        """Clear a lockout before it expires."""
        current, target = await self._resolve_managed_principal(auth_token, principal_id, client)
        principal = await self._core.services.principal.unlock(target.id)
        await self._audit(
            SecurityEventType.PRINCIPAL_UNLOCKED, True, client, principal=current, details={"target_id": str(target.id)}
        )
        return PrincipalAdminView.from_domain(principal)

    # === Session administration ===

    async def revoke_principal_sessions(self, auth_token: AuthToken, principal_id: UUID, client: ClientInfo) -> int:
        """End every session of one principal (admins only)."""
        current = await self.require_roles(auth_token, roles.ADMIN_ONLY, client)
        target = await self._core.services.principal.get_principal(principal_id)
        count = _ok(await self._core.gate.revoke_all_for_principal(target.id))
        await self._audit(
            SecurityEventType.SESSIONS_REVOKED,
            True,
            client,
            principal=current,
            details={"target_id": str(target.id), "count": count},
        )
        return count

    async def revoke_all_sessions(self, auth_token: AuthToken, client: ClientInfo) -> int:
        """End every session of every principal, the caller's included (incident response)."""
        current = await self.require_roles(auth_token, roles.ADMIN_ONLY, client)
        await self._check_rate_limit(str(current.id), RateLimitedOperation.ADMIN_ACTION, client)
        count = _ok(await self._core.gate.revoke_all())
        await self._audit(SecurityEventType.ALL_SESSIONS_REVOKED, True, client, principal=current, details={"count": count})
        return count

    async def purge_expired(self, auth_token: AuthToken) -> dict[str, int]:
        """Remove expired sessions and idle rate-limit records (admins only)."""
        await self.require_roles(auth_token, roles.ADMIN_ONLY)
        sessions = _ok(await self._core.gate.purge_expired_sessions())
        records = self._core.rate_limiter.purge_idle()
        return {"sessions": sessions, "rate_limit_records": records}

    async def list_security_events(self, auth_token: AuthToken, limit: int) -> list[SecurityEventView]:
        await self.require_roles(auth_token, roles.ADMIN_ONLY)
        events = await self._core.services.audit.list_recent(limit)
        return [SecurityEventView.from_domain(event) for event in events]

    # === Private helpers ===

    async def _resolve_managed_principal(
        self, auth_token: AuthToken, principal_id: UUID, client: ClientInfo
    ) -> tuple[Principal, Principal]:
        """Resolve caller and target; company admins cannot manage admins."""
        current = await self.require_roles(auth_token, roles.ACCOUNT_ADMINS, client)
        target = await self._core.services.principal.get_principal(principal_id)
        if target.role == Role.ADMIN and current.role != Role.ADMIN:
            await self._audit(
                SecurityEventType.ACCESS_DENIED,
                False,
                client,
                principal=current,
                details={"target_id": str(target.id)},
            )
            raise AccessDeniedError
        return current, target

    async def _check_rate_limit(self, client_key: str, operation: RateLimitedOperation, client: ClientInfo) -> None:
        decision = self._core.rate_limiter.check_and_record(client_key, operation)
        if isinstance(decision, Blocked):
            await self._audit(
                SecurityEventType.RATE_LIMITED,
                False,
                client,
                details={"operation": operation, "client_key": client_key},
            )
            raise RateLimitedError(decision.retry_after)

    async def _audit(
        self,
        event_type: SecurityEventType,
        success: bool,
        client: ClientInfo | None,
        *,
        principal: Principal | None = None,
        email: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        client = client or ClientInfo()
        event = SecurityEvent(
            event_type=event_type,
            success=success,
            principal_id=principal.id if principal else None,
            email=principal.email if principal else email,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
            details=details or {},
        )
        await self._core.services.audit.record(event)


def _ok[T](result: T | AuthFailure) -> T:
    if isinstance(result, AuthFailure):
        _raise_failure(result)
    return result


def _raise_failure(failure: AuthFailure) -> NoReturn:
    """Map a gate failure to the exception the web layer renders. Messages stay generic."""
    kind = failure.kind
    if kind in (AuthErrorKind.INVALID_CREDENTIALS, AuthErrorKind.ACCOUNT_DISABLED):
        raise AuthenticationError("Invalid credentials")
    if kind in (AuthErrorKind.UNAUTHENTICATED, AuthErrorKind.SESSION_EXPIRED):
        raise AuthenticationError
    if kind == AuthErrorKind.FORBIDDEN:
        raise AccessDeniedError
    if kind in (AuthErrorKind.ACCOUNT_LOCKED, AuthErrorKind.RATE_LIMITED):
        if failure.retry_after is None:
            raise RuntimeError(f"{kind} without retry_after")
        raise RateLimitedError(failure.retry_after)
    if kind == AuthErrorKind.SERVICE_UNAVAILABLE:
        raise ServiceUnavailableError
    raise RuntimeError(f"Unhandled auth failure kind: {kind}")
