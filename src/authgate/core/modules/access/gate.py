import asyncio
from collections.abc import Awaitable, Collection
from datetime import datetime
from uuid import UUID

import structlog

from authgate.core.clock import Clock
from authgate.core.modules.access.models import AuthErrorKind, AuthFailure, AuthPolicy, ClientInfo, LoginResult
from authgate.core.modules.principal.hashing import PasswordHasher
from authgate.core.modules.principal.models import Principal, Role
from authgate.core.modules.session.models import AuthToken
from authgate.core.stores import CredentialStore, SessionStore, StoreError
from authgate.utils import as_utc, is_well_formed_token, normalize_email

logger = structlog.get_logger(__name__)

_UNAVAILABLE = AuthFailure(AuthErrorKind.SERVICE_UNAVAILABLE)


def authorize(principal: Principal, required_roles: Collection[Role]) -> Principal | AuthFailure:
    """Flat role check: the principal's own role must be listed. No side effects."""
    if principal.role in required_roles:
        return principal
    return AuthFailure(AuthErrorKind.FORBIDDEN)


class AuthGate:
    """Authenticates principals and validates session tokens.

    Every failure the caller can expect comes back as an `AuthFailure` value.
    Store failures and timeouts come back as SERVICE_UNAVAILABLE: the gate
    never grants access when it cannot confirm the current state.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        sessions: SessionStore,
        hasher: PasswordHasher,
        clock: Clock,
        policy: AuthPolicy | None = None,
        store_timeout: float | None = 5.0,
    ) -> None:
        self._credentials = credentials
        self._sessions = sessions
        self._hasher = hasher
        self._clock = clock
        self._policy = policy or AuthPolicy()
        self._store_timeout = store_timeout
        self._decoy_hash = hasher.decoy_hash()

    @property
    def policy(self) -> AuthPolicy:
        return self._policy

    async def authenticate(
        self, email: str, password: str, client: ClientInfo | None = None
    ) -> LoginResult | AuthFailure:
        client = client or ClientInfo()
        email = normalize_email(email)
        try:
            principal = await self._store(self._credentials.find_by_email(email))
            if principal is None:
                # Same cost as a real comparison so timing does not reveal unknown emails
                await self._verify(password, self._decoy_hash)
                logger.info("login_unknown_email", ip_address=client.ip_address)
                return AuthFailure(AuthErrorKind.INVALID_CREDENTIALS)

            now = self._clock.now()
            if principal.locked_until is not None and as_utc(principal.locked_until) > now:
                retry_after = as_utc(principal.locked_until) - now
                logger.info("login_while_locked", principal_id=str(principal.id), retry_after=retry_after.total_seconds())
                return AuthFailure(AuthErrorKind.ACCOUNT_LOCKED, retry_after=retry_after)

            if not await self._verify(password, principal.password_hash):
                await self._store(
                    self._credentials.record_failed_attempt(
                        principal.id,
                        threshold=self._policy.max_failed_attempts,
                        locked_until=now + self._policy.lockout_duration,
                    )
                )
                logger.info(
                    "login_wrong_password",
                    principal_id=str(principal.id),
                    failed_attempts=principal.failed_login_attempts + 1,
                    ip_address=client.ip_address,
                )
                return AuthFailure(AuthErrorKind.INVALID_CREDENTIALS)

            await self._store(self._credentials.clear_failed_attempts(principal.id, now=now))
            if self._hasher.needs_rehash(principal.password_hash):
                new_hash = await asyncio.to_thread(self._hasher.hash, password)
                await self._store(self._credentials.update_password_hash(principal.id, new_hash))
                logger.info("password_rehashed", principal_id=str(principal.id))

            if not principal.is_active:
                logger.info("login_disabled_account", principal_id=str(principal.id))
                return AuthFailure(AuthErrorKind.ACCOUNT_DISABLED)

            session = await self._store(
                self._sessions.create(
                    principal.id,
                    self._policy.session_ttl,
                    now=now,
                    ip_address=client.ip_address,
                    user_agent=client.user_agent,
                )
            )
        except StoreError as e:
            return self._unavailable("authenticate", e)

        principal = principal.model_copy(update={"failed_login_attempts": 0, "locked_until": None, "last_login_at": now})
        logger.info("login_succeeded", principal_id=str(principal.id), role=principal.role)
        return LoginResult(principal=principal, session=session)

    async def validate_session(self, token: str | None) -> Principal | AuthFailure:
        if not token or not is_well_formed_token(token):
            return AuthFailure(AuthErrorKind.UNAUTHENTICATED)
        auth_token = AuthToken(token)
        try:
            session = await self._store(self._sessions.find_by_token(auth_token))
            if session is None:
                return AuthFailure(AuthErrorKind.UNAUTHENTICATED)

            now = self._clock.now()
            if now >= as_utc(session.expires_at) or self._idle_expired(as_utc(session.last_activity_at), now):
                await self._store(self._sessions.delete_by_token(auth_token))
                logger.info("session_expired", principal_id=str(session.principal_id))
                return AuthFailure(AuthErrorKind.SESSION_EXPIRED)

            # Always re-read: deactivation must take effect on the next request
            principal = await self._store(self._credentials.find_by_id(session.principal_id))
            if principal is None or not principal.is_active:
                await self._store(self._sessions.delete_by_token(auth_token))
                logger.info("session_orphaned", principal_id=str(session.principal_id))
                return AuthFailure(AuthErrorKind.UNAUTHENTICATED)

            await self._store(self._sessions.touch(auth_token, now))
        except StoreError as e:
            return self._unavailable("validate_session", e)
        return principal

    @staticmethod
    def authorize(principal: Principal, required_roles: Collection[Role]) -> Principal | AuthFailure:
        return authorize(principal, required_roles)

    async def revoke_session(self, token: str) -> AuthFailure | None:
        try:
            await self._store(self._sessions.delete_by_token(AuthToken(token)))
        except StoreError as e:
            return self._unavailable("revoke_session", e)
        return None

    async def revoke_all_for_principal(self, principal_id: UUID) -> int | AuthFailure:
        try:
            count = await self._store(self._sessions.delete_all_for_principal(principal_id))
        except StoreError as e:
            return self._unavailable("revoke_all_for_principal", e)
        logger.info("principal_sessions_revoked", principal_id=str(principal_id), count=count)
        return count

    async def revoke_all(self) -> int | AuthFailure:
        try:
            count = await self._store(self._sessions.delete_all())
        except StoreError as e:
            return self._unavailable("revoke_all", e)
        logger.warning("all_sessions_revoked", count=count)
        return count

    async def purge_expired_sessions(self) -> int | AuthFailure:
        try:
            count = await self._store(self._sessions.delete_expired(self._clock.now()))
        except StoreError as e:
            return self._unavailable("purge_expired_sessions", e)
        logger.info("expired_sessions_purged", count=count)
        return count

    async def verify_password(self, principal: Principal, password: str) -> bool:
        """Re-check a known principal's password, e.g. before a password change."""
        return await self._verify(password, principal.password_hash)

    async def _verify(self, password: str, password_hash: str) -> bool:
        return await asyncio.to_thread(self._hasher.verify, password, password_hash)

    async def _store[T](self, call: Awaitable[T]) -> T:
        try:
            async with asyncio.timeout(self._store_timeout):
                return await call
        except TimeoutError as e:
            raise StoreError("store call timed out") from e

    def _idle_expired(self, last_activity_at: datetime, now: datetime) -> bool:
        idle_timeout = self._policy.idle_timeout
        return idle_timeout is not None and now - last_activity_at >= idle_timeout

    def _unavailable(self, operation: str, error: StoreError) -> AuthFailure:
        logger.error("auth_store_unavailable", operation=operation, error=str(error))
        return _UNAVAILABLE
