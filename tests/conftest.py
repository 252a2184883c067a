"""Shared pytest fixtures.

Stores are in-memory and built per test; nothing is shared between tests.
"""

import asyncio
import secrets
from datetime import UTC, datetime, timedelta
from uuid import UUID

import pytest

from authgate.app import App
from authgate.config import Config
from authgate.core.modules.access.gate import AuthGate
from authgate.core.modules.access.models import AuthPolicy
from authgate.core.modules.audit.models import SecurityEvent
from authgate.core.modules.principal.hashing import PasswordHasher
from authgate.core.modules.principal.models import Principal, Role
from authgate.core.modules.principal.validators import validate_email, validate_password
from authgate.core.modules.session.models import AuthToken, Session
from authgate.core.stores import StoreError
from authgate.errors import NotFoundError, ValidationError
from authgate.utils import normalize_email

START = datetime(2025, 3, 1, 9, 0, tzinfo=UTC)
PASSWORD = "correct-horse"


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> None:
        self.current += timedelta(**kwargs)


class CountingHasher(PasswordHasher):
    """PasswordHasher that counts full hash comparisons."""

    def __init__(self, rounds: int = 4) -> None:
        super().__init__(rounds=rounds)
        self.verify_calls = 0

    def verify(self, password: str, stored_hash: str) -> bool:
        self.verify_calls += 1
        return super().verify(password, stored_hash)


class MemoryCredentialStore:
    def __init__(self) -> None:
        self.principals: dict[UUID, Principal] = {}
        self.failing = False
        self.failed_attempt_calls = 0
        self.hasher: PasswordHasher | None = None

    def set_core(self, core) -> None:
        self.hasher = core.hasher

    def add(
        self, email: str, password: str, role: Role, *, hasher: PasswordHasher, **fields: object
    ) -> Principal:
        principal = Principal(email=normalize_email(email), role=role, password_hash=hasher.hash(password), **fields)
        self.principals[principal.id] = principal
        return principal

    def get(self, principal_id: UUID) -> Principal:
        return self.principals[principal_id]

    def _check(self) -> None:
        if self.failing:
            raise StoreError("credential store offline")

    def _update(self, principal_id: UUID, **fields: object) -> Principal:
        principal = self.principals.get(principal_id)
        if principal is None:
            raise NotFoundError(f"Principal '{principal_id}' not found")
        self.principals[principal_id] = principal.model_copy(update=fields)
        return self.principals[principal_id]

    # CredentialStore

    async def find_by_email(self, email: str) -> Principal | None:
        self._check()
        email = normalize_email(email)
        return next((p for p in self.principals.values() if p.email == email), None)

    async def find_by_id(self, principal_id: UUID) -> Principal | None:
        self._check()
        return self.principals.get(principal_id)

    async def record_failed_attempt(self, principal_id: UUID, *, threshold: int, locked_until: datetime) -> None:
        self._check()
        self.failed_attempt_calls += 1
        attempts = self.principals[principal_id].failed_login_attempts + 1
        if attempts >= threshold:
            self._update(principal_id, failed_login_attempts=attempts, locked_until=locked_until)
        else:
            self._update(principal_id, failed_login_attempts=attempts)

    async def clear_failed_attempts(self, principal_id: UUID, *, now: datetime) -> None:
        self._check()
        self._update(principal_id, failed_login_attempts=0, locked_until=None, last_login_at=now)

    async def update_password_hash(self, principal_id: UUID, password_hash: str) -> None:
        self._check()
        self._update(principal_id, password_hash=password_hash)

    # Account administration

    async def get_principal(self, principal_id: UUID) -> Principal:
        principal = await self.find_by_id(principal_id)
        if principal is None:
            raise NotFoundError(f"Principal '{principal_id}' not found")
        return principal

    async def list_principals(self) -> list[Principal]:
        self._check()
        return sorted(self.principals.values(), key=lambda p: p.email)

    async def create_principal(self, email: str, password: str, role: Role) -> Principal:
        self._check()
        email = normalize_email(email)
        validate_email(email)
        validate_password(password)
        if await self.find_by_email(email) is not None:
            raise ValidationError(f"Principal '{email}' already exists")
        assert self.hasher is not None
        return self.add(email, password, role, hasher=self.hasher)

    async def set_active(self, principal_id: UUID, is_active: bool) -> Principal:
        self._check()
        return self._update(principal_id, is_active=is_active)

    async def unlock(self, principal_id: UUID) -> Principal:
        self._check()
        return self._update(principal_id, failed_login_attempts=0, locked_until=None)

    async def change_password(self, principal_id: UUID, new_password: str) -> None:
        self._check()
        validate_password(new_password)
        assert self.hasher is not None
        self._update(principal_id, password_hash=self.hasher.hash(new_password))


class MemorySessionStore:
    def __init__(self) -> None:
        self.sessions: dict[str, Session] = {}
        self.failing = False
        self.delay = 0.0
        self.lookups = 0

    async def _check(self) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.failing:
            raise StoreError("session store offline")

    def for_principal(self, principal_id: UUID) -> list[Session]:
        return [s for s in self.sessions.values() if s.principal_id == principal_id]

    async def create(
        self,
        principal_id: UUID,
        ttl: timedelta,
        *,
        now: datetime,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Session:
        await self._check()
        session = Session(
            token=secrets.token_urlsafe(32),
            principal_id=principal_id,
            created_at=now,
            expires_at=now + ttl,
            last_activity_at=now,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        self.sessions[session.token] = session
        return session

    async def find_by_token(self, token: AuthToken) -> Session | None:
        await self._check()
        self.lookups += 1
        return self.sessions.get(token)

    async def touch(self, token: AuthToken, now: datetime) -> None:
        await self._check()
        if token in self.sessions:
            self.sessions[token] = self.sessions[token].model_copy(update={"last_activity_at": now})

    async def delete_by_token(self, token: AuthToken) -> None:
        await self._check()
        self.sessions.pop(token, None)

    async def delete_all_for_principal(self, principal_id: UUID) -> int:
        await self._check()
        tokens = [s.token for s in self.for_principal(principal_id)]
        for token in tokens:
            del self.sessions[token]
        return len(tokens)

    async def delete_all(self) -> int:
        await self._check()
        count = len(self.sessions)
        self.sessions.clear()
        return count

    async def delete_expired(self, now: datetime) -> int:
        await self._check()
        expired = [token for token, s in self.sessions.items() if s.expires_at <= now]
        for token in expired:
            del self.sessions[token]
        return len(expired)


class MemoryAuditLog:
    def __init__(self) -> None:
        self.events: list[SecurityEvent] = []

    async def record(self, event: SecurityEvent) -> None:
        self.events.append(event)

    async def list_recent(self, limit: int = 100) -> list[SecurityEvent]:
        return list(reversed(self.events))[:limit]

    def types(self) -> list[str]:
        return [event.event_type for event in self.events]


class MemoryServices:
    """Stand-in for the MongoDB service registry."""

    def __init__(self) -> None:
        self.principal = MemoryCredentialStore()
        self.session = MemorySessionStore()
        self.audit = MemoryAuditLog()

    def set_core(self, core) -> None:
        self.principal.set_core(core)

    async def start_all(self) -> None:
        pass

    async def stop_all(self) -> None:
        pass


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def hasher():
    return CountingHasher()


@pytest.fixture
def credentials():
    return MemoryCredentialStore()


@pytest.fixture
def sessions():
    return MemorySessionStore()


@pytest.fixture
def policy():
    """Lockout after 5 failures for 15 minutes, sessions live one hour."""
    return AuthPolicy(
        session_ttl=timedelta(seconds=3600),
        max_failed_attempts=5,
        lockout_duration=timedelta(minutes=15),
    )


@pytest.fixture
def gate(credentials, sessions, hasher, clock, policy):
    return AuthGate(credentials=credentials, sessions=sessions, hasher=hasher, clock=clock, policy=policy)


@pytest.fixture
def alice(credentials, hasher):
    return credentials.add("alice@example.com", PASSWORD, Role.TECHNICIAN, hasher=hasher)


@pytest.fixture
def config():
    return Config(
        database_url="mongodb://localhost:27017/authgate_test",
        bcrypt_rounds=4,
        session_ttl_seconds=3600,
        session_cookie_secure=False,
    )


@pytest.fixture
def services():
    return MemoryServices()


@pytest.fixture
def app(config, services, clock):
    return App(config, services=services, clock=clock)
