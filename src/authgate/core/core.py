from __future__ import annotations

import importlib
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, cast
from urllib.parse import urlparse

from pymongo import AsyncMongoClient
from pymongo.asynchronous.database import AsyncDatabase

from authgate.config import Config
from authgate.core.clock import Clock, SystemClock
from authgate.core.modules.access.gate import AuthGate
from authgate.core.modules.principal.hashing import PasswordHasher
from authgate.core.modules.ratelimit.limiter import RateLimiter

if TYPE_CHECKING:
    from authgate.core.modules.audit.service import AuditService
    from authgate.core.modules.principal.service import PrincipalService
    from authgate.core.modules.session.service import SessionService


class Service:
    """Base class for services with direct database access."""

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        self.database = database
        self._core: Core | None = None

    async def on_start(self) -> None:
        """Initialize service on application startup."""

    async def on_stop(self) -> None:
        """Cleanup service on application shutdown."""

    @property
    def core(self) -> Core:
        """Get the core application context."""
        if self._core is None:
            raise RuntimeError("Core not set for service")
        return self._core

    def set_core(self, core: Core) -> None:
        self._core = core


class Services:
    """Service registry; instantiates the MongoDB-backed services in start order."""

    principal: PrincipalService
    session: SessionService
    audit: AuditService

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        self._services: list[Service] = []

        # (attribute_name, module_path, class_name); principals first so the bootstrap admin exists early
        service_configs = [
            ("principal", "authgate.core.modules.principal.service", "PrincipalService"),
            ("session", "authgate.core.modules.session.service", "SessionService"),
            ("audit", "authgate.core.modules.audit.service", "AuditService"),
        ]

        for attr_name, module_path, class_name in service_configs:
            module = importlib.import_module(module_path)
            service_class = cast(type[Service], getattr(module, class_name))
            service_instance = service_class(database)
            setattr(self, attr_name, service_instance)
            self._services.append(service_instance)

    def set_core(self, core: Core) -> None:
        for service in self._services:
            service.set_core(core)

    async def start_all(self) -> None:
        for service in self._services:
            await service.on_start()

    async def stop_all(self) -> None:
        for service in self._services:
            await service.on_stop()


class Core:
    """Container providing config, stores, the auth gate and the rate limiter.

    `services` defaults to the MongoDB-backed registry; any object with the
    same attributes (principal, session, audit) and lifecycle methods works.
    """

    config: Config
    clock: Clock
    hasher: PasswordHasher
    services: Services
    gate: AuthGate
    rate_limiter: RateLimiter
    mongo_client: AsyncMongoClient[dict[str, Any]] | None

    def __init__(self, config: Config, services: Services | None = None, clock: Clock | None = None) -> None:
        self.config = config
        self.clock = clock or SystemClock()
        self.hasher = PasswordHasher(rounds=config.bcrypt_rounds)
        self.mongo_client = None
        if services is None:
            self.mongo_client = AsyncMongoClient(config.database_url, uuidRepresentation="standard", tz_aware=True)
            database = self.mongo_client.get_database(urlparse(config.database_url).path[1:])
            services = Services(database)
        self.services = services
        self.services.set_core(self)

        self.gate = AuthGate(
            credentials=self.services.principal,
            sessions=self.services.session,
            hasher=self.hasher,
            clock=self.clock,
            policy=config.auth_policy(),
            store_timeout=config.store_timeout_seconds,
        )
        self.rate_limiter = RateLimiter(config.rate_limit_rules(), self.clock)

    @asynccontextmanager
    async def lifespan(self) -> AsyncGenerator[None]:
        """Manage application lifecycle - startup and shutdown."""
        await self.on_start()
        try:
            yield
        finally:
            await self.on_stop()

    async def on_start(self) -> None:
        await self.services.start_all()

    async def on_stop(self) -> None:
        await self.services.stop_all()
        if self.mongo_client is not None:
            await self.mongo_client.aclose()
