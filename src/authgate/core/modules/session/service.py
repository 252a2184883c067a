import secrets
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

import structlog
from pymongo.asynchronous.database import AsyncDatabase

from authgate.core.core import Service
from authgate.core.db import wrap_store_errors
from authgate.core.modules.session.models import AuthToken, Session

logger = structlog.get_logger(__name__)


class SessionService(Service):
    """MongoDB-backed session store. Validity decisions belong to the gate; this only persists."""

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        super().__init__(database)
        self._collection = database.get_collection("sessions")

    async def on_start(self) -> None:
        """Create indexes on startup."""
        await self._collection.create_index([("token", 1)], unique=True)
        await self._collection.create_index([("principal_id", 1)])
        # MongoDB removes each document once its expires_at passes
        await self._collection.create_index([("expires_at", 1)], expireAfterSeconds=0)

    @wrap_store_errors
    async def create(
        self,
        principal_id: UUID,
        ttl: timedelta,
        *,
        now: datetime,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Session:
        session = Session(
            token=secrets.token_urlsafe(32),
            principal_id=principal_id,
            created_at=now,
            expires_at=now + ttl,
            last_activity_at=now,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        await self._collection.insert_one(session.to_mongo())
        return session

    @wrap_store_errors
    async def find_by_token(self, token: AuthToken) -> Session | None:
        return Session.from_mongo(await self._collection.find_one({"token": token}))

    @wrap_store_errors
    async def touch(self, token: AuthToken, now: datetime) -> None:
        await self._collection.update_one({"token": token}, {"$set": {"last_activity_at": now}})

    @wrap_store_errors
    async def delete_by_token(self, token: AuthToken) -> None:
        await self._collection.delete_one({"token": token})

    @wrap_store_errors
    async def delete_all_for_principal(self, principal_id: UUID) -> int:
        result = await self._collection.delete_many({"principal_id": principal_id})
        return result.deleted_count

    @wrap_store_errors
    async def delete_all(self) -> int:
        result = await self._collection.delete_many({})
        logger.warning("all_sessions_deleted", count=result.deleted_count)
        return result.deleted_count

    @wrap_store_errors
    async def delete_expired(self, now: datetime) -> int:
        result = await self._collection.delete_many({"expires_at": {"$lte": now}})
        return result.deleted_count
