from typing import Any

import structlog
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import PyMongoError

from authgate.core.core import Service
from authgate.core.db import wrap_store_errors
from authgate.core.modules.audit.models import SecurityEvent

logger = structlog.get_logger(__name__)


class AuditService(Service):
    """Persists security events.

    Recording is best effort: a failed insert is logged with the event and
    does not change the outcome of the request that produced it.
    """

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        super().__init__(database)
        self._collection = database.get_collection("security_events")

    async def on_start(self) -> None:
        """Create indexes on startup."""
        retention = self.core.config.security_event_retention_days * 24 * 60 * 60
        await self._collection.create_index([("created_at", 1)], expireAfterSeconds=retention)
        await self._collection.create_index([("principal_id", 1)])

    async def record(self, event: SecurityEvent) -> None:
        try:
            await self._collection.insert_one(event.to_mongo())
        except PyMongoError:
            logger.exception("security_event_not_recorded", security_event=event.model_dump(mode="json"))

    @wrap_store_errors
    async def list_recent(self, limit: int = 100) -> list[SecurityEvent]:
        return await SecurityEvent.list_cursor(self._collection.find().sort("created_at", -1).limit(limit))
