import asyncio
from datetime import datetime
from typing import Any
from uuid import UUID

import structlog
from pymongo import ReturnDocument
from pymongo.asynchronous.database import AsyncDatabase
from pymongo.errors import DuplicateKeyError

from authgate.core.core import Service
from authgate.core.db import wrap_store_errors
from authgate.core.modules.principal.models import Principal, Role
from authgate.core.modules.principal.validators import validate_email, validate_password
from authgate.errors import NotFoundError, ValidationError
from authgate.utils import normalize_email

logger = structlog.get_logger(__name__)


class PrincipalService(Service):
    """MongoDB-backed credential store.

    Every read goes to the database: active and lock flags must reflect the
    current state, never a cached one.
    """

    def __init__(self, database: AsyncDatabase[dict[str, Any]]) -> None:
        super().__init__(database)
        self._collection = database.get_collection("principals")

    async def on_start(self) -> None:
        """Create indexes and the bootstrap admin."""
        await self._collection.create_index([("email", 1)], unique=True)
        await self.ensure_bootstrap_admin()

    # --- CredentialStore ---

    @wrap_store_errors
    async def find_by_email(self, email: str) -> Principal | None:
        return Principal.from_mongo(await self._collection.find_one({"email": normalize_email(email)}))

    @wrap_store_errors
    async def find_by_id(self, principal_id: UUID) -> Principal | None:
        return Principal.from_mongo(await self._collection.find_one({"_id": principal_id}))

    @wrap_store_errors
    async def record_failed_attempt(self, principal_id: UUID, *, threshold: int, locked_until: datetime) -> None:
        """Atomically increment the counter and lock once it reaches the threshold."""
        await self._collection.update_one(
            {"_id": principal_id},
            [
                {"$set": {"failed_login_attempts": {"$add": [{"$ifNull": ["$failed_login_attempts", 0]}, 1]}}},
                {
                    "$set": {
                        "locked_until": {
                            "$cond": [
                                {"$gte": ["$failed_login_attempts", threshold]},
                                locked_until,
                                {"$ifNull": ["$locked_until", None]},
                            ]
                        }
                    }
                },
            ],
        )

    @wrap_store_errors
    async def clear_failed_attempts(self, principal_id: UUID, *, now: datetime) -> None:
        await self._collection.update_one(
            {"_id": principal_id},
            {"$set": {"failed_login_attempts": 0, "locked_until": None, "last_login_at": now}},
        )

    @wrap_store_errors
    async def update_password_hash(self, principal_id: UUID, password_hash: str) -> None:
        await self._collection.update_one({"_id": principal_id}, {"$set": {"password_hash": password_hash}})

    # --- Account administration ---

    @wrap_store_errors
    async def get_principal(self, principal_id: UUID) -> Principal:
        principal = await self.find_by_id(principal_id)
        if principal is None:
            raise NotFoundError(f"Principal '{principal_id}' not found")
        return principal

    @wrap_store_errors
    async def list_principals(self) -> list[Principal]:
        return await Principal.list_cursor(self._collection.find().sort("email", 1))

    @wrap_store_errors
    async def has_role(self, role: Role) -> bool:
        return await self._collection.count_documents({"role": role}, limit=1) > 0

    @wrap_store_errors
    async def create_principal(self, email: str, password: str, role: Role) -> Principal:
        """Create a principal with a hashed password."""
        email = normalize_email(email)
        validate_email(email)
        validate_password(password)

        password_hash = await asyncio.to_thread(self.core.hasher.hash, password)
        principal = Principal(email=email, role=role, password_hash=password_hash)
        try:
            await self._collection.insert_one(principal.to_mongo())
        except DuplicateKeyError as e:
            raise ValidationError(f"Principal '{email}' already exists") from e
        logger.info("principal_created", principal_id=str(principal.id), role=role)
        return principal

    @wrap_store_errors
    async def set_active(self, principal_id: UUID, is_active: bool) -> Principal:
        return await self._update(principal_id, {"is_active": is_active})

    @wrap_store_errors
    async def unlock(self, principal_id: UUID) -> Principal:
        return await self._update(principal_id, {"failed_login_attempts": 0, "locked_until": None})

    @wrap_store_errors
    async def change_password(self, principal_id: UUID, new_password: str) -> None:
        validate_password(new_password)
        password_hash = await asyncio.to_thread(self.core.hasher.hash, new_password)
        await self._update(principal_id, {"password_hash": password_hash})

    async def ensure_bootstrap_admin(self) -> None:
        """Create the configured admin when no admin exists. Nothing happens unless both settings are provided."""
        config = self.core.config
        if not config.bootstrap_admin_email or not config.bootstrap_admin_password:
            return
        if await self.has_role(Role.ADMIN):
            return
        await self.create_principal(config.bootstrap_admin_email, config.bootstrap_admin_password, Role.ADMIN)
        logger.warning("bootstrap_admin_created", email=normalize_email(config.bootstrap_admin_email))

    async def _update(self, principal_id: UUID, fields: dict[str, Any]) -> Principal:
        document = await self._collection.find_one_and_update(
            {"_id": principal_id}, {"$set": fields}, return_document=ReturnDocument.AFTER
        )
        principal = Principal.from_mongo(document)
        if principal is None:
            raise NotFoundError(f"Principal '{principal_id}' not found")
        return principal
