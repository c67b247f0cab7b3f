"""
OTP hash store used by the OTP lifecycle engine.

OtpStore is the protocol the engine depends on; MongoOtpRepository is the
MongoDB implementation, one instance per flow collection.

Every driver failure surfaces as StoreError.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Protocol

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import PyMongoError

from errors import StoreError
from schemas.models.otp import OtpRecordDoc
from shared.logging import get_logger

log = get_logger(__name__)

_NEWEST_FIRST = [("created_at", DESCENDING), ("_id", DESCENDING)]


class OtpStore(Protocol):
    async def find_latest_active(
        self,
        identity_key: str,
        *,
        live_at: Optional[datetime] = None,
        verified_only: bool = False,
    ) -> Optional[OtpRecordDoc]: ...

    async def find_latest(self, identity_key: str) -> Optional[OtpRecordDoc]: ...

    async def insert(self, record: OtpRecordDoc) -> ObjectId: ...

    async def patch(self, record_id: ObjectId, fields: dict[str, Any]) -> None: ...

    async def consume_active(self, identity_key: str, now: datetime) -> int: ...


class MongoOtpRepository:
    """OtpStore backed by one MongoDB collection."""

    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    @property
    def name(self) -> str:
        return self._col.name

    async def find_latest_active(
        self,
        identity_key: str,
        *,
        live_at: Optional[datetime] = None,
        verified_only: bool = False,
    ) -> Optional[OtpRecordDoc]:
        """Newest record for *identity_key* whose consumed_at is unset.

        Args:
            live_at: also require ``expires_at > live_at``.
            verified_only: also require ``verified_at`` to be set.
        """
        query: dict[str, Any] = {"identity_key": identity_key, "consumed_at": None}
        if live_at is not None:
            query["expires_at"] = {"$gt": live_at}
        if verified_only:
            query["verified_at"] = {"$ne": None}
        return await self._find_one(query)

    async def find_latest(self, identity_key: str) -> Optional[OtpRecordDoc]:
        """Newest record for *identity_key*, consumed or not."""
        return await self._find_one({"identity_key": identity_key})

    async def insert(self, record: OtpRecordDoc) -> ObjectId:
        try:
            result = await self._col.insert_one(record.to_mongo())
        except PyMongoError as exc:
            log.error(
                "otp_store_insert_failed",
                collection=self.name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise StoreError("Failed to create OTP") from exc
        return result.inserted_id

    async def patch(self, record_id: ObjectId, fields: dict[str, Any]) -> None:
        try:
            await self._col.update_one({"_id": record_id}, {"$set": fields})
        except PyMongoError as exc:
            log.error(
                "otp_store_patch_failed",
                collection=self.name,
                record_id=str(record_id),
                fields=sorted(fields),
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise StoreError("Failed to update OTP") from exc

    async def consume_active(self, identity_key: str, now: datetime) -> int:
        """Consume every active record for *identity_key*; returns the count."""
        try:
            result = await self._col.update_many(
                {"identity_key": identity_key, "consumed_at": None},
                {"$set": {"consumed_at": now}},
            )
        except PyMongoError as exc:
            log.error(
                "otp_store_consume_failed",
                collection=self.name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise StoreError("Failed to update OTP") from exc
        return result.modified_count

    async def ensure_indexes(self) -> None:
        await self._col.create_index(
            [
                ("identity_key", ASCENDING),
                ("consumed_at", ASCENDING),
                ("created_at", DESCENDING),
            ]
        )
        await self._col.create_index([("expires_at", ASCENDING)])

    async def _find_one(self, query: dict[str, Any]) -> Optional[OtpRecordDoc]:
        try:
            doc = await self._col.find_one(query, sort=_NEWEST_FIRST)
        except PyMongoError as exc:
            log.error(
                "otp_store_read_failed",
                collection=self.name,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise StoreError("Failed to read OTP") from exc
        return OtpRecordDoc.from_mongo(doc)
