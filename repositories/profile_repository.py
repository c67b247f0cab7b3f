"""Customer profile access for the phone verification flow."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pymongo import ASCENDING
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import PyMongoError

from errors import StoreError
from schemas.models.profile import CustomerProfileDoc
from shared.datetime_utils import utcnow
from shared.logging import get_logger

log = get_logger(__name__)


class CustomerProfileRepository:
    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    async def find_by_user(self, user_id: str) -> Optional[CustomerProfileDoc]:
        try:
            doc = await self._col.find_one({"user_id": user_id})
        except PyMongoError as exc:
            log.error("profile_lookup_failed", user_id=user_id, error=str(exc))
            raise StoreError("Failed to load profile") from exc
        return CustomerProfileDoc.from_mongo(doc)

    async def upsert_phone(self, user_id: str, phone: str) -> None:
        """Record the number a user asked to verify, creating the profile if needed.

        A new number is not verified, so phone_verified_at is cleared.
        """
        now = utcnow()
        try:
            await self._col.update_one(
                {"user_id": user_id},
                {
                    "$set": {"phone": phone, "phone_verified_at": None, "updated_at": now},
                    "$setOnInsert": {
                        "user_id": user_id,
                        "full_name": None,
                        "address": None,
                        "avatar_url": None,
                        "created_at": now,
                    },
                },
                upsert=True,
            )
        except PyMongoError as exc:
            log.error("profile_phone_upsert_failed", user_id=user_id, error=str(exc))
            raise StoreError("Failed to update profile") from exc

    async def mark_phone_verified(
        self, user_id: str, phone: str, verified_at: datetime
    ) -> None:
        try:
            await self._col.update_one(
                {"user_id": user_id},
                {
                    "$set": {
                        "phone": phone,
                        "phone_verified_at": verified_at,
                        "updated_at": verified_at,
                    },
                    "$setOnInsert": {"user_id": user_id, "created_at": verified_at},
                },
                upsert=True,
            )
        except PyMongoError as exc:
            log.error("profile_phone_verify_failed", user_id=user_id, error=str(exc))
            raise StoreError("Failed to update profile") from exc

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("user_id", ASCENDING)], unique=True)
