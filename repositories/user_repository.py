"""Users collection access for the identity provider."""

from __future__ import annotations

from typing import Optional

from bson import ObjectId
from pymongo import ASCENDING
from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import PyMongoError

from errors import StoreError
from schemas.models.user import UserDoc
from shared.datetime_utils import utcnow
from shared.logging import get_logger

log = get_logger(__name__)


class UserRepository:
    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    async def find_by_email(self, email: str) -> Optional[UserDoc]:
        """Case-insensitive lookup; emails are stored lower-cased."""
        try:
            doc = await self._col.find_one({"email": email.strip().lower()})
        except PyMongoError as exc:
            log.error("user_lookup_failed", error=str(exc), error_type=type(exc).__name__)
            raise StoreError("Failed to look up account") from exc
        return UserDoc.from_mongo(doc)

    async def update_password_hash(self, user_id: str, password_hash: str) -> bool:
        """Replace the stored argon2 hash. Returns False if no user matched."""
        if not ObjectId.is_valid(user_id):
            return False
        now = utcnow()
        try:
            result = await self._col.update_one(
                {"_id": ObjectId(user_id)},
                {
                    "$set": {
                        "password_hash": password_hash,
                        "password_changed_at": now,
                        "updated_at": now,
                    }
                },
            )
        except PyMongoError as exc:
            log.error(
                "user_password_update_failed",
                user_id=user_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise StoreError("Failed to update password") from exc
        return result.matched_count == 1

    async def ensure_indexes(self) -> None:
        await self._col.create_index([("email", ASCENDING)], unique=True)
