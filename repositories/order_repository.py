"""Read-only order lookups for the return OTP flow."""

from __future__ import annotations

from typing import Optional

from pymongo.asynchronous.collection import AsyncCollection
from pymongo.errors import PyMongoError

from errors import StoreError
from schemas.models.order import OrderDoc
from shared.logging import get_logger

log = get_logger(__name__)


class OrderRepository:
    def __init__(self, collection: AsyncCollection) -> None:
        self._col = collection

    async def find_by_id(self, order_id: str) -> Optional[OrderDoc]:
        try:
            doc = await self._col.find_one({"_id": order_id})
        except PyMongoError as exc:
            log.error("order_lookup_failed", order_id=order_id, error=str(exc))
            raise StoreError("Failed to load order") from exc
        return OrderDoc.from_mongo(doc)
