"""
Order document model (read-only view used by the return OTP flow).

Maps to the `orders` MongoDB collection. Orders are keyed by a UUID string
rather than an ObjectId; order_id is the human-facing reference printed on
invoices and in emails.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

ORDER_STATUS_DELIVERED = "delivered"


class OrderDoc(BaseModel):
    """Document model for the `orders` collection."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id")
    order_id: str
    user_id: str
    status: str = ""
    customer_email: Optional[str] = None
    return_status: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def is_delivered(self) -> bool:
        return self.status.strip().lower() == ORDER_STATUS_DELIVERED

    @classmethod
    def from_mongo(cls, data: Optional[dict]) -> Optional["OrderDoc"]:
        if data is None:
            return None
        return cls.model_validate(data)
