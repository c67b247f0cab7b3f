"""
Customer profile document model.

Maps to the `customer-profiles` MongoDB collection, one document per user.
phone holds the E.164 number last requested for verification; it counts as
verified only when phone_verified_at is set.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from schemas.models.base import MongoBaseModel


class CustomerProfileDoc(MongoBaseModel):
    """Document model for the `customer-profiles` collection."""

    user_id: str
    full_name: Optional[str] = None
    phone: Optional[str] = None
    phone_verified_at: Optional[datetime] = None
    address: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
