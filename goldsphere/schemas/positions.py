"""
Schema module for position endpoints.
"""

from dataclasses import asdict
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from goldsphere.db.records import PositionRecord
from goldsphere.models.position import PositionStatus
from goldsphere.schemas.orders import Amount, BaseSchema


class PositionResponse(BaseSchema):
    """A position owned by the caller."""

    id: UUID
    user_id: UUID
    product_id: UUID
    portfolio_id: Optional[UUID] = None
    purchase_date: datetime
    purchase_price: Amount
    market_price: Amount
    quantity: Amount
    status: PositionStatus
    custody_service_id: Optional[UUID] = None
    closed_date: Optional[datetime] = None
    notes: Optional[str] = None

    @classmethod
    def from_record(cls, record: PositionRecord) -> "PositionResponse":
        return cls.model_validate(asdict(record))


class PositionListResponse(BaseSchema):
    positions: List[PositionResponse]
    total: int
