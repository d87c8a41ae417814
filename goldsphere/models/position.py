"""
Position model: owned quantity of a product.

Positions are created only when an order reaches ``delivered``, one per
order item. There is no foreign key back to the order; the relevant order
attributes are copied at creation time.
"""

import uuid
from enum import Enum

from sqlalchemy import (
    CheckConstraint, Column, DateTime, Enum as SQLAEnum, ForeignKey,
    Index, Numeric, Text, Uuid
)

from goldsphere.core.database import Base
from goldsphere.models.base import TimestampMixin


class PositionStatus(str, Enum):
    """Lifecycle of a position."""
    ACTIVE = "active"
    CLOSED = "closed"


class Position(Base, TimestampMixin):
    """Ownership record created by order materialization."""

    __tablename__ = "position"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Uuid, ForeignKey("product.id"), nullable=False)
    portfolio_id = Column(Uuid, ForeignKey("portfolio.id", ondelete="SET NULL"), nullable=True)
    purchase_date = Column(DateTime(timezone=True), nullable=False)
    purchase_price = Column(Numeric(12, 2), nullable=False)
    market_price = Column(Numeric(12, 2), nullable=False)
    quantity = Column(Numeric(12, 4), nullable=False)
    custody_service_id = Column(Uuid, nullable=True)
    status = Column(
        SQLAEnum(
            PositionStatus,
            name="position_status",
            values_callable=lambda e: [member.value for member in e]
        ),
        nullable=False,
        default=PositionStatus.ACTIVE
    )
    closed_date = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)

    __table_args__ = (
        Index("ix_position_user_id_status", user_id, status),
        CheckConstraint(
            "quantity > 0 OR status = 'closed'",
            name="ck_position_positive_quantity"
        ),
    )

    def __repr__(self):
        return f"<Position {self.id} product={self.product_id} qty={self.quantity}>"
