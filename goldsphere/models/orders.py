"""
Order models for the GoldSphere platform.

An order is a customer's buy or sell request for one or more products.
It moves through a fixed delivery lifecycle and exclusively owns its items.

Key features:
- Status column written only by the order lifecycle engine
- Price snapshot per item, taken when the order is created
- Database-level check that subtotal + taxes equals the total amount
"""

import uuid
from enum import Enum

from sqlalchemy import (
    CheckConstraint, Column, Enum as SQLAEnum, ForeignKey, Index, Integer,
    Numeric, String, Text, Uuid
)
from sqlalchemy.orm import relationship, validates

from goldsphere.core.database import Base
from goldsphere.models.base import TimestampMixin


class OrderType(str, Enum):
    """Order direction."""
    BUY = "buy"
    SELL = "sell"


class OrderStatus(str, Enum):
    """States in the order lifecycle, listed in progression order."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"

    @property
    def is_terminal(self) -> bool:
        return self is OrderStatus.DELIVERED


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class Order(Base, TimestampMixin):
    """
    Customer order.

    Created in status ``pending``; never physically deleted in normal
    operation.
    """
    __tablename__ = "orders"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    type = Column(
        SQLAEnum(OrderType, name="order_type", values_callable=_enum_values),
        nullable=False
    )
    status = Column(
        SQLAEnum(OrderStatus, name="order_status", values_callable=_enum_values),
        nullable=False,
        default=OrderStatus.PENDING
    )
    order_number = Column(String(20), nullable=False, unique=True)
    currency = Column(String(3), nullable=False)
    subtotal = Column(Numeric(14, 2), nullable=False)
    taxes = Column(Numeric(14, 2), nullable=False, default=0)
    total_amount = Column(Numeric(14, 2), nullable=False)
    notes = Column(Text, nullable=True)
    
    items = relationship(
        "OrderItem",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItem.position_index"
    )
    
    __table_args__ = (
        Index("ix_orders_user_id_status", user_id, status),
        CheckConstraint(
            "abs(subtotal + taxes - total_amount) < 0.005",
            name="ck_orders_total_amount"
        ),
        CheckConstraint(
            "subtotal >= 0 AND taxes >= 0",
            name="ck_orders_non_negative_amounts"
        ),
    )

    def __repr__(self):
        return f"<Order {self.order_number} status={self.status}>"


class OrderItem(Base):
    """
    One line of an order: a product, quantity and price snapshot.
    """
    __tablename__ = "order_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id = Column(Uuid, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    product_id = Column(Uuid, ForeignKey("product.id"), nullable=False)
    # Keeps the submitted line order stable when items are reloaded
    position_index = Column(Integer, nullable=False, default=0)
    product_name = Column(String(255), nullable=False)
    quantity = Column(Numeric(12, 4), nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    total_price = Column(Numeric(14, 2), nullable=False)

    order = relationship("Order", back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_order_items_positive_quantity"),
        CheckConstraint("unit_price >= 0", name="ck_order_items_non_negative_price"),
    )

    @validates("quantity")
    def validate_quantity(self, key, value):
        """Ensure quantity is positive."""
        if value is not None and value <= 0:
            raise ValueError("quantity must be positive")
        return value

    def __repr__(self):
        return f"<OrderItem {self.product_name} x{self.quantity}>"
