"""
Typed row structures for orders, order items and positions.

Rows leave the persistence layer only as these frozen dataclasses. Each
entity has exactly one mapping function, so a renamed or missing column
fails loudly at the mapping site instead of surfacing as a missing key
somewhere downstream.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence, Tuple
from uuid import UUID

from goldsphere.models.orders import Order, OrderItem, OrderStatus, OrderType
from goldsphere.models.position import Position, PositionStatus


@dataclass(frozen=True)
class OrderItemRecord:
    """One line of an order with its price snapshot."""
    id: UUID
    order_id: UUID
    product_id: UUID
    product_name: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal


@dataclass(frozen=True)
class OrderRecord:
    """An order as read from storage. ``items`` is empty unless loaded."""
    id: UUID
    user_id: UUID
    type: OrderType
    status: OrderStatus
    order_number: str
    currency: str
    subtotal: Decimal
    taxes: Decimal
    total_amount: Decimal
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: Tuple[OrderItemRecord, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class PositionRecord:
    """Owned quantity of a product."""
    id: UUID
    user_id: UUID
    product_id: UUID
    portfolio_id: Optional[UUID]
    purchase_date: datetime
    purchase_price: Decimal
    market_price: Decimal
    quantity: Decimal
    status: PositionStatus
    custody_service_id: Optional[UUID] = None
    closed_date: Optional[datetime] = None
    notes: Optional[str] = None


def order_item_from_row(row: OrderItem) -> OrderItemRecord:
    return OrderItemRecord(
        id=row.id,
        order_id=row.order_id,
        product_id=row.product_id,
        product_name=row.product_name,
        quantity=Decimal(row.quantity),
        unit_price=Decimal(row.unit_price),
        total_price=Decimal(row.total_price),
    )


def order_from_row(row: Order, items: Optional[Sequence[OrderItem]] = None) -> OrderRecord:
    """
    Map an ``orders`` row, and optionally its item rows, to an OrderRecord.

    Args:
        row: Loaded Order instance
        items: Item rows to attach; leave as None to skip loading them
    """
    return OrderRecord(
        id=row.id,
        user_id=row.user_id,
        type=OrderType(row.type),
        status=OrderStatus(row.status),
        order_number=row.order_number,
        currency=row.currency,
        subtotal=Decimal(row.subtotal),
        taxes=Decimal(row.taxes),
        total_amount=Decimal(row.total_amount),
        notes=row.notes,
        created_at=row.created_at,
        updated_at=row.updated_at,
        items=tuple(order_item_from_row(item) for item in items or ()),
    )


def position_from_row(row: Position) -> PositionRecord:
    return PositionRecord(
        id=row.id,
        user_id=row.user_id,
        product_id=row.product_id,
        portfolio_id=row.portfolio_id,
        purchase_date=row.purchase_date,
        purchase_price=Decimal(row.purchase_price),
        market_price=Decimal(row.market_price),
        quantity=Decimal(row.quantity),
        status=PositionStatus(row.status),
        custody_service_id=row.custody_service_id,
        closed_date=row.closed_date,
        notes=row.notes,
    )


def position_to_row(record: PositionRecord) -> Position:
    """Build the ORM instance used to insert a new position."""
    return Position(
        id=record.id,
        user_id=record.user_id,
        product_id=record.product_id,
        portfolio_id=record.portfolio_id,
        purchase_date=record.purchase_date,
        purchase_price=record.purchase_price,
        market_price=record.market_price,
        quantity=record.quantity,
        status=record.status,
        custody_service_id=record.custody_service_id,
        closed_date=record.closed_date,
        notes=record.notes,
    )
