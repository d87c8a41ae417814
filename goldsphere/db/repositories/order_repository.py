"""
Order persistence gateway.

This module translates the order services' read and write intents into the
minimum necessary storage operations. Every method works on a session that
the caller opened, so the caller decides the transaction boundary; the
lifecycle engine runs lock, status write and position inserts of a single
advance inside one transaction.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from goldsphere.core.error_handling import InvalidStateError, NotFoundError
from goldsphere.db.records import (
    OrderItemRecord, OrderRecord, PositionRecord,
    order_from_row, order_item_from_row, position_from_row, position_to_row
)
from goldsphere.models.orders import Order, OrderItem, OrderStatus, OrderType
from goldsphere.models.position import Position
from goldsphere.models.user import Portfolio, Product

# Set up logging
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewOrderItem:
    """Priced order line ready to be inserted."""
    product_id: UUID
    product_name: str
    quantity: Decimal
    unit_price: Decimal
    total_price: Decimal


class OrderPersistenceGateway:
    """
    Storage operations for orders, order items and positions.

    The gateway never commits. Rows are returned as typed records.
    """

    #####################################
    # Lifecycle operations
    #####################################

    def lock_order(self, session: Session, order_id: UUID) -> OrderRecord:
        """
        Read an order and take a row lock on it for the rest of the transaction.

        Args:
            session: Session bound to the caller's transaction
            order_id: Order identifier

        Returns:
            The order without its items

        Raises:
            NotFoundError: If no order has this id
        """
        stmt = select(Order).where(Order.id == order_id).with_for_update()
        row = session.execute(stmt).scalar_one_or_none()
        if row is None:
            raise NotFoundError(
                f"Order {order_id} not found",
                context={"order_id": str(order_id)},
                component="orders"
            )
        return order_from_row(row)

    def load_items(self, session: Session, order_id: UUID) -> List[OrderItemRecord]:
        """Load the items of an order in their submitted order."""
        stmt = (
            select(OrderItem)
            .where(OrderItem.order_id == order_id)
            .order_by(OrderItem.position_index, OrderItem.id)
        )
        return [order_item_from_row(row) for row in session.execute(stmt).scalars()]

    def update_status(
        self,
        session: Session,
        order_id: UUID,
        expected: OrderStatus,
        new_status: OrderStatus
    ) -> None:
        """
        Compare-and-set the order status.

        The write only applies while the row still holds ``expected``; a
        concurrent writer that got there first leaves zero matching rows.

        Raises:
            InvalidStateError: If the order is no longer in ``expected``
        """
        stmt = (
            update(Order)
            .where(Order.id == order_id, Order.status == expected)
            .values(status=new_status, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        result = session.execute(stmt)
        if result.rowcount != 1:
            raise InvalidStateError(
                f"Order {order_id} is no longer {expected.value}",
                context={"order_id": str(order_id), "expected_status": expected.value},
                component="orders"
            )
        logger.debug(f"Order {order_id} status written: {expected.value} -> {new_status.value}")

    def insert_positions(self, session: Session, positions: Sequence[PositionRecord]) -> List[UUID]:
        """
        Insert position rows and flush them so constraint failures surface here.

        Returns:
            Identifiers of the inserted positions
        """
        rows = [position_to_row(record) for record in positions]
        session.add_all(rows)
        session.flush()
        return [row.id for row in rows]

    def find_default_portfolio_id(self, session: Session, user_id: UUID) -> Optional[UUID]:
        """Return the user's oldest portfolio id, or None when they have none."""
        stmt = (
            select(Portfolio.id)
            .where(Portfolio.owner_id == user_id)
            .order_by(Portfolio.created_at, Portfolio.id)
            .limit(1)
        )
        return session.execute(stmt).scalar_one_or_none()

    #####################################
    # Order creation and queries
    #####################################

    def get_products(self, session: Session, product_ids: Iterable[UUID]) -> Dict[UUID, Product]:
        """Fetch catalog products by id."""
        ids = set(product_ids)
        if not ids:
            return {}
        rows = session.execute(select(Product).where(Product.id.in_(ids))).scalars()
        return {row.id: row for row in rows}

    def create_order(
        self,
        session: Session,
        order_id: UUID,
        user_id: UUID,
        order_type: OrderType,
        order_number: str,
        currency: str,
        items: Sequence[NewOrderItem],
        subtotal: Decimal,
        taxes: Decimal,
        total_amount: Decimal,
        notes: Optional[str] = None
    ) -> OrderRecord:
        """
        Insert a new pending order with its items.

        Returns:
            The stored order including items and server-side timestamps
        """
        order = Order(
            id=order_id,
            user_id=user_id,
            type=order_type,
            status=OrderStatus.PENDING,
            order_number=order_number,
            currency=currency,
            subtotal=subtotal,
            taxes=taxes,
            total_amount=total_amount,
            notes=notes,
        )
        order.items = [
            OrderItem(
                position_index=index,
                product_id=item.product_id,
                product_name=item.product_name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                total_price=item.total_price,
            )
            for index, item in enumerate(items)
        ]
        session.add(order)
        session.flush()
        session.refresh(order)
        logger.debug(f"Inserted order {order_number} with {len(items)} items")
        return order_from_row(order, order.items)

    def get_order(self, session: Session, order_id: UUID) -> OrderRecord:
        """
        Fetch an order with its items.

        Raises:
            NotFoundError: If no order has this id
        """
        row = session.get(Order, order_id)
        if row is None:
            raise NotFoundError(
                f"Order {order_id} not found",
                context={"order_id": str(order_id)},
                component="orders"
            )
        return order_from_row(row, row.items)

    def list_orders_for_user(self, session: Session, user_id: UUID) -> List[OrderRecord]:
        """List a user's orders with their items, newest first."""
        stmt = (
            select(Order)
            .where(Order.user_id == user_id)
            .order_by(Order.created_at.desc(), Order.order_number)
        )
        rows = session.execute(stmt).scalars().all()
        return [order_from_row(row, row.items) for row in rows]

    def list_positions_for_user(self, session: Session, user_id: UUID) -> List[PositionRecord]:
        """List a user's positions, most recent purchase first."""
        stmt = (
            select(Position)
            .where(Position.user_id == user_id)
            .order_by(Position.purchase_date.desc(), Position.id)
        )
        return [position_from_row(row) for row in session.execute(stmt).scalars()]

    def get_position(self, session: Session, position_id: UUID) -> PositionRecord:
        """
        Fetch a single position.

        Raises:
            NotFoundError: If no position has this id
        """
        row = session.get(Position, position_id)
        if row is None:
            raise NotFoundError(
                f"Position {position_id} not found",
                context={"position_id": str(position_id)},
                component="positions"
            )
        return position_from_row(row)

    #################################################
    # Administration
    #################################################

    def list_all_orders(self, session: Session) -> List[OrderRecord]:
        """List every order with its items, newest first."""
        stmt = select(Order).order_by(Order.created_at.desc(), Order.order_number)
        rows = session.execute(stmt).scalars().all()
        return [order_from_row(row, row.items) for row in rows]

    def count_orders_by_status(self, session: Session) -> Dict[OrderStatus, int]:
        """Number of orders in each status; statuses without orders count 0."""
        counts = {order_status: 0 for order_status in OrderStatus}
        stmt = select(Order.status, func.count()).group_by(Order.status)
        for order_status, count in session.execute(stmt):
            counts[OrderStatus(order_status)] = count
        return counts

    def count_order_owners(self, session: Session) -> int:
        """Number of distinct users that placed at least one order."""
        stmt = select(func.count(func.distinct(Order.user_id)))
        return session.execute(stmt).scalar_one()
