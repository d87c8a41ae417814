"""
Order service: creation, retrieval and listing of orders and positions.

Creation prices every line from the product catalog, computes the totals
and stores the order as ``pending``. Status changes are not made here;
they belong to the OrderLifecycleEngine.
"""

import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from goldsphere.core.config import SUPPORTED_CURRENCIES, Settings, get_settings
from goldsphere.core.database import PostgresDB
from goldsphere.core.error_handling import (
    ErrorTracker, NotFoundError, ValidationError, classify_db_error
)
from goldsphere.db.records import OrderRecord, PositionRecord
from goldsphere.db.repositories.order_repository import NewOrderItem, OrderPersistenceGateway
from goldsphere.models.orders import OrderStatus, OrderType

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


def to_money(value: Decimal) -> Decimal:
    """Round a monetary amount to cents, half up."""
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def make_order_number(order_id: UUID) -> str:
    """Human-readable order number derived from the order id."""
    return f"ORD-{order_id.hex[:8].upper()}"


@dataclass(frozen=True)
class OrderLine:
    """Requested product and quantity."""
    product_id: UUID
    quantity: Decimal


@dataclass(frozen=True)
class OrderStatistics:
    """Order counts across all users."""
    total_orders: int
    unique_users: int
    by_status: Dict[OrderStatus, int]


@dataclass(frozen=True)
class OrderOverview:
    orders: List[OrderRecord]
    statistics: OrderStatistics


class OrderService:
    """
    Entry point for order reads and order creation.
    """

    def __init__(
        self,
        db: PostgresDB,
        gateway: Optional[OrderPersistenceGateway] = None,
        settings: Optional[Settings] = None
    ):
        self.db = db
        self.gateway = gateway or OrderPersistenceGateway()
        self.settings = settings or get_settings()

    def price_lines(self, lines: Sequence[OrderLine], products: dict, order_type: OrderType) -> List[NewOrderItem]:
        """
        Attach name and price snapshots to the requested lines.

        Args:
            lines: Requested products and quantities
            products: Catalog rows keyed by product id
            order_type: Buy orders are checked against available stock

        Raises:
            NotFoundError: If a product does not exist
            ValidationError: If a product cannot be bought in this quantity
        """
        priced = []
        requested: Dict[UUID, Decimal] = defaultdict(Decimal)
        for line in lines:
            product = products.get(line.product_id)
            if product is None:
                raise NotFoundError(
                    f"Product {line.product_id} not found",
                    context={"product_id": str(line.product_id)},
                    component="orders"
                )
            if order_type is OrderType.BUY:
                if not product.in_stock:
                    raise ValidationError(
                        f"Product '{product.name}' is out of stock",
                        context={"product_id": str(product.id)},
                        component="orders"
                    )
                # Lines for the same product share its stock
                requested[product.id] += line.quantity
                if product.stock_quantity is not None and requested[product.id] > product.stock_quantity:
                    raise ValidationError(
                        f"Insufficient stock for '{product.name}': "
                        f"requested {requested[product.id]}, available {product.stock_quantity}",
                        context={"product_id": str(product.id)},
                        component="orders"
                    )

            unit_price = to_money(product.price)
            priced.append(NewOrderItem(
                product_id=product.id,
                product_name=product.name,
                quantity=line.quantity,
                unit_price=unit_price,
                total_price=to_money(line.quantity * unit_price),
            ))
        return priced

    def compute_totals(self, items: Sequence[NewOrderItem]) -> Tuple[Decimal, Decimal, Decimal]:
        """
        Compute subtotal, taxes and total amount for priced items.

        Returns:
            Tuple of (subtotal, taxes, total_amount); subtotal + taxes == total_amount
        """
        subtotal = to_money(sum((item.total_price for item in items), Decimal("0")))
        taxes = to_money(subtotal * self.settings.orders.TAX_RATE)
        return subtotal, taxes, subtotal + taxes

    def create_order(
        self,
        user_id: UUID,
        order_type: OrderType,
        lines: Sequence[OrderLine],
        currency: Optional[str] = None,
        notes: Optional[str] = None
    ) -> OrderRecord:
        """
        Create a pending order for a user.

        Args:
            user_id: Owner of the new order
            order_type: buy or sell
            lines: Requested products and quantities
            currency: ISO currency code, defaults to the configured currency
            notes: Free-text notes

        Returns:
            The stored order with its items

        Raises:
            ValidationError: For empty orders, bad quantities, unsupported
                currencies and stock shortages
            NotFoundError: If a product does not exist
            PersistenceError: On storage failure
        """
        if not lines:
            raise ValidationError("Order must contain at least one item", component="orders")
        for line in lines:
            if line.quantity is None or line.quantity <= 0:
                raise ValidationError(
                    f"Quantity for product {line.product_id} must be positive",
                    context={"product_id": str(line.product_id)},
                    component="orders"
                )

        currency = (currency or self.settings.orders.DEFAULT_CURRENCY).upper()
        if currency not in SUPPORTED_CURRENCIES:
            raise ValidationError(f"Unsupported currency: {currency}", component="orders")

        order_id = uuid.uuid4()
        order_number = make_order_number(order_id)

        try:
            with self.db.transaction() as session:
                products = self.gateway.get_products(session, (line.product_id for line in lines))
                items = self.price_lines(lines, products, order_type)
                subtotal, taxes, total_amount = self.compute_totals(items)
                order = self.gateway.create_order(
                    session,
                    order_id=order_id,
                    user_id=user_id,
                    order_type=order_type,
                    order_number=order_number,
                    currency=currency,
                    items=items,
                    subtotal=subtotal,
                    taxes=taxes,
                    total_amount=total_amount,
                    notes=notes,
                )
        except SQLAlchemyError as e:
            error = classify_db_error(e, "create order", user_id=user_id)
            error.log(logger)
            ErrorTracker.track_error(error)
            raise error from e

        logger.info(
            f"Created {order_type.value} order {order_number} for user {user_id}: "
            f"{len(items)} items, total {total_amount} {currency}"
        )
        return order

    def get_order(self, order_id: UUID) -> OrderRecord:
        """
        Fetch an order with its items.

        Raises:
            NotFoundError: If the order does not exist
        """
        try:
            with self.db.session() as session:
                return self.gateway.get_order(session, order_id)
        except SQLAlchemyError as e:
            raise classify_db_error(e, "get order", order_id=order_id) from e

    def list_orders(self, user_id: UUID) -> List[OrderRecord]:
        """List a user's orders, newest first."""
        try:
            with self.db.session() as session:
                return self.gateway.list_orders_for_user(session, user_id)
        except SQLAlchemyError as e:
            raise classify_db_error(e, "list orders", user_id=user_id) from e

    def list_positions(self, user_id: UUID) -> List[PositionRecord]:
        """List the positions a user holds."""
        try:
            with self.db.session() as session:
                return self.gateway.list_positions_for_user(session, user_id)
        except SQLAlchemyError as e:
            raise classify_db_error(e, "list positions", user_id=user_id) from e

    def get_position(self, position_id: UUID) -> PositionRecord:
        """
        Fetch a single position.

        Raises:
            NotFoundError: If the position does not exist
        """
        try:
            with self.db.session() as session:
                return self.gateway.get_position(session, position_id)
        except SQLAlchemyError as e:
            raise classify_db_error(e, "get position", position_id=position_id) from e

    def order_overview(self) -> OrderOverview:
        """
        All orders with per-status counts, for administrators.

        Orders and counts are read in one session so they describe the same
        set of orders.
        """
        try:
            with self.db.session() as session:
                orders = self.gateway.list_all_orders(session)
                statistics = OrderStatistics(
                    total_orders=len(orders),
                    unique_users=self.gateway.count_order_owners(session),
                    by_status=self.gateway.count_orders_by_status(session),
                )
        except SQLAlchemyError as e:
            raise classify_db_error(e, "order overview") from e
        return OrderOverview(orders=orders, statistics=statistics)
