"""
Position materialization.

When an order is delivered, each of its items becomes one position owned
by the order's user. The customer's price snapshot is used as both the
purchase price and the initial market price; current market prices are
not fetched at delivery time.
"""

import logging
import uuid
from decimal import Decimal
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from goldsphere.core.error_handling import PersistenceError
from goldsphere.db.records import OrderItemRecord, OrderRecord, PositionRecord
from goldsphere.db.repositories.order_repository import OrderPersistenceGateway
from goldsphere.models.base import utcnow
from goldsphere.models.position import PositionStatus

logger = logging.getLogger(__name__)


class PositionMaterializer:
    """
    Builds and persists one position per order item.

    All inserts run on the caller's session; nothing is created unless the
    surrounding transaction commits.
    """

    def __init__(self, gateway: Optional[OrderPersistenceGateway] = None):
        self.gateway = gateway or OrderPersistenceGateway()

    def build_positions(
        self,
        order: OrderRecord,
        items: Sequence[OrderItemRecord],
        portfolio_id: Optional[UUID] = None
    ) -> List[PositionRecord]:
        """
        Map order items to new active positions.

        Args:
            order: The order being delivered
            items: Its fully loaded items
            portfolio_id: Portfolio to attach the positions to, if any

        Returns:
            One PositionRecord per item, in item order

        Raises:
            PersistenceError: If an item holds a non-positive quantity
        """
        purchase_date = utcnow()
        positions = []
        for item in items:
            if item.order_id != order.id:
                raise PersistenceError(
                    f"Item {item.id} does not belong to order {order.id}",
                    context={"order_id": str(order.id), "item_id": str(item.id)},
                    component="position_materializer"
                )
            if item.quantity is None or Decimal(item.quantity) <= 0:
                raise PersistenceError(
                    f"Order {order.id} item {item.id} has non-positive quantity {item.quantity}",
                    error_code="data_integrity",
                    context={"order_id": str(order.id), "item_id": str(item.id)},
                    component="position_materializer"
                )
            positions.append(PositionRecord(
                id=uuid.uuid4(),
                user_id=order.user_id,
                product_id=item.product_id,
                portfolio_id=portfolio_id,
                purchase_date=purchase_date,
                purchase_price=item.unit_price,
                market_price=item.unit_price,
                quantity=item.quantity,
                status=PositionStatus.ACTIVE,
            ))
        return positions

    def materialize(
        self,
        session: Session,
        order: OrderRecord,
        items: Sequence[OrderItemRecord]
    ) -> List[UUID]:
        """
        Create the positions for a delivered order.

        Args:
            session: Session bound to the advancing transaction
            order: The order entering ``delivered``
            items: Its fully loaded items

        Returns:
            Identifiers of the created positions
        """
        portfolio_id = self.gateway.find_default_portfolio_id(session, order.user_id)
        positions = self.build_positions(order, items, portfolio_id)
        position_ids = self.gateway.insert_positions(session, positions) if positions else []
        logger.info(f"Materialized {len(position_ids)} positions for order {order.order_number}")
        return position_ids
