"""
Order lifecycle engine.

Owns the single state-transition rule for orders:

    pending -> confirmed -> processing -> shipped -> delivered

Each ``advance`` moves an order exactly one step inside one SERIALIZABLE
transaction. The order row is locked, the status write is a compare-and-set
on the previously read status, and entering ``delivered`` materializes one
position per item in that same transaction. Concurrent advances of one order
therefore yield at most one successful transition per step.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from goldsphere.core.config import Settings, get_settings
from goldsphere.core.database import PostgresDB
from goldsphere.core.error_handling import (
    ConflictError, ErrorTracker, InvalidStateError, classify_db_error, retry_operation
)
from goldsphere.db.repositories.order_repository import OrderPersistenceGateway
from goldsphere.models.orders import OrderStatus
from goldsphere.services.position_materializer import PositionMaterializer

logger = logging.getLogger(__name__)


TRANSITIONS: Dict[OrderStatus, OrderStatus] = {
    OrderStatus.PENDING: OrderStatus.CONFIRMED,
    OrderStatus.CONFIRMED: OrderStatus.PROCESSING,
    OrderStatus.PROCESSING: OrderStatus.SHIPPED,
    OrderStatus.SHIPPED: OrderStatus.DELIVERED,
}


def next_status(current: OrderStatus) -> OrderStatus:
    """
    Return the only status an order may move to from ``current``.

    Raises:
        InvalidStateError: If ``current`` has no successor
    """
    try:
        return TRANSITIONS[current]
    except KeyError:
        raise InvalidStateError(
            f"Order in status '{current.value}' cannot be advanced",
            current_status=current.value,
            component="order_lifecycle"
        ) from None


@dataclass(frozen=True)
class AdvanceResult:
    """Outcome of a successful advance."""
    order_id: UUID
    previous_status: OrderStatus
    status: OrderStatus
    position_ids: Tuple[UUID, ...] = field(default_factory=tuple)


class OrderLifecycleEngine:
    """
    Drives orders through their lifecycle.

    The database handle is injected; the engine never reaches for global
    connection state.
    """

    ISOLATION_LEVEL = "SERIALIZABLE"

    def __init__(
        self,
        db: PostgresDB,
        gateway: Optional[OrderPersistenceGateway] = None,
        materializer: Optional[PositionMaterializer] = None,
        settings: Optional[Settings] = None
    ):
        """
        Initialize the engine.

        Args:
            db: Connected database manager
            gateway: Persistence gateway (a default one is created if omitted)
            materializer: Position materializer sharing the gateway
            settings: Application settings, used for the conflict retry policy
        """
        self.db = db
        self.settings = settings or get_settings()
        self.gateway = gateway or OrderPersistenceGateway()
        self.materializer = materializer or PositionMaterializer(self.gateway)

        order_settings = self.settings.orders
        self._advance_with_retry = retry_operation(
            max_retries=order_settings.CONFLICT_RETRIES,
            delay=order_settings.CONFLICT_RETRY_DELAY,
            allowed_exceptions=(ConflictError,)
        )(self._advance_once)

    def advance(self, order_id: UUID) -> AdvanceResult:
        """
        Move an order one step along its lifecycle.

        Args:
            order_id: Order identifier

        Returns:
            AdvanceResult with the new status and any created position ids

        Raises:
            NotFoundError: If the order does not exist
            InvalidStateError: If the order is delivered or another advance
                already moved it
            ConflictError: If the storage layer reported a collision on the
                retry as well
            PersistenceError: On any other storage failure
        """
        return self._advance_with_retry(order_id)

    def _advance_once(self, order_id: UUID) -> AdvanceResult:
        position_ids: Tuple[UUID, ...] = ()
        try:
            with self.db.transaction(isolation_level=self.ISOLATION_LEVEL) as session:
                order = self.gateway.lock_order(session, order_id)
                target = next_status(order.status)
                self.gateway.update_status(session, order_id, expected=order.status, new_status=target)

                if target is OrderStatus.DELIVERED:
                    items = self.gateway.load_items(session, order_id)
                    position_ids = tuple(self.materializer.materialize(session, order, items))
        except SQLAlchemyError as e:
            error = classify_db_error(e, "advance order", order_id=order_id)
            if not isinstance(error, ConflictError):
                error.log(logger)
                ErrorTracker.track_error(error)
            raise error from e

        logger.info(f"Order {order_id}: {order.status.value} -> {target.value}")
        return AdvanceResult(
            order_id=order_id,
            previous_status=order.status,
            status=target,
            position_ids=position_ids,
        )
