"""
Order endpoints.

Provides order creation, retrieval, listing and the lifecycle ``process``
operation. Every route requires an authenticated principal; single-order
routes are restricted to the order owner or an administrator.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status

from goldsphere.api.deps import get_lifecycle_engine, get_order_service
from goldsphere.core.security import (
    Principal, ensure_order_access, get_current_principal, require_admin
)
from goldsphere.schemas.orders import (
    AdminOrderListResponse, OrderCreate, OrderListResponse, OrderProcessResponse, OrderResponse
)
from goldsphere.services.order_lifecycle import OrderLifecycleEngine
from goldsphere.services.order_service import OrderLine, OrderService

# Set up logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter()


#################################################
# Endpoints
#################################################

@router.post(
    "",
    response_model=OrderResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an order",
    description="Creates a pending order priced from the product catalog."
)
def create_order(
    payload: OrderCreate,
    principal: Principal = Depends(get_current_principal),
    service: OrderService = Depends(get_order_service)
):
    order = service.create_order(
        user_id=principal.id,
        order_type=payload.type,
        lines=[OrderLine(product_id=item.product_id, quantity=item.quantity) for item in payload.items],
        currency=payload.currency,
        notes=payload.notes,
    )
    return OrderResponse.from_record(order)


@router.get(
    "/my",
    response_model=OrderListResponse,
    summary="List my orders"
)
def list_my_orders(
    principal: Principal = Depends(get_current_principal),
    service: OrderService = Depends(get_order_service)
):
    """
    List the caller's orders, newest first.
    """
    return OrderListResponse.from_records(service.list_orders(principal.id))


@router.get(
    "/admin",
    response_model=AdminOrderListResponse,
    summary="List all orders (admin)",
    description="Every order in the system with counts per status. Admin role required.",
    responses={403: {"description": "Admin role required"}}
)
def list_all_orders(
    principal: Principal = Depends(get_current_principal),
    service: OrderService = Depends(get_order_service)
):
    require_admin(principal)
    return AdminOrderListResponse.from_overview(service.order_overview())


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    summary="Get an order"
)
def get_order(
    order_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: OrderService = Depends(get_order_service)
):
    order = service.get_order(order_id)
    ensure_order_access(principal, order.user_id)
    return OrderResponse.from_record(order)


@router.post(
    "/{order_id}/process",
    response_model=OrderProcessResponse,
    summary="Advance an order one lifecycle step",
    description=(
        "Moves the order to its next status. Reaching 'delivered' creates one "
        "position per order item. Delivered orders cannot be processed again."
    ),
    responses={
        404: {"description": "Order not found"},
        409: {"description": "Order already delivered or concurrently modified"},
    }
)
def process_order(
    order_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: OrderService = Depends(get_order_service),
    engine: OrderLifecycleEngine = Depends(get_lifecycle_engine)
):
    """
    Advance an order. Returns ``{id, status}`` of the order after the step.
    """
    order = service.get_order(order_id)
    ensure_order_access(principal, order.user_id)

    result = engine.advance(order_id)
    logger.info(f"User {principal.id} processed order {order.order_number} to {result.status.value}")
    return OrderProcessResponse.from_result(result)
