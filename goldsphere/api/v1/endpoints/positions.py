"""
Position endpoints (read-only).
"""

from uuid import UUID

from fastapi import APIRouter, Depends

from goldsphere.api.deps import get_order_service
from goldsphere.core.security import Principal, ensure_order_access, get_current_principal
from goldsphere.schemas.positions import PositionListResponse, PositionResponse
from goldsphere.services.order_service import OrderService

router = APIRouter()


@router.get("", response_model=PositionListResponse, summary="List my positions")
def list_my_positions(
    principal: Principal = Depends(get_current_principal),
    service: OrderService = Depends(get_order_service)
):
    positions = service.list_positions(principal.id)
    return PositionListResponse(
        positions=[PositionResponse.from_record(p) for p in positions],
        total=len(positions),
    )


@router.get(
    "/{position_id}",
    response_model=PositionResponse,
    summary="Get a position",
    responses={404: {"description": "Position not found"}}
)
def get_position(
    position_id: UUID,
    principal: Principal = Depends(get_current_principal),
    service: OrderService = Depends(get_order_service)
):
    position = service.get_position(position_id)
    ensure_order_access(principal, position.user_id, resource="position")
    return PositionResponse.from_record(position)
