"""
Schema module for order endpoints.

Request and response bodies use camelCase field names on the wire while the
Python attributes stay snake_case. Money and quantity values are carried as
Decimal internally and rendered as JSON numbers.
"""

from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, PlainSerializer, field_validator
from pydantic.alias_generators import to_camel

from goldsphere.db.records import OrderItemRecord, OrderRecord
from goldsphere.models.orders import OrderStatus, OrderType
from goldsphere.services.order_lifecycle import AdvanceResult
from goldsphere.services.order_service import OrderOverview, OrderStatistics


Amount = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


#################################################
# Base Schema Models
#################################################

class BaseSchema(BaseModel):
    """Base schema model with common configuration."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )


#################################################
# Requests
#################################################

class OrderItemCreate(BaseSchema):
    """One requested order line."""

    product_id: UUID = Field(..., description="Catalog product id")
    quantity: Decimal = Field(..., gt=0, max_digits=12, decimal_places=4, description="Quantity to order")


class OrderCreate(BaseSchema):
    """Body of POST /orders."""

    type: OrderType = Field(..., description="buy or sell")
    items: List[OrderItemCreate] = Field(..., min_length=1, description="Order lines")
    currency: Optional[str] = Field(None, min_length=3, max_length=3, description="ISO 4217 currency code")
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("currency")
    def upper_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.upper() if v else v

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "type": "buy",
                "items": [{"productId": "4f9d7c1e-8a43-4a55-9f1e-2b1d4f0c9a11", "quantity": 2}],
                "currency": "CHF"
            }
        }
    )


#################################################
# Responses
#################################################

class OrderItemResponse(BaseSchema):
    id: UUID
    product_id: UUID
    product_name: str
    quantity: Amount
    unit_price: Amount
    total_price: Amount

    @classmethod
    def from_record(cls, record: OrderItemRecord) -> "OrderItemResponse":
        return cls.model_validate(asdict(record))


class OrderResponse(BaseSchema):
    """Full order representation."""

    id: UUID
    user_id: UUID
    type: OrderType
    status: OrderStatus
    order_number: str
    currency: str
    subtotal: Amount
    taxes: Amount
    total_amount: Amount
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    items: List[OrderItemResponse] = Field(default_factory=list)

    @classmethod
    def from_record(cls, record: OrderRecord) -> "OrderResponse":
        return cls.model_validate(asdict(record))


class OrderProcessResponse(BaseSchema):
    """Result of advancing an order one lifecycle step."""

    id: UUID
    status: OrderStatus
    previous_status: OrderStatus
    position_ids: List[UUID] = Field(default_factory=list)

    @classmethod
    def from_result(cls, result: AdvanceResult) -> "OrderProcessResponse":
        return cls(
            id=result.order_id,
            status=result.status,
            previous_status=result.previous_status,
            position_ids=list(result.position_ids),
        )


class OrderListResponse(BaseSchema):
    """The caller's orders, newest first."""

    orders: List[OrderResponse]
    total: int

    @classmethod
    def from_records(cls, orders: List[OrderRecord]) -> "OrderListResponse":
        return cls(
            orders=[OrderResponse.from_record(order) for order in orders],
            total=len(orders),
        )


class OrderStatisticsResponse(BaseSchema):
    total_orders: int
    unique_users: int
    pending_orders: int
    confirmed_orders: int
    processing_orders: int
    shipped_orders: int
    delivered_orders: int

    @classmethod
    def from_statistics(cls, statistics: OrderStatistics) -> "OrderStatisticsResponse":
        counts = statistics.by_status
        return cls(
            total_orders=statistics.total_orders,
            unique_users=statistics.unique_users,
            pending_orders=counts.get(OrderStatus.PENDING, 0),
            confirmed_orders=counts.get(OrderStatus.CONFIRMED, 0),
            processing_orders=counts.get(OrderStatus.PROCESSING, 0),
            shipped_orders=counts.get(OrderStatus.SHIPPED, 0),
            delivered_orders=counts.get(OrderStatus.DELIVERED, 0),
        )


class AdminOrderListResponse(BaseSchema):
    """Every order in the system with status counts."""

    orders: List[OrderResponse]
    statistics: OrderStatisticsResponse

    @classmethod
    def from_overview(cls, overview: OrderOverview) -> "AdminOrderListResponse":
        return cls(
            orders=[OrderResponse.from_record(order) for order in overview.orders],
            statistics=OrderStatisticsResponse.from_statistics(overview.statistics),
        )
