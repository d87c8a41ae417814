"""
Import all models to register them with SQLAlchemy Base.
"""

from goldsphere.core.database import Base
from goldsphere.models.orders import Order, OrderItem, OrderStatus, OrderType
from goldsphere.models.position import Position, PositionStatus
from goldsphere.models.user import Portfolio, Product, User

__all__ = [
    "Base",
    "Order",
    "OrderItem",
    "OrderStatus",
    "OrderType",
    "Portfolio",
    "Position",
    "PositionStatus",
    "Product",
    "User",
]
