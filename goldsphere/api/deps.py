"""
Shared FastAPI dependencies for service construction.
"""

from fastapi import Depends

from goldsphere.core.config import get_settings
from goldsphere.core.database import PostgresDB, get_db
from goldsphere.services.order_lifecycle import OrderLifecycleEngine
from goldsphere.services.order_service import OrderService


def get_order_service(db: PostgresDB = Depends(get_db)) -> OrderService:
    """Order service bound to the application's database."""
    return OrderService(db, settings=get_settings())


def get_lifecycle_engine(db: PostgresDB = Depends(get_db)) -> OrderLifecycleEngine:
    """Lifecycle engine bound to the application's database."""
    return OrderLifecycleEngine(db, settings=get_settings())
