"""
Repositories translating service intents into storage operations.
"""

from goldsphere.db.repositories.order_repository import OrderPersistenceGateway

__all__ = ["OrderPersistenceGateway"]
