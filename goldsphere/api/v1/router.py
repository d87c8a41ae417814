"""
Version 1 API router for the GoldSphere order service.
"""

from fastapi import APIRouter

from goldsphere.api.v1.endpoints import orders, positions

# Create the v1 API router
api_router = APIRouter()

api_router.include_router(orders.router, prefix="/orders", tags=["Orders"])
api_router.include_router(positions.router, prefix="/positions", tags=["Positions"])
