"""
Health check endpoint reporting database connectivity.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from goldsphere.core.config import get_settings

# Set up logging
logger = logging.getLogger(__name__)

# Create router
router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Service health response model."""

    status: str = Field(..., description="healthy or unhealthy")
    timestamp: str = Field(..., description="Timestamp of health check")
    version: str = Field(..., description="Application version")
    database: Dict[str, Any] = Field(default_factory=dict, description="Connection pool status")


@router.get(
    "",
    response_model=HealthResponse,
    summary="Get service health",
    responses={503: {"model": HealthResponse, "description": "Database unavailable"}}
)
def get_health(request: Request):
    """
    Report whether the service can reach its database.

    Returns 503 when the database is not connected or fails a probe query.
    """
    db = getattr(request.app.state, "db", None)
    healthy = db is not None and db.check_health()
    body = HealthResponse(
        status="healthy" if healthy else "unhealthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=get_settings().APP_VERSION,
        database=db.get_status() if db is not None else {"connected": False},
    )
    if not healthy:
        logger.warning("Health check failed: database unavailable")
        return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body.model_dump())
    return body
