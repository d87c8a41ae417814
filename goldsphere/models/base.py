"""
Base module for SQLAlchemy models.

This module provides common mixins and utilities shared by the GoldSphere
models.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, func

from goldsphere.core.database import Base


def utcnow() -> datetime:
    """Timezone-aware current time used for application-side timestamps."""
    return datetime.now(timezone.utc)


class TimestampMixin:
    """
    Add creation and update timestamps to a model.
    
    Attributes:
        created_at: Timestamp when the record was created
        updated_at: Timestamp when the record was last updated
    """
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


__all__ = ["Base", "TimestampMixin", "utcnow"]
