"""
User, product and portfolio models.

These tables belong to collaborating subsystems (accounts, catalog,
portfolio management). The order service only reads them: users to
re-verify the caller, products to price new orders, portfolios to group
materialized positions.
"""

import uuid

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Numeric, String, Uuid
from sqlalchemy.orm import relationship

from goldsphere.core.database import Base
from goldsphere.models.base import TimestampMixin


class User(Base, TimestampMixin):
    """Platform user as seen by the order service."""
    
    __tablename__ = "users"
    
    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(String(50), nullable=False, default="user")
    is_active = Column(Boolean, nullable=False, default=True)

    portfolios = relationship("Portfolio", back_populates="owner")
    
    def __repr__(self):
        return f"<User {self.email}>"


class Product(Base, TimestampMixin):
    """Catalog product; price and stock are read when an order is created."""

    __tablename__ = "product"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    in_stock = Column(Boolean, nullable=False, default=True)
    stock_quantity = Column(Integer, nullable=True, default=0)

    def __repr__(self):
        return f"<Product {self.name}>"


class Portfolio(Base, TimestampMixin):
    """Optional grouping of a user's positions."""

    __tablename__ = "portfolio"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    owner_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    owner = relationship("User", back_populates="portfolios")

    def __repr__(self):
        return f"<Portfolio {self.name}>"
