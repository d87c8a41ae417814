"""
Shared pytest fixtures.

Tests run against a file-backed SQLite database so that several
connections (and threads) can share it. The schema is created from the
model metadata; the Alembic revision is exercised separately in
tests/test_db/test_migrations.py.
"""

import uuid
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import func, select

from goldsphere.core import config as config_module
from goldsphere.core.config import OrderSettings, SecuritySettings, Settings
from goldsphere.core.database import Base, PostgresDB
from goldsphere.core.error_handling import ErrorTracker
from goldsphere.core.security import create_access_token
from goldsphere.models import (
    Order, OrderItem, OrderStatus, OrderType, Portfolio, Position, Product, User
)
from goldsphere.services.order_service import make_order_number, to_money

TEST_SECRET = "test-secret-key-for-goldsphere"


@pytest.fixture
def settings(monkeypatch):
    """Test settings installed as the process-wide singleton."""
    test_settings = Settings(
        ENV="testing",
        LOG_LEVEL="DEBUG",
        security=SecuritySettings(SECRET_KEY=TEST_SECRET),
        orders=OrderSettings(CONFLICT_RETRY_DELAY=0),
    )
    monkeypatch.setattr(config_module, "_settings_instance", test_settings)
    return test_settings


@pytest.fixture
def db(tmp_path, settings):
    """Connected database manager with all tables created."""
    database = PostgresDB.from_url(f"sqlite:///{tmp_path / 'goldsphere.db'}", settings=settings)
    Base.metadata.create_all(database.engine)
    yield database
    database.disconnect()


@pytest.fixture(autouse=True)
def clear_error_stats():
    ErrorTracker.clear_error_stats()
    yield
    ErrorTracker.clear_error_stats()


class DataFactory:
    """Inserts rows directly, bypassing the services under test."""

    def __init__(self, db: PostgresDB, tax_rate: Decimal):
        self.db = db
        self.tax_rate = tax_rate

    def user(self, email: Optional[str] = None, role: str = "user", is_active: bool = True) -> User:
        user = User(
            id=uuid.uuid4(),
            email=email or f"{uuid.uuid4().hex[:8]}@goldsphere.test",
            role=role,
            is_active=is_active,
        )
        with self.db.transaction() as session:
            session.add(user)
        return user

    def product(
        self,
        name: str = "Gold Bar 1oz",
        price: str = "100.00",
        stock_quantity: Optional[int] = 100,
        in_stock: bool = True
    ) -> Product:
        product = Product(
            id=uuid.uuid4(),
            name=name,
            price=Decimal(price),
            currency="CHF",
            in_stock=in_stock,
            stock_quantity=stock_quantity,
        )
        with self.db.transaction() as session:
            session.add(product)
        return product

    def portfolio(self, owner: User, name: str = "Main") -> Portfolio:
        portfolio = Portfolio(id=uuid.uuid4(), name=name, owner_id=owner.id)
        with self.db.transaction() as session:
            session.add(portfolio)
        return portfolio

    def order(
        self,
        owner: User,
        lines: Sequence[Tuple[Product, str]],
        status: OrderStatus = OrderStatus.PENDING,
        order_type: OrderType = OrderType.BUY
    ) -> uuid.UUID:
        """Insert an order whose items are (product, quantity) pairs."""
        order_id = uuid.uuid4()
        items = []
        for index, (product, quantity) in enumerate(lines):
            qty = Decimal(quantity)
            items.append(OrderItem(
                id=uuid.uuid4(),
                position_index=index,
                product_id=product.id,
                product_name=product.name,
                quantity=qty,
                unit_price=product.price,
                total_price=to_money(qty * product.price),
            ))
        subtotal = to_money(sum((item.total_price for item in items), Decimal("0")))
        taxes = to_money(subtotal * self.tax_rate)
        order = Order(
            id=order_id,
            user_id=owner.id,
            type=order_type,
            status=status,
            order_number=make_order_number(order_id),
            currency="CHF",
            subtotal=subtotal,
            taxes=taxes,
            total_amount=subtotal + taxes,
            items=items,
        )
        with self.db.transaction() as session:
            session.add(order)
        return order_id

    def order_status(self, order_id: uuid.UUID) -> OrderStatus:
        with self.db.session() as session:
            return session.execute(select(Order.status).where(Order.id == order_id)).scalar_one()

    def positions_for(self, user_id: uuid.UUID) -> List[Tuple[uuid.UUID, Decimal, Decimal, Decimal, Optional[uuid.UUID]]]:
        """(product_id, quantity, purchase_price, market_price, portfolio_id) per position."""
        with self.db.session() as session:
            rows = session.execute(
                select(
                    Position.product_id, Position.quantity, Position.purchase_price,
                    Position.market_price, Position.portfolio_id
                ).where(Position.user_id == user_id)
            ).all()
        return [tuple(row) for row in rows]

    def position_count(self) -> int:
        with self.db.session() as session:
            return session.execute(select(func.count()).select_from(Position)).scalar_one()


@pytest.fixture
def factory(db, settings):
    return DataFactory(db, settings.orders.TAX_RATE)


@pytest.fixture
def owner(factory):
    return factory.user(email="owner@goldsphere.test")


@pytest.fixture
def gold_bar(factory):
    return factory.product(name="Gold Bar 1oz", price="100.00", stock_quantity=10)


@pytest.fixture
def silver_coin(factory):
    return factory.product(name="Silver Coin", price="50.00", stock_quantity=500)


def token_for(user: User, settings: Settings) -> str:
    return create_access_token(
        {"sub": str(user.id), "email": user.email, "role": user.role},
        settings=settings,
    )


@pytest.fixture
def auth_headers(settings):
    """Build Authorization headers for a user."""
    def _headers(user: User):
        return {"Authorization": f"Bearer {token_for(user, settings)}"}
    return _headers


@pytest.fixture
def client(db, settings):
    """TestClient bound to the test database."""
    from goldsphere.main import create_application

    app = create_application(settings=settings, db=db)
    with TestClient(app) as test_client:
        yield test_client
