"""
Unit tests for PositionMaterializer.
"""

import uuid
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from goldsphere.core.error_handling import PersistenceError
from goldsphere.db.records import OrderItemRecord, OrderRecord
from goldsphere.models.orders import OrderStatus, OrderType
from goldsphere.models.position import PositionStatus
from goldsphere.services.position_materializer import PositionMaterializer


def make_order(**overrides):
    values = dict(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        type=OrderType.BUY,
        status=OrderStatus.SHIPPED,
        order_number="ORD-0000TEST",
        currency="CHF",
        subtotal=Decimal("250.00"),
        taxes=Decimal("20.63"),
        total_amount=Decimal("270.63"),
    )
    values.update(overrides)
    return OrderRecord(**values)


def make_item(order, quantity="1", unit_price="100.00", **overrides):
    values = dict(
        id=uuid.uuid4(),
        order_id=order.id,
        product_id=uuid.uuid4(),
        product_name="Gold Bar 1oz",
        quantity=Decimal(quantity),
        unit_price=Decimal(unit_price),
        total_price=Decimal(quantity) * Decimal(unit_price),
    )
    values.update(overrides)
    return OrderItemRecord(**values)


@pytest.fixture
def gateway():
    mock = MagicMock()
    mock.find_default_portfolio_id.return_value = None
    mock.insert_positions.side_effect = lambda session, positions: [p.id for p in positions]
    return mock


class TestBuildPositions:

    def test_one_position_per_item(self):
        order = make_order()
        items = [make_item(order, "2", "100.00"), make_item(order, "1", "50.00")]

        positions = PositionMaterializer(MagicMock()).build_positions(order, items)

        assert len(positions) == 2
        for position, item in zip(positions, items):
            assert position.user_id == order.user_id
            assert position.product_id == item.product_id
            assert position.quantity == item.quantity
            assert position.purchase_price == item.unit_price
            assert position.market_price == item.unit_price
            assert position.status is PositionStatus.ACTIVE
            assert position.custody_service_id is None
        assert len({p.id for p in positions}) == 2

    def test_positions_share_purchase_date(self):
        order = make_order()
        items = [make_item(order), make_item(order)]

        positions = PositionMaterializer(MagicMock()).build_positions(order, items)

        assert positions[0].purchase_date == positions[1].purchase_date
        assert positions[0].purchase_date.tzinfo is not None

    @pytest.mark.parametrize("quantity", ["0", "-1"])
    def test_non_positive_quantity_is_an_integrity_error(self, quantity):
        order = make_order()
        items = [make_item(order), make_item(order, quantity)]

        with pytest.raises(PersistenceError) as exc_info:
            PositionMaterializer(MagicMock()).build_positions(order, items)

        assert exc_info.value.detail.error_code == "data_integrity"

    def test_item_from_another_order_is_rejected(self):
        order = make_order()
        stray = make_item(order, order_id=uuid.uuid4())

        with pytest.raises(PersistenceError):
            PositionMaterializer(MagicMock()).build_positions(order, [stray])

    def test_no_items_no_positions(self):
        assert PositionMaterializer(MagicMock()).build_positions(make_order(), []) == []


class TestMaterialize:

    def test_inserts_through_gateway(self, gateway):
        session = MagicMock()
        order = make_order()
        items = [make_item(order), make_item(order, "3")]

        ids = PositionMaterializer(gateway).materialize(session, order, items)

        gateway.find_default_portfolio_id.assert_called_once_with(session, order.user_id)
        gateway.insert_positions.assert_called_once()
        inserted = gateway.insert_positions.call_args[0][1]
        assert ids == [p.id for p in inserted]

    def test_default_portfolio_is_attached(self, gateway):
        portfolio_id = uuid.uuid4()
        gateway.find_default_portfolio_id.return_value = portfolio_id
        order = make_order()

        PositionMaterializer(gateway).materialize(MagicMock(), order, [make_item(order)])

        inserted = gateway.insert_positions.call_args[0][1]
        assert inserted[0].portfolio_id == portfolio_id

    def test_invalid_item_inserts_nothing(self, gateway):
        order = make_order()

        with pytest.raises(PersistenceError):
            PositionMaterializer(gateway).materialize(
                MagicMock(), order, [make_item(order), make_item(order, "0")]
            )

        gateway.insert_positions.assert_not_called()

    def test_insert_failure_propagates(self, gateway):
        gateway.insert_positions.side_effect = PersistenceError("insert failed")
        order = make_order()

        with pytest.raises(PersistenceError, match="insert failed"):
            PositionMaterializer(gateway).materialize(MagicMock(), order, [make_item(order)])

    def test_empty_order_skips_insert(self, gateway):
        ids = PositionMaterializer(gateway).materialize(MagicMock(), make_order(), [])

        assert ids == []
        gateway.insert_positions.assert_not_called()
