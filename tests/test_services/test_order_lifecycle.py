"""
Tests for the order lifecycle engine.

Covers the transition table, terminal rejection, position materialization
on delivery, rollback when materialization fails, and concurrent advances
of the same order.
"""

import dataclasses
import threading
import uuid
from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from goldsphere.core.error_handling import (
    ConflictError, ErrorKind, InvalidStateError, NotFoundError, PersistenceError
)
from goldsphere.db.repositories.order_repository import OrderPersistenceGateway
from goldsphere.models.orders import OrderStatus
from goldsphere.services.order_lifecycle import (
    TRANSITIONS, OrderLifecycleEngine, next_status
)


@pytest.fixture
def engine(db, settings):
    return OrderLifecycleEngine(db, settings=settings)


class TestTransitionTable:
    """The fixed status sequence."""

    def test_sequence_is_linear(self):
        status = OrderStatus.PENDING
        observed = []
        while status in TRANSITIONS:
            status = next_status(status)
            observed.append(status)

        assert observed == [
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
        ]

    def test_delivered_is_terminal(self):
        assert OrderStatus.DELIVERED.is_terminal
        with pytest.raises(InvalidStateError) as exc_info:
            next_status(OrderStatus.DELIVERED)
        assert exc_info.value.kind is ErrorKind.INVALID_STATE
        assert exc_info.value.detail.context["current_status"] == "delivered"

    def test_every_status_moves_forward(self):
        order = list(OrderStatus)
        for current, target in TRANSITIONS.items():
            assert order.index(target) == order.index(current) + 1


class TestAdvance:
    """Sequential advances against the database."""

    def test_full_lifecycle_creates_one_position_per_item(self, engine, factory, owner, gold_bar, silver_coin):
        order_id = factory.order(owner, [(gold_bar, "2"), (silver_coin, "1")])

        statuses = [engine.advance(order_id).status for _ in range(4)]

        assert statuses == [
            OrderStatus.CONFIRMED,
            OrderStatus.PROCESSING,
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
        ]
        positions = factory.positions_for(owner.id)
        assert len(positions) == 2
        assert sorted((p[0], p[1]) for p in positions) == sorted([
            (gold_bar.id, Decimal("2")),
            (silver_coin.id, Decimal("1")),
        ])

    def test_positions_use_order_price_snapshot(self, engine, factory, owner, gold_bar):
        order_id = factory.order(owner, [(gold_bar, "3")], status=OrderStatus.SHIPPED)

        result = engine.advance(order_id)

        assert result.status is OrderStatus.DELIVERED
        assert result.previous_status is OrderStatus.SHIPPED
        assert len(result.position_ids) == 1
        (product_id, quantity, purchase_price, market_price, portfolio_id), = factory.positions_for(owner.id)
        assert product_id == gold_bar.id
        assert quantity == Decimal("3")
        assert purchase_price == Decimal("100.00")
        assert market_price == purchase_price
        assert portfolio_id is None

    def test_positions_attach_to_oldest_portfolio(self, engine, factory, owner, gold_bar):
        portfolio = factory.portfolio(owner, name="Vault")
        order_id = factory.order(owner, [(gold_bar, "1")], status=OrderStatus.SHIPPED)

        engine.advance(order_id)

        (_, _, _, _, portfolio_id), = factory.positions_for(owner.id)
        assert portfolio_id == portfolio.id

    @pytest.mark.parametrize("status", [
        OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PROCESSING
    ])
    def test_intermediate_steps_create_no_positions(self, engine, factory, owner, gold_bar, status):
        order_id = factory.order(owner, [(gold_bar, "1")], status=status)

        result = engine.advance(order_id)

        assert result.status is TRANSITIONS[status]
        assert result.position_ids == ()
        assert factory.position_count() == 0
        assert factory.order_status(order_id) is TRANSITIONS[status]

    def test_advancing_delivered_order_is_rejected(self, engine, factory, owner, gold_bar):
        order_id = factory.order(owner, [(gold_bar, "1")], status=OrderStatus.DELIVERED)

        with pytest.raises(InvalidStateError):
            engine.advance(order_id)

        assert factory.order_status(order_id) is OrderStatus.DELIVERED
        assert factory.position_count() == 0

    def test_repeated_advance_after_delivery_never_adds_positions(self, engine, factory, owner, gold_bar):
        order_id = factory.order(owner, [(gold_bar, "1")], status=OrderStatus.SHIPPED)
        engine.advance(order_id)

        for _ in range(3):
            with pytest.raises(InvalidStateError):
                engine.advance(order_id)

        assert factory.position_count() == 1

    def test_unknown_order(self, engine):
        with pytest.raises(NotFoundError) as exc_info:
            engine.advance(uuid.uuid4())
        assert exc_info.value.status_code == 404


class TestAtomicity:
    """A failed delivery leaves no trace."""

    def test_failed_position_insert_rolls_back_status(self, engine, factory, owner, gold_bar, monkeypatch):
        order_id = factory.order(owner, [(gold_bar, "1")], status=OrderStatus.SHIPPED)

        def failing_insert(session, positions):
            raise OperationalError("INSERT INTO position", {}, Exception("disk I/O error"))

        monkeypatch.setattr(engine.gateway, "insert_positions", failing_insert)

        with pytest.raises(PersistenceError) as exc_info:
            engine.advance(order_id)

        assert exc_info.value.kind is ErrorKind.PERSISTENCE
        assert factory.order_status(order_id) is OrderStatus.SHIPPED
        assert factory.position_count() == 0

    def test_constraint_violation_on_second_position_rolls_back_everything(
        self, engine, factory, owner, gold_bar, silver_coin, monkeypatch
    ):
        order_id = factory.order(owner, [(gold_bar, "1"), (silver_coin, "4")], status=OrderStatus.SHIPPED)
        original_insert = engine.gateway.insert_positions

        def insert_with_dangling_product(session, positions):
            broken = [positions[0], dataclasses.replace(positions[1], product_id=uuid.uuid4())]
            return original_insert(session, broken)

        monkeypatch.setattr(engine.gateway, "insert_positions", insert_with_dangling_product)

        with pytest.raises(PersistenceError):
            engine.advance(order_id)

        assert factory.order_status(order_id) is OrderStatus.SHIPPED
        assert factory.position_count() == 0

    def test_failed_delivery_can_be_retried(self, engine, factory, owner, gold_bar, monkeypatch):
        order_id = factory.order(owner, [(gold_bar, "2")], status=OrderStatus.SHIPPED)

        def failing_materialize(session, order, items):
            raise PersistenceError("materialization failed")

        with monkeypatch.context() as patch:
            patch.setattr(engine.materializer, "materialize", failing_materialize)
            with pytest.raises(PersistenceError):
                engine.advance(order_id)

        result = engine.advance(order_id)

        assert result.status is OrderStatus.DELIVERED
        assert factory.position_count() == 1


class TestConflictHandling:
    """Storage-level collisions are retried once, then surfaced."""

    def _locked_error(self):
        return OperationalError("UPDATE orders", {}, Exception("database is locked"))

    def test_conflict_is_retried_once(self, engine, factory, owner, gold_bar, monkeypatch):
        order_id = factory.order(owner, [(gold_bar, "1")])
        original_update = engine.gateway.update_status
        calls = []

        def flaky_update(session, order_id, expected, new_status):
            calls.append(expected)
            if len(calls) == 1:
                raise self._locked_error()
            return original_update(session, order_id, expected=expected, new_status=new_status)

        monkeypatch.setattr(engine.gateway, "update_status", flaky_update)

        result = engine.advance(order_id)

        assert result.status is OrderStatus.CONFIRMED
        assert len(calls) == 2

    def test_persistent_conflict_is_surfaced(self, engine, factory, owner, gold_bar, monkeypatch):
        order_id = factory.order(owner, [(gold_bar, "1")])

        def always_locked(session, order_id, expected, new_status):
            raise self._locked_error()

        monkeypatch.setattr(engine.gateway, "update_status", always_locked)

        with pytest.raises(ConflictError) as exc_info:
            engine.advance(order_id)

        assert exc_info.value.status_code == 409
        assert factory.order_status(order_id) is OrderStatus.PENDING

    def test_invalid_state_is_not_retried(self, engine, factory, owner, gold_bar, monkeypatch):
        order_id = factory.order(owner, [(gold_bar, "1")], status=OrderStatus.DELIVERED)
        calls = []
        original_lock = engine.gateway.lock_order

        def counting_lock(session, order_id):
            calls.append(order_id)
            return original_lock(session, order_id)

        monkeypatch.setattr(engine.gateway, "lock_order", counting_lock)

        with pytest.raises(InvalidStateError):
            engine.advance(order_id)

        assert len(calls) == 1


class TestConcurrency:
    """Concurrent advances of the same order."""

    def test_compare_and_set_rejects_stale_status(self, db, factory, owner, gold_bar):
        gateway = OrderPersistenceGateway()
        order_id = factory.order(owner, [(gold_bar, "1")], status=OrderStatus.SHIPPED)

        with db.transaction() as first:
            seen = gateway.lock_order(first, order_id)
            assert seen.status is OrderStatus.SHIPPED

            with db.transaction() as second:
                gateway.update_status(second, order_id, OrderStatus.SHIPPED, OrderStatus.DELIVERED)

            with pytest.raises(InvalidStateError):
                gateway.update_status(first, order_id, seen.status, OrderStatus.DELIVERED)

        assert factory.order_status(order_id) is OrderStatus.DELIVERED

    @pytest.mark.parametrize("start", [OrderStatus.PENDING, OrderStatus.SHIPPED])
    def test_simultaneous_advances_yield_single_transition(
        self, db, settings, factory, owner, gold_bar, silver_coin, start
    ):
        order_id = factory.order(owner, [(gold_bar, "2"), (silver_coin, "1")], status=start)
        barrier = threading.Barrier(2)
        successes, failures = [], []
        lock = threading.Lock()

        def worker():
            engine = OrderLifecycleEngine(db, settings=settings)
            barrier.wait()
            try:
                result = engine.advance(order_id)
            except (InvalidStateError, ConflictError) as e:
                with lock:
                    failures.append(e)
            else:
                with lock:
                    successes.append(result)

        threads = [threading.Thread(target=worker) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert len(successes) == 1
        assert len(failures) == 1
        assert factory.order_status(order_id) is TRANSITIONS[start]
        expected_positions = 2 if TRANSITIONS[start] is OrderStatus.DELIVERED else 0
        assert factory.position_count() == expected_positions
