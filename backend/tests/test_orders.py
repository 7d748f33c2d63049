import asyncio
import uuid

import pytest
from sqlalchemy import func, select

from core.errors import InsufficientStock, InternalFailure, InvalidTransition, NotFound, ValidationError
from db.order import Order, OrderStatus
from schemas.common import Pagination
from services.filters import OrderFilter
from services.orders import TRANSITIONS, can_transition


async def _count_orders(session_maker) -> int:
    async with session_maker() as s:
        return (await s.execute(select(func.count()).select_from(Order))).scalar_one()


async def _quantity(services, record_id) -> int:
    return (await services.records.get(record_id)).quantity


class TestTransitionTable:
    def test_pending_can_move_to_either_terminal_state(self):
        assert can_transition(OrderStatus.PENDING, OrderStatus.CANCELLED)
        assert can_transition(OrderStatus.PENDING, OrderStatus.COMPLETED)

    @pytest.mark.parametrize("terminal", [OrderStatus.CANCELLED, OrderStatus.COMPLETED])
    def test_terminal_states_have_no_exits(self, terminal):
        assert TRANSITIONS[terminal] == frozenset()
        assert not any(can_transition(terminal, target) for target in OrderStatus)


class TestCreate:
    async def test_reserves_stock_and_starts_pending(self, services, make_record):
        record = await make_record(quantity=5)

        order = await services.orders.create(record.id, 2)

        assert order.status == OrderStatus.PENDING
        assert order.quantity == 2
        assert order.record_id == record.id
        assert await _quantity(services, record.id) == 3

    async def test_can_take_the_last_units(self, services, make_record):
        record = await make_record(quantity=10)

        await services.orders.create(record.id, 10)
        assert await _quantity(services, record.id) == 0

        with pytest.raises(InsufficientStock):
            await services.orders.create(record.id, 1)

    async def test_insufficient_stock_leaves_no_trace(self, services, make_record, session_maker):
        record = await make_record(quantity=1)

        with pytest.raises(InsufficientStock):
            await services.orders.create(record.id, 2)

        assert await _quantity(services, record.id) == 1
        assert await _count_orders(session_maker) == 0

    async def test_unknown_record(self, services):
        with pytest.raises(NotFound):
            await services.orders.create(uuid.uuid4(), 1)

    @pytest.mark.parametrize("quantity", [0, -3])
    async def test_quantity_must_be_positive(self, services, make_record, quantity):
        record = await make_record(quantity=5)

        with pytest.raises(ValidationError):
            await services.orders.create(record.id, quantity)

        assert await _quantity(services, record.id) == 5

    async def test_unexpected_failure_is_wrapped_and_rolled_back(self, services, make_record, session_maker, monkeypatch):
        record = await make_record(quantity=5)

        async def broken_adjust(tx, record_id, delta):
            raise RuntimeError("disk full")

        monkeypatch.setattr("db.ledger.adjust_quantity", broken_adjust)

        with pytest.raises(InternalFailure) as exc:
            await services.orders.create(record.id, 1)

        assert exc.value.message == "Order creation failed"
        assert await _count_orders(session_maker) == 0
        assert await _quantity(services, record.id) == 5

    async def test_concurrent_creates_on_last_unit(self, services, make_record, session_maker):
        record = await make_record(quantity=1)

        results = await asyncio.gather(
            services.orders.create(record.id, 1),
            services.orders.create(record.id, 1),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], InsufficientStock)
        assert await _quantity(services, record.id) == 0
        assert await _count_orders(session_maker) == 1


class TestCancel:
    async def test_restores_stock(self, services, make_record):
        record = await make_record(quantity=5)
        order = await services.orders.create(record.id, 2)

        cancelled = await services.orders.cancel(order.id)

        assert cancelled.status == OrderStatus.CANCELLED
        assert await _quantity(services, record.id) == 5

    async def test_second_cancel_is_rejected_and_changes_nothing(self, services, make_record):
        record = await make_record(quantity=5)
        order = await services.orders.create(record.id, 2)
        await services.orders.cancel(order.id)

        with pytest.raises(InvalidTransition) as exc:
            await services.orders.cancel(order.id)

        assert "current status: CANCELLED" in exc.value.message
        assert await _quantity(services, record.id) == 5
        assert (await services.orders.get(order.id)).status == OrderStatus.CANCELLED

    async def test_cannot_cancel_completed_order(self, services, make_record):
        record = await make_record(quantity=5)
        order = await services.orders.create(record.id, 2)
        await services.orders.approve(order.id)

        with pytest.raises(InvalidTransition):
            await services.orders.cancel(order.id)

        assert await _quantity(services, record.id) == 3
        assert (await services.orders.get(order.id)).status == OrderStatus.COMPLETED

    async def test_unknown_order(self, services):
        with pytest.raises(NotFound):
            await services.orders.cancel(uuid.uuid4())

    async def test_concurrent_cancels_restore_once(self, services, make_record):
        record = await make_record(quantity=5)
        order = await services.orders.create(record.id, 2)

        results = await asyncio.gather(
            services.orders.cancel(order.id),
            services.orders.cancel(order.id),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        assert len(failures) == 1
        assert isinstance(failures[0], InvalidTransition)
        assert await _quantity(services, record.id) == 5


class TestApprove:
    async def test_completes_without_touching_stock(self, services, make_record):
        record = await make_record(quantity=5)
        order = await services.orders.create(record.id, 2)

        approved = await services.orders.approve(order.id)

        assert approved.status == OrderStatus.COMPLETED
        assert await _quantity(services, record.id) == 3

    async def test_cancelled_order_cannot_be_approved(self, services, make_record):
        record = await make_record(quantity=5)
        order = await services.orders.create(record.id, 2)
        await services.orders.cancel(order.id)

        with pytest.raises(InvalidTransition) as exc:
            await services.orders.approve(order.id)

        assert "cannot be approved" in exc.value.message
        assert await _quantity(services, record.id) == 5

    async def test_second_approve_is_rejected(self, services, make_record):
        record = await make_record(quantity=5)
        order = await services.orders.create(record.id, 2)
        await services.orders.approve(order.id)

        with pytest.raises(InvalidTransition):
            await services.orders.approve(order.id)

        assert await _quantity(services, record.id) == 3


class TestGetAndList:
    async def test_get_unknown(self, services):
        with pytest.raises(NotFound):
            await services.orders.get(uuid.uuid4())

    async def test_list_filters_by_status(self, services, make_record):
        record = await make_record(quantity=10)
        keep = await services.orders.create(record.id, 1)
        gone = await services.orders.create(record.id, 1)
        await services.orders.cancel(gone.id)

        page = await services.orders.list(OrderFilter(status=OrderStatus.PENDING), Pagination(skip=0, limit=10))

        assert page.total == 1
        assert [o.id for o in page.items] == [keep.id]

    async def test_list_filters_by_record(self, services, make_record):
        first = await make_record(quantity=10)
        second = await make_record(quantity=10)
        await services.orders.create(first.id, 1)
        await services.orders.create(second.id, 3)

        page = await services.orders.list(OrderFilter(record_id=second.id), Pagination(skip=0, limit=10))

        assert page.total == 1
        assert page.items[0].quantity == 3

    async def test_list_reflects_mutations(self, services, make_record):
        record = await make_record(quantity=10)
        empty = await services.orders.list(OrderFilter(), Pagination(skip=0, limit=10))
        assert empty.total == 0

        order = await services.orders.create(record.id, 1)
        page = await services.orders.list(OrderFilter(), Pagination(skip=0, limit=10))
        assert page.total == 1

        await services.orders.approve(order.id)
        page = await services.orders.list(OrderFilter(), Pagination(skip=0, limit=10))
        assert page.items[0].status == OrderStatus.COMPLETED
