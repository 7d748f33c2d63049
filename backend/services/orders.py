"""Order lifecycle and its stock side effects.

    PENDING --cancel--> CANCELLED   (stock restored)
    PENDING --approve-> COMPLETED   (stock unchanged, it was committed at creation)

CANCELLED and COMPLETED are terminal. Every operation is one transaction scope
and clears the read cache after it commits.
"""

from typing import Dict, FrozenSet
from uuid import UUID

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.cache import ReadThroughCache
from core.errors import InsufficientStock, InvalidTransition, NotFound, ValidationError
from db import ledger
from db.order import Order, OrderStatus
from schemas.common import Page, Pagination
from schemas.orders import OrderRead
from services.base import execute
from services.filters import OrderFilter

logger = structlog.get_logger(__name__)

TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CANCELLED, OrderStatus.COMPLETED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.COMPLETED: frozenset(),
}

_VERBS = {
    OrderStatus.CANCELLED: "cancelled",
    OrderStatus.COMPLETED: "approved",
}


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in TRANSITIONS[current]


def _read(order: Order) -> OrderRead:
    return OrderRead(**order.to_schema)


async def _load_order(tx: AsyncSession, order_id: UUID) -> Order:
    res = await tx.execute(
        select(Order)
        .where(Order.id == order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    order = res.scalar_one_or_none()
    if order is None:
        raise NotFound(f"Order {order_id} not found")
    return order


class OrderStateMachine:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession], cache: ReadThroughCache):
        self.session_maker = session_maker
        self.cache = cache

    async def create(self, record_id: UUID, quantity: int) -> OrderRead:
        if quantity < 1:
            raise ValidationError("quantity must be >= 1", error_data={"quantity": "min 1"})

        async def _create(tx: AsyncSession) -> OrderRead:
            record = await ledger.get(tx, record_id, for_update=True)
            if record is None:
                raise NotFound(f"Record {record_id} not found")
            if record.quantity < quantity:
                raise InsufficientStock(
                    f"Insufficient stock for record {record.album}: "
                    f"{record.quantity} available, {quantity} requested"
                )

            await ledger.adjust_quantity(tx, record_id, -quantity)

            order = Order(record_id=record_id, quantity=quantity, status=OrderStatus.PENDING.value)
            tx.add(order)
            await tx.flush()
            return _read(order)

        order = await execute(self.session_maker, "Order creation", _create)
        await self.cache.invalidate_all()
        logger.info("Order created", order_id=str(order.id), record_id=str(record_id), quantity=quantity)
        return order

    async def cancel(self, order_id: UUID) -> OrderRead:
        order = await execute(
            self.session_maker,
            "Order cancellation",
            lambda tx: self._transition(tx, order_id, OrderStatus.CANCELLED),
        )
        await self.cache.invalidate_all()
        logger.info("Order cancelled", order_id=str(order_id))
        return order

    async def approve(self, order_id: UUID) -> OrderRead:
        order = await execute(
            self.session_maker,
            "Order approval",
            lambda tx: self._transition(tx, order_id, OrderStatus.COMPLETED),
        )
        await self.cache.invalidate_all()
        logger.info("Order approved", order_id=str(order_id))
        return order

    async def _transition(self, tx: AsyncSession, order_id: UUID, target: OrderStatus) -> OrderRead:
        order = await _load_order(tx, order_id)
        current = OrderStatus(order.status)
        if not can_transition(current, target):
            raise InvalidTransition(
                f"Order {order_id} cannot be {_VERBS[target]}; current status: {current.value}"
            )

        # Data-integrity guard: the referenced record must still exist
        record = await ledger.get(tx, order.record_id, for_update=True)
        if record is None:
            raise NotFound(f"Record {order.record_id} not found")

        if target is OrderStatus.CANCELLED:
            await ledger.adjust_quantity(tx, order.record_id, order.quantity)

        # Guarded write: only a still-PENDING order moves
        res = await tx.execute(
            update(Order)
            .where(Order.id == order_id, Order.status == OrderStatus.PENDING.value)
            .values(status=target.value)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            raise InvalidTransition(f"Order {order_id} cannot be {_VERBS[target]}; it is no longer pending")

        return _read(await _load_order(tx, order_id))

    async def get(self, order_id: UUID) -> OrderRead:
        async def _get(tx: AsyncSession) -> OrderRead:
            order = await tx.get(Order, order_id)
            if order is None:
                raise NotFound(f"Order {order_id} not found")
            return _read(order)

        return await execute(self.session_maker, "Order lookup", _get)

    async def list(self, filter: OrderFilter, pagination: Pagination) -> Page[OrderRead]:
        key = self.cache.key("orders", filter.cache_params(), pagination.model_dump())

        async def _compute() -> dict:
            page = await execute(
                self.session_maker,
                "Order listing",
                lambda tx: self._query_page(tx, filter, pagination),
            )
            return page.model_dump(mode="json")

        return await self.cache.get_or_compute(key, _compute, load=Page[OrderRead].model_validate)

    async def _query_page(self, tx: AsyncSession, filter: OrderFilter, pagination: Pagination) -> Page[OrderRead]:
        where = filter.where()
        stmt = select(Order).order_by(Order.created_at.desc(), Order.id)
        count_stmt = select(func.count()).select_from(Order)
        if where is not None:
            stmt = stmt.where(where)
            count_stmt = count_stmt.where(where)

        res = await tx.execute(stmt.offset(pagination.skip).limit(pagination.limit))
        total = (await tx.execute(count_stmt)).scalar_one()
        return Page[OrderRead](items=[_read(o) for o in res.scalars().all()], total=total)
