"""Stock ledger: the authoritative available quantity of every record.

All quantity writes go through `adjust_quantity`, which must run inside an
active transaction and applies the change as one guarded UPDATE, so the check
and the write are a single atomic statement for every backend.
"""

from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import InsufficientStock, NotFound
from .record import Record

logger = structlog.get_logger(__name__)


def _require_transaction(tx: AsyncSession) -> None:
    if not tx.in_transaction():
        raise RuntimeError("stock ledger writes require an active transaction")


async def get(tx: AsyncSession, record_id: UUID, for_update: bool = False) -> Optional[Record]:
    """Load a record. Reads outside a transaction are advisory only."""
    stmt = select(Record).where(Record.id == record_id)
    if for_update:
        # Row lock on PostgreSQL; SQLite already holds the write lock (BEGIN IMMEDIATE)
        stmt = stmt.with_for_update()
    res = await tx.execute(stmt.execution_options(populate_existing=True))
    return res.scalar_one_or_none()


async def adjust_quantity(tx: AsyncSession, record_id: UUID, delta: int) -> Record:
    """Apply `delta` to a record's quantity and return the refreshed record.

    Raises NotFound if the record does not exist and InsufficientStock if the
    resulting quantity would be negative. Nothing is written in either case.
    """
    _require_transaction(tx)

    stmt = (
        update(Record)
        .where(Record.id == record_id)
        .where(Record.quantity + delta >= 0)
        .values(quantity=Record.quantity + delta)
        .returning(Record.quantity)
        .execution_options(synchronize_session=False)
    )
    row = (await tx.execute(stmt)).first()

    if row is None:
        current = await get(tx, record_id)
        if current is None:
            raise NotFound(f"Record {record_id} not found")
        raise InsufficientStock(
            f"Insufficient stock for record {current.album}: "
            f"{current.quantity} available, {-delta} requested"
        )

    logger.debug("Stock adjusted", record_id=str(record_id), delta=delta, quantity=row.quantity)
    return await get(tx, record_id)
