from typing import Awaitable, Callable, TypeVar

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from .database import WRITE_LOCK

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def run_in_transaction(
    session_maker: async_sessionmaker[AsyncSession],
    fn: Callable[[AsyncSession], Awaitable[T]],
) -> T:
    """Run `fn` inside one isolated transaction.

    `fn` receives the session as its transaction handle and must thread it
    through every read and write. On SQLite the transaction holds the write
    lock from its first statement. The transaction commits when `fn` returns and
    rolls back when it raises (commit-time failures included); the error is
    re-raised unchanged. The session is closed on every exit path.
    """
    async with session_maker() as tx:
        try:
            async with tx.begin():
                await tx.connection(execution_options={WRITE_LOCK: True})
                return await fn(tx)
        except Exception as e:
            logger.debug("Transaction rolled back", error=type(e).__name__)
            raise
