from typing import Awaitable, Callable, TypeVar

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.errors import BUSINESS_ERRORS, InternalFailure
from db.transaction import run_in_transaction

logger = structlog.get_logger(__name__)

T = TypeVar("T")


async def execute(
    session_maker: async_sessionmaker[AsyncSession],
    operation: str,
    fn: Callable[[AsyncSession], Awaitable[T]],
) -> T:
    """Run one service operation as a transaction scope.

    Business errors pass through unchanged; anything else is logged and
    surfaces as InternalFailure naming the operation.
    """
    try:
        return await run_in_transaction(session_maker, fn)
    except BUSINESS_ERRORS:
        raise
    except Exception as e:
        logger.exception("Operation failed", operation=operation)
        raise InternalFailure(f"{operation} failed") from e
