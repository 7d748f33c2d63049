from collections.abc import AsyncGenerator

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from core.config import settings


class Base(DeclarativeBase):
    pass


# Connection execution option asking for the write lock at BEGIN (SQLite only)
WRITE_LOCK = "write_lock"


def _configure_sqlite(engine: AsyncEngine) -> None:
    """Take over BEGIN so service transactions serialize on SQLite.

    pysqlite defers BEGIN until the first DML statement, so a read-check-write
    sequence would run its read outside the transaction. Connections opened
    with the `write_lock` option issue BEGIN IMMEDIATE and hold the write lock
    from their first statement; everything else gets a plain BEGIN. WAL keeps
    long-lived readers (request-scoped auth sessions) from blocking writers.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        if conn.get_execution_options().get(WRITE_LOCK):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


def make_engine(url: str, echo: bool = False) -> AsyncEngine:
    engine = create_async_engine(url, echo=echo)
    if engine.dialect.name == "sqlite":
        _configure_sqlite(engine)
    return engine


def make_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, expire_on_commit=False)


engine = make_engine(settings.database_url, echo=settings.database_echo)
async_session_maker = make_session_maker(engine)


async def create_db_and_tables(bind: AsyncEngine = engine):
    from . import order, record, users  # noqa: F401  registers the tables on Base.metadata

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session

