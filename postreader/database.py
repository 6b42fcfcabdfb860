"""
Async database setup with SQLAlchemy and aiosqlite.
"""
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker

from postreader.config import DATABASE_URL, ensure_directories
from postreader.models import Base


def configure_sqlite(engine: AsyncEngine, wal: bool = True):
    """
    Tune SQLite connections for concurrent workers.

    Transactions start with BEGIN IMMEDIATE so competing writers queue on
    the busy timeout instead of failing lock upgrades with "database is
    locked". WAL mode lets readers proceed alongside a writer.
    """
    if engine.dialect.name != 'sqlite':
        return

    @event.listens_for(engine.sync_engine, 'connect')
    def _on_connect(dbapi_connection, connection_record):
        # Stop the driver from emitting its own BEGIN
        dbapi_connection.isolation_level = None
        if wal:
            cursor = dbapi_connection.cursor()
            cursor.execute('PRAGMA journal_mode=WAL')
            cursor.execute('PRAGMA synchronous=NORMAL')
            cursor.close()

    @event.listens_for(engine.sync_engine, 'begin')
    def _on_begin(conn):
        conn.exec_driver_sql('BEGIN IMMEDIATE')


# Create async engine
engine = create_async_engine(
    DATABASE_URL,
    echo=False,
    future=True,
)
configure_sqlite(engine)


# Session factory
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def init_db():
    """Initialize database - create tables if they don't exist."""
    ensure_directories()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db():
    """Close database connections."""
    await engine.dispose()
