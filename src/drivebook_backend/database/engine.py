'''
Database Engine file.
1- Engine: creates and manages the connection pool
2- AsyncSessionLocal: Session Creator (with engine as bind)
3- get_db_session: Dependency to create, yield and manage the life-cycle of a session.
'''
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, AsyncEngine, async_sessionmaker
from sqlalchemy.pool import StaticPool
from typing import AsyncGenerator
from ..common.config import settings
from ..common.logger import log

# We define them as None. They will be created by the app's lifespan.
engine: AsyncEngine | None = None
AsyncSessionLocal: async_sessionmaker[AsyncSession] | None = None


def _engine_kwargs(url: str) -> dict:
    """
    Pool arguments per backend. In-memory SQLite (tests) shares one
    connection across the event loop; a SQLite file gets a connection per
    session; Postgres gets a real pool.
    """
    if url.startswith("sqlite") and ":memory:" in url:
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }
    if url.startswith("sqlite"):
        return {"connect_args": {"timeout": 30}}
    return {
        "pool_size": 5,
        "max_overflow": 10,
        "pool_timeout": 30,
        "pool_recycle": -1,
        "pool_pre_ping": True,
    }


def _take_over_sqlite_transactions(async_engine: AsyncEngine) -> None:
    """
    The sqlite driver defers BEGIN until the first write, which breaks
    SAVEPOINT. SQLAlchemy emits BEGIN itself instead; IMMEDIATE takes the
    write lock up front so concurrent sessions queue rather than fail.
    """
    @event.listens_for(async_engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(async_engine.sync_engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(url: str) -> AsyncEngine:
    async_engine = create_async_engine(url, echo=False, **_engine_kwargs(url))
    if url.startswith("sqlite"):
        _take_over_sqlite_transactions(async_engine)
    return async_engine


def create_db_engine_and_session_factory():
    """
    Creates the engine and session factory.
    This is called by the app's lifespan event. Calling it again while an
    engine exists is a no-op.
    """
    global engine, AsyncSessionLocal

    if engine is not None:
        log.info("Database engine already exists, reusing it.")
        return

    log.info("Creating database engine for URL...")
    try:
        # 1. Create the asynchronous engine
        engine = build_engine(settings.database_url)

        # 2. Create the AsyncSessionLocal factory
        AsyncSessionLocal = async_sessionmaker(
            bind=engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )
        log.info("Async database engine and session factory created successfully.")
    except Exception as e:
        log.critical(f"Failed to create async database engine: {e}", exc_info=True)
        raise


async def dispose_db_engine():
    """Disposes of the engine. Called by the app's lifespan."""
    global engine, AsyncSessionLocal
    if engine:
        await engine.dispose()
        log.info("Database engine disposed.")
    engine = None
    AsyncSessionLocal = None


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    The session is committed if the request succeeds, rolled back if
    anything raises (domain errors included), and always closed.
    """
    if AsyncSessionLocal is None:
        log.error("AsyncSessionLocal is not initialized. App lifespan may not have run.")
        raise RuntimeError("Database session factory is not available.")

    session = AsyncSessionLocal()
    try:
        yield session
        await session.commit()
    except Exception as e:
        await session.rollback()
        log.error(f"Database session rolled back due to error: {e}")
        raise
    finally:
        await session.close()
