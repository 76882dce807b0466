import time
import logging
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base
from datapusher.config import DATABASE_URL as RAW_DATABASE_URL

logger = logging.getLogger("datapusher.database")


class StorageUnavailableError(RuntimeError):
    """Raised when a storage call is made without a configured engine."""


def _normalize_async_database_url(database_url: str) -> str:
    """Ensure SQLAlchemy async engine always uses the asyncpg dialect."""
    if not database_url:
        return ""
    if database_url.startswith("postgresql+asyncpg://"):
        return database_url
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql+asyncpg://", 1)
    return database_url


DATABASE_URL = _normalize_async_database_url(RAW_DATABASE_URL or "")

Base = declarative_base()
engine = None
async_session_maker = None

if DATABASE_URL:
    try:
        engine = create_async_engine(
            DATABASE_URL,
            pool_size=5,
            max_overflow=5,
            pool_timeout=10,
            pool_recycle=300,
            pool_pre_ping=True,
            echo=False,
            connect_args={"command_timeout": 5.0},
        )

        @event.listens_for(engine.sync_engine, "before_cursor_execute")
        def before_cursor_execute(
            conn, cursor, statement, parameters, context, executemany
        ):
            conn.info.setdefault("query_start_time", []).append(time.time())

        @event.listens_for(engine.sync_engine, "after_cursor_execute")
        def after_cursor_execute(
            conn, cursor, statement, parameters, context, executemany
        ):
            start_time = conn.info["query_start_time"].pop(-1)
            total = time.time() - start_time
            logger.debug(
                f"DB_QUERY SUCCESS | duration_ms={total * 1000:.2f} | query={statement[:200]}"
            )

        @event.listens_for(engine.sync_engine, "handle_error")
        def handle_error(context):
            if context.connection is None:
                return
            started = context.connection.info.get("query_start_time")
            if started:
                total = time.time() - started.pop(-1)
                logger.error(
                    f"DB_QUERY ERROR | duration_ms={total * 1000:.2f} | error={context.original_exception}"
                )

        async_session_maker = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )
    except Exception as e:
        # Keep the app bootable; storage calls raise StorageUnavailableError instead
        logger.error(f"Failed configuring async engine: {e}")
        engine = None
        async_session_maker = None


async def init_models() -> None:
    """Create tables for every mapped model that does not exist yet."""
    if engine is None:
        raise StorageUnavailableError("Database engine not initialized.")

    # Register mappers on Base.metadata before create_all
    from datapusher.models import account  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema ensured.")

