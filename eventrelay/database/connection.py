from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import AsyncAdaptedQueuePool
from eventrelay.core.config import settings
from eventrelay.core.logger import get_logger

logger = get_logger("database")


def build_engine(database_url: str):
    """Create the async engine; SQLite URLs get a plain engine without server pool tuning."""
    logger.info(f"Configuring database engine for dialect: {database_url.split(':', 1)[0]}")
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=False, future=True)

    return create_async_engine(
        database_url,
        echo=False,
        connect_args={
            "server_settings": {
                "application_name": "eventrelay",
                "jit": "off",
            },
            "command_timeout": 30,
        },
        poolclass=AsyncAdaptedQueuePool,
        pool_size=10,            # Keep 10 connections ready
        max_overflow=20,         # Allow 20 additional connections under load
        pool_timeout=30,
        pool_recycle=1800,       # Recycle connections every 30 minutes
        pool_pre_ping=True,
        future=True
    )


def build_sessionmaker(bind) -> async_sessionmaker:
    return async_sessionmaker(
        bind,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine(settings.DATABASE_URL)

AsyncSessionLocal = build_sessionmaker(engine)


async def get_db():
    """Dependency for getting database session."""
    async with AsyncSessionLocal() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

