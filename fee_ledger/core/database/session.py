from collections.abc import AsyncGenerator
import logging

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from fee_ledger.core.config import settings

logger = logging.getLogger(__name__)

if not settings.database_url:
    raise ValueError("DATABASE_URL environment variable is not set")

# Hide credentials in logs
_url_for_log = (
    settings.database_url.split("@")[1] if "@" in settings.database_url else settings.database_url[:30]
)
logger.info("Database: connecting to ...@%s", _url_for_log)

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug and not settings.is_production,
    future=True,
)

async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Dependency for getting async database session."""
    async with async_session() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()
