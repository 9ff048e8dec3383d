import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm.exc import StaleDataError

from src.core.config import settings
from src.core.exceptions import ConcurrentModificationConflict

logger = logging.getLogger(__name__)

if not settings.database_url:
    raise ValueError("DATABASE_URL environment variable is not set")

_url_for_log = (
    settings.database_url.split("@")[1] if "@" in settings.database_url else settings.database_url[:30]
)
logger.info("Connecting to database: ...@%s", _url_for_log)

engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
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


@asynccontextmanager
async def atomic(session: AsyncSession) -> AsyncGenerator[AsyncSession, None]:
    """
    Run a block of ledger writes as one unit of work.

    Commits when the block exits normally; rolls back everything written in the
    block on any exception. A version-check failure on flush or commit is
    re-raised as ConcurrentModificationConflict so callers can retry the whole
    operation.
    """
    try:
        yield session
        await session.commit()
    except StaleDataError as exc:
        await session.rollback()
        logger.warning("Concurrent modification detected: %s", exc)
        raise ConcurrentModificationConflict() from exc
    except Exception:
        await session.rollback()
        raise
