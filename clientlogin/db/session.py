import logging
import time

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from ..core.config import settings
from .models import Base


logger = logging.getLogger(__name__)

engine = create_async_engine(settings.DATABASE_URL, echo=settings.DB_ECHO, future=True)

AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create the profile and session tables if they do not exist yet."""
    bind = bind or engine
    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Client login tables ready on {bind.url.render_as_string(hide_password=True)}")


async def check_db_health() -> tuple[bool, float, str | None]:
    """Round-trip a trivial query.

    Returns:
        (healthy, latency in milliseconds, error message or None)
    """
    started = time.perf_counter()
    error = None
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"Database health check failed: {e}")
        error = str(e)
    return error is None, (time.perf_counter() - started) * 1000, error
