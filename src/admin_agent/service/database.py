"""Database engine and session factory for the run store."""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from admin_agent.config.settings import get_settings

settings = get_settings()


def engine_options(url: str) -> dict[str, Any]:
    """Pool options for a database URL (SQLite drivers manage their own pool)."""
    if url.startswith("sqlite"):
        return {}
    return {"pool_size": 5, "max_overflow": 10, "pool_pre_ping": True}


engine = create_async_engine(
    settings.database_url, echo=settings.database_echo, **engine_options(settings.database_url)
)

# Used by SqlRunStore unless a test passes its own factory
AsyncSessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db() -> None:
    """Create the agent_runs table if needed."""
    from admin_agent.service.models import Base  # noqa: PLC0415

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_db() -> None:
    """Close pooled connections on shutdown."""
    await engine.dispose()
