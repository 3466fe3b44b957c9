"""
Olytics Content Archive — Async SQLAlchemy database setup.

Only the aggregation enablement settings live here; the archives
themselves are in MongoDB (see ``olytics.mongo``).
"""

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from olytics.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=False,
    # pool settings only for postgres
    **(
        {}
        if "sqlite" in settings.database_url
        else {
            "pool_size": 5,
            "max_overflow": 10,
            "pool_pre_ping": True,
            "pool_recycle": 300,
        }
    ),
)

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


async def init_db() -> None:
    """Create all tables (used in lifespan and tests)."""
    from olytics import models  # noqa: F401  (register tables on Base.metadata)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    await engine.dispose()
