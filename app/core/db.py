from collections.abc import AsyncGenerator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from app.core.config import settings


_ASYNC_DRIVERS = {
    "postgres": "postgresql+asyncpg",
    "postgresql": "postgresql+asyncpg",
    "sqlite": "sqlite+aiosqlite",
}


def to_async_database_url(database_url: str) -> str:
    """Use asyncpg/aiosqlite for plain URLs and drop psycopg-only query params."""
    url = make_url(database_url)
    if url.drivername in _ASYNC_DRIVERS:
        url = url.set(drivername=_ASYNC_DRIVERS[url.drivername])
    # asyncpg does not accept sslmode/channel_binding; SSL goes through connect_args
    url = url.difference_update_query(["sslmode", "channel_binding"])
    return url.render_as_string(hide_password=False)


async_database_url = to_async_database_url(settings.database_url)

_engine_kwargs: dict = {"echo": settings.env == "development"}
if not async_database_url.startswith("sqlite"):
    _engine_kwargs.update(pool_pre_ping=True, pool_size=5, max_overflow=10)
    if settings.database_ssl:
        _engine_kwargs["connect_args"] = {"ssl": True}

engine = create_async_engine(async_database_url, **_engine_kwargs)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db(bind=None) -> None:
    """Create tables if using create_all; prefer Alembic in production."""
    import app.models  # noqa: F401 - register tables

    async with (bind or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
