from collections.abc import AsyncGenerator
from pathlib import Path

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from core.config import settings


class Base(DeclarativeBase):
    pass


def build_engine(url: str, echo: bool = False) -> AsyncEngine:
    return create_async_engine(url, echo=echo)


def _ensure_sqlite_dir(url) -> None:
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite" and parsed.database and parsed.database != ":memory:":
        Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)


# Online API (Postgres)
engine = build_engine(settings.database_url, echo=settings.database_echo)
async_session_maker = async_sessionmaker(engine, expire_on_commit=False)

# Offline API (local SQLite file)
offline_engine = build_engine(settings.offline_database_url, echo=settings.database_echo)
offline_session_maker = async_sessionmaker(offline_engine, expire_on_commit=False)


def import_models() -> None:
    """Import every model module so `Base.metadata` knows all tables."""
    from db import customer, product, purchase_order, sale, supplier, users  # noqa: F401
    from db.inventory import count, location, stock, transaction  # noqa: F401


async def create_db_and_tables(target: AsyncEngine = engine) -> None:
    import_models()
    _ensure_sqlite_dir(target.url)
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session_maker() as session:
        yield session


async def get_offline_session() -> AsyncGenerator[AsyncSession, None]:
    async with offline_session_maker() as session:
        yield session
