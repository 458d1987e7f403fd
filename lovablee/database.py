# lovablee/database.py
from functools import lru_cache

from sqlmodel import SQLModel
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, async_sessionmaker

from lovablee.config import get_settings
from lovablee.models import User


@lru_cache(maxsize=None)
def get_engine(database_url: str) -> AsyncEngine:
    return create_async_engine(database_url, echo=False)


def session_factory(engine: AsyncEngine):
    return async_sessionmaker(engine, expire_on_commit=False)


async def create_db_and_tables(engine: AsyncEngine):
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all, tables=[User.__table__])


async def get_session():
    engine = get_engine(get_settings().database_url)
    async with session_factory(engine)() as session:
        yield session
