from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker


def create_engine_from_url(database_url: str, echo: bool = False,
                           **kwargs: Any) -> AsyncEngine:
    """Create the async engine every repository shares."""
    return create_async_engine(database_url, echo=echo, **kwargs)


def create_session_factory(engine: AsyncEngine) -> sessionmaker:
    return sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False
    )
