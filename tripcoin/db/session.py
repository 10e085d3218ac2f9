from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tripcoin.config import settings
from tripcoin.errors import StorageError

DATABASE_URL = str(settings.DATABASE_URL)

# create async engine
engine = create_async_engine(DATABASE_URL, echo=settings.DEBUG, future=True)

# session factory
async_session = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


def get_session_factory() -> async_sessionmaker:  # to be used as dependency
    return async_session


@asynccontextmanager
async def transactional(
    session_factory: async_sessionmaker, session: Optional[AsyncSession] = None
) -> AsyncIterator[AsyncSession]:
    """Yield a session inside a transaction.

    When ``session`` is given the caller already owns a transaction and the
    work joins it; otherwise a new session is opened and committed on exit.
    Driver and ORM failures surface as ``StorageError`` once the transaction
    has been rolled back.
    """
    if session is not None:
        yield session
        return
    try:
        async with session_factory() as new_session:
            async with new_session.begin():
                yield new_session
    except SQLAlchemyError as exc:
        raise StorageError("Persistence failure", reason=exc.__class__.__name__) from exc
