from typing import AsyncGenerator, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from carebridge.core.config import settings
from carebridge.core.errors import InternalError
from carebridge.core.logger import get_logger
from carebridge.db import models  # noqa: F401  registers tables on SQLModel.metadata

logger = get_logger("db")

engine = create_async_engine(settings.DATABASE_URL, echo=False, future=True, pool_pre_ping=True)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

T = TypeVar("T")

async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with async_session() as session:
        yield session

async def init_db(bind: AsyncEngine = engine):
    async with bind.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

async def run_in_transaction(
    session: AsyncSession,
    work: Callable[[], Awaitable[T]],
    retries: Optional[int] = None,
) -> T:
    """
    Run ``work`` and commit it as one unit.

    ``work`` must do its own reads: on a store failure (unique violation from
    a racing writer, serialization failure, deadlock) the session is rolled
    back and ``work`` is executed again from scratch, up to ``retries`` more
    times. Domain errors roll back and propagate untouched.
    """
    if retries is None:
        retries = settings.TRANSACTION_RETRIES

    attempt = 0
    while True:
        try:
            result = await work()
            await session.commit()
            return result
        except DBAPIError as exc:
            await session.rollback()
            if attempt >= retries:
                logger.error(f"Transaction failed after {attempt + 1} attempt(s): {exc.__class__.__name__}: {exc.orig}")
                raise InternalError("The operation could not be completed, please retry") from exc
            attempt += 1
            logger.warning(f"Transaction conflict ({exc.__class__.__name__}), retrying {attempt}/{retries}")
        except Exception:
            await session.rollback()
            raise
