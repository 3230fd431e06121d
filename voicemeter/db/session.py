"""Async engine and the per-unit-of-work session factory."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from voicemeter.core.config import settings

_connect_args: dict = {
    # An abandoned transaction would keep a usage period row locked.
    "server_settings": {"idle_in_transaction_session_timeout": "300000"},
    "command_timeout": 60,
}
if settings.POSTGRES_SSLMODE == "disable":
    _connect_args["ssl"] = False

# Period updates lock their row with SELECT ... FOR UPDATE, so READ COMMITTED suffices.
async_engine = create_async_engine(
    settings.SQLALCHEMY_ASYNC_DATABASE_URI,
    pool_size=settings.db_pool_size,
    max_overflow=settings.db_pool_max_overflow,
    pool_pre_ping=True,
    pool_recycle=300,
    pool_timeout=30,
    isolation_level="READ COMMITTED",
    connect_args=_connect_args,
)

AsyncSessionLocal = async_sessionmaker(
    autocommit=False, autoflush=False, expire_on_commit=False, bind=async_engine
)


@asynccontextmanager
async def get_db_context() -> AsyncGenerator[AsyncSession, None]:
    """Open one session for one atomic unit of work.

    The container hands this to every service as its ``session_factory``;
    the billing sweep opens one per tenant so a failure stays contained.
    """
    async with AsyncSessionLocal() as db:
        try:
            yield db
        finally:
            try:
                await db.close()
            except Exception:
                # the server may already have dropped an idle connection
                pass
