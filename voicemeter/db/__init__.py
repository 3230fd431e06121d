"""Database engine, sessions and session-factory typing."""

from typing import AsyncContextManager, Callable

from sqlalchemy.ext.asyncio import AsyncSession

# Services receive one of these (``get_db_context`` in production, a fake in
# tests) and open one session per atomic unit of work.
SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]
