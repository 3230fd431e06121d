"""Fake async session and session factory.

Emulates the transaction boundary the metering services rely on: undo
callbacks run on rollback (or on close without commit) and row locks are
released when the transaction ends.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Optional


class FakeSession:
    """Stand-in for AsyncSession used by the fake repositories."""

    def __init__(self, fail_on_commit: Optional[Exception] = None) -> None:
        """Initialize with optional commit-failure injection."""
        self._fail_on_commit = fail_on_commit
        self._undo: list[Callable[[], None]] = []
        self._on_end: list[Callable[[], None]] = []
        self.held_locks: set = set()
        self.commits = 0
        self.rollbacks = 0
        self.closed = False

    def on_rollback(self, fn: Callable[[], None]) -> None:
        """Register an undo step for the current transaction."""
        self._undo.append(fn)

    def on_end(self, fn: Callable[[], None]) -> None:
        """Register a step to run when the transaction ends (commit or rollback)."""
        self._on_end.append(fn)

    @property
    def in_transaction(self) -> bool:
        return bool(self._undo or self._on_end)

    async def commit(self) -> None:
        """Commit, or raise the injected failure leaving the transaction open."""
        if self._fail_on_commit is not None:
            exc, self._fail_on_commit = self._fail_on_commit, None
            raise exc
        self._undo.clear()
        self.commits += 1
        self._end()

    async def rollback(self) -> None:
        """Undo every change made since the last commit."""
        for fn in reversed(self._undo):
            fn()
        self._undo.clear()
        self.rollbacks += 1
        self._end()

    async def close(self) -> None:
        """Roll back anything uncommitted."""
        if self.in_transaction:
            await self.rollback()
        self.closed = True

    def _end(self) -> None:
        callbacks, self._on_end = self._on_end, []
        for fn in callbacks:
            fn()
        self.held_locks.clear()


class FakeSessionFactory:
    """Callable producing ``async with`` fake sessions, like ``get_db_context``."""

    def __init__(self) -> None:
        """Initialize with no failures armed."""
        self.sessions: list[FakeSession] = []
        self._fail_on_open: Optional[Exception] = None
        self._commit_failures: list[Exception] = []

    def fail_on_open(self, exc: Optional[Exception]) -> None:
        """Make every new session raise ``exc`` (None disarms)."""
        self._fail_on_open = exc

    def fail_next_commit(self, exc: Exception) -> None:
        """Make the next session's first commit raise ``exc``."""
        self._commit_failures.append(exc)

    @asynccontextmanager
    async def __call__(self) -> AsyncIterator[FakeSession]:
        if self._fail_on_open is not None:
            raise self._fail_on_open
        failure = self._commit_failures.pop(0) if self._commit_failures else None
        session = FakeSession(fail_on_commit=failure)
        self.sessions.append(session)
        try:
            yield session
        finally:
            await session.close()
