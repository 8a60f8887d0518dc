"""Explicit transactions spanning several model operations.

Operations given a ``Transaction`` append their statements to it instead of
committing on their own, and queue their lifecycle events on it. The events
are emitted only after ``commit`` succeeds; a rollback discards them.

Example usage:
    ```python
    async with await connection.begin_transaction() as tx:
        user = await User.create({"name": "Rory"}, transaction=tx)
        await User.update(user, {"name": "Roger"}, transaction=tx)
    # committed here, then the create and update events fire
    ```
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import structlog
from neo4j import AsyncSession, AsyncTransaction

from ..errors import TransactionError
from .models import Statement

if TYPE_CHECKING:
    from .connection import GraphConnection

logger = structlog.get_logger(__name__)


class Emitter(Protocol):
    async def emit(self, event: str, *args: Any) -> None: ...


@dataclass(frozen=True)
class PendingEvent:
    """An event waiting for its transaction to commit."""

    emitter: Emitter
    name: str
    args: tuple[Any, ...]


class Transaction:
    """A handle correlating statements from several operations.

    Attributes:
        events: Events queued by operations, flushed in order on commit.
    """

    def __init__(self, connection: "GraphConnection") -> None:
        self.connection = connection
        self.events: list[PendingEvent] = []
        self._session: AsyncSession | None = None
        self._tx: AsyncTransaction | None = None
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._tx is not None and not self._closed

    async def begin(self) -> "Transaction":
        """Open the underlying driver transaction.

        Raises:
            TransactionError: If the handle was already closed.
        """
        if self._closed:
            raise TransactionError("Transaction is already closed")
        if self._tx is None:
            self._session = self.connection.driver.session(database=self.connection.database)
            self._tx = await self._session.begin_transaction()
            logger.debug("Transaction started")
        return self

    async def append(self, statement: Statement) -> list[list[Any]]:
        """Run one statement inside the transaction.

        Args:
            statement: The statement to run.

        Returns:
            Rows for the statement, each an ordered list of columns.

        Raises:
            TransactionError: If the transaction was committed or rolled back.
        """
        if self._closed:
            raise TransactionError("Cannot append to a closed transaction")
        await self.begin()
        logger.debug("Appending statement", query=statement.text)
        result = await self._tx.run(statement.text, statement.parameters)
        return await result.values()

    def queue_event(self, emitter: Emitter, name: str, *args: Any) -> None:
        self.events.append(PendingEvent(emitter=emitter, name=name, args=args))

    async def commit(self) -> None:
        """Commit, then emit every queued event in order.

        Raises:
            TransactionError: If the transaction is already closed.
        """
        if self._closed:
            raise TransactionError("Transaction is already closed")
        try:
            if self._tx is not None:
                await self._tx.commit()
        finally:
            await self._close()
        logger.debug("Transaction committed", events=len(self.events))
        await self.flush_events()

    async def flush_events(self) -> None:
        events, self.events = self.events, []
        for event in events:
            await event.emitter.emit(event.name, *event.args)

    async def rollback(self) -> None:
        """Roll back and discard queued events."""
        if self._closed:
            return
        self.events.clear()
        try:
            if self._tx is not None:
                await self._tx.rollback()
                logger.debug("Transaction rolled back")
        finally:
            await self._close()

    async def release(self) -> None:
        """Roll back after a failed operation.

        Rollback failures are logged and swallowed so the caller keeps the
        error that caused the release.
        """
        try:
            await self.rollback()
        except Exception as e:
            logger.warning(f"Failed to roll back transaction: {e}")

    async def _close(self) -> None:
        self._closed = True
        self._tx = None
        if self._session is not None:
            session, self._session = self._session, None
            await session.close()

    async def __aenter__(self) -> "Transaction":
        return await self.begin()

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if exc_type is not None:
            await self.release()
        elif not self._closed:
            await self.commit()
