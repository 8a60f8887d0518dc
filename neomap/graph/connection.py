"""Neo4j connection management.

This module provides the GraphConnection class, the transport every model
talks to. It submits ordered statement batches in one committed transaction,
streams rows for large reads, and opens explicit transactions.
"""

from collections.abc import AsyncGenerator, AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any

import structlog
from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncManagedTransaction, AsyncSession
from neo4j.exceptions import Neo4jError, ServiceUnavailable

from ..config import get_settings
from ..errors import GraphConnectionError
from .models import Statement
from .queries import QUERIES
from .transaction import Transaction

logger = structlog.get_logger(__name__)


class GraphConnection:
    """Manages connections to the Neo4j graph database.

    Any argument left out falls back to the library settings
    (``NEOMAP_NEO4J_URI`` and friends).

    Attributes:
        uri: Neo4j connection URI.
        user: Neo4j username.
        password: Neo4j password.
        database: Neo4j database name.
    """

    def __init__(
        self,
        uri: str | None = None,
        user: str | None = None,
        password: str | None = None,
        database: str | None = None,
        max_connection_pool_size: int | None = None,
        connection_acquisition_timeout: float | None = None,
    ) -> None:
        settings = get_settings()
        self.uri = uri or settings.neo4j_uri
        self.user = user or settings.neo4j_user
        self.password = password or settings.neo4j_password
        self.database = database or settings.neo4j_database
        self._max_pool_size = max_connection_pool_size or settings.max_connection_pool_size
        self._acquisition_timeout = (
            connection_acquisition_timeout or settings.connection_acquisition_timeout
        )
        self._driver: AsyncDriver | None = None

    async def connect(self) -> None:
        """Establish connection to Neo4j.

        Raises:
            GraphConnectionError: If connection fails.
        """
        if self._driver is not None:
            return

        try:
            self._driver = AsyncGraphDatabase.driver(
                self.uri,
                auth=(self.user, self.password),
                max_connection_pool_size=self._max_pool_size,
                connection_acquisition_timeout=self._acquisition_timeout,
            )
            # Verify connectivity
            await self._driver.verify_connectivity()
            logger.info(f"Connected to Neo4j at {self.uri}")
        except ServiceUnavailable as e:
            self._driver = None
            raise GraphConnectionError(f"Failed to connect to Neo4j: {e}") from e
        except Exception as e:
            self._driver = None
            raise GraphConnectionError(f"Unexpected error connecting to Neo4j: {e}") from e

    async def close(self) -> None:
        """Close the driver and release all pooled connections."""
        if self._driver is not None:
            await self._driver.close()
            self._driver = None
            logger.info("Disconnected from Neo4j")

    async def __aenter__(self) -> "GraphConnection":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    @property
    def driver(self) -> AsyncDriver:
        """Get the Neo4j driver.

        Raises:
            GraphConnectionError: If not connected.
        """
        if self._driver is None:
            raise GraphConnectionError("Not connected to Neo4j. Call connect() first.")
        return self._driver

    @asynccontextmanager
    async def session(self, **kwargs: Any) -> AsyncGenerator[AsyncSession, None]:
        """Get a Neo4j session as an async context manager.

        Raises:
            GraphConnectionError: If not connected.
        """
        session = self.driver.session(database=self.database, **kwargs)
        try:
            yield session
        finally:
            await session.close()

    async def health_check(self) -> dict[str, Any]:
        """Check the health of the Neo4j connection.

        Returns:
            Dictionary with health status information.
        """
        try:
            if self._driver is None:
                return {
                    "status": "disconnected",
                    "message": "Driver not initialized",
                }

            await self._driver.verify_connectivity()

            async with self.session() as session:
                result = await session.run(QUERIES.HEALTH_CHECK)
                record = await result.single()

                if record and record["n"] == 1:
                    return {
                        "status": "healthy",
                        "uri": self.uri,
                        "database": self.database,
                    }
                return {
                    "status": "unhealthy",
                    "message": "Query returned unexpected result",
                }
        except ServiceUnavailable as e:
            return {
                "status": "unhealthy",
                "message": f"Service unavailable: {e}",
            }
        except Neo4jError as e:
            return {
                "status": "unhealthy",
                "message": f"Neo4j error: {e}",
            }

    async def submit_batch(self, statements: Sequence[Statement]) -> list[list[list[Any]]]:
        """Run statements in order inside one write transaction and commit.

        Args:
            statements: The statements to run.

        Returns:
            One entry per statement, each a list of rows, each row the ordered
            columns of the statement's RETURN clause.

        Raises:
            GraphConnectionError: If not connected.
            Neo4jError: If any statement fails; nothing is committed.
        """
        logger.debug("Submitting batch", statements=len(statements))

        async def _batch_tx(tx: AsyncManagedTransaction) -> list[list[list[Any]]]:
            results = []
            for statement in statements:
                result = await tx.run(statement.text, statement.parameters)
                results.append(await result.values())
            return results

        async with self.session() as session:
            return await session.execute_write(_batch_tx)

    async def stream(self, statement: Statement) -> AsyncIterator[list[Any]]:
        """Yield rows of one statement as the database produces them.

        Args:
            statement: The statement to run in an auto-commit transaction.

        Yields:
            Each row as an ordered list of columns.
        """
        logger.debug("Streaming statement", query=statement.text)
        async with self.session() as session:
            result = await session.run(statement.text, statement.parameters)
            async for record in result:
                yield list(record.values())

    async def begin_transaction(self) -> Transaction:
        """Open an explicit transaction handle.

        Returns:
            A started Transaction. Commit or roll it back when done.
        """
        return await Transaction(self).begin()
