"""Error types raised by the object-graph mapping layer.

Database errors (``neo4j.exceptions.Neo4jError``) and validation errors
(``pydantic.ValidationError``) are never wrapped: callers match on their
upstream ``code`` and ``message`` directly. The classes here cover usage
mistakes and the few database failures that get translated.
"""

from collections.abc import Mapping
from typing import Any

DELETE_WITH_RELATIONSHIPS_HINT = (
    "Failed to delete node due to relationships. Try again with force: true option."
)


class GraphModelError(Exception):
    """Base exception for graph model errors.

    Attributes:
        message: Human-readable description.
        code: Machine-readable error code.
        details: Additional context for debugging.
    """

    def __init__(
        self,
        message: str = "",
        *,
        code: str | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = dict(details or {})

    def __str__(self) -> str:
        base = self.message or self.__class__.__name__
        if self.code and self.code != self.message:
            base += f" [code={self.code}]"
        return base


class ModelUsageError(GraphModelError):
    """Missing or malformed arguments. Never reaches the database."""

    def __init__(self, message: str, **kw: Any) -> None:
        kw.setdefault("code", "Neomap.Usage")
        super().__init__(message, **kw)


class QueryBuildError(ModelUsageError):
    """Conditions or options that cannot be turned into a statement."""


class NodeNotFoundError(GraphModelError):
    """No node matched an id lookup."""

    def __init__(self, node_id: Any, **kw: Any) -> None:
        kw.setdefault("code", "Neo.ClientError.Statement.EntityNotFound")
        super().__init__(f"Node with id {node_id} not found", **kw)
        self.node_id = node_id


class RelationshipsExistError(GraphModelError):
    """A plain delete was refused because the node still has relationships."""

    def __init__(self, **kw: Any) -> None:
        kw.setdefault("code", DELETE_WITH_RELATIONSHIPS_HINT)
        super().__init__(DELETE_WITH_RELATIONSHIPS_HINT, **kw)


class SchemaIndexError(GraphModelError):
    """Constraint or index creation failed for a reason other than a conflict."""


class TransactionError(GraphModelError):
    """A transaction handle was used after it was closed."""


class GraphConnectionError(GraphModelError):
    """Exception raised for graph connection errors."""
