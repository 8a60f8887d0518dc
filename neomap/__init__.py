"""neomap: an object-graph mapping layer for Neo4j.

Define labelled models over pydantic schemas, then create, read, update and
delete nodes and relationships through generated, parameterized Cypher.
"""

from .config import Settings, get_settings
from .errors import (
    GraphConnectionError,
    GraphModelError,
    ModelUsageError,
    NodeNotFoundError,
    QueryBuildError,
    RelationshipsExistError,
    SchemaIndexError,
    TransactionError,
)
from .graph import (
    FindOptions,
    GraphConnection,
    Model,
    ModelHolder,
    RelationshipDescriptor,
    RelationshipOptions,
    Schema,
    Transaction,
)

__version__ = "0.1.0"

__all__ = [
    "Settings",
    "get_settings",
    "GraphConnection",
    "Model",
    "ModelHolder",
    "Schema",
    "Transaction",
    "FindOptions",
    "RelationshipDescriptor",
    "RelationshipOptions",
    "GraphModelError",
    "ModelUsageError",
    "QueryBuildError",
    "NodeNotFoundError",
    "RelationshipsExistError",
    "SchemaIndexError",
    "TransactionError",
    "GraphConnectionError",
]
