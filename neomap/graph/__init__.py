"""Graph module for Neo4j object-graph mapping.

This module provides the components for mapping labelled nodes onto
validated schemas: connection management, statement builders, sub-schema
expansion, result parsing, constraint/index reconciliation, transactions
and the Model class tying them together.

Example usage:
    ```python
    from pydantic import BaseModel
    from neomap.graph import GraphConnection, ModelHolder

    class Story(BaseModel):
        name: str

    async with GraphConnection() as conn:
        stories = ModelHolder(conn).model("Story", Story)
        story = await stories.create({"name": "Fiction"})
        rels = await stories.get_relationships(story["_id"])
    ```
"""

from .connection import GraphConnection
from .events import EventEmitter
from .indexes import IndexReconciler, IndexState, parse_conflict
from .model import Model, ModelHolder
from .models import (
    FindOptions,
    NewRelationship,
    OrderBy,
    RelationshipDescriptor,
    RelationshipOptions,
    Statement,
)
from .queries import (
    QUERIES,
    CypherQueries,
    CypherQuery,
    build_constraint,
    build_create,
    build_create_relationship,
    build_find,
    build_get_relationships,
    build_index,
    build_remove,
    build_remove_relationship,
    build_update,
)
from .schema import Schema, SubSchema
from .subschema import Expansion, Fragment, expand
from .transaction import PendingEvent, Transaction
from .utils import (
    parse_node_rows,
    parse_relationship_row,
    parse_relationship_rows,
    quote_identifier,
    sanitize_identifier,
)

__all__ = [
    # Connection
    "GraphConnection",
    # Models
    "Model",
    "ModelHolder",
    "Schema",
    "SubSchema",
    "EventEmitter",
    # Transactions
    "Transaction",
    "PendingEvent",
    # Reconciliation
    "IndexReconciler",
    "IndexState",
    "parse_conflict",
    # Statements and options
    "Statement",
    "FindOptions",
    "OrderBy",
    "RelationshipDescriptor",
    "RelationshipOptions",
    "NewRelationship",
    # Queries
    "QUERIES",
    "CypherQueries",
    "CypherQuery",
    "build_find",
    "build_update",
    "build_remove",
    "build_create",
    "build_create_relationship",
    "build_remove_relationship",
    "build_get_relationships",
    "build_constraint",
    "build_index",
    # Sub-schemas
    "expand",
    "Expansion",
    "Fragment",
    # Utils
    "parse_node_rows",
    "parse_relationship_rows",
    "parse_relationship_row",
    "quote_identifier",
    "sanitize_identifier",
]
