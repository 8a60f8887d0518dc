"""Models: one label, one schema, and the operations on its nodes.

A ``Model`` turns create/read/update/remove calls into Cypher statements,
submits them (or appends them to a caller's transaction), parses the rows
that come back and emits lifecycle events.

Example usage:
    ```python
    from pydantic import BaseModel

    class User(BaseModel):
        name: str

    async with GraphConnection() as conn:
        users = ModelHolder(conn).model("User", User)
        user = await users.create({"name": "Rory"})
        same = await users.find_by_id(user["_id"])
    ```
"""

import types
from collections.abc import AsyncGenerator, AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any

import structlog
from neo4j.exceptions import Neo4jError
from pydantic import BaseModel, ValidationError

from ..errors import ModelUsageError, NodeNotFoundError, RelationshipsExistError
from .connection import GraphConnection
from .events import EventEmitter
from .indexes import IndexReconciler, IndexState
from .models import (
    FindOptions,
    NewRelationship,
    RelationshipDescriptor,
    RelationshipOptions,
    Statement,
)
from .queries import (
    build_create,
    build_create_relationship,
    build_find,
    build_get_relationships,
    build_remove,
    build_remove_relationship,
    build_update,
)
from .schema import Schema
from .subschema import expand
from .transaction import Transaction
from .utils import (
    error_code,
    error_message,
    parse_node_rows,
    parse_relationship_row,
    parse_relationship_rows,
)

logger = structlog.get_logger(__name__)


def _find_options(options: FindOptions | Mapping[str, Any] | None) -> FindOptions:
    if options is None:
        return FindOptions()
    if isinstance(options, FindOptions):
        return options.model_copy(deep=True)
    try:
        return FindOptions.model_validate(dict(options))
    except ValidationError as e:
        raise ModelUsageError(f"Invalid find options: {e}") from e


def _relationship_options(
    options: RelationshipOptions | Mapping[str, Any] | None,
) -> RelationshipOptions:
    if options is None:
        return RelationshipOptions()
    if isinstance(options, RelationshipOptions):
        return options
    try:
        return RelationshipOptions.model_validate(dict(options))
    except ValidationError as e:
        raise ModelUsageError(f"Invalid relationship options: {e}") from e


def _is_delete_blocked(error: Neo4jError) -> bool:
    code = error_code(error)
    message = error_message(error).lower()
    return "ConstraintValidationFailed" in code or "still has relationships" in message


class Model(EventEmitter):
    """Operations on the nodes of one label.

    Attributes:
        label: The node label.
        schema: Validation schema and index metadata.
        connection: Transport for statements outside a transaction.
        sub_schema_names: Fields holding nested models.
    """

    def __init__(self, label: str, connection: GraphConnection, schema: Schema) -> None:
        super().__init__()
        self.label = label
        self.connection = connection
        self.schema = schema
        self.sub_schema_names = frozenset(schema.sub_schemas)
        self.indexes = IndexReconciler(
            connection,
            label,
            IndexState(constraints=schema.constraints, indexes=schema.indexes),
        )

        for name, func in schema.statics.items():
            setattr(self, name, types.MethodType(func, self))

    def __repr__(self) -> str:
        return f"Model(label={self.label!r})"

    @property
    def index_state(self) -> IndexState:
        return self.indexes.state

    # ==========================================================================
    # Execution helpers
    # ==========================================================================

    async def _execute(
        self, statement: Statement, transaction: Transaction | None = None
    ) -> list[list[Any]]:
        if transaction is not None:
            return await transaction.append(statement)
        results = await self.connection.submit_batch([statement])
        return results[0]

    async def _notify(self, transaction: Transaction | None, event: str, *args: Any) -> None:
        if transaction is not None:
            transaction.queue_event(self, event, *args)
        else:
            await self.emit(event, *args)

    @asynccontextmanager
    async def _released_on_error(self, transaction: Transaction | None) -> AsyncIterator[None]:
        try:
            yield
        except Exception:
            if transaction is not None:
                await transaction.release()
            raise

    # ==========================================================================
    # Write Operations
    # ==========================================================================

    async def apply_indexes(self) -> IndexState:
        """Create any pending constraints and indexes for this label."""
        return await self.indexes.reconcile()

    async def create(
        self,
        data: Mapping[str, Any],
        *,
        relationship: Any = None,
        transaction: Transaction | None = None,
    ) -> dict[str, Any]:
        """Create a node, its nested sub-schema nodes and optional relationships.

        Only one root node is created per call: ``data`` must be a mapping.
        Lists are accepted for nested fields, each item becoming its own node.

        Args:
            data: Node properties, including payloads for nested models.
            relationship: One relationship descriptor or a list of them (see
                ``RelationshipDescriptor``), created in the same statement.
            transaction: Append to this transaction instead of committing.

        Returns:
            The created root node, with its database id under ``_id``.

        Raises:
            ModelUsageError: If data is missing or not a mapping, or a
                descriptor is invalid.
            pydantic.ValidationError: If the schema rejects the data.
            Neo4jError: If the database rejects the statement.
        """
        if data is None:
            raise ModelUsageError("Invalid create option. You must provide node details.")

        async with self._released_on_error(transaction):
            if self.indexes.pending:
                await self.indexes.reconcile()

            validated = self.schema.validate(data)
            descriptors = self._relationship_descriptors(relationship)
            expansion = expand(validated, self.schema)
            statement = build_create(
                self.label, expansion.data, descriptors, expansion.fragment
            )

            rows = await self._execute(statement, transaction)
            node = parse_node_rows(rows, single=True)
            if node is None:
                raise ModelUsageError(
                    f"Create {self.label}: relationship target node not found",
                    details={"relationships": [d.model_dump() for d in descriptors]},
                )

        logger.debug(f"Created {self.label} node", node_id=node["_id"])
        await self._notify(transaction, "create", node)
        return node

    def _relationship_descriptors(self, relationship: Any) -> list[RelationshipDescriptor]:
        if relationship is None:
            return []
        items = relationship if isinstance(relationship, (list, tuple)) else [relationship]
        descriptors = []
        for item in items:
            if isinstance(item, RelationshipDescriptor):
                descriptors.append(item)
                continue
            try:
                descriptors.append(RelationshipDescriptor.model_validate(item))
            except ValidationError as e:
                raise ModelUsageError(
                    f"Create {self.label}: Invalid relationship details", details={"error": str(e)}
                ) from e
        return descriptors

    async def update(
        self,
        node: Mapping[str, Any],
        updates: Mapping[str, Any],
        *,
        transaction: Transaction | None = None,
    ) -> dict[str, Any]:
        """Update properties of an existing node.

        A value of None removes the property. The node merged with the updates
        is validated as a whole before anything is sent. Fields the schema
        drops are not written. Listeners of the ``update`` event receive the
        node and the values actually written, removed fields as None.

        Args:
            node: The current node, carrying ``_id``.
            updates: Field/value changes.
            transaction: Append to this transaction instead of committing.

        Returns:
            The updated node.

        Raises:
            ModelUsageError: If updates are missing or the node has no ``_id``.
            pydantic.ValidationError: If the merged node fails validation.
        """
        if not isinstance(updates, Mapping):
            raise ModelUsageError("Invalid update request. You must provide updates.")
        if node is None or "_id" not in node:
            raise ModelUsageError(
                "You must supply a node with an _id. See find_by_id_and_update "
                "or find_one_and_update"
            )

        async with self._released_on_error(transaction):
            node_id = node["_id"]
            merged = {key: value for key, value in node.items() if key != "_id"}
            merged.update(updates)
            validated = self.schema.validate(merged)

            changed = list(updates)
            for key, value in validated.items():
                if key in updates:
                    continue
                # coercion by the validator (trim, lowercase, defaults) counts as a change
                if key in merged and value != merged[key]:
                    changed.append(key)
                elif key not in merged and value is not None:
                    changed.append(key)

            set_values: dict[str, Any] = {}
            remove_fields: list[str] = []
            for key in changed:
                if key in self.sub_schema_names:
                    logger.warning(f"Ignoring nested field '{key}' in {self.label} update")
                    continue
                if key == "_id":
                    continue
                if key in validated:
                    value = validated[key]
                elif updates.get(key) is None:
                    value = None
                else:
                    # dropped by the schema, so never written
                    logger.warning(f"Ignoring field '{key}' outside the {self.label} schema")
                    continue
                if value is None:
                    remove_fields.append(key)
                else:
                    set_values[key] = value

            statement = build_update(node_id, set_values, remove_fields)
            rows = await self._execute(statement, transaction)
            result = parse_node_rows(rows, single=True)
            if result is None:
                raise NodeNotFoundError(node_id)

        written = {**set_values, **{key: None for key in remove_fields}}
        await self._notify(transaction, "update", result, written)
        return result

    async def remove(
        self,
        node_id: Any,
        *,
        force: bool = False,
        transaction: Transaction | None = None,
    ) -> None:
        """Delete a node.

        Args:
            node_id: Database id of the node.
            force: Delete the node's relationships too. Without it a node
                that still has relationships is not deleted.
            transaction: Append to this transaction instead of committing.

        Raises:
            RelationshipsExistError: If the node has relationships and
                ``force`` is not set.
        """
        if node_id is None:
            raise ModelUsageError("Invalid remove request. You need to supply a node id.")

        async with self._released_on_error(transaction):
            statement = build_remove(node_id, force=force)
            try:
                await self._execute(statement, transaction)
            except Neo4jError as e:
                if not force and _is_delete_blocked(e):
                    raise RelationshipsExistError(details={"node_id": node_id}) from e
                raise

        logger.debug(f"Removed {self.label} node", node_id=node_id, force=force)
        await self._notify(transaction, "remove", node_id)

    async def create_relationship(
        self,
        relationship: NewRelationship | Mapping[str, Any],
        *,
        transaction: Transaction | None = None,
    ) -> dict[str, Any]:
        """Create a directed relationship between two existing nodes.

        Args:
            relationship: ``{"from": id, "to": id, "type": str, "data": {...}}``.
            transaction: Append to this transaction instead of committing.

        Returns:
            ``{"_id": rel_id, "type": type, "rel": data}``.
        """
        if relationship is None:
            raise ModelUsageError(
                "Invalid relationship creation request. Relationship details must be included."
            )
        if not isinstance(relationship, NewRelationship):
            try:
                relationship = NewRelationship.model_validate(relationship)
            except ValidationError as e:
                raise ModelUsageError(
                    "Invalid relationship creation request. Relationship details must "
                    "include from, to and type."
                ) from e

        async with self._released_on_error(transaction):
            statement = build_create_relationship(
                relationship.from_id, relationship.to_id, relationship.type, relationship.data
            )
            rows = await self._execute(statement, transaction)
            if not rows:
                raise ModelUsageError(
                    "Relationship endpoints not found",
                    details={"from": relationship.from_id, "to": relationship.to_id},
                )
        return parse_relationship_row(rows[0])

    async def remove_relationship(
        self, rel_id: Any, *, transaction: Transaction | None = None
    ) -> None:
        """Delete a relationship by its database id."""
        if rel_id is None:
            raise ModelUsageError(
                "Invalid remove relationship request. You need to supply a relationship id."
            )

        async with self._released_on_error(transaction):
            await self._execute(build_remove_relationship(rel_id), transaction)

    # ==========================================================================
    # Read Operations
    # ==========================================================================

    async def find(
        self,
        conditions: Mapping[str, Any] | None,
        options: FindOptions | Mapping[str, Any] | None = None,
        *,
        transaction: Transaction | None = None,
    ) -> Any:
        """Find nodes by property equality.

        ``{"_id": id}`` looks a node up by its database id; any other
        condition next to ``_id`` is ignored.

        Args:
            conditions: Field/value equality conditions; ``{}`` matches all.
            options: Limit, skip, order_by, using and fields.
            transaction: Read inside this transaction.

        Returns:
            A list of nodes, or a single node/None when ``limit`` is 1.
        """
        opts = _find_options(options)
        statement = build_find(self.label, conditions, opts, self.schema.numeric_fields)
        rows = await self._execute(statement, transaction)
        return parse_node_rows(rows, fields=opts.fields, single=opts.limit == 1)

    async def find_one(
        self,
        conditions: Mapping[str, Any] | None,
        options: FindOptions | Mapping[str, Any] | None = None,
        *,
        transaction: Transaction | None = None,
    ) -> dict[str, Any] | None:
        """Return the first node matching ``conditions``, or None."""
        if conditions is None:
            raise ModelUsageError(
                "Invalid find_one. You must provide some conditions in your query."
            )
        opts = _find_options(options)
        opts.limit = 1
        return await self.find(conditions, opts, transaction=transaction)

    async def find_by_id(
        self,
        node_id: Any,
        options: FindOptions | Mapping[str, Any] | None = None,
        *,
        transaction: Transaction | None = None,
    ) -> dict[str, Any]:
        """Return the node with database id ``node_id``.

        Raises:
            NodeNotFoundError: If no such node exists.
        """
        if node_id is None:
            raise ModelUsageError("Invalid find_by_id: You need to include an id")
        try:
            node_id = int(node_id)
        except (TypeError, ValueError) as e:
            raise ModelUsageError(f"Invalid find_by_id: {node_id!r} is not an id") from e

        node = await self.find_one({"_id": node_id}, options, transaction=transaction)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    async def find_by_id_and_update(
        self,
        node_id: Any,
        updates: Mapping[str, Any],
        *,
        transaction: Transaction | None = None,
    ) -> dict[str, Any]:
        """Look a node up by id, then update it."""
        if not isinstance(updates, Mapping):
            raise ModelUsageError("Invalid Update. You must provide some updates.")
        async with self._released_on_error(transaction):
            node = await self.find_by_id(node_id, transaction=transaction)
        return await self.update(node, updates, transaction=transaction)

    async def find_one_and_update(
        self,
        conditions: Mapping[str, Any],
        updates: Mapping[str, Any],
        options: FindOptions | Mapping[str, Any] | None = None,
        *,
        transaction: Transaction | None = None,
    ) -> dict[str, Any]:
        """Look up the first node matching ``conditions``, then update it.

        Raises:
            NodeNotFoundError: If nothing matches.
        """
        if not isinstance(updates, Mapping):
            raise ModelUsageError("Invalid Update. You must provide some updates.")
        async with self._released_on_error(transaction):
            node = await self.find_one(conditions, options, transaction=transaction)
            if node is None:
                raise NodeNotFoundError(dict(conditions))
        return await self.update(node, updates, transaction=transaction)

    async def get_relationships(
        self,
        node_id: Any,
        conditions: Mapping[str, Any] | None = None,
        options: RelationshipOptions | Mapping[str, Any] | None = None,
        *,
        transaction: Transaction | None = None,
    ) -> dict[str, list]:
        """Return the relationships of a node and the nodes at their far end.

        Args:
            node_id: Database id of the anchor node.
            conditions: Equality filter on relationship properties.
            options: ``types``, ``direction`` ('to', 'from' or 'all'),
                ``label`` of the far node, ``limit`` and ``skip``.
            transaction: Read inside this transaction.

        Returns:
            ``{"nodes": [...], "rels": [...]}`` where ``nodes[i]`` is the far
            end of ``rels[i]``. ``direction`` is 'from' when the relationship
            starts at the anchor node.
        """
        if node_id is None:
            raise ModelUsageError("Invalid get_relationships: You need to include an id")
        try:
            anchor_id = int(node_id)
        except (TypeError, ValueError) as e:
            raise ModelUsageError(f"Invalid get_relationships: {node_id!r} is not an id") from e
        statement = build_get_relationships(
            anchor_id, conditions, _relationship_options(options)
        )
        rows = await self._execute(statement, transaction)
        return parse_relationship_rows(rows, anchor_id)

    async def stream(
        self,
        conditions: Mapping[str, Any] | None,
        options: FindOptions | Mapping[str, Any] | None = None,
    ) -> AsyncGenerator[dict[str, Any], None]:
        """Yield matching nodes one at a time as the database returns them."""
        opts = _find_options(options)
        statement = build_find(self.label, conditions, opts, self.schema.numeric_fields)
        async for row in self.connection.stream(statement):
            yield parse_node_rows([row], fields=opts.fields, single=True)


class ModelHolder:
    """Builds and caches one Model per label for a connection."""

    def __init__(self, connection: GraphConnection) -> None:
        self.connection = connection
        self._models: dict[str, Model] = {}

    def model(
        self,
        label: str,
        schema: Schema | type[BaseModel] | None = None,
        **options: Any,
    ) -> Model:
        """Return the Model for ``label``, creating it on first use.

        Args:
            label: The node label.
            schema: A Schema, a pydantic model class, or None for a
                non-strict schema accepting any properties.
            **options: Passed to ``Schema`` when one is built here
                (``indexes``, ``constraints``, ``unique``).

        Returns:
            The Model bound to ``label``.
        """
        if not label:
            raise ModelUsageError("A model needs a label")
        if label in self._models:
            return self._models[label]

        if schema is None:
            schema = Schema(label=label, **options)
        elif not isinstance(schema, Schema):
            schema = Schema(schema, label=label, **options)

        model = Model(label, self.connection, schema)
        self._models[label] = model
        return model

    def __contains__(self, label: str) -> bool:
        return label in self._models

    def __getitem__(self, label: str) -> Model:
        return self._models[label]
