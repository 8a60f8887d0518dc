"""Cypher statement builders.

Statements are assembled as a small clause tree (``CypherQuery``) and rendered
to text only at the end, so clause order is fixed no matter which options are
supplied. Every value is bound as a ``$parameter``; labels, relationship types
and property names are passed through ``quote_identifier`` before they are
embedded.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..errors import QueryBuildError
from .models import FindOptions, RelationshipDescriptor, RelationshipOptions, Statement
from .subschema import Fragment
from .utils import quote_identifier, sanitize_identifier

NODE_COLUMNS = ["id(n)", "properties(n)"]


@dataclass(frozen=True)
class CypherQueries:
    """Collection of fixed Cypher templates.

    Placeholders in braces are identifiers filled in with quoted names;
    everything prefixed with $ is a bound parameter.
    """

    CREATE_CONSTRAINT = "CREATE CONSTRAINT FOR (node:{label}) REQUIRE node.{field} IS UNIQUE"

    CREATE_INDEX = "CREATE INDEX FOR (node:{label}) ON (node.{field})"

    CREATE_RELATIONSHIP = (
        "MATCH (fromNode), (toNode) "
        "WHERE id(fromNode) = $from AND id(toNode) = $to "
        "CREATE (fromNode)-[rel:{type} $data]->(toNode) "
        "RETURN id(rel), type(rel), properties(rel)"
    )

    REMOVE_RELATIONSHIP = "MATCH ()-[rel]->() WHERE id(rel) = $relId DELETE rel"

    HEALTH_CHECK = "RETURN 1 AS n"


# Singleton instance for easy import
QUERIES = CypherQueries()


@dataclass
class CypherQuery:
    """A statement under construction.

    Renders as MATCH, index hints, WHERE, CREATE, SET, REMOVE, DELETE, RETURN,
    ORDER BY, SKIP, LIMIT. Index hints sit directly after MATCH because that
    is the only place the query language accepts them.
    """

    matches: list[str] = field(default_factory=list)
    hints: list[str] = field(default_factory=list)
    where: list[str] = field(default_factory=list)
    creates: list[str] = field(default_factory=list)
    sets: list[str] = field(default_factory=list)
    removes: list[str] = field(default_factory=list)
    deletes: list[str] = field(default_factory=list)
    detach: bool = False
    returns: list[str] = field(default_factory=list)
    order_by: list[str] = field(default_factory=list)
    skip: int | None = None
    limit: int | None = None
    parameters: dict[str, Any] = field(default_factory=dict)

    def bind(self, name: str, value: Any) -> str:
        """Bind ``value`` under a parameter name derived from ``name``.

        Returns the parameter name actually used, suffixed with a counter
        when the sanitized name is already taken.
        """
        base = sanitize_identifier(name) or "p"
        candidate = base
        counter = 1
        while candidate in self.parameters:
            candidate = f"{base}_{counter}"
            counter += 1
        self.parameters[candidate] = value
        return candidate

    def render(self) -> str:
        parts = []
        if self.matches:
            parts.append("MATCH " + ", ".join(self.matches))
        parts.extend(self.hints)
        if self.where:
            parts.append("WHERE " + " AND ".join(self.where))
        if self.creates:
            parts.append("CREATE " + ", ".join(self.creates))
        if self.sets:
            parts.append("SET " + ", ".join(self.sets))
        if self.removes:
            parts.append("REMOVE " + ", ".join(self.removes))
        if self.deletes:
            keyword = "DETACH DELETE " if self.detach else "DELETE "
            parts.append(keyword + ", ".join(self.deletes))
        if self.returns:
            parts.append("RETURN " + ", ".join(self.returns))
        if self.order_by:
            parts.append("ORDER BY " + ", ".join(self.order_by))
        if self.skip is not None:
            parts.append(f"SKIP {int(self.skip)}")
        if self.limit is not None:
            parts.append(f"LIMIT {int(self.limit)}")
        return " ".join(parts)

    def to_statement(self) -> Statement:
        return Statement(text=self.render(), parameters=dict(self.parameters))


def _node_id(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise QueryBuildError(f"Invalid node id: {value!r}") from e


def _anchor(query: CypherQuery, node_id: Any, alias: str = "n") -> None:
    query.matches.append(f"({alias})")
    name = query.bind("nodeId", _node_id(node_id))
    query.where.append(f"id({alias}) = ${name}")


def _equality_filter(
    query: CypherQuery,
    alias: str,
    conditions: Mapping[str, Any],
    numeric_fields: Iterable[str] = (),
) -> None:
    numeric = set(numeric_fields)
    for key, value in conditions.items():
        if value is None:
            raise QueryBuildError(
                f"Invalid query condition: '{key}' has no value. Conditions must not be None."
            )
        if key in numeric:
            try:
                value = int(value)
            except (TypeError, ValueError) as e:
                raise QueryBuildError(f"Condition '{key}' must be a number") from e
        name = query.bind(key, value)
        query.where.append(f"{alias}.{quote_identifier(key)} = ${name}")


def build_find(
    label: str,
    conditions: Mapping[str, Any] | None,
    options: FindOptions | None = None,
    numeric_fields: Iterable[str] = (),
) -> Statement:
    """Build the statement behind ``find``.

    A ``_id`` condition anchors on that node directly and every other
    condition is ignored.

    Args:
        label: The model label.
        conditions: Field/value equality conditions, or ``{"_id": id}``.
        options: Limit, skip, ordering and index hints.
        numeric_fields: Fields whose condition values are coerced to int.

    Returns:
        The find statement, returning ``id(n), properties(n)`` per match.

    Raises:
        QueryBuildError: If conditions are missing or contain a None value.
    """
    if conditions is None:
        raise QueryBuildError("Invalid find. You must provide some conditions in your query")
    options = options or FindOptions()
    query = CypherQuery()

    if "_id" in conditions:
        _anchor(query, conditions["_id"])
    else:
        label_name = quote_identifier(label)
        query.matches.append(f"(n:{label_name})")
        _equality_filter(query, "n", conditions, numeric_fields)
        for hint in options.using:
            query.hints.append(f"USING INDEX n:{label_name}({quote_identifier(hint)})")

    query.returns.extend(NODE_COLUMNS)
    for term in options.order_by:
        prop = f"n.{quote_identifier(term.field)}"
        if term.nulls:
            query.order_by.append(f"{prop} IS NULL")
        query.order_by.append(f"{prop} DESC" if term.desc else prop)
    query.skip = options.skip
    query.limit = options.limit
    return query.to_statement()


def build_update(
    node_id: Any,
    set_values: Mapping[str, Any],
    remove_fields: Sequence[str] = (),
) -> Statement:
    """Build a statement setting and removing properties on one node.

    Args:
        node_id: Database id of the node.
        set_values: Properties to set, each bound to its own parameter.
        remove_fields: Properties to remove.

    Returns:
        The update statement, returning the updated node row.
    """
    query = CypherQuery()
    _anchor(query, node_id)
    for key, value in set_values.items():
        name = query.bind(f"{key}_NEW", value)
        query.sets.append(f"n.{quote_identifier(key)} = ${name}")
    for key in remove_fields:
        query.removes.append(f"n.{quote_identifier(key)}")
    query.returns.extend(NODE_COLUMNS)
    return query.to_statement()


def build_remove(node_id: Any, force: bool = False) -> Statement:
    """Build a node deletion; ``force`` detaches every relationship first."""
    query = CypherQuery()
    _anchor(query, node_id)
    query.deletes.append("n")
    query.detach = force
    return query.to_statement()


def relationship_pattern(
    left: str, rel_alias: str, rel_type: str, param: str, right: str, direction: str
) -> str:
    """Render ``(left)<-[rel:TYPE $param]-(right)`` for 'to' or the reverse for 'from'."""
    body = f"[{rel_alias}:{quote_identifier(rel_type)} ${param}]"
    if direction == "to":
        return f"({left})<-{body}-({right})"
    return f"({left})-{body}->({right})"


def build_create(
    label: str,
    properties: Mapping[str, Any],
    relationships: Sequence[RelationshipDescriptor] = (),
    fragment: Fragment | None = None,
) -> Statement:
    """Build a node creation with optional relationships and nested nodes.

    Each relationship descriptor matches its other endpoint first (by id or
    by property), then a single CREATE makes the node, the links and every
    nested node from ``fragment``.

    Args:
        label: The model label.
        properties: Residual root properties.
        relationships: Descriptors for relationships created alongside.
        fragment: Nested node clauses from sub-schema expansion.

    Returns:
        The create statement, returning the root node row.
    """
    query = CypherQuery()
    query.parameters["props"] = dict(properties)
    query.creates.append(f"(n:{quote_identifier(label)} $props)")

    for index, rel in enumerate(relationships):
        alias = f"relNode{index}"
        query.matches.append(f"({alias}:{quote_identifier(rel.node_label)})")
        if rel.index_field == "_id":
            value_name = query.bind(f"indexValue{index}", _node_id(rel.index_value))
            query.where.append(f"id({alias}) = ${value_name}")
        else:
            value_name = query.bind(f"indexValue{index}", rel.index_value)
            query.where.append(f"{alias}.{quote_identifier(rel.index_field)} = ${value_name}")
        data_name = query.bind(f"relData{index}", dict(rel.data))
        query.creates.append(
            relationship_pattern("n", f"rel{index}", rel.type, data_name, alias, rel.direction)
        )

    if fragment is not None:
        query.creates.extend(fragment.clauses)
        query.parameters.update(fragment.parameters)

    query.returns.extend(NODE_COLUMNS)
    return query.to_statement()


def build_create_relationship(
    from_id: int, to_id: int, rel_type: str, data: Mapping[str, Any] | None = None
) -> Statement:
    """Build a directed relationship between two existing nodes."""
    return Statement(
        text=QUERIES.CREATE_RELATIONSHIP.format(type=quote_identifier(rel_type)),
        parameters={"from": _node_id(from_id), "to": _node_id(to_id), "data": dict(data or {})},
    )


def build_remove_relationship(rel_id: Any) -> Statement:
    return Statement(text=QUERIES.REMOVE_RELATIONSHIP, parameters={"relId": _node_id(rel_id)})


def build_get_relationships(
    node_id: Any,
    conditions: Mapping[str, Any] | None = None,
    options: RelationshipOptions | None = None,
) -> Statement:
    """Build a traversal of the relationships around one node.

    Args:
        node_id: Database id of the anchor node.
        conditions: Equality filter on relationship properties.
        options: Relationship types, direction, far-end label, skip and limit.

    Returns:
        A statement returning ``id(r), id(startNode(r)), properties(r),
        type(r), id(m), properties(m), labels(m)`` per relationship.
    """
    options = options or RelationshipOptions()
    query = CypherQuery()

    types = "|".join(quote_identifier(t) for t in options.types)
    rel = f"[r:{types}]" if types else "[r]"
    other = f"(m:{quote_identifier(options.label)})" if options.label else "(m)"
    if options.direction == "from":
        query.matches.append(f"(n)-{rel}->{other}")
    elif options.direction == "to":
        query.matches.append(f"(n)<-{rel}-{other}")
    else:
        query.matches.append(f"(n)-{rel}-{other}")

    name = query.bind("nodeId", _node_id(node_id))
    query.where.append(f"id(n) = ${name}")
    _equality_filter(query, "r", conditions or {})

    query.returns.extend(
        [
            "id(r)",
            "id(startNode(r))",
            "properties(r)",
            "type(r)",
            "id(m)",
            "properties(m)",
            "labels(m)",
        ]
    )
    query.order_by.append("id(r)")
    query.skip = options.skip
    query.limit = options.limit
    return query.to_statement()


def build_constraint(label: str, field_name: str) -> Statement:
    return Statement(
        text=QUERIES.CREATE_CONSTRAINT.format(
            label=quote_identifier(label), field=quote_identifier(field_name)
        )
    )


def build_index(label: str, field_name: str) -> Statement:
    return Statement(
        text=QUERIES.CREATE_INDEX.format(
            label=quote_identifier(label), field=quote_identifier(field_name)
        )
    )
