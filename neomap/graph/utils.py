"""Utility functions for graph operations.

This module provides helpers for making identifiers safe to embed in Cypher,
decoding the row/column results returned by the database into node and
relationship dictionaries, and inspecting database errors.
"""

import re
from collections.abc import Iterable, Sequence
from typing import Any

_PLAIN_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def sanitize_identifier(value: str) -> str:
    """Sanitize a string for use as a Cypher variable name.

    Removes or replaces characters that are invalid in Neo4j identifiers.

    Args:
        value: The identifier to sanitize.

    Returns:
        Sanitized identifier string.
    """
    # Replace invalid characters with underscores
    sanitized = re.sub(r"[^a-zA-Z0-9_]", "_", value)
    # Ensure it doesn't start with a number
    if sanitized and sanitized[0].isdigit():
        sanitized = "_" + sanitized
    return sanitized


def quote_identifier(value: str) -> str:
    """Make a label, relationship type or property name safe to embed.

    Plain identifiers are returned unchanged; anything else is wrapped in
    backticks with embedded backticks doubled, so the name can never escape
    into the surrounding query.

    Args:
        value: The identifier to quote.

    Returns:
        An identifier safe for Cypher.

    Raises:
        ValueError: If the identifier is empty.
    """
    if not value:
        raise ValueError("Identifier must not be empty")
    if _PLAIN_IDENTIFIER.match(value):
        return value
    return "`" + value.replace("`", "``") + "`"


def node_properties(value: Any) -> dict[str, Any]:
    """Copy the properties of a returned node or relationship into a dict.

    Accepts either a plain mapping (``properties(n)`` projections) or a driver
    ``Node``/``Relationship`` object.
    """
    if value is None:
        return {}
    if isinstance(value, dict):
        return dict(value)
    if hasattr(value, "items"):
        return dict(value.items())
    return {}


def filter_fields(node: dict[str, Any], fields: Iterable[str] | None) -> dict[str, Any]:
    """Drop every key of ``node`` that is not in ``fields``; ``_id`` always stays."""
    if fields is None:
        return node
    keep = set(fields) | {"_id"}
    for key in list(node):
        if key not in keep:
            del node[key]
    return node


def parse_node_rows(
    rows: Sequence[Sequence[Any]],
    fields: Iterable[str] | None = None,
    single: bool = False,
) -> Any:
    """Parse node rows into node dictionaries.

    Row layout is ``[id, properties, rel_type?, rel_data?, rel_id?]``. When the
    relationship columns are present each entry becomes ``{"node", "rel"}``,
    otherwise the bare node is returned.

    Args:
        rows: Result rows for one statement.
        fields: Optional allowlist of properties to keep.
        single: Return the first entry (or None) instead of a list.

    Returns:
        A list of nodes, or a single node/None when ``single`` is set.
    """
    field_list = list(fields) if fields is not None else None
    result = []
    for row in rows:
        node = node_properties(row[1])
        node["_id"] = row[0]
        filter_fields(node, field_list)

        rel_id = row[4] if len(row) > 4 else None
        if rel_id is not None:
            result.append(
                {
                    "node": node,
                    "rel": {"_id": rel_id, "type": row[2], "data": node_properties(row[3])},
                }
            )
        else:
            result.append(node)

    if single:
        return result[0] if result else None
    return result


def parse_relationship_rows(rows: Sequence[Sequence[Any]], anchor_id: int) -> dict[str, list]:
    """Parse relationship traversal rows around an anchor node.

    Row layout is ``[rel_id, rel_start_id, rel_props, rel_type, other_id,
    other_props, other_labels]``. ``nodes[i]`` is the node at the far end of
    ``rels[i]``.

    Args:
        rows: Result rows for one traversal statement.
        anchor_id: Database id of the node the traversal started from.

    Returns:
        ``{"nodes": [...], "rels": [...]}``.
    """
    nodes = []
    rels = []
    for rel_id, start_id, rel_props, rel_type, other_id, other_props, other_labels in rows:
        rels.append(
            {
                "_id": rel_id,
                "type": rel_type,
                "direction": "from" if start_id == anchor_id else "to",
                "data": node_properties(rel_props),
            }
        )
        node = node_properties(other_props)
        node["_id"] = other_id
        labels = list(other_labels or [])
        node["_nodeType"] = labels[0] if labels else None
        nodes.append(node)
    return {"nodes": nodes, "rels": rels}


def parse_relationship_row(row: Sequence[Any]) -> dict[str, Any]:
    """Parse a ``[rel_id, rel_type, rel_props]`` row from relationship creation."""
    return {"_id": row[0], "type": row[1], "rel": node_properties(row[2])}


def first_error(error: Any) -> Any:
    """Normalize a list-of-errors batch failure to its first error."""
    if isinstance(error, (list, tuple)):
        return error[0] if error else None
    return error


def error_message(error: Any) -> str:
    """Return the database message of an error, falling back to ``str``."""
    message = getattr(error, "message", None)
    if message:
        return str(message)
    if isinstance(error, dict):
        return str(error.get("message", ""))
    return str(error)


def error_code(error: Any) -> str:
    """Return the database error code, or an empty string."""
    code = getattr(error, "code", None)
    if code is None and isinstance(error, dict):
        code = error.get("code")
    return str(code or "")
