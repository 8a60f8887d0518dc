"""Sub-schema expansion for nested create payloads.

A schema may declare nested models on some of its fields. On create, the
payload for such a field (one mapping or a list of them) is pulled out of its
parent and turned into separate nodes linked back to the parent::

    (tags_n_0:Tag $element_tags_n_0)<-[:TAGGED]-(n)

Aliases are derived from the path to the node (field name, parent alias and
position in the list), so every alias and parameter is unique within one
statement without any shared counter.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .utils import quote_identifier, sanitize_identifier

if TYPE_CHECKING:
    from .schema import Schema

ROOT_ALIAS = "n"


@dataclass(frozen=True)
class Fragment:
    """Clauses and parameters contributed by nested nodes.

    Nested nodes are created but not returned; create returns the root only.

    Attributes:
        clauses: CREATE patterns, parents always before their children.
        parameters: Parameter bindings used by ``clauses``.
    """

    clauses: tuple[str, ...] = ()
    parameters: Mapping[str, Any] = field(default_factory=dict)

    def merge(self, other: "Fragment") -> "Fragment":
        return Fragment(
            clauses=self.clauses + other.clauses,
            parameters={**self.parameters, **other.parameters},
        )


@dataclass(frozen=True)
class Expansion:
    """Result of expanding a root payload.

    Attributes:
        data: Root properties left after nested payloads and nulls were removed.
        fragment: Everything needed to create the nested nodes.
    """

    data: dict[str, Any]
    fragment: Fragment


def expand(data: Mapping[str, Any], schema: "Schema", root_alias: str = ROOT_ALIAS) -> Expansion:
    """Split a root payload into its own properties and nested node clauses.

    Args:
        data: Validated root payload.
        schema: Schema of the root model.
        root_alias: Alias the root node is created under.

    Returns:
        The residual root data and the merged fragment of all nested nodes.
    """
    residual, fragment = _expand_node(data, schema, root_alias, None, None)
    return Expansion(data=residual, fragment=fragment)


def _expand_many(
    value: Any, schema: "Schema", relationship: str, parent: str, tag: str
) -> Fragment:
    items = value if isinstance(value, (list, tuple)) else [value]
    fragment = Fragment()
    for count, item in enumerate(items):
        if item is None:
            continue
        alias = f"{tag}_{parent}_{count}"
        _, child = _expand_node(item, schema, alias, relationship, parent)
        fragment = fragment.merge(child)
    return fragment


def _expand_node(
    data: Mapping[str, Any],
    schema: "Schema",
    alias: str,
    relationship: str | None,
    parent: str | None,
) -> tuple[dict[str, Any], Fragment]:
    data = dict(data)

    children = Fragment()
    for name, sub in schema.sub_schemas.items():
        if name not in data:
            continue
        value = data.pop(name)
        if value is None:
            continue
        children = children.merge(
            _expand_many(value, sub.schema, sub.relationship, alias, sanitize_identifier(name))
        )

    # create statements never bind explicit nulls
    residual = {key: value for key, value in data.items() if value is not None}

    if relationship is None or parent is None:
        return residual, children

    # a node with no properties of its own is still created when it has children
    if not residual and not children.clauses:
        return residual, children

    param = f"element_{alias}"
    own = Fragment(
        clauses=(
            f"({alias}:{quote_identifier(schema.label)} ${param})"
            f"<-[:{quote_identifier(relationship)}]-({parent})",
        ),
        parameters={param: residual},
    )
    return residual, own.merge(children)
