"""Pydantic models for statements, query options and relationship descriptors.

Node and relationship results are returned as plain dictionaries carrying the
database id under ``_id``; the models here describe what callers pass in.
"""

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

Direction = Literal["to", "from"]


@dataclass(frozen=True)
class Statement:
    """A parameterized Cypher statement ready for submission.

    Attributes:
        text: The Cypher query text.
        parameters: Mapping of placeholder name to bound value.
    """

    text: str
    parameters: dict[str, Any] = field(default_factory=dict)


class OrderBy(BaseModel):
    """One ORDER BY term.

    ``nulls`` sorts null values after every non-null value regardless of
    direction.
    """

    model_config = ConfigDict(extra="forbid")

    field: str = Field(..., min_length=1, description="Property to sort by")
    desc: bool = Field(default=False, description="Sort descending")
    nulls: bool = Field(default=False, description="Always sort nulls last")


class FindOptions(BaseModel):
    """Options accepted by the find family of operations.

    Attributes:
        limit: Maximum number of rows returned.
        skip: Number of rows skipped before returning.
        order_by: Ordered list of sort terms.
        using: Index hints, one property name per hint.
        fields: Allowlist of properties kept on each returned node.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    limit: int | None = Field(default=None, ge=0)
    skip: int | None = Field(default=None, ge=0)
    order_by: list[OrderBy] = Field(default_factory=list, alias="orderBy")
    using: list[str] = Field(default_factory=list)
    fields: list[str] | None = Field(default=None)

    @field_validator("using", mode="before")
    @classmethod
    def _single_hint(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("fields", mode="before")
    @classmethod
    def _split_fields(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.split()
        return value


class RelationshipDescriptor(BaseModel):
    """A relationship created together with a new node.

    The other endpoint is located by ``index_field``/``index_value`` on nodes
    labelled ``node_label``; ``index_field='_id'`` anchors on the database id.
    ``direction='to'`` points the relationship at the new node.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    direction: Direction
    type: str = Field(..., min_length=1)
    index_field: str = Field(..., min_length=1, alias="indexField")
    index_value: Any = Field(..., alias="indexValue")
    node_label: str = Field(..., min_length=1, alias="nodeLabel")
    data: dict[str, Any] = Field(default_factory=dict)

    @field_validator("index_value")
    @classmethod
    def _value_present(cls, value: Any) -> Any:
        if value is None:
            raise ValueError("indexValue is required")
        return value


class NewRelationship(BaseModel):
    """A relationship between two existing nodes, from ``from_id`` to ``to_id``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    from_id: int = Field(..., alias="from")
    to_id: int = Field(..., alias="to")
    type: str = Field(..., min_length=1)
    data: dict[str, Any] = Field(default_factory=dict)


class RelationshipOptions(BaseModel):
    """Options for relationship traversal from an anchor node."""

    model_config = ConfigDict(extra="forbid")

    types: list[str] = Field(default_factory=list)
    direction: Literal["to", "from", "all"] = "all"
    label: str | None = None
    limit: int | None = Field(default=None, ge=0)
    skip: int | None = Field(default=None, ge=0)

    @field_validator("types", mode="before")
    @classmethod
    def _single_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value
