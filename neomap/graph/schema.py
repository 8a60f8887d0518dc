"""Schema wrapper over pydantic models.

A ``Schema`` binds a pydantic model to a node label and carries what the
mapping layer needs beyond validation: the fields that should be indexed or
uniquely constrained, nested sub-schemas, and static helpers.

Example:
    ```python
    from pydantic import BaseModel, Field

    class User(BaseModel):
        name: str
        email: str = Field(json_schema_extra={"unique": True})
        age: int | None = None

    schema = Schema(User, label="User")
    schema.constraints  # ("email",)
    ```
"""

import types
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any, Union, get_args, get_origin

from pydantic import BaseModel

from ..errors import ModelUsageError


@dataclass(frozen=True)
class SubSchema:
    """A nested model declared on a field of its parent schema."""

    schema: "Schema"
    relationship: str


def _declared_fields(model: type[BaseModel] | None, flag: str) -> list[str]:
    if model is None:
        return []
    declared = []
    for name, info in model.model_fields.items():
        extra = info.json_schema_extra
        if isinstance(extra, dict) and extra.get(flag):
            declared.append(name)
    return declared


def _is_integer(annotation: Any) -> bool:
    if annotation is int:
        return True
    if get_origin(annotation) in (Union, types.UnionType):
        args = [arg for arg in get_args(annotation) if arg is not type(None)]
        return len(args) == 1 and args[0] is int
    return False


class Schema:
    """Validation schema and index metadata for one node label.

    Attributes:
        model: The pydantic model, or None for a non-strict schema that
            accepts any properties.
        label: Label used for nodes created from this schema.
        indexes: Fields to index.
        constraints: Fields to constrain as unique.
        unique: Marks nested nodes of this schema as unique; enforcement is
            left to a database constraint.
        sub_schemas: Nested models keyed by field name.
        statics: Helpers bound onto every Model built from this schema.
    """

    def __init__(
        self,
        model: type[BaseModel] | None = None,
        *,
        label: str | None = None,
        indexes: tuple[str, ...] | list[str] = (),
        constraints: tuple[str, ...] | list[str] = (),
        unique: bool = False,
    ) -> None:
        self.model = model
        self.label = label or (model.__name__ if model is not None else None)
        self.unique = unique
        self.sub_schemas: dict[str, SubSchema] = {}
        self.statics: dict[str, Callable[..., Any]] = {}

        self.constraints = tuple(
            dict.fromkeys([*_declared_fields(model, "unique"), *constraints])
        )
        # a unique constraint already brings its own index
        self.indexes = tuple(
            name
            for name in dict.fromkeys([*_declared_fields(model, "index"), *indexes])
            if name not in self.constraints
        )

    @property
    def strict(self) -> bool:
        return self.model is not None

    @property
    def numeric_fields(self) -> frozenset[str]:
        """Integer-typed fields of the model."""
        if self.model is None:
            return frozenset()
        return frozenset(
            name for name, info in self.model.model_fields.items() if _is_integer(info.annotation)
        )

    def sub_schema(self, schema: "Schema", field: str, relationship: str) -> "Schema":
        """Declare a nested model on ``field``, linked by ``relationship``.

        Args:
            schema: Schema of the nested nodes; it must have a label.
            field: Payload field holding the nested data.
            relationship: Relationship type from the parent to each nested node.

        Returns:
            This schema, for chaining.
        """
        if schema.label is None:
            raise ModelUsageError(f"Sub-schema for '{field}' needs a label")
        self.sub_schemas[field] = SubSchema(schema=schema, relationship=relationship)
        return self

    def static(self, name: str | None = None) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
        """Register a helper that is bound onto models built from this schema."""

        def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
            self.statics[name or func.__name__] = func
            return func

        return decorator

    def validate(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """Validate a payload, including nested sub-schema payloads.

        Args:
            data: Properties to validate. ``_id`` is never part of a payload.

        Returns:
            The validated and coerced properties.

        Raises:
            pydantic.ValidationError: If the model rejects the payload.
            ModelUsageError: If ``data`` is not a mapping.
        """
        if not isinstance(data, Mapping):
            raise ModelUsageError(
                f"Invalid {self.label or 'node'} data: expected a mapping, "
                f"got {type(data).__name__}"
            )
        payload = {key: value for key, value in data.items() if key != "_id"}

        nested = {}
        for name, sub in self.sub_schemas.items():
            if name in payload:
                nested[name] = self._validate_nested(sub.schema, payload.pop(name))

        if self.model is None:
            validated = payload
        else:
            validated = self.model.model_validate(payload).model_dump()
        validated.update(nested)
        return validated

    @staticmethod
    def _validate_nested(schema: "Schema", value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, (list, tuple)):
            return [schema.validate(item) for item in value]
        return schema.validate(value)
