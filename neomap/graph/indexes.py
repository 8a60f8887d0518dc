"""Constraint and index reconciliation.

Before the first create on a model, every pending unique constraint and index
is submitted as one batch. When the database reports that one of them already
exists, that field is marked as applied and the smaller batch is resubmitted;
each conflict removes exactly one pending field, so the loop always ends.
"""

import asyncio
import re
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any, Literal

import structlog
from neo4j.exceptions import Neo4jError

from ..errors import SchemaIndexError
from .models import Statement
from .queries import build_constraint, build_index
from .utils import error_code, error_message, first_error

if TYPE_CHECKING:
    from .connection import GraphConnection

logger = structlog.get_logger(__name__)

ConflictKind = Literal["constraint", "index"]

_CONSTRAINT_MARKERS = (
    "already constrained",
    "equivalent constraint already exists",
    "constraint already exists",
    "there is a uniqueness constraint on",
)
_INDEX_MARKERS = (
    "already indexed",
    "equivalent index already exists",
    "there already exists an index",
    "index already exists",
)
_FIELD_PATTERNS = (
    # (:Label {field})
    re.compile(r"\(\s*:\s*`?(?P<label>[^`\s{]+?)`?\s*\{\s*`?(?P<field>[^`}\s,]+)`?\s*\}\s*\)"),
    # ASSERT node.field IS UNIQUE
    re.compile(r"ASSERT\s+\w+\.`?(?P<field>[^`\s]+?)`?\s+IS\s+UNIQUE", re.IGNORECASE),
    # :Label(field)
    re.compile(r":`?(?P<label>[^`\s(]+?)`?\((?P<field>[^)\s]+)\)"),
)


@dataclass(frozen=True)
class IndexState:
    """Pending and applied constraint/index fields of one label.

    A field is in at most one of the four lists.
    """

    constraints: tuple[str, ...] = ()
    indexes: tuple[str, ...] = ()
    applied_constraints: tuple[str, ...] = ()
    applied_indexes: tuple[str, ...] = ()

    @property
    def pending(self) -> bool:
        return bool(self.constraints or self.indexes)

    def resolve(self, field: str, kind: ConflictKind) -> "IndexState | None":
        """Mark one conflicting field as applied.

        The list named by ``kind`` is searched first, then the other one; the
        database reports constraints and indexes in one field namespace.

        Returns:
            The new state, or None when the field is not pending at all.
        """
        order = ("constraints", "indexes") if kind == "constraint" else ("indexes", "constraints")
        for pending in order:
            fields = getattr(self, pending)
            if field in fields:
                applied = f"applied_{pending}"
                return replace(
                    self,
                    **{
                        pending: tuple(name for name in fields if name != field),
                        applied: getattr(self, applied) + (field,),
                    },
                )
        return None

    def settle(self) -> "IndexState":
        """Move every pending field to its applied list."""
        return IndexState(
            applied_constraints=self.applied_constraints + self.constraints,
            applied_indexes=self.applied_indexes + self.indexes,
        )


def parse_conflict(error: Any, label: str | None = None) -> tuple[ConflictKind, str] | None:
    """Recognise an "already exists" error and extract the field it names.

    Args:
        error: The database error.
        label: Only accept conflicts reported for this label, when the
            message names one.

    Returns:
        ``(kind, field)``, or None if the error is not such a conflict.
    """
    message = error_message(error)
    lowered = message.lower()
    if any(marker in lowered for marker in _CONSTRAINT_MARKERS):
        kind: ConflictKind = "constraint"
    elif any(marker in lowered for marker in _INDEX_MARKERS):
        kind = "index"
    else:
        return None

    for pattern in _FIELD_PATTERNS:
        match = pattern.search(message)
        if match is None:
            continue
        found_label = match.groupdict().get("label")
        if label is not None and found_label is not None and found_label != label:
            continue
        return kind, match.group("field")
    return None


class IndexReconciler:
    """Applies a label's constraints and indexes, at most once per field.

    Reconciliation of one label is serialized by a lock, so concurrent first
    creates never submit the same batch twice.

    Attributes:
        label: The label constraints and indexes are created for.
        state: Current pending/applied state.
    """

    def __init__(self, connection: "GraphConnection", label: str, state: IndexState) -> None:
        self.connection = connection
        self.label = label
        self.state = state
        self._lock = asyncio.Lock()

    @property
    def pending(self) -> bool:
        return self.state.pending

    def statements(self) -> list[Statement]:
        """One statement per pending constraint, then one per pending index."""
        return [build_constraint(self.label, name) for name in self.state.constraints] + [
            build_index(self.label, name) for name in self.state.indexes
        ]

    async def reconcile(self) -> IndexState:
        """Submit pending constraints and indexes until none are left.

        Returns:
            The final state, with nothing pending.

        Raises:
            SchemaIndexError: On any error other than an "already exists"
                conflict for a pending field.
        """
        if not self.state.pending:
            return self.state

        async with self._lock:
            while self.state.pending:
                try:
                    await self.connection.submit_batch(self.statements())
                except Neo4jError as e:
                    error = first_error(e)
                    conflict = parse_conflict(error, self.label)
                    resolved = None
                    if conflict is not None:
                        kind, field = conflict
                        resolved = self.state.resolve(field, kind)
                    if resolved is None:
                        raise SchemaIndexError(
                            f"Error applying indexes: {error_message(error)}",
                            code=error_code(error) or None,
                        ) from e
                    logger.debug(
                        "Schema rule already exists, retrying",
                        label=self.label,
                        kind=kind,
                        field=field,
                    )
                    self.state = resolved
                    continue

                self.state = self.state.settle()
                logger.info(
                    "Applied constraints and indexes",
                    label=self.label,
                    constraints=list(self.state.applied_constraints),
                    indexes=list(self.state.applied_indexes),
                )
        return self.state
