"""Test doubles shared by the neomap test suite.

This module provides pydantic schemas used across the tests, a Neo4jError
subclass with a fixed code and message, and FakeGraph: a small in-memory
stand-in for the database that understands exactly the statement shapes the
builders produce.
"""

import copy
import re
from typing import Any

from neo4j.exceptions import Neo4jError
from pydantic import BaseModel, Field, field_validator

from neomap.graph.models import Statement

# ---------------------------------------------------------------------------
# Database errors
# ---------------------------------------------------------------------------


class FakeDatabaseError(Neo4jError):
    """Neo4jError carrying a fixed code and message."""

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.__dict__["_fake"] = (code, message)

    @property
    def code(self) -> str | None:
        return self.__dict__.get("_fake", (None, None))[0]

    @code.setter
    def code(self, value: Any) -> None:
        pass

    @property
    def message(self) -> str | None:
        return self.__dict__.get("_fake", (None, None))[1]

    @message.setter
    def message(self, value: Any) -> None:
        pass


def constraint_exists_error(label: str, field: str) -> FakeDatabaseError:
    return FakeDatabaseError(
        "Neo.ClientError.Schema.EquivalentSchemaRuleAlreadyExists",
        f"An equivalent constraint already exists, 'Constraint( id=4, name='constraint_1', "
        f"type='UNIQUENESS', schema=(:{label} {{{field}}}), ownedIndex=3 )'.",
    )


def index_exists_error(label: str, field: str) -> FakeDatabaseError:
    return FakeDatabaseError(
        "Neo.ClientError.Schema.EquivalentSchemaRuleAlreadyExists",
        f"An equivalent index already exists, 'Index( id=5, name='index_1', type='RANGE', "
        f"schema=(:{label} {{{field}}}), indexProvider='range-1.0' )'.",
    )


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class UserFields(BaseModel):
    """User schema: trimmed names, lower-case last name, unique email."""

    first_name: str
    last_name: str
    email: str = Field(json_schema_extra={"unique": True})
    age: int | None = None
    nickname: str | None = None

    @field_validator("first_name", mode="before")
    @classmethod
    def _trim_first(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("last_name", mode="before")
    @classmethod
    def _trim_lower_last(cls, value: Any) -> Any:
        return value.strip().lower() if isinstance(value, str) else value


class StoryFields(BaseModel):
    name: str
    content: str | None = None


class TagFields(BaseModel):
    tag: str


class SubTagFields(BaseModel):
    genre: str | None = None


class PublisherFields(BaseModel):
    brand: str | None = None


# ---------------------------------------------------------------------------
# In-memory graph
# ---------------------------------------------------------------------------

_NESTED = re.compile(r"\((\w+):(\w+) \$(\w+)\)<-\[:(\w+)\]-\((\w+)\)")
_REL_LINK = re.compile(r"\(n\)(<?)-\[rel(\d+):(\w+) \$(\w+)\]-(>?)\(relNode\d+\)")
_REL_MATCH = re.compile(r"\(relNode(\d+):(\w+)\)")
_REL_BY_ID = re.compile(r"id\(relNode(\d+)\) = \$(\w+)")
_REL_BY_PROP = re.compile(r"relNode(\d+)\.(\w+) = \$(\w+)")
_CONDITION = re.compile(r"n\.(\w+) = \$(\w+)")
_SET = re.compile(r"n\.(\w+) = \$(\w+)")
_SCHEMA_RULE = re.compile(r"\(node:(\w+)\) (?:REQUIRE|ON) \(?node\.(\w+)")


class FakeResult:
    def __init__(self, rows: list[list[Any]]) -> None:
        self._rows = rows

    async def values(self) -> list[list[Any]]:
        return self._rows


class FakeGraph:
    """Stateful fake database for multi-step scenarios."""

    def __init__(self) -> None:
        self.nodes: dict[int, dict[str, Any]] = {}
        self.rels: dict[int, dict[str, Any]] = {}
        self.constraints: set[tuple[str, str]] = set()
        self.indexes: set[tuple[str, str]] = set()
        self.next_id = 0
        self.statements: list[Statement] = []

    # state -----------------------------------------------------------------

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(
            {
                "nodes": self.nodes,
                "rels": self.rels,
                "constraints": self.constraints,
                "indexes": self.indexes,
                "next_id": self.next_id,
            }
        )

    def restore(self, state: dict[str, Any]) -> None:
        self.nodes = state["nodes"]
        self.rels = state["rels"]
        self.constraints = state["constraints"]
        self.indexes = state["indexes"]
        self.next_id = state["next_id"]

    def _new_id(self) -> int:
        self.next_id += 1
        return self.next_id

    def add_node(self, label: str, props: dict[str, Any]) -> int:
        for c_label, c_field in self.constraints:
            if c_label == label and c_field in props:
                for node in self.nodes.values():
                    if label in node["labels"] and node["props"].get(c_field) == props[c_field]:
                        raise FakeDatabaseError(
                            "Neo.ClientError.Schema.ConstraintValidationFailed",
                            f"Node already exists with label `{label}` and property "
                            f"`{c_field}` = '{props[c_field]}'",
                        )
        node_id = self._new_id()
        self.nodes[node_id] = {"labels": [label], "props": dict(props)}
        return node_id

    def add_rel(self, rel_type: str, start: int, end: int, props: dict[str, Any]) -> int:
        rel_id = self._new_id()
        self.rels[rel_id] = {"type": rel_type, "start": start, "end": end, "props": dict(props)}
        return rel_id

    def node_row(self, node_id: int) -> list[Any]:
        return [node_id, dict(self.nodes[node_id]["props"])]

    # transport ---------------------------------------------------------------

    async def submit_batch(self, statements: list[Statement]) -> list[list[list[Any]]]:
        state = self.snapshot()
        try:
            return [self.run(statement) for statement in statements]
        except Exception:
            self.restore(state)
            raise

    async def stream(self, statement: Statement):
        for row in self.run(statement):
            yield row

    def run(self, statement: Statement) -> list[list[Any]]:
        self.statements.append(statement)
        text, params = statement.text, statement.parameters
        if text.startswith("CREATE CONSTRAINT"):
            return self._schema_rule(text, self.constraints, constraint_exists_error)
        if text.startswith("CREATE INDEX"):
            return self._schema_rule(text, self.indexes, index_exists_error)
        if "DELETE rel" in text:
            self.rels.pop(params["relId"], None)
            return []
        if "CREATE (fromNode)" in text:
            return self._create_relationship(text, params)
        if "CREATE (n:" in text:
            return self._create(text, params)
        if "DELETE n" in text:
            return self._delete(text, params)
        if "-[r" in text or "]-(m" in text or "-(m" in text:
            return self._relationships(params)
        if "SET n." in text or "REMOVE n." in text:
            return self._update(text, params)
        return self._find(text, params)

    def _schema_rule(self, text, rules, error_factory) -> list[list[Any]]:
        label, field = _SCHEMA_RULE.search(text).groups()
        if (label, field) in rules:
            raise error_factory(label, field)
        rules.add((label, field))
        return []

    def _create(self, text: str, params: dict[str, Any]) -> list[list[Any]]:
        targets: dict[str, int] = {}
        for index, label in _REL_MATCH.findall(text):
            candidates = [
                node_id for node_id, node in self.nodes.items() if label in node["labels"]
            ]
            for idx, param in _REL_BY_ID.findall(text):
                if idx == index:
                    candidates = [c for c in candidates if c == params[param]]
            for idx, prop, param in _REL_BY_PROP.findall(text):
                if idx == index:
                    candidates = [
                        c for c in candidates if self.nodes[c]["props"].get(prop) == params[param]
                    ]
            if not candidates:
                return []
            targets[index] = candidates[0]

        label = re.search(r"CREATE \(n:(\w+) \$props\)", text).group(1)
        root = self.add_node(label, params["props"])
        aliases = {"n": root}

        for incoming, index, rel_type, data_param, outgoing in _REL_LINK.findall(text):
            other = targets[index]
            if incoming:
                self.add_rel(rel_type, other, root, params[data_param])
            else:
                self.add_rel(rel_type, root, other, params[data_param])

        for alias, nested_label, param, rel_type, parent in _NESTED.findall(text):
            aliases[alias] = self.add_node(nested_label, params[param])
            self.add_rel(rel_type, aliases[parent], aliases[alias], {})

        return [self.node_row(root)]

    def _create_relationship(self, text: str, params: dict[str, Any]) -> list[list[Any]]:
        if params["from"] not in self.nodes or params["to"] not in self.nodes:
            return []
        rel_type = re.search(r"\[rel:(\w+) \$data\]", text).group(1)
        rel_id = self.add_rel(rel_type, params["from"], params["to"], params["data"])
        return [[rel_id, rel_type, dict(params["data"])]]

    def _delete(self, text: str, params: dict[str, Any]) -> list[list[Any]]:
        node_id = params["nodeId"]
        attached = [
            rel_id
            for rel_id, rel in self.rels.items()
            if node_id in (rel["start"], rel["end"])
        ]
        if attached and "DETACH" not in text:
            raise FakeDatabaseError(
                "Neo.ClientError.Schema.ConstraintValidationFailed",
                f"Cannot delete node<{node_id}>, because it still has relationships. "
                "To delete this node, you must first delete its relationships.",
            )
        for rel_id in attached:
            del self.rels[rel_id]
        self.nodes.pop(node_id, None)
        return []

    def _update(self, text: str, params: dict[str, Any]) -> list[list[Any]]:
        node_id = params["nodeId"]
        if node_id not in self.nodes:
            return []
        props = self.nodes[node_id]["props"]
        set_part = text.split(" SET ", 1)[1].split(" REMOVE ")[0] if " SET " in text else ""
        for field, param in _SET.findall(set_part):
            props[field] = params[param]
        if " REMOVE " in text:
            remove_part = text.split(" REMOVE ", 1)[1].split(" RETURN ")[0]
            for field in re.findall(r"n\.(\w+)", remove_part):
                props.pop(field, None)
        return [self.node_row(node_id)]

    def _find(self, text: str, params: dict[str, Any]) -> list[list[Any]]:
        if "id(n) = $nodeId" in text:
            node_id = params["nodeId"]
            rows = [self.node_row(node_id)] if node_id in self.nodes else []
        else:
            label = re.search(r"MATCH \(n:(\w+)\)", text).group(1)
            where = text.split(" RETURN ")[0]
            rows = []
            for node_id, node in sorted(self.nodes.items()):
                if label not in node["labels"]:
                    continue
                if all(
                    node["props"].get(field) == params[param]
                    for field, param in _CONDITION.findall(where)
                ):
                    rows.append(self.node_row(node_id))
        skip = re.search(r"SKIP (\d+)", text)
        limit = re.search(r"LIMIT (\d+)", text)
        if skip:
            rows = rows[int(skip.group(1)) :]
        if limit:
            rows = rows[: int(limit.group(1))]
        return rows

    def _relationships(self, params: dict[str, Any]) -> list[list[Any]]:
        anchor = params["nodeId"]
        rows = []
        for rel_id, rel in sorted(self.rels.items()):
            if anchor not in (rel["start"], rel["end"]):
                continue
            other = rel["end"] if rel["start"] == anchor else rel["start"]
            node = self.nodes[other]
            rows.append(
                [
                    rel_id,
                    rel["start"],
                    dict(rel["props"]),
                    rel["type"],
                    other,
                    dict(node["props"]),
                    list(node["labels"]),
                ]
            )
        return rows

    def transaction(self) -> "FakeDriverTransaction":
        return FakeDriverTransaction(self)


class FakeDriverTransaction:
    """Driver-level transaction over FakeGraph; rollback restores the snapshot."""

    def __init__(self, graph: FakeGraph) -> None:
        self.graph = graph
        self.state = graph.snapshot()
        self.committed = False
        self.rolled_back = False

    async def run(self, text: str, parameters: dict[str, Any] | None = None) -> FakeResult:
        return FakeResult(self.graph.run(Statement(text=text, parameters=parameters or {})))

    async def commit(self) -> None:
        self.committed = True

    async def rollback(self) -> None:
        self.graph.restore(self.state)
        self.rolled_back = True
