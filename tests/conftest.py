"""Pytest configuration and shared fixtures for neomap tests.

Fixtures here wire the doubles from ``tests.fakes`` into connections, models
and transactions.
"""

from unittest.mock import AsyncMock

import pytest

from neomap.graph.connection import GraphConnection
from neomap.graph.model import ModelHolder
from neomap.graph.schema import Schema
from neomap.graph.transaction import Transaction
from tests.fakes import (
    FakeGraph,
    PublisherFields,
    StoryFields,
    SubTagFields,
    TagFields,
    UserFields,
)

# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


@pytest.fixture
def user_schema() -> Schema:
    return Schema(UserFields, label="User")


@pytest.fixture
def story_schema() -> Schema:
    """Story embeds tags (which embed subtags) and publishers."""
    tag_schema = Schema(TagFields, label="Tag")
    tag_schema.sub_schema(Schema(SubTagFields, label="SubTag"), "subtags", "SUB")
    story = Schema(StoryFields, label="Story")
    story.sub_schema(tag_schema, "tags", "TAGGED")
    story.sub_schema(Schema(PublisherFields, label="Publisher"), "publishers", "PUBLISHED")
    return story


# ---------------------------------------------------------------------------
# Connections
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_connection() -> GraphConnection:
    """A GraphConnection whose transport is an AsyncMock returning no rows."""
    connection = GraphConnection(uri="bolt://localhost:7687", user="neo4j", password="password")
    connection.submit_batch = AsyncMock(return_value=[[]])
    return connection


@pytest.fixture
def fake_graph() -> FakeGraph:
    return FakeGraph()


@pytest.fixture
def graph_connection(fake_graph) -> GraphConnection:
    """A GraphConnection backed by FakeGraph."""
    connection = GraphConnection(uri="bolt://localhost:7687", user="neo4j", password="password")
    connection.submit_batch = AsyncMock(side_effect=fake_graph.submit_batch)
    connection.stream = fake_graph.stream
    return connection


@pytest.fixture
def holder(graph_connection) -> ModelHolder:
    return ModelHolder(graph_connection)


@pytest.fixture
def open_transaction(graph_connection, fake_graph):
    """Factory for transactions running against FakeGraph."""

    def _open() -> Transaction:
        tx = Transaction(graph_connection)
        tx._tx = fake_graph.transaction()
        tx._session = AsyncMock()
        return tx

    return _open
