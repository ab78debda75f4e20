"""Test configuration for the MongoDB entity adapter."""

from __future__ import annotations

import pytest
from mongomock_motor import AsyncMongoMockClient

from entity_mongo import MongoAdapter

MOCK_URL = "mongodb://mock:27017/test_db"


@pytest.fixture
def mock_client():
    """Create a mock MongoDB client."""
    return AsyncMongoMockClient(MOCK_URL)


@pytest.fixture
def mock_database(mock_client):
    """The database the adapter resolves from the mock URL."""
    return mock_client.get_database("test_db")


@pytest.fixture
async def adapter(mock_client):
    """Create a MongoAdapter backed by mongomock."""

    def _factory(url, **options):
        return mock_client

    adapter = MongoAdapter(MOCK_URL, client_factory=_factory, verify_connection=False)
    yield adapter
    await adapter.close_connection()
