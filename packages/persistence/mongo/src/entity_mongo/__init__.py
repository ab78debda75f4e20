"""MongoDB persistence for entity hierarchies.

Includes the connection gate, the collection resolver, the document codec,
the query builder and the adapter tying them together.
"""

from __future__ import annotations

from .adapter import MongoAdapter
from .collection_resolver import CollectionResolver
from .connection import ConnectionGate, ConnectionState, MongoConnectionManager
from .exceptions import (
    DeleteCascadeError,
    MongoConnectionError,
    MongoPersistenceError,
    StorageConfirmationError,
)
from .query_builder import MongoQueryBuilder
from .serialization import DISCRIMINATOR_FIELD, DocumentCodec

__all__ = [
    # Adapter
    "MongoAdapter",
    # Components
    "CollectionResolver",
    "ConnectionGate",
    "ConnectionState",
    "DocumentCodec",
    "MongoConnectionManager",
    "MongoQueryBuilder",
    "DISCRIMINATOR_FIELD",
    # Exceptions
    "DeleteCascadeError",
    "MongoConnectionError",
    "MongoPersistenceError",
    "StorageConfirmationError",
]
