"""entity-core — the entity metamodel consumed by persistence adapters.

Pydantic models organized in a single-rooted generalization tree, attribute
descriptors derived from their fields, and an explicit class registry.
"""

from __future__ import annotations

# ── Domain ───────────────────────────────────────────────────────
from .domain import (
    Attribute,
    AttributeKind,
    Entity,
    EntityDescriptor,
    EntityRegistry,
    Multiplicity,
    describe,
    entity_attributes,
    validate_storage_name,
)

# ── Ports ────────────────────────────────────────────────────────
from .ports import FindOptions, IAdapter

# ── Primitives ───────────────────────────────────────────────────
from .primitives import (
    ArgumentError,
    EntityError,
    IIDGenerator,
    InvalidStorageNameError,
    MappingError,
    PersistenceError,
    QueryError,
    RegistrationError,
    UnknownEntityError,
    UUID4Generator,
)
from .settings import Settings

__all__ = [
    # Domain
    "Attribute",
    "AttributeKind",
    "Entity",
    "EntityDescriptor",
    "EntityRegistry",
    "Multiplicity",
    "describe",
    "entity_attributes",
    "validate_storage_name",
    # Ports
    "FindOptions",
    "IAdapter",
    # Settings
    "Settings",
    # Primitives
    "ArgumentError",
    "EntityError",
    "IIDGenerator",
    "InvalidStorageNameError",
    "MappingError",
    "PersistenceError",
    "QueryError",
    "RegistrationError",
    "UUID4Generator",
    "UnknownEntityError",
]
