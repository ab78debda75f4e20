"""Domain layer — the entity metamodel."""

from __future__ import annotations

from .attributes import (
    Attribute,
    AttributeKind,
    EntityDescriptor,
    Multiplicity,
    describe,
    entity_attributes,
)
from .entity import Entity
from .registry import EntityRegistry, validate_storage_name

__all__ = [
    "Attribute",
    "AttributeKind",
    "Entity",
    "EntityDescriptor",
    "EntityRegistry",
    "Multiplicity",
    "describe",
    "entity_attributes",
    "validate_storage_name",
]
