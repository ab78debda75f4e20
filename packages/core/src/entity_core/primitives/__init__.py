"""Primitives — the lowest layer: exceptions and identifier generation."""

from __future__ import annotations

from .exceptions import (
    ArgumentError,
    EntityError,
    InvalidStorageNameError,
    MappingError,
    PersistenceError,
    QueryError,
    RegistrationError,
    UnknownEntityError,
)
from .id_generator import IIDGenerator, UUID4Generator, default_id_generator

__all__ = [
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
    "default_id_generator",
]
