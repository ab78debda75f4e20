"""Exceptions shared by the entity metamodel and its persistence adapters."""

from __future__ import annotations


class EntityError(Exception):
    """Root exception for the entity toolkit."""


class ArgumentError(EntityError, TypeError):
    """Raised when a caller passes a malformed class, filter, or instance.

    Detected before any I/O takes place.
    """


class RegistrationError(EntityError):
    """Base class for entity class registration failures."""


class InvalidStorageNameError(RegistrationError):
    """Raised when an entity class declares a storage name the store rejects."""

    def __init__(self, entity_name: str, storage_name: str, reason: str) -> None:
        self.entity_name = entity_name
        self.storage_name = storage_name
        super().__init__(
            f"Invalid storage name {storage_name!r} for entity "
            f"{entity_name!r}: {reason}"
        )


class UnknownEntityError(RegistrationError, KeyError):
    """Raised when a discriminator does not name a registered entity class."""

    def __init__(self, entity_name: object) -> None:
        self.entity_name = entity_name
        super().__init__(f"Unknown entity class {entity_name!r}")

    def __str__(self) -> str:
        return str(self.args[0])


class MappingError(EntityError):
    """Raised when a document cannot be mapped onto an entity class."""


class PersistenceError(EntityError):
    """Base class for all persistence-related errors."""


class QueryError(PersistenceError):
    """Raised when a query meant to match exactly one object does not."""

    def __init__(self, message: str = "Invalid query") -> None:
        super().__init__(message)
