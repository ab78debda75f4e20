"""EntityRegistry — maps discriminator names to entity classes."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, TypeVar

from ..primitives.exceptions import (
    ArgumentError,
    InvalidStorageNameError,
    RegistrationError,
    UnknownEntityError,
)
from .attributes import entity_attributes
from .entity import Entity

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger("entity_core.registry")

TEntityClass = TypeVar("TEntityClass", bound=type[Entity])

SYSTEM_PREFIX = "system."
FORBIDDEN_CHARACTERS = ("$", ".", "\x00")


def validate_storage_name(entity_name: str, storage_name: object) -> None:
    """Reject storage names that break collection routing or dotted filters."""
    if not isinstance(storage_name, str) or not storage_name:
        raise InvalidStorageNameError(entity_name, str(storage_name), "empty name")
    if storage_name.startswith(SYSTEM_PREFIX):
        raise InvalidStorageNameError(
            entity_name, storage_name, f"reserved prefix {SYSTEM_PREFIX!r}"
        )
    for char in FORBIDDEN_CHARACTERS:
        if char in storage_name:
            raise InvalidStorageNameError(
                entity_name, storage_name, f"contains forbidden character {char!r}"
            )


class EntityRegistry:
    """Registry for mapping ``entity_name: str`` → ``type[Entity]``.

    Registering a class also registers its ancestors, every specialization
    loaded at that time and the targets of their associations.
    Specializations defined later are picked up on lookup by rescanning the
    registered trees.

    Create one registry per application context for isolation.

    Usage::

        registry = EntityRegistry([Person, Book])
        registry.lookup("Author")  # Author specializes Person
    """

    def __init__(self, classes: Iterable[type[Entity]] = ()) -> None:
        self._registry: dict[str, type[Entity]] = {}
        self._explicit: list[type[Entity]] = []
        for entity_cls in classes:
            self.register(entity_cls)

    def register(self, entity_cls: TEntityClass) -> TEntityClass:
        """Register ``entity_cls`` with its tree. Usable as a decorator."""
        if not (isinstance(entity_cls, type) and issubclass(entity_cls, Entity)):
            raise ArgumentError(f"Expected an Entity subclass, got {entity_cls!r}")
        family = [
            *reversed(entity_cls.ancestor_classes()),
            entity_cls,
            *entity_cls.descendant_classes(),
        ]
        for member in family:
            self._add(member)
        if entity_cls not in self._explicit:
            self._explicit.append(entity_cls)
        for member in family:
            for attribute in entity_attributes(member):
                target = attribute.target
                if attribute.is_association and not self.has(target.entity_name()):
                    self.register(target)
        return entity_cls

    def _add(self, entity_cls: type[Entity]) -> None:
        name = entity_cls.entity_name()
        existing = self._registry.get(name)
        if existing is entity_cls:
            return
        if existing is not None:
            raise RegistrationError(
                f"Duplicate entity name {name!r}: {existing.__qualname__} and "
                f"{entity_cls.__qualname__}"
            )
        entity_cls.general_class()
        if not entity_cls.is_abstract():
            validate_storage_name(name, entity_cls.storage_name())
        entity_attributes(entity_cls)
        self._registry[name] = entity_cls
        logger.debug("Registered entity class %s", name)

    def _refresh(self) -> None:
        for entity_cls in list(self._explicit):
            for sub in entity_cls.descendant_classes():
                if sub.entity_name() not in self._registry:
                    self._add(sub)

    def lookup(self, name: str) -> type[Entity]:
        """Return the class registered under ``name``.

        Raises:
            UnknownEntityError: if no loaded class carries that name.
        """
        entity_cls = self._registry.get(name)
        if entity_cls is None:
            self._refresh()
            entity_cls = self._registry.get(name)
        if entity_cls is None:
            raise UnknownEntityError(name)
        return entity_cls

    def has(self, name: str) -> bool:
        """Return ``True`` if ``name`` is registered."""
        return name in self._registry

    def list_registered(self) -> list[str]:
        """Return all registered entity names."""
        return list(self._registry.keys())

    def clear(self) -> None:
        """Remove all registrations (testing utility)."""
        self._registry.clear()
        self._explicit.clear()
