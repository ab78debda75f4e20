"""CollectionResolver — routes entity classes to physical collections.

Storage policy: one collection per concrete root of each inheritance branch.
Every concrete class whose parent chain is concrete shares its branch root's
collection; documents are told apart by the discriminator field.
"""

from __future__ import annotations

from entity_core.domain.entity import Entity
from entity_core.primitives.exceptions import ArgumentError


def _require_entity_class(entity_cls: object) -> None:
    if not (isinstance(entity_cls, type) and issubclass(entity_cls, Entity)):
        raise ArgumentError(f"Expected an Entity subclass, got {entity_cls!r}")


class CollectionResolver:
    """Computes collection names across a class hierarchy."""

    def branch_root(self, entity_cls: type[Entity]) -> type[Entity]:
        """Return the highest class reachable through concrete parents."""
        _require_entity_class(entity_cls)
        root = entity_cls
        general = root.general_class()
        while general is not None and not general.is_abstract():
            root = general
            general = root.general_class()
        return root

    def resolve(self, entity_cls: type[Entity]) -> str:
        """Return the name of the collection owning ``entity_cls`` documents."""
        return self.branch_root(entity_cls).storage_name()

    def is_branch_root(self, entity_cls: type[Entity]) -> bool:
        return self.branch_root(entity_cls) is entity_cls

    def type_names(self, entity_cls: type[Entity]) -> list[str]:
        """Return discriminator names of ``entity_cls`` and its loaded specializations."""
        _require_entity_class(entity_cls)
        return [entity_cls.entity_name()] + [
            sub.entity_name() for sub in entity_cls.descendant_classes()
        ]

    def hierarchy_collections(self, entity_cls: type[Entity]) -> list[str]:
        """Return every collection implied by ``entity_cls``'s hierarchy.

        Covers the class, its concrete ancestors and its loaded descendants,
        in that order, without duplicates. Abstract classes own no documents
        and contribute nothing.
        """
        _require_entity_class(entity_cls)
        members = [
            *reversed(entity_cls.ancestor_classes()),
            entity_cls,
            *entity_cls.descendant_classes(),
        ]
        names: list[str] = []
        for member in members:
            if member.is_abstract():
                continue
            name = self.resolve(member)
            if name not in names:
                names.append(name)
        return names
