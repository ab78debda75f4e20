"""Entity base class — the root of every persisted class hierarchy."""

from __future__ import annotations

from typing import Any, ClassVar, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from ..primitives.exceptions import RegistrationError
from ..primitives.id_generator import default_id_generator

TEntity = TypeVar("TEntity", bound="Entity")


class Entity(BaseModel):
    """Base class for all persisted entities.

    Subclasses form a single-rooted generalization tree: every entity class
    has exactly one general class (its nearest ``Entity`` base) except the
    root, ``Entity`` itself. Attributes are cumulative up the tree.

    Class-body markers (never inherited):

    - ``__entity_abstract__ = True`` marks a class abstract.
    - ``__data_name__ = "..."`` overrides the storage (collection) name.
    - ``__entity_name__ = "..."`` overrides the discriminator name.

    Usage::

        class Person(Entity):
            name: str | None = None

        class Author(Person):
            books: list[Book] = []

        john = Author(name="John")
        john.id  # assigned at construction, immutable
    """

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        populate_by_name=True,
        validate_assignment=True,
    )

    __entity_abstract__: ClassVar[bool] = True

    id: str = Field(default_factory=default_id_generator.next_id, frozen=True)

    @classmethod
    def entity_name(cls) -> str:
        """Return the discriminator name stored with every document."""
        return cls.__dict__.get("__entity_name__") or cls.__name__

    @classmethod
    def storage_name(cls) -> str:
        """Return the declared storage name, defaulting to the entity name."""
        return cls.__dict__.get("__data_name__") or cls.entity_name()

    @classmethod
    def is_abstract(cls) -> bool:
        return bool(cls.__dict__.get("__entity_abstract__", False))

    @classmethod
    def general_class(cls) -> type[Entity] | None:
        """Return the parent class in the generalization tree (None for root)."""
        if cls is Entity:
            return None
        generals = [
            base
            for base in cls.__bases__
            if isinstance(base, type) and issubclass(base, Entity)
        ]
        if len(generals) != 1:
            raise RegistrationError(
                f"Entity {cls.entity_name()!r} must specialize exactly one "
                f"entity class, found {len(generals)}"
            )
        return generals[0]

    @classmethod
    def specialization_classes(cls) -> list[type[Entity]]:
        """Return the currently loaded direct specializations."""
        return [sub for sub in cls.__subclasses__() if issubclass(sub, Entity)]

    @classmethod
    def ancestor_classes(cls) -> list[type[Entity]]:
        """Return general classes from the immediate parent up to the root."""
        ancestors: list[type[Entity]] = []
        general = cls.general_class()
        while general is not None:
            ancestors.append(general)
            general = general.general_class()
        return ancestors

    @classmethod
    def descendant_classes(cls) -> list[type[Entity]]:
        """Return every loaded specialization, depth first."""
        found: list[type[Entity]] = []
        stack = list(reversed(cls.specialization_classes()))
        while stack:
            sub = stack.pop()
            if sub in found:
                continue
            found.append(sub)
            stack.extend(reversed(sub.specialization_classes()))
        return found

    @classmethod
    def construct_partial(cls: type[TEntity], values: dict[str, Any]) -> TEntity:
        """Build an instance holding exactly ``values``, without validation.

        Unlike ``model_construct`` no defaults are filled in: fields missing
        from ``values`` stay unset.
        """
        instance = cls.__new__(cls)
        object.__setattr__(instance, "__dict__", dict(values))
        object.__setattr__(instance, "__pydantic_fields_set__", set(values))
        object.__setattr__(instance, "__pydantic_extra__", None)
        object.__setattr__(instance, "__pydantic_private__", None)
        return instance

    @classmethod
    def reference(cls: type[TEntity], entity_id: str) -> TEntity:
        """Build a partial instance carrying only its identifier.

        Used for association targets that were not populated.
        """
        return cls.construct_partial({"id": entity_id})

