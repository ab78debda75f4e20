"""Attribute descriptors derived from an entity class's pydantic fields."""

from __future__ import annotations

import types
from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import TYPE_CHECKING, Any, Union, get_args, get_origin

from pydantic import BaseModel, TypeAdapter
from pydantic_core import PydanticUndefined

from ..primitives.exceptions import (
    InvalidStorageNameError,
    MappingError,
    RegistrationError,
)
from .entity import Entity

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo

_COLLECTION_ORIGINS = (list, tuple, set, frozenset)


class AttributeKind(str, Enum):
    """Semantic type tag of an attribute."""

    PRIMITIVE = "primitive"
    EMBEDDED = "embedded"
    ASSOCIATION = "association"


class Multiplicity(str, Enum):
    ONE = "1"
    OPTIONAL = "0..1"
    MANY = "*"


def _strip_optional(annotation: Any) -> tuple[Any, bool]:
    """Return ``(annotation without None, nullable)``."""
    origin = get_origin(annotation)
    if origin is Union or origin is types.UnionType:
        args = get_args(annotation)
        non_null = [arg for arg in args if arg is not type(None)]
        nullable = len(non_null) != len(args)
        if len(non_null) == 1:
            return non_null[0], nullable
        return annotation, nullable
    return annotation, False


def _is_model(tp: Any, base: type[BaseModel]) -> bool:
    return isinstance(tp, type) and issubclass(tp, base)


def _classify(annotation: Any) -> tuple[AttributeKind, Multiplicity, Any]:
    inner, nullable = _strip_optional(annotation)
    single = Multiplicity.OPTIONAL if nullable else Multiplicity.ONE

    origin = get_origin(inner)
    if origin in _COLLECTION_ORIGINS:
        args = [arg for arg in get_args(inner) if arg is not Ellipsis]
        item = _strip_optional(args[0])[0] if args else Any
        if _is_model(item, Entity):
            return AttributeKind.ASSOCIATION, Multiplicity.MANY, item
        if _is_model(item, BaseModel):
            return AttributeKind.EMBEDDED, Multiplicity.MANY, item
        return AttributeKind.PRIMITIVE, Multiplicity.MANY, None

    if _is_model(inner, Entity):
        return AttributeKind.ASSOCIATION, single, inner
    if _is_model(inner, BaseModel) or inner is dict or origin is dict:
        return AttributeKind.EMBEDDED, single, inner if _is_model(inner, BaseModel) else None
    return AttributeKind.PRIMITIVE, single, None


@dataclass(frozen=True)
class Attribute:
    """One declared attribute of an entity class.

    ``storage_name`` is the document field name: the pydantic alias when one
    is declared, otherwise the logical (field) name.
    """

    logical_name: str
    storage_name: str
    kind: AttributeKind
    multiplicity: Multiplicity
    target: Any = None
    field_info: FieldInfo | None = field(default=None, compare=False, repr=False)

    @property
    def is_association(self) -> bool:
        return self.kind is AttributeKind.ASSOCIATION

    @property
    def is_many(self) -> bool:
        return self.multiplicity is Multiplicity.MANY

    @property
    def has_default(self) -> bool:
        if self.field_info is None:
            return False
        return (
            self.field_info.default is not PydanticUndefined
            or self.field_info.default_factory is not None
        )

    def default(self) -> Any:
        """Return a fresh default value; callers check ``has_default`` first."""
        if self.field_info is None:
            return None
        return self.field_info.get_default(call_default_factory=True)

    @cached_property
    def _adapter(self) -> TypeAdapter[Any]:
        annotation = self.field_info.annotation if self.field_info else Any
        return TypeAdapter(annotation)

    def to_storage_value(self, value: Any) -> Any:
        """Convert a primitive or embedded value to its plain storage form.

        Associations are encoded by the persistence adapter, which owns the
        reference format.
        """
        if self.is_association:
            raise MappingError(
                f"Association {self.logical_name!r} is encoded by the adapter"
            )
        if value is None:
            return None
        return self._adapter.dump_python(value, mode="python")

    def from_storage_value(self, value: Any) -> Any:
        """Convert a stored primitive or embedded value back to its declared type."""
        if self.is_association:
            raise MappingError(
                f"Association {self.logical_name!r} is decoded by the adapter"
            )
        if value is None:
            return None
        try:
            return self._adapter.validate_python(value)
        except ValueError as e:
            raise MappingError(
                f"Cannot decode attribute {self.logical_name!r}: {e}"
            ) from e


def _build_attribute(name: str, info: FieldInfo) -> Attribute:
    kind, multiplicity, target = _classify(info.annotation)
    storage_name = info.serialization_alias or info.alias or name
    return Attribute(
        logical_name=name,
        storage_name=storage_name,
        kind=kind,
        multiplicity=multiplicity,
        target=target,
        field_info=info,
    )


_FORBIDDEN_FIELD_CHARACTERS = (".", "\x00")


def validate_field_name(entity_name: str, field_name: str) -> None:
    """Reject attribute storage names a document store cannot hold as keys."""
    if not field_name:
        raise InvalidStorageNameError(entity_name, field_name, "empty field name")
    if field_name.startswith("$"):
        raise InvalidStorageNameError(
            entity_name, field_name, "field names may not start with '$'"
        )
    for char in _FORBIDDEN_FIELD_CHARACTERS:
        if char in field_name:
            raise InvalidStorageNameError(
                entity_name, field_name, f"contains forbidden character {char!r}"
            )


_ATTRIBUTES: dict[type[Entity], tuple[Attribute, ...]] = {}


def entity_attributes(entity_cls: type[Entity]) -> tuple[Attribute, ...]:
    """Return the attributes of ``entity_cls`` and all its ancestors.

    The identifier field is excluded; it is stored as the document ``_id``.
    """
    cached = _ATTRIBUTES.get(entity_cls)
    if cached is not None:
        return cached
    if not entity_cls.__pydantic_complete__:
        entity_cls.model_rebuild(raise_errors=False)
    if not entity_cls.__pydantic_complete__:
        raise RegistrationError(
            f"Entity {entity_cls.entity_name()!r} has unresolved annotations; "
            "define referenced classes first or call model_rebuild()"
        )
    attributes = tuple(
        _build_attribute(name, info)
        for name, info in entity_cls.model_fields.items()
        if name != "id"
    )
    for attr in attributes:
        validate_field_name(entity_cls.entity_name(), attr.storage_name)
    storage_names = [attr.storage_name for attr in attributes]
    duplicates = {n for n in storage_names if storage_names.count(n) > 1}
    reserved = {"_id", "id"} & set(storage_names)
    if duplicates or reserved:
        raise RegistrationError(
            f"Entity {entity_cls.entity_name()!r} declares conflicting storage "
            f"names: {sorted(duplicates | reserved)}"
        )
    _ATTRIBUTES[entity_cls] = attributes
    return attributes


@dataclass(frozen=True)
class EntityDescriptor:
    """Read-only view of an entity class as the persistence layer sees it."""

    entity_cls: type[Entity]

    @property
    def name(self) -> str:
        return self.entity_cls.entity_name()

    @property
    def storage_name(self) -> str:
        return self.entity_cls.storage_name()

    @property
    def is_abstract(self) -> bool:
        return self.entity_cls.is_abstract()

    @property
    def general(self) -> type[Entity] | None:
        return self.entity_cls.general_class()

    @property
    def specializations(self) -> list[type[Entity]]:
        return self.entity_cls.specialization_classes()

    @property
    def attributes(self) -> tuple[Attribute, ...]:
        return entity_attributes(self.entity_cls)


def describe(entity_cls: type[Entity]) -> EntityDescriptor:
    return EntityDescriptor(entity_cls)
