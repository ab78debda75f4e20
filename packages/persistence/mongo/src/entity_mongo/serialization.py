"""Entity <-> BSON document mapping (discriminator, references, BSON types)."""

from __future__ import annotations

from collections.abc import Collection, Mapping
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, TypeVar
from uuid import UUID

from bson import Decimal128

from entity_core.domain.attributes import entity_attributes
from entity_core.domain.entity import Entity
from entity_core.primitives.exceptions import ArgumentError, MappingError

if TYPE_CHECKING:
    from entity_core.domain.attributes import Attribute
    from entity_core.domain.registry import EntityRegistry

TEntity = TypeVar("TEntity", bound=Entity)

DISCRIMINATOR_FIELD = "Entity"
REFERENCE_ID_FIELD = "id"


def _serialize_value(value: Any) -> Any:
    """Convert Python types to BSON-safe types."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return Decimal128(value)
    if isinstance(value, Enum):
        return _serialize_value(value.value)
    if isinstance(value, dict):
        return {k: _serialize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_serialize_value(v) for v in value]
    return value


def _deserialize_value(value: Any) -> Any:
    """Convert BSON types back to Python types."""
    if isinstance(value, Decimal128):
        return value.to_decimal()
    if isinstance(value, dict):
        return {k: _deserialize_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_deserialize_value(v) for v in value]
    return value


class DocumentCodec:
    """
    Maps entity instances to documents and back. Pure: no I/O.

    A document carries ``_id`` (the entity id), the discriminator field (the
    instance's exact class name) and one field per attribute, keyed by the
    attribute's storage name. Associations are stored as references
    ``{<discriminator>: <class name>, "id": <id>}`` or lists of them.
    """

    def __init__(
        self,
        registry: EntityRegistry,
        *,
        discriminator_field: str = DISCRIMINATOR_FIELD,
    ) -> None:
        self._registry = registry
        self._discriminator_field = discriminator_field

    @property
    def discriminator_field(self) -> str:
        return self._discriminator_field

    # ── Encoding ────────────────────────────────────────────────────

    def reference(self, instance: Entity) -> dict[str, Any]:
        """Return the lightweight reference stored in place of ``instance``."""
        if not isinstance(instance, Entity):
            raise MappingError(f"Association value must be an Entity, got {instance!r}")
        return {
            self._discriminator_field: type(instance).entity_name(),
            REFERENCE_ID_FIELD: instance.id,
        }

    def to_document(self, instance: Entity) -> dict[str, Any]:
        """Convert an entity instance to a BSON-ready document.

        Attributes missing from a partial instance are left out.
        """
        if not isinstance(instance, Entity):
            raise ArgumentError(f"Expected an Entity instance, got {instance!r}")
        entity_cls = type(instance)
        self._registry.register(entity_cls)
        document: dict[str, Any] = {
            "_id": instance.id,
            self._discriminator_field: entity_cls.entity_name(),
        }
        for attribute in self._attributes(entity_cls):
            if attribute.logical_name not in instance.__dict__:
                continue
            value = instance.__dict__[attribute.logical_name]
            document[attribute.storage_name] = self._encode(attribute, value)
        return document

    def is_partial(self, instance: Entity) -> bool:
        """Return True when some attribute of ``instance`` was never loaded."""
        return any(
            attribute.logical_name not in instance.__dict__
            for attribute in self._attributes(type(instance))
        )

    def _attributes(self, entity_cls: type[Entity]) -> tuple[Attribute, ...]:
        attributes = entity_attributes(entity_cls)
        for attribute in attributes:
            if attribute.storage_name == self._discriminator_field:
                raise MappingError(
                    f"Attribute {attribute.logical_name!r} of "
                    f"{entity_cls.entity_name()!r} collides with the "
                    f"discriminator field {self._discriminator_field!r}"
                )
        return attributes

    def _encode(self, attribute: Attribute, value: Any) -> Any:
        if value is None:
            return None
        if not attribute.is_association:
            return _serialize_value(attribute.to_storage_value(value))
        if attribute.is_many:
            return [self.reference(item) for item in value]
        return self.reference(value)

    # ── Decoding ────────────────────────────────────────────────────

    def resolve_class(
        self, document: Mapping[str, Any], expected_cls: type[TEntity]
    ) -> type[TEntity]:
        """Return the exact class named by the document's discriminator.

        Raises:
            MappingError: if it is neither ``expected_cls`` nor a specialization.
        """
        name = document.get(self._discriminator_field)
        if name is None:
            return expected_cls
        entity_cls = self._registry.lookup(name)
        if not issubclass(entity_cls, expected_cls):
            raise MappingError(
                f"Document of {name!r} is not a {expected_cls.entity_name()!r}"
            )
        return entity_cls

    def to_entity(
        self,
        document: Mapping[str, Any],
        expected_cls: type[TEntity],
        *,
        referenced: Mapping[Any, Mapping[str, Any]] | None = None,
        fields: Collection[str] | None = None,
    ) -> TEntity:
        """Convert a document to an instance of ``expected_cls`` or a specialization.

        References decode to partial instances carrying only their id, unless
        ``referenced`` holds the referenced document (keyed by id), in which
        case they decode fully and recursively. Absent or null attributes take
        their declared default; attributes without one stay unset.

        ``fields`` names the storage fields a projection fetched. Attributes
        outside it were never read and stay unset, so the instance is partial.
        """
        if not isinstance(document, Mapping):
            raise MappingError("Document must be a mapping")
        self._registry.register(expected_cls)
        return self._decode(
            document,
            expected_cls,
            referenced or {},
            frozenset(),
            fields=frozenset(fields) if fields else None,
        )

    def _decode(
        self,
        document: Mapping[str, Any],
        expected_cls: type[TEntity],
        referenced: Mapping[Any, Mapping[str, Any]],
        visiting: frozenset[Any],
        *,
        fields: frozenset[str] | None = None,
    ) -> TEntity:
        entity_cls = self.resolve_class(document, expected_cls)
        if "_id" not in document:
            raise MappingError(
                f"Document of {entity_cls.entity_name()!r} has no '_id' field"
            )
        entity_id = document["_id"]
        visiting = visiting | {entity_id}
        values: dict[str, Any] = {"id": entity_id}
        for attribute in self._attributes(entity_cls):
            if fields is not None and attribute.storage_name not in fields:
                continue
            raw = document.get(attribute.storage_name)
            if raw is None:
                if attribute.has_default:
                    values[attribute.logical_name] = attribute.default()
                continue
            raw = _deserialize_value(raw)
            if attribute.is_association:
                values[attribute.logical_name] = self._decode_association(
                    attribute, raw, referenced, visiting
                )
            else:
                values[attribute.logical_name] = attribute.from_storage_value(raw)
        return entity_cls.construct_partial(values)

    def _decode_association(
        self,
        attribute: Attribute,
        raw: Any,
        referenced: Mapping[Any, Mapping[str, Any]],
        visiting: frozenset[Any],
    ) -> Any:
        if attribute.is_many:
            if not isinstance(raw, list):
                raise MappingError(
                    f"Association {attribute.logical_name!r} must hold a list"
                )
            return [
                self._decode_reference(attribute, item, referenced, visiting)
                for item in raw
            ]
        return self._decode_reference(attribute, raw, referenced, visiting)

    def _decode_reference(
        self,
        attribute: Attribute,
        ref: Any,
        referenced: Mapping[Any, Mapping[str, Any]],
        visiting: frozenset[Any],
    ) -> Entity:
        if not isinstance(ref, Mapping) or REFERENCE_ID_FIELD not in ref:
            raise MappingError(
                f"Malformed reference in {attribute.logical_name!r}: {ref!r}"
            )
        target: type[Entity] = attribute.target
        ref_cls = self.resolve_class(ref, target)
        ref_id = ref[REFERENCE_ID_FIELD]
        full = referenced.get(ref_id)
        if full is not None and ref_id not in visiting:
            return self._decode(full, ref_cls, referenced, visiting)
        return ref_cls.reference(ref_id)

    def references(
        self, document: Mapping[str, Any], expected_cls: type[Entity]
    ) -> list[tuple[type[Entity], Any]]:
        """Return ``(class, id)`` for every reference held by ``document``."""
        entity_cls = self.resolve_class(document, expected_cls)
        found: list[tuple[type[Entity], Any]] = []
        for attribute in self._attributes(entity_cls):
            raw = document.get(attribute.storage_name)
            if raw is None or not attribute.is_association:
                continue
            refs = raw if attribute.is_many and isinstance(raw, list) else [raw]
            for ref in refs:
                if isinstance(ref, Mapping) and REFERENCE_ID_FIELD in ref:
                    found.append(
                        (self.resolve_class(ref, attribute.target), ref[REFERENCE_ID_FIELD])
                    )
        return found
