"""IAdapter — the persistence contract entity adapters implement."""

from __future__ import annotations

from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable

from ..domain.entity import Entity

if TYPE_CHECKING:
    from .query_options import FindOptions

T = TypeVar("T", bound=Entity)


@runtime_checkable
class IAdapter(Protocol):
    """
    Generic adapter interface for storing entity instances.

    ``get_object`` requires the filter to match exactly one object and
    raises :class:`~entity_core.primitives.exceptions.QueryError` otherwise;
    ``find_objects`` returns an empty list when nothing matches::

        john = await adapter.get_object(Person, {"id": john_id})
        page = await adapter.find_objects(Person, {}, {"skip": 0, "limit": 100})
    """

    async def open_connection(self) -> None: ...

    async def close_connection(self) -> None: ...

    async def insert_object(self, instance: Entity) -> None: ...

    async def get_object(
        self,
        entity_cls: type[T],
        query: Mapping[str, Any],
        *,
        populate: bool = False,
    ) -> T: ...

    async def find_objects(
        self,
        entity_cls: type[T],
        query: Mapping[str, Any],
        options: FindOptions | Mapping[str, Any] | None = None,
    ) -> list[T]: ...

    async def update_object(self, instance: Entity) -> None: ...

    async def delete_object(self, instance: Entity) -> None: ...
