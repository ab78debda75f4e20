"""Mongo query builder — logical filters to storage filters, cursors."""

from __future__ import annotations

import copy
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from entity_core.primitives.exceptions import ArgumentError

if TYPE_CHECKING:
    from entity_core.ports.query_options import FindOptions

ID_FIELD = "id"
STORAGE_ID_FIELD = "_id"
LOGICAL_OPERATORS = frozenset({"$and", "$or", "$nor"})


def _storage_field(field: str) -> str:
    return STORAGE_ID_FIELD if field == ID_FIELD else field


def _translate_node(node: dict[str, Any]) -> dict[str, Any]:
    translated: dict[str, Any] = {}
    for key, value in node.items():
        if key == ID_FIELD:
            if STORAGE_ID_FIELD in node:
                raise ArgumentError(
                    f"Filter cannot use both {ID_FIELD!r} and {STORAGE_ID_FIELD!r}"
                )
            translated[STORAGE_ID_FIELD] = value
        elif key in LOGICAL_OPERATORS:
            if not isinstance(value, list):
                raise ArgumentError(f"{key} expects a list of filters")
            translated[key] = [
                _translate_node(item) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            translated[key] = value
    return translated


class MongoQueryBuilder:
    """Rewrites logical filters for the store and builds paged cursors.

    Field names and operator documents pass through verbatim; only the
    logical identifier ``id`` becomes ``_id``, at the top level and inside
    ``$and``/``$or``/``$nor``. Reference ids (``"books.id"``) are left alone
    because references store their target id under ``id``.
    """

    def translate(self, query: Mapping[str, Any]) -> dict[str, Any]:
        """Return a translated deep copy of ``query``; the caller's copy is untouched."""
        if not isinstance(query, Mapping):
            raise ArgumentError(f"Query must be a mapping, got {query!r}")
        return _translate_node(copy.deepcopy(dict(query)))

    def restrict_types(
        self,
        storage_filter: dict[str, Any],
        discriminator_field: str,
        type_names: list[str],
    ) -> dict[str, Any]:
        """Restrict ``storage_filter`` to documents of the given classes."""
        condition = {"$in": list(type_names)}
        if discriminator_field in storage_filter:
            return {"$and": [storage_filter, {discriminator_field: condition}]}
        return {**storage_filter, discriminator_field: condition}

    def build_sort(self, order_by: Any) -> list[tuple[str, int]]:
        """Build MongoDB sort tuples.

        Accepts ``{field: 1|-1}``, ``[(field, 1|-1|"asc"|"desc")]`` or
        ``["-field", "field"]``.
        """
        if not order_by:
            return []
        items = list(order_by.items()) if isinstance(order_by, Mapping) else order_by
        if isinstance(items, str) or not isinstance(items, (list, tuple)):
            raise ArgumentError(f"Unsupported sort specification: {order_by!r}")
        result: list[tuple[str, int]] = []
        for item in items:
            if isinstance(item, tuple) and len(item) == 2:
                field, direction = item
                result.append((_storage_field(field), self._direction(direction)))
            elif isinstance(item, str):
                if item.startswith("-"):
                    result.append((_storage_field(item[1:]), -1))
                else:
                    result.append((_storage_field(item), 1))
            else:
                raise ArgumentError(f"Unsupported sort item: {item!r}")
        return result

    @staticmethod
    def _direction(direction: Any) -> int:
        if isinstance(direction, str):
            return -1 if direction.lower() == "desc" else 1
        if direction in (1, -1):
            return int(direction)
        raise ArgumentError(f"Sort direction must be 1, -1, 'asc' or 'desc': {direction!r}")

    def build_project(
        self, fields: list[str] | None, *, always: tuple[str, ...] = ()
    ) -> dict[str, int] | None:
        """Build a projection: { field: 1, ... }. None means no projection."""
        if not fields:
            return None
        projection = dict.fromkeys((_storage_field(field) for field in fields), 1)
        projection.update(dict.fromkeys(always, 1))
        return projection

    def build_cursor(
        self,
        collection: Any,
        storage_filter: dict[str, Any],
        options: FindOptions,
        *,
        discriminator_field: str,
    ) -> Any:
        """Open a ``find`` cursor with sort, skip and limit applied verbatim."""
        projection = self.build_project(
            list(options.fields), always=(discriminator_field,)
        )
        cursor = collection.find(storage_filter, projection)
        sort_list = self.build_sort(options.sort)
        if sort_list:
            cursor = cursor.sort(sort_list)
        if options.skip is not None:
            cursor = cursor.skip(options.skip)
        if options.limit is not None:
            cursor = cursor.limit(options.limit)
        return cursor
