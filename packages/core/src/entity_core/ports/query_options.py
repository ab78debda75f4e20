"""
Find options for pagination, ordering, projection and population.

The filter defines *what* to match; ``FindOptions`` defines *how* results
are returned. Options are applied verbatim by the persistence adapter; there
is no implicit page size.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ..primitives.exceptions import ArgumentError

SortSpec = Mapping[str, int] | list[tuple[str, Any]] | list[str]

_KNOWN_KEYS = frozenset({"skip", "limit", "sort", "fields", "populate"})


@dataclass(frozen=True)
class FindOptions:
    """
    Immutable container for result-shaping parameters.

    Attributes:
        skip: Number of results to skip.
        limit: Maximum number of results.
        sort: ``{"name": 1}``, ``[("name", "desc")]`` or ``["-name"]``.
        fields: Attribute storage names to project (partial documents).
        populate: Decode referenced entities fully instead of by reference.
    """

    skip: int | None = None
    limit: int | None = None
    sort: SortSpec | None = None
    fields: list[str] = field(default_factory=list)
    populate: bool = False

    def __post_init__(self) -> None:
        for name in ("skip", "limit"):
            value = getattr(self, name)
            if value is not None and (
                isinstance(value, bool) or not isinstance(value, int) or value < 0
            ):
                raise ArgumentError(f"{name} must be a non-negative int, got {value!r}")

    @classmethod
    def coerce(cls, options: FindOptions | Mapping[str, Any] | None) -> FindOptions:
        """Accept a ``FindOptions``, a plain mapping, or ``None``."""
        if options is None:
            return cls()
        if isinstance(options, FindOptions):
            return options
        if isinstance(options, Mapping):
            unknown = set(options) - _KNOWN_KEYS
            if unknown:
                raise ArgumentError(f"Unknown find options: {sorted(unknown)}")
            return cls(
                skip=options.get("skip"),
                limit=options.get("limit"),
                sort=options.get("sort"),
                fields=list(options.get("fields") or []),
                populate=bool(options.get("populate", False)),
            )
        raise ArgumentError(f"options must be FindOptions or a mapping, got {options!r}")

    def with_pagination(
        self,
        skip: int | None = None,
        limit: int | None = None,
    ) -> FindOptions:
        """Return a copy with updated pagination parameters."""
        return FindOptions(
            skip=skip if skip is not None else self.skip,
            limit=limit if limit is not None else self.limit,
            sort=self.sort,
            fields=list(self.fields),
            populate=self.populate,
        )
