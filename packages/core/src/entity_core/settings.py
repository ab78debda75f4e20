"""Settings — explicitly passed adapter configuration context."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .primitives.exceptions import ArgumentError

if TYPE_CHECKING:
    from .ports.adapter import IAdapter

DEFAULT_ADAPTER = "default"


@dataclass
class Settings:
    """Named adapters available to an application context.

    Several ``Settings`` objects may coexist in one process (one per test,
    one per tenant) because nothing here is module-level state.

    Usage::

        settings = Settings()
        settings.register_adapter(MongoAdapter("mongodb://127.0.0.1/app"))
        adapter = settings.default_adapter
    """

    adapters: dict[str, IAdapter] = field(default_factory=dict)

    def register_adapter(self, adapter: IAdapter, name: str = DEFAULT_ADAPTER) -> None:
        if not isinstance(name, str) or not name:
            raise ArgumentError("Adapter name must be a non-empty string")
        self.adapters[name] = adapter

    def get_adapter(self, name: str = DEFAULT_ADAPTER) -> IAdapter:
        try:
            return self.adapters[name]
        except KeyError:
            raise ArgumentError(f"No adapter registered under {name!r}") from None

    @property
    def default_adapter(self) -> IAdapter:
        return self.get_adapter(DEFAULT_ADAPTER)

    async def close_all(self) -> None:
        """Close every registered adapter's connection, in registration order."""
        for adapter in self.adapters.values():
            await adapter.close_connection()
