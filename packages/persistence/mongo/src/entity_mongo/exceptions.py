"""MongoDB persistence exceptions."""

from __future__ import annotations

from entity_core.primitives.exceptions import PersistenceError


class MongoPersistenceError(PersistenceError):
    """Base for MongoDB persistence errors."""


class MongoConnectionError(MongoPersistenceError):
    """Raised when connecting to or disconnecting from MongoDB fails."""


class StorageConfirmationError(MongoPersistenceError):
    """Raised when a write did not affect the expected number of documents."""


class DeleteCascadeError(MongoPersistenceError):
    """Raised when deleting an entity failed in one or more collections.

    ``failed`` maps collection names to the client error; ``completed`` lists
    the collections where the delete went through.
    """

    def __init__(
        self,
        entity_id: str,
        failed: dict[str, BaseException],
        completed: list[str],
    ) -> None:
        self.entity_id = entity_id
        self.failed = failed
        self.completed = completed
        details = ", ".join(f"{name}: {err}" for name, err in failed.items())
        super().__init__(
            f"Delete of {entity_id!r} failed in {sorted(failed)} "
            f"(completed in {completed}): {details}"
        )
