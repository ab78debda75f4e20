"""MongoAdapter — entity persistence over MongoDB."""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, TypeVar

from entity_core.domain.entity import Entity
from entity_core.domain.registry import EntityRegistry
from entity_core.ports.adapter import IAdapter
from entity_core.ports.query_options import FindOptions
from entity_core.primitives.exceptions import ArgumentError, EntityError, QueryError

from .collection_resolver import CollectionResolver
from .connection import MongoConnectionManager
from .exceptions import (
    DeleteCascadeError,
    MongoPersistenceError,
    StorageConfirmationError,
)
from .query_builder import MongoQueryBuilder
from .serialization import DISCRIMINATOR_FIELD, DocumentCodec

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping

    from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase

logger = logging.getLogger("entity_mongo.adapter")

T = TypeVar("T", bound=Entity)

DEFAULT_POPULATE_DEPTH = 3


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    """Wrap client failures in :class:`MongoPersistenceError`."""
    try:
        yield
    except EntityError:
        raise
    except Exception as e:
        logger.warning("%s failed: %s", action, e)
        raise MongoPersistenceError(f"{action} failed: {e}") from e


class MongoAdapter(IAdapter):
    """
    Stores entity instances in MongoDB.

    Every concrete class lives in the collection of its branch root (the
    highest ancestor reachable through concrete parents); documents record
    their exact class in the discriminator field. All operations acquire the
    database through a single-flight connection gate, so the first call
    connects and concurrent callers share that connection.

    Usage::

        adapter = MongoAdapter("mongodb://127.0.0.1:27017/app", {"tz_aware": True})
        await adapter.insert_object(john)
        john = await adapter.get_object(Person, {"id": john.id})
        await adapter.close_connection()
    """

    def __init__(
        self,
        url: str,
        options: Mapping[str, Any] | None = None,
        *,
        database: str | None = None,
        registry: EntityRegistry | None = None,
        client_factory: Callable[..., Any] | None = None,
        verify_connection: bool = True,
        discriminator_field: str = DISCRIMINATOR_FIELD,
        populate_depth: int = DEFAULT_POPULATE_DEPTH,
    ) -> None:
        if registry is not None and not isinstance(registry, EntityRegistry):
            raise ArgumentError("registry has to be an EntityRegistry")
        if not isinstance(discriminator_field, str) or not discriminator_field:
            raise ArgumentError("discriminator_field has to be a non-empty string")
        if discriminator_field in ("_id", "id") or discriminator_field.startswith("$"):
            raise ArgumentError(f"Invalid discriminator field {discriminator_field!r}")
        if not isinstance(populate_depth, int) or populate_depth < 1:
            raise ArgumentError("populate_depth has to be a positive int")
        self._connection = MongoConnectionManager(
            url,
            options,
            database=database,
            client_factory=client_factory,
            verify_connection=verify_connection,
        )
        self._registry = registry if registry is not None else EntityRegistry()
        self._codec = DocumentCodec(
            self._registry, discriminator_field=discriminator_field
        )
        self._resolver = CollectionResolver()
        self._query_builder = MongoQueryBuilder()
        self._populate_depth = populate_depth

    @property
    def connection(self) -> MongoConnectionManager:
        return self._connection

    @property
    def registry(self) -> EntityRegistry:
        return self._registry

    @property
    def resolver(self) -> CollectionResolver:
        return self._resolver

    @property
    def discriminator_field(self) -> str:
        return self._codec.discriminator_field

    # ── Connection ──────────────────────────────────────────────────

    async def open_connection(self) -> None:
        await self._connection.open()

    async def close_connection(self) -> None:
        await self._connection.close()

    async def get_database(self) -> AsyncIOMotorDatabase[Any]:
        """Return the database handle, connecting first if needed."""
        return await self._connection.get_database()

    async def health_check(self) -> bool:
        return await self._connection.health_check()

    # ── Mapping ─────────────────────────────────────────────────────

    def object_to_document(self, instance: Entity) -> dict[str, Any]:
        return self._codec.to_document(instance)

    def document_to_object(
        self, document: Mapping[str, Any], entity_cls: type[T]
    ) -> T:
        self._check_class(entity_cls)
        return self._codec.to_entity(document, entity_cls)

    # ── Operations ──────────────────────────────────────────────────

    async def insert_object(self, instance: Entity) -> None:
        """Insert ``instance`` into its branch collection.

        Raises:
            StorageConfirmationError: if the client does not confirm exactly
                this document as inserted.
        """
        entity_cls = self._check_instance(instance)
        collection_name = self._resolver.resolve(entity_cls)
        document = self._codec.to_document(instance)
        collection = await self._collection(collection_name)
        with _storage_errors(f"Insert into {collection_name}"):
            result = await collection.insert_one(document)
        if (
            result is None
            or not getattr(result, "acknowledged", False)
            or getattr(result, "inserted_id", None) != document["_id"]
        ):
            raise StorageConfirmationError(
                f"Insert of {entity_cls.entity_name()} {instance.id!r} into "
                f"{collection_name} was not confirmed"
            )
        logger.debug(
            "Inserted %s %s into %s", entity_cls.entity_name(), instance.id, collection_name
        )

    async def get_object(
        self,
        entity_cls: type[T],
        query: Mapping[str, Any],
        *,
        populate: bool = False,
    ) -> T:
        """Return the one object matching ``query``.

        Raises:
            QueryError: if no object or more than one object matches.
        """
        self._check_class(entity_cls)
        documents = await self._find_documents(
            entity_cls, query, FindOptions(limit=2)
        )
        if not documents:
            raise QueryError("Object does not exist")
        if len(documents) > 1:
            raise QueryError("Query matches multiple objects")
        objects = await self._decode(documents, entity_cls, populate=populate)
        return objects[0]

    async def find_objects(
        self,
        entity_cls: type[T],
        query: Mapping[str, Any],
        options: FindOptions | Mapping[str, Any] | None = None,
    ) -> list[T]:
        """Return the page of objects matching ``query`` (possibly empty)."""
        self._check_class(entity_cls)
        find_options = FindOptions.coerce(options)
        documents = await self._find_documents(entity_cls, query, find_options)
        return await self._decode(
            documents,
            entity_cls,
            populate=find_options.populate,
            fields=find_options.fields,
        )

    async def update_object(self, instance: Entity) -> None:
        """Write ``instance``'s current state over the stored document.

        A full instance replaces the document. A partial instance (read with
        a projection, or a reference) only sets the attributes it holds, so
        stored values it never loaded are kept.

        Raises:
            StorageConfirmationError: if no stored document matched.
        """
        entity_cls = self._check_instance(instance)
        collection_name = self._resolver.resolve(entity_cls)
        document = self._codec.to_document(instance)
        collection = await self._collection(collection_name)
        selector = self._selector(instance)
        with _storage_errors(f"Update in {collection_name}"):
            if self._codec.is_partial(instance):
                changes = {k: v for k, v in document.items() if k != "_id"}
                result = await collection.update_one(selector, {"$set": changes})
            else:
                result = await collection.replace_one(selector, document)
        if getattr(result, "matched_count", 0) != 1:
            raise StorageConfirmationError(
                f"No {entity_cls.entity_name()} {instance.id!r} in "
                f"{collection_name} to update"
            )
        logger.debug(
            "Updated %s %s in %s", entity_cls.entity_name(), instance.id, collection_name
        )

    async def delete_object(self, instance: Entity) -> None:
        """Delete ``instance`` from every collection of its hierarchy.

        Deletes run concurrently and all outcomes are collected before
        reporting.

        Raises:
            DeleteCascadeError: if any collection's delete failed.
            StorageConfirmationError: if no document was deleted at all.
        """
        entity_cls = self._check_instance(instance)
        collection_names = self._resolver.hierarchy_collections(entity_cls)
        selector = self._selector(instance)
        database = await self.get_database()

        async def _delete(name: str) -> Any:
            return await database.get_collection(name).find_one_and_delete(selector)

        outcomes = await asyncio.gather(
            *(_delete(name) for name in collection_names), return_exceptions=True
        )
        failed: dict[str, BaseException] = {}
        completed: list[str] = []
        deleted = 0
        for name, outcome in zip(collection_names, outcomes):
            if isinstance(outcome, BaseException):
                failed[name] = outcome
                continue
            completed.append(name)
            if outcome is not None:
                deleted += 1
        if failed:
            logger.warning(
                "Delete of %s %s failed in %s", entity_cls.entity_name(), instance.id, sorted(failed)
            )
            raise DeleteCascadeError(instance.id, failed, completed) from next(
                iter(failed.values())
            )
        if deleted == 0:
            raise StorageConfirmationError(
                f"No {entity_cls.entity_name()} {instance.id!r} in "
                f"{collection_names} to delete"
            )
        logger.debug(
            "Deleted %s %s from %s", entity_cls.entity_name(), instance.id, completed
        )

    # ── Helpers ─────────────────────────────────────────────────────

    async def _collection(self, name: str) -> AsyncIOMotorCollection[Any]:
        database = await self.get_database()
        return database.get_collection(name)

    def _check_class(self, entity_cls: Any) -> None:
        if not (isinstance(entity_cls, type) and issubclass(entity_cls, Entity)):
            raise ArgumentError(f"Expected an Entity subclass, got {entity_cls!r}")
        if entity_cls.is_abstract():
            raise ArgumentError(
                f"Entity class {entity_cls.entity_name()!r} is abstract and "
                "owns no collection"
            )
        self._registry.register(entity_cls)

    def _check_instance(self, instance: Any) -> type[Entity]:
        if not isinstance(instance, Entity):
            raise ArgumentError(f"Expected an Entity instance, got {instance!r}")
        entity_cls = type(instance)
        self._check_class(entity_cls)
        return entity_cls

    def _selector(self, instance: Entity) -> dict[str, Any]:
        return {
            "_id": instance.id,
            self.discriminator_field: type(instance).entity_name(),
        }

    def _storage_filter(
        self, entity_cls: type[Entity], query: Mapping[str, Any]
    ) -> dict[str, Any]:
        storage_filter = self._query_builder.translate(query)
        if self._resolver.is_branch_root(entity_cls):
            return storage_filter
        return self._query_builder.restrict_types(
            storage_filter,
            self.discriminator_field,
            self._resolver.type_names(entity_cls),
        )

    async def _find_documents(
        self,
        entity_cls: type[Entity],
        query: Mapping[str, Any],
        options: FindOptions,
    ) -> list[dict[str, Any]]:
        storage_filter = self._storage_filter(entity_cls, query)
        collection_name = self._resolver.resolve(entity_cls)
        collection = await self._collection(collection_name)
        with _storage_errors(f"Find in {collection_name}"):
            cursor = self._query_builder.build_cursor(
                collection,
                storage_filter,
                options,
                discriminator_field=self.discriminator_field,
            )
            documents = [document async for document in cursor]
        logger.debug(
            "Found %d document(s) in %s for %s",
            len(documents),
            collection_name,
            entity_cls.entity_name(),
        )
        return documents

    async def _decode(
        self,
        documents: list[dict[str, Any]],
        entity_cls: type[T],
        *,
        populate: bool,
        fields: list[str] | None = None,
    ) -> list[T]:
        referenced: dict[Any, dict[str, Any]] = {}
        if populate:
            referenced = await self._fetch_referenced(documents, entity_cls)
        return [
            self._codec.to_entity(
                document, entity_cls, referenced=referenced, fields=fields
            )
            for document in documents
        ]

    async def _fetch_referenced(
        self, documents: list[dict[str, Any]], entity_cls: type[Entity]
    ) -> dict[Any, dict[str, Any]]:
        """Load referenced documents level by level, up to the populate depth."""
        referenced: dict[Any, dict[str, Any]] = {}
        seen = {document.get("_id") for document in documents}
        frontier: list[tuple[dict[str, Any], type[Entity]]] = [
            (document, entity_cls) for document in documents
        ]
        for _ in range(self._populate_depth):
            wanted: dict[str, dict[Any, type[Entity]]] = {}
            for document, document_cls in frontier:
                for ref_cls, ref_id in self._codec.references(document, document_cls):
                    if ref_id in seen:
                        continue
                    seen.add(ref_id)
                    collection_name = self._resolver.resolve(ref_cls)
                    wanted.setdefault(collection_name, {})[ref_id] = ref_cls
            if not wanted:
                break
            frontier = []
            for collection_name, ids in wanted.items():
                collection = await self._collection(collection_name)
                with _storage_errors(f"Populate from {collection_name}"):
                    cursor = collection.find({"_id": {"$in": list(ids)}})
                    async for document in cursor:
                        referenced[document["_id"]] = document
                        frontier.append((document, ids[document["_id"]]))
        return referenced
