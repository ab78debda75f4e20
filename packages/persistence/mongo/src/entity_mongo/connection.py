"""ConnectionGate and MongoConnectionManager — single-flight Motor lifecycle."""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Generic, TypeVar, cast

from entity_core.primitives.exceptions import ArgumentError

from .exceptions import MongoConnectionError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

logger = logging.getLogger("entity_mongo.connection")

H = TypeVar("H")

DEFAULT_DATABASE = "test"


class ConnectionState(str, Enum):
    CLOSED = "closed"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"


class _Request(str, Enum):
    OPEN = "open"
    CLOSE = "close"


@dataclass
class _Waiter:
    request: _Request
    future: asyncio.Future[Any]


class ConnectionGate(Generic[H]):
    """
    State machine owning at most one live handle.

    Open and close requests are queued in arrival order. A single driver task
    serves the head of the queue: it performs at most one physical connect or
    close, then settles every consecutive request of the same kind with that
    outcome (the handle, ``None``, or the very exception the callable raised).
    The next request of the other kind starts the next transition.

    Failures are never retried; a failed connect or close leaves the gate
    ``CLOSED``.
    """

    def __init__(
        self,
        connect: Callable[[], Awaitable[H]],
        disconnect: Callable[[H], Awaitable[None]],
        *,
        name: str = "database",
    ) -> None:
        self._connect = connect
        self._disconnect = disconnect
        self._name = name
        self._state = ConnectionState.CLOSED
        self._handle: H | None = None
        self._waiters: deque[_Waiter] = deque()
        self._driver: asyncio.Task[None] | None = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_idle(self) -> bool:
        """True when no transition is queued or in flight."""
        return self._driver is None

    async def open(self) -> H:
        """Return the live handle, connecting first if needed."""
        if self._state is ConnectionState.OPEN and self.is_idle:
            return cast("H", self._handle)
        return cast("H", await self._submit(_Request.OPEN))

    async def close(self) -> None:
        """Close the live handle. Idempotent."""
        if self._state is ConnectionState.CLOSED and self.is_idle:
            return
        await self._submit(_Request.CLOSE)

    async def get_handle(self) -> H:
        if self._state is ConnectionState.OPEN and self.is_idle:
            return cast("H", self._handle)
        return await self.open()

    def _submit(self, request: _Request) -> asyncio.Future[Any]:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()
        self._waiters.append(_Waiter(request, future))
        logger.debug(
            "%s request queued for %s (queue size: %d, state: %s)",
            request.value,
            self._name,
            len(self._waiters),
            self._state.value,
        )
        if self._driver is None:
            self._driver = loop.create_task(self._drive())
        return future

    def _set_state(self, state: ConnectionState) -> None:
        logger.debug(
            "Connection %s: %s -> %s", self._name, self._state.value, state.value
        )
        self._state = state

    async def _drive(self) -> None:
        try:
            while self._waiters:
                if self._waiters[0].request is _Request.OPEN:
                    await self._serve_open()
                else:
                    await self._serve_close()
        except asyncio.CancelledError:
            if self._state is not ConnectionState.OPEN:
                self._handle = None
                self._set_state(ConnectionState.CLOSED)
            while self._waiters:
                self._waiters.popleft().future.cancel()
            raise
        finally:
            self._driver = None

    async def _serve_open(self) -> None:
        if self._state is not ConnectionState.OPEN:
            self._set_state(ConnectionState.CONNECTING)
            try:
                handle = await self._connect()
            except Exception as exc:
                self._set_state(ConnectionState.CLOSED)
                logger.warning("Connecting %s failed: %s", self._name, exc)
                self._settle(_Request.OPEN, error=exc)
                return
            self._handle = handle
            self._set_state(ConnectionState.OPEN)
        self._settle(_Request.OPEN, result=self._handle)

    async def _serve_close(self) -> None:
        if self._state is ConnectionState.OPEN:
            handle = cast("H", self._handle)
            self._set_state(ConnectionState.CLOSING)
            try:
                await self._disconnect(handle)
            except Exception as exc:
                self._handle = None
                self._set_state(ConnectionState.CLOSED)
                logger.warning("Closing %s failed: %s", self._name, exc)
                self._settle(_Request.CLOSE, error=exc)
                return
            self._handle = None
            self._set_state(ConnectionState.CLOSED)
        self._settle(_Request.CLOSE, result=None)

    def _settle(
        self,
        request: _Request,
        *,
        result: Any = None,
        error: BaseException | None = None,
    ) -> None:
        """Resolve the run of same-kind requests at the head of the queue."""
        settled = 0
        while self._waiters and self._waiters[0].request is request:
            waiter = self._waiters.popleft()
            if waiter.future.done():
                continue
            if error is not None:
                waiter.future.set_exception(error)
            else:
                waiter.future.set_result(result)
            settled += 1
        logger.debug(
            "Settled %d %s request(s) for %s", settled, request.value, self._name
        )


def _motor_client_factory() -> Callable[..., Any]:
    try:
        from motor.motor_asyncio import AsyncIOMotorClient
    except ImportError as e:
        raise MongoConnectionError("motor is required; install with motor>=3.3.0") from e
    return AsyncIOMotorClient


class MongoConnectionManager:
    """Wrap the Motor client with a single-flight lifecycle and health check.

    ``options`` are passed verbatim to the client as keyword arguments.
    The database is ``database`` when given, else the URI's default
    database, else ``"test"``.
    """

    def __init__(
        self,
        url: str,
        options: Mapping[str, Any] | None = None,
        *,
        database: str | None = None,
        client_factory: Callable[..., Any] | None = None,
        verify_connection: bool = True,
    ) -> None:
        if not isinstance(url, str) or not url:
            raise ArgumentError("Connection url has to be a non-empty string")
        if options is not None and not isinstance(options, Mapping):
            raise ArgumentError("Connection options have to be a mapping")
        if database is not None and (not isinstance(database, str) or not database):
            raise ArgumentError("Database name has to be a non-empty string")
        self._url = url
        self._options = dict(options or {})
        self._database = database
        self._client_factory = client_factory
        self._verify_connection = verify_connection
        self._client: AsyncIOMotorClient[Any] | None = None
        self._gate: ConnectionGate[AsyncIOMotorDatabase[Any]] = ConnectionGate(
            self._connect, self._disconnect, name="mongodb"
        )

    @property
    def url(self) -> str:
        return self._url

    @property
    def options(self) -> dict[str, Any]:
        return dict(self._options)

    @property
    def state(self) -> ConnectionState:
        return self._gate.state

    @property
    def client(self) -> AsyncIOMotorClient[Any]:
        """Return the Motor client; raises if not connected."""
        if self._client is None or self._gate.state is not ConnectionState.OPEN:
            raise MongoConnectionError("Not connected; call open() first")
        return self._client

    async def open(self) -> AsyncIOMotorDatabase[Any]:
        return await self._gate.open()

    async def close(self) -> None:
        await self._gate.close()

    async def get_database(self) -> AsyncIOMotorDatabase[Any]:
        """Return the database handle, opening the connection if needed."""
        return await self._gate.get_handle()

    async def health_check(self) -> bool:
        """Ping the server; return True if reachable. Never opens a connection."""
        if self._client is None or self._gate.state is not ConnectionState.OPEN:
            return False
        try:
            await self._client.admin.command("ping")
            return True
        except Exception:  # noqa: BLE001
            return False

    async def _connect(self) -> AsyncIOMotorDatabase[Any]:
        factory = self._client_factory or _motor_client_factory()
        try:
            client = factory(self._url, **self._options)
        except Exception as e:
            raise MongoConnectionError(str(e)) from e
        try:
            if self._verify_connection:
                await client.admin.command("ping")
            # Default database as parsed by the client from the URI.
            name = (
                self._database
                or client.get_default_database(DEFAULT_DATABASE).name
            )
            handle = client.get_database(name)
        except Exception as e:
            await _close_client(client)
            raise MongoConnectionError(str(e)) from e
        self._client = client
        logger.debug("Connected to MongoDB database %s", handle.name)
        return handle

    async def _disconnect(self, handle: AsyncIOMotorDatabase[Any]) -> None:  # noqa: ARG002
        client, self._client = self._client, None
        if client is None:
            return
        try:
            await _close_client(client)
        except Exception as e:
            raise MongoConnectionError(str(e)) from e


async def _close_client(client: Any) -> None:
    # Motor's close() is synchronous; some test doubles return a coroutine.
    result = client.close()
    if inspect.isawaitable(result):
        await result
