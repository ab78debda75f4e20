"""Unit tests for ConnectionGate and MongoConnectionManager (without real MongoDB)."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from mongomock_motor import AsyncMongoMockClient

from entity_core import ArgumentError
from entity_mongo.connection import (
    ConnectionGate,
    ConnectionState,
    MongoConnectionManager,
)
from entity_mongo.exceptions import MongoConnectionError


async def _spin(times: int = 5) -> None:
    for _ in range(times):
        await asyncio.sleep(0)


class _BlockingConnect:
    """Connect callable that waits until released."""

    def __init__(self, handle: object = None) -> None:
        self.handle = handle if handle is not None else object()
        self.release = asyncio.Event()
        self.calls = 0
        self.error: Exception | None = None

    async def __call__(self) -> object:
        self.calls += 1
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.handle


# ── ConnectionGate ──────────────────────────────────────────────────


class TestGateOpen:
    async def test_concurrent_opens_share_one_connect(self) -> None:
        connect = _BlockingConnect()
        gate = ConnectionGate(connect, AsyncMock())

        tasks = [asyncio.create_task(gate.open()) for _ in range(10)]
        await _spin()
        assert gate.state is ConnectionState.CONNECTING
        assert connect.calls == 1

        connect.release.set()
        handles = await asyncio.gather(*tasks)

        assert connect.calls == 1
        assert all(handle is connect.handle for handle in handles)
        assert gate.state is ConnectionState.OPEN

    async def test_open_when_open_returns_handle(self) -> None:
        handle = object()
        connect = AsyncMock(return_value=handle)
        gate = ConnectionGate(connect, AsyncMock())

        assert await gate.open() is handle
        assert await gate.open() is handle
        assert await gate.get_handle() is handle
        connect.assert_awaited_once()

    async def test_get_handle_connects_lazily(self) -> None:
        handle = object()
        gate = ConnectionGate(AsyncMock(return_value=handle), AsyncMock())
        assert gate.state is ConnectionState.CLOSED
        assert await gate.get_handle() is handle
        assert gate.state is ConnectionState.OPEN

    async def test_failure_reaches_every_waiter(self) -> None:
        connect = _BlockingConnect()
        connect.error = RuntimeError("unreachable")
        gate = ConnectionGate(connect, AsyncMock())

        tasks = [asyncio.create_task(gate.open()) for _ in range(5)]
        await _spin()
        connect.release.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert all(result is connect.error for result in results)
        assert connect.calls == 1
        assert gate.state is ConnectionState.CLOSED
        assert gate.is_idle

    async def test_no_retry_until_next_open(self) -> None:
        handle = object()
        connect = AsyncMock(side_effect=[RuntimeError("down"), handle])
        gate = ConnectionGate(connect, AsyncMock())

        with pytest.raises(RuntimeError, match="down"):
            await gate.open()
        assert connect.await_count == 1

        assert await gate.open() is handle
        assert connect.await_count == 2

    async def test_cancelled_waiter_is_skipped(self) -> None:
        connect = _BlockingConnect()
        gate = ConnectionGate(connect, AsyncMock())

        cancelled = asyncio.create_task(gate.open())
        kept = asyncio.create_task(gate.open())
        await _spin()
        cancelled.cancel()
        connect.release.set()

        assert await kept is connect.handle
        with pytest.raises(asyncio.CancelledError):
            await cancelled


class TestGateClose:
    async def test_close_when_closed_is_a_no_op(self) -> None:
        disconnect = AsyncMock()
        gate = ConnectionGate(AsyncMock(), disconnect)

        await gate.close()
        await gate.close()

        disconnect.assert_not_awaited()
        assert gate.state is ConnectionState.CLOSED

    async def test_close_is_idempotent(self) -> None:
        handle = object()
        disconnect = AsyncMock()
        gate = ConnectionGate(AsyncMock(return_value=handle), disconnect)
        await gate.open()

        await asyncio.gather(gate.close(), gate.close(), gate.close())
        await gate.close()

        disconnect.assert_awaited_once_with(handle)
        assert gate.state is ConnectionState.CLOSED

    async def test_close_while_connecting_waits_for_connect(self) -> None:
        connect = _BlockingConnect()
        disconnect = AsyncMock()
        gate = ConnectionGate(connect, disconnect)

        opener = asyncio.create_task(gate.open())
        await _spin()
        closer = asyncio.create_task(gate.close())
        await _spin()
        assert not closer.done()

        connect.release.set()
        assert await opener is connect.handle
        await closer

        disconnect.assert_awaited_once_with(connect.handle)
        assert gate.state is ConnectionState.CLOSED

    async def test_close_after_failed_connect(self) -> None:
        connect = _BlockingConnect()
        connect.error = RuntimeError("down")
        disconnect = AsyncMock()
        gate = ConnectionGate(connect, disconnect)

        opener = asyncio.create_task(gate.open())
        await _spin()
        closer = asyncio.create_task(gate.close())
        connect.release.set()

        with pytest.raises(RuntimeError):
            await opener
        await closer
        disconnect.assert_not_awaited()

    async def test_close_failure_leaves_gate_closed(self) -> None:
        gate = ConnectionGate(
            AsyncMock(return_value=object()),
            AsyncMock(side_effect=RuntimeError("stuck")),
        )
        await gate.open()

        with pytest.raises(RuntimeError, match="stuck"):
            await gate.close()
        assert gate.state is ConnectionState.CLOSED

    async def test_requests_are_served_in_order(self) -> None:
        connect = _BlockingConnect()
        disconnect = AsyncMock()
        gate = ConnectionGate(connect, disconnect)

        first = asyncio.create_task(gate.open())
        await _spin()
        middle = asyncio.create_task(gate.close())
        last = asyncio.create_task(gate.open())
        await _spin()

        connect.release.set()
        await asyncio.gather(first, middle, last)

        assert connect.calls == 2
        disconnect.assert_awaited_once()
        assert gate.state is ConnectionState.OPEN


# ── MongoConnectionManager ──────────────────────────────────────────


def _mock_factory(client):
    factory = MagicMock(return_value=client)
    return factory


class TestManager:
    @pytest.mark.parametrize("url", ["", None, 42])
    def test_invalid_url(self, url) -> None:
        with pytest.raises(ArgumentError):
            MongoConnectionManager(url)

    def test_invalid_options(self) -> None:
        with pytest.raises(ArgumentError):
            MongoConnectionManager("mongodb://localhost", ["tz_aware"])  # type: ignore[arg-type]

    def test_client_raises_before_open(self) -> None:
        manager = MongoConnectionManager("mongodb://localhost:27017")
        with pytest.raises(MongoConnectionError, match="Not connected"):
            _ = manager.client

    async def test_database_from_url(self) -> None:
        manager = MongoConnectionManager(
            "mongodb://mock:27017/app",
            client_factory=AsyncMongoMockClient,
            verify_connection=False,
        )
        database = await manager.get_database()
        assert database.name == "app"
        await manager.close()

    async def test_default_database(self) -> None:
        manager = MongoConnectionManager(
            "mongodb://mock:27017",
            client_factory=_mock_factory(AsyncMongoMockClient()),
            verify_connection=False,
        )
        database = await manager.get_database()
        assert database.name == "test"
        await manager.close()

    async def test_default_database_comes_from_the_client(self) -> None:
        client = MagicMock()
        client.get_default_database.return_value.name = "from_srv"
        client.close = MagicMock(return_value=None)
        manager = MongoConnectionManager(
            "mongodb+srv://cluster.example.net/",
            client_factory=_mock_factory(client),
            verify_connection=False,
        )
        await manager.open()
        client.get_default_database.assert_called_once_with("test")
        client.get_database.assert_called_once_with("from_srv")
        await manager.close()

    async def test_explicit_database_skips_the_lookup(self) -> None:
        client = MagicMock()
        client.close = MagicMock(return_value=None)
        manager = MongoConnectionManager(
            "mongodb+srv://cluster.example.net/",
            database="app",
            client_factory=_mock_factory(client),
            verify_connection=False,
        )
        await manager.open()
        client.get_default_database.assert_not_called()
        client.get_database.assert_called_once_with("app")
        await manager.close()

    async def test_explicit_database_wins(self) -> None:
        manager = MongoConnectionManager(
            "mongodb://mock:27017/app",
            database="other",
            client_factory=_mock_factory(AsyncMongoMockClient()),
            verify_connection=False,
        )
        database = await manager.get_database()
        assert database.name == "other"
        await manager.close()

    async def test_options_are_passed_verbatim(self) -> None:
        factory = _mock_factory(AsyncMongoMockClient())
        manager = MongoConnectionManager(
            "mongodb://mock:27017/app",
            {"tz_aware": True, "maxPoolSize": 5},
            client_factory=factory,
            verify_connection=False,
        )
        await manager.open()
        factory.assert_called_once_with(
            "mongodb://mock:27017/app", tz_aware=True, maxPoolSize=5
        )
        await manager.close()

    async def test_factory_failure(self) -> None:
        cause = ValueError("bad option")
        manager = MongoConnectionManager(
            "mongodb://mock:27017",
            client_factory=MagicMock(side_effect=cause),
        )
        with pytest.raises(MongoConnectionError, match="bad option") as exc_info:
            await manager.open()
        assert exc_info.value.__cause__ is cause
        assert manager.state is ConnectionState.CLOSED

    async def test_ping_failure_closes_client(self) -> None:
        client = MagicMock()
        client.admin.command = AsyncMock(side_effect=RuntimeError("timeout"))
        client.close = MagicMock(return_value=None)
        manager = MongoConnectionManager(
            "mongodb://mock:27017", client_factory=_mock_factory(client)
        )

        with pytest.raises(MongoConnectionError, match="timeout"):
            await manager.open()
        client.close.assert_called_once()
        assert manager.state is ConnectionState.CLOSED

    async def test_ping_verifies_connection(self) -> None:
        client = AsyncMongoMockClient()
        manager = MongoConnectionManager(
            "mongodb://mock:27017/app", client_factory=_mock_factory(client)
        )
        await manager.open()
        assert manager.client is client
        assert manager.state is ConnectionState.OPEN
        await manager.close()

    async def test_close_closes_client(self) -> None:
        client = MagicMock()
        client.admin.command = AsyncMock(return_value={"ok": 1})
        client.close = MagicMock(return_value=None)
        manager = MongoConnectionManager(
            "mongodb://mock:27017", client_factory=_mock_factory(client)
        )
        await manager.open()
        await manager.close()
        await manager.close()

        client.close.assert_called_once()
        with pytest.raises(MongoConnectionError):
            _ = manager.client

    async def test_health_check(self) -> None:
        manager = MongoConnectionManager(
            "mongodb://mock:27017/app",
            client_factory=_mock_factory(AsyncMongoMockClient()),
            verify_connection=False,
        )
        assert await manager.health_check() is False
        await manager.open()
        assert await manager.health_check() is True
        await manager.close()
        assert await manager.health_check() is False
