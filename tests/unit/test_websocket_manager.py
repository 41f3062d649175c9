"""
Unit Tests for the WebSocket broadcast hub.

Test Coverage:
- Subscribe lifecycle (accept, register, unregister, close)
- Broadcast fan-out with a single serialization
- Send failures isolated and non-evicting
- Shutdown
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from repobook.core.events import ChangeEvent
from repobook.core.websocket_manager import WebSocketManager


DISCONNECT = {"type": "websocket.disconnect", "code": 1000}


def blocking_socket(release: asyncio.Event) -> AsyncMock:
    """A socket whose receive loop ends only when ``release`` is set."""
    ws = AsyncMock()

    async def receive():
        await release.wait()
        return DISCONNECT

    ws.receive.side_effect = receive
    return ws


async def wait_until(predicate, timeout=1.0):
    async def poll():
        while not predicate():
            await asyncio.sleep(0.01)
    await asyncio.wait_for(poll(), timeout)


class TestChangeEvent:

    def test_wire_forms(self):
        assert ChangeEvent.file_changed("docs/a.md").to_json() == '{"type":"file-changed","path":"docs/a.md"}'
        assert ChangeEvent.tree_updated().to_json() == '{"type":"tree-updated"}'

    def test_hashable_and_comparable(self):
        assert ChangeEvent.file_changed("a.md") == ChangeEvent.file_changed("a.md")
        assert len({ChangeEvent.tree_updated(), ChangeEvent.tree_updated()}) == 1


@pytest.mark.asyncio
class TestWebSocketManager:
    """Test suite for the broadcast hub."""

    async def test_subscribe_until_disconnect(self):
        """Inbound frames are drained; disconnect unregisters and closes."""
        manager = WebSocketManager()
        ws = AsyncMock()
        ws.receive.side_effect = [{"type": "websocket.receive", "text": "ping"}, DISCONNECT]

        await manager.subscribe(ws)

        ws.accept.assert_awaited_once()
        ws.close.assert_awaited()
        assert manager.connection_count == 0
        assert manager.stats["total_connections"] == 1

    async def test_receive_failure_unregisters(self):
        manager = WebSocketManager()
        ws = AsyncMock()
        ws.receive.side_effect = RuntimeError("socket gone")

        await manager.subscribe(ws)

        assert manager.connection_count == 0

    async def test_broadcast_reaches_all_subscribers(self):
        manager = WebSocketManager()
        release = asyncio.Event()
        sockets = [blocking_socket(release) for _ in range(3)]
        tasks = [asyncio.create_task(manager.subscribe(ws)) for ws in sockets]
        await wait_until(lambda: manager.connection_count == 3)

        sent = await manager.broadcast(ChangeEvent.file_changed("docs/a.md"))

        assert sent == 3
        for ws in sockets:
            ws.send_text.assert_awaited_once_with('{"type":"file-changed","path":"docs/a.md"}')

        release.set()
        await asyncio.gather(*tasks)
        assert manager.connection_count == 0

    async def test_send_failure_is_isolated(self):
        """A failing client neither blocks others nor gets evicted."""
        manager = WebSocketManager()
        release = asyncio.Event()
        good = blocking_socket(release)
        bad = blocking_socket(release)
        bad.send_text.side_effect = RuntimeError("broken pipe")
        tasks = [asyncio.create_task(manager.subscribe(ws)) for ws in (bad, good)]
        await wait_until(lambda: manager.connection_count == 2)

        sent = await manager.broadcast(ChangeEvent.tree_updated())

        assert sent == 1
        good.send_text.assert_awaited_once_with('{"type":"tree-updated"}')
        assert manager.connection_count == 2
        assert manager.stats["failed_sends"] == 1

        release.set()
        await asyncio.gather(*tasks)

    async def test_broadcast_without_subscribers(self):
        manager = WebSocketManager()

        assert await manager.broadcast(ChangeEvent.tree_updated()) == 0

    async def test_broadcast_accepts_message_dict(self):
        manager = WebSocketManager()
        release = asyncio.Event()
        ws = blocking_socket(release)
        task = asyncio.create_task(manager.subscribe(ws))
        await wait_until(lambda: manager.connection_count == 1)

        await manager.broadcast({"type": "file-changed", "path": "a.md"})

        ws.send_text.assert_awaited_once_with('{"type":"file-changed","path":"a.md"}')
        release.set()
        await task

    async def test_close_refuses_new_subscribers(self):
        manager = WebSocketManager()
        release = asyncio.Event()
        live = blocking_socket(release)
        task = asyncio.create_task(manager.subscribe(live))
        await wait_until(lambda: manager.connection_count == 1)

        await manager.close()

        live.close.assert_awaited()
        assert manager.connection_count == 0

        late = AsyncMock()
        await manager.subscribe(late)
        late.accept.assert_not_awaited()
        late.close.assert_awaited_once()

        release.set()
        await task
