"""
WebSocket Broadcast Hub for live reload.

Features:
- Connection registry guarded by an asyncio lock
- One JSON serialization per broadcast, fanned out with asyncio.gather
- Per-client failure isolation: a failed send is logged and skipped
- Connections are removed only by their own receive loop
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any

from fastapi import WebSocket

from .events import ChangeEvent


__all__ = ["WebSocketManager"]

logger = logging.getLogger(__name__)


class WebSocketManager:
    """
    Tracks live-reload subscribers and fans ChangeEvents out to them.

    Delivery is best effort: a client that misses a message re-fetches
    state on its next event or reload.
    """

    __slots__ = ("connections", "connection_id_counter", "stats", "_lock", "_closed")

    def __init__(self):
        self.connections: dict[str, WebSocket] = {}
        self.connection_id_counter = itertools.count(1)
        self._lock = asyncio.Lock()
        self._closed = False

        self.stats = {
            "total_connections": 0,
            "total_broadcast_calls": 0,
            "failed_sends": 0,
        }

    @property
    def connection_count(self) -> int:
        return len(self.connections)

    async def subscribe(self, websocket: WebSocket) -> None:
        """
        Serve one subscriber until it disconnects.

        Accepts the socket, registers it, then drains inbound frames (the
        protocol is server-push only) until the client goes away or a
        receive fails.
        """
        if self._closed:
            await websocket.close(code=1001)
            return

        await websocket.accept()
        connection_id = f"ws_{next(self.connection_id_counter)}"
        async with self._lock:
            self.connections[connection_id] = websocket
            self.stats["total_connections"] += 1
        logger.info("WebSocket connected: %s (total: %d)", connection_id, self.connection_count)

        try:
            while True:
                message = await websocket.receive()
                if message.get("type") == "websocket.disconnect":
                    break
        except Exception as e:
            logger.debug("Receive failed on %s: %s", connection_id, e)
        finally:
            async with self._lock:
                self.connections.pop(connection_id, None)
            await self._close_quietly(connection_id, websocket)
            logger.info("WebSocket disconnected: %s (remaining: %d)", connection_id, self.connection_count)

    async def broadcast(self, event: ChangeEvent | dict[str, Any]) -> int:
        """
        Send ``event`` to every current subscriber.

        Returns:
            Number of successful sends
        """
        payload = event.to_json() if isinstance(event, ChangeEvent) else ChangeEvent(**event).to_json()

        async with self._lock:
            snapshot = list(self.connections.items())
        if not snapshot:
            return 0

        self.stats["total_broadcast_calls"] += 1
        results = await asyncio.gather(
            *(self._send(conn_id, ws, payload) for conn_id, ws in snapshot)
        )
        sent = sum(1 for ok in results if ok)
        logger.debug("Broadcast %s to %d/%d clients", payload, sent, len(snapshot))
        return sent

    async def _send(self, connection_id: str, websocket: WebSocket, payload: str) -> bool:
        try:
            await websocket.send_text(payload)
            return True
        except Exception as e:
            self.stats["failed_sends"] += 1
            logger.warning("Error sending to %s: %s", connection_id, e)
            return False

    async def close(self) -> None:
        """Refuse new subscribers and close every live connection."""
        self._closed = True
        async with self._lock:
            snapshot = list(self.connections.items())
            self.connections.clear()
        for connection_id, websocket in snapshot:
            await self._close_quietly(connection_id, websocket)

    @staticmethod
    async def _close_quietly(connection_id: str, websocket: WebSocket) -> None:
        try:
            await websocket.close()
        except Exception as e:
            # Already closed by the peer or by shutdown.
            logger.debug("Close of %s failed: %s", connection_id, e)

    def get_stats(self) -> dict[str, Any]:
        return {**self.stats, "active_connections": self.connection_count}
