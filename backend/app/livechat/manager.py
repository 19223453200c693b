"""WebSocket connection manager for livechat room subscribers.

Visitors (and any other client holding a valid room token) subscribe to a
room stream and receive every message delivered to that room.

Key features:
    - Multiple rooms with isolated subscriber lists
    - Concurrent message broadcasting with asyncio.gather()
    - Automatic dead connection cleanup

Thread Safety:
    This implementation is designed for async/await usage with a single event loop.
    It is NOT thread-safe for concurrent access from multiple threads.
"""
import asyncio
import logging
from typing import Dict, List

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks WebSocket subscribers per room and fans messages out to them.

    Note:
        This is a singleton-style global instance. All WebSocket handlers
        and the message pipeline share the same ConnectionManager.
    """

    def __init__(self) -> None:
        # room_id -> list of active WebSocket connections
        self.active_connections: Dict[str, List[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, room_id: str) -> None:
        """Accept a WebSocket connection and subscribe it to a room."""
        await websocket.accept()
        self.active_connections.setdefault(room_id, []).append(websocket)
        logger.info(f"[Manager] Subscriber joined room {room_id} ({self.get_room_size(room_id)} total)")

    def disconnect(self, websocket: WebSocket, room_id: str) -> None:
        connections = self.active_connections.get(room_id)
        if connections and websocket in connections:
            connections.remove(websocket)
        if connections is not None and not connections:
            del self.active_connections[room_id]

    async def broadcast(self, message: dict, room_id: str) -> None:
        """Broadcast a message to all connections in a room concurrently.

        Connections that fail to receive the message are dropped.

        Args:
            message: JSON-serializable message to broadcast.
            room_id: Room to broadcast to.
        """
        connections = list(self.active_connections.get(room_id, []))
        if not connections:
            return

        results = await asyncio.gather(
            *[self._safe_send(conn, message) for conn in connections],
            return_exceptions=True
        )

        failed_connections = [
            conn for conn, success in zip(connections, results)
            if success is False
        ]
        self._cleanup_connections(room_id, failed_connections)

    async def _safe_send(self, connection: WebSocket, message: dict) -> bool:
        """Send a message to a WebSocket connection.

        Returns:
            True if successful, False if connection failed.
        """
        try:
            await connection.send_json(message)
            return True
        except Exception as e:
            logger.debug(f"Failed to send to connection: {e}")
            return False

    def _cleanup_connections(
        self, room_id: str, failed_connections: List[WebSocket]
    ) -> None:
        for conn in failed_connections:
            self.disconnect(conn, room_id)
            logger.debug(f"Removed dead connection from room {room_id}")

    def get_room_size(self, room_id: str) -> int:
        """Get the number of active connections in a room."""
        return len(self.active_connections.get(room_id, []))

    def clear_room(self, room_id: str) -> None:
        self.active_connections.pop(room_id, None)


# Global instance shared by the router and the message pipeline
manager = ConnectionManager()
