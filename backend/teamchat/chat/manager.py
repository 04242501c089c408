"""WebSocket connection hub for team chat rooms.

Tracks which live connections have joined which room and delivers event
frames to them. Every frame has the shape ``{"event": name, "data": payload}``.

Key features:
    - Room-scoped delivery: all members, all but one, or a single connection
    - Concurrent broadcasting with asyncio.gather()
    - Automatic dead connection cleanup

Thread Safety:
    This implementation is designed for async/await usage with a single event loop.
    It is NOT thread-safe for concurrent access from multiple threads.

Performance Notes:
    - Broadcasting uses asyncio.gather() for concurrent message delivery
    - Failed connections are automatically removed during broadcast
    - Uvicorn handles ping/pong at the protocol level (see server settings)
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)


def make_frame(event: str, data: Any) -> dict:
    """Build an outbound event frame."""
    return {"event": event, "data": data}


class ConnectionManager:
    """Manages the WebSocket connections joined to each chat room.

    Membership in a transport room only controls delivery; presence and
    authorization are tracked elsewhere.
    """

    def __init__(self) -> None:
        # room_id -> list of active WebSocket connections
        self.active_connections: Dict[str, List[WebSocket]] = {}

    def join(self, websocket: WebSocket, room_id: str) -> None:
        """Add a connection to a room (no-op if already joined)."""
        connections = self.active_connections.setdefault(room_id, [])
        if websocket not in connections:
            connections.append(websocket)

    def leave(self, websocket: WebSocket, room_id: str) -> None:
        """Remove a connection from a room; empty rooms are dropped."""
        connections = self.active_connections.get(room_id)
        if connections is None:
            return
        if websocket in connections:
            connections.remove(websocket)
        if not connections:
            del self.active_connections[room_id]

    def remove_connection(self, websocket: WebSocket) -> List[str]:
        """Remove a connection from every room it joined.

        Returns:
            The room ids the connection was removed from.
        """
        rooms = [
            room_id for room_id, conns in self.active_connections.items()
            if websocket in conns
        ]
        for room_id in rooms:
            self.leave(websocket, room_id)
        return rooms

    async def send(self, websocket: WebSocket, event: str, data: Any) -> bool:
        """Send one event frame to a single connection."""
        return await self._safe_send(websocket, make_frame(event, data))

    async def broadcast(self, event: str, data: Any, room_id: str) -> None:
        """Broadcast an event to all connections in a room concurrently.

        Uses asyncio.gather() for concurrent message delivery, which is
        significantly faster than sequential iteration for rooms with
        many connections.

        This method safely handles disconnected clients by removing them
        from the connection list if sending fails.

        Args:
            event: Event name.
            data: JSON-serializable payload.
            room_id: Room to broadcast to.
        """
        await self._deliver(make_frame(event, data), room_id, exclude_websocket=None)

    async def broadcast_except(
        self, event: str, data: Any, room_id: str, exclude_websocket: WebSocket
    ) -> None:
        """Broadcast an event to all connections in a room except one.

        Used for presence and typing notifications that the originator
        shouldn't see.
        """
        await self._deliver(make_frame(event, data), room_id, exclude_websocket=exclude_websocket)

    async def _deliver(
        self, frame: dict, room_id: str, exclude_websocket: Optional[WebSocket]
    ) -> None:
        if room_id not in self.active_connections:
            return

        connections = [
            conn for conn in self.active_connections[room_id]
            if conn is not exclude_websocket
        ]
        if not connections:
            return

        results = await asyncio.gather(
            *[self._safe_send(conn, frame) for conn in connections],
            return_exceptions=True
        )

        # Remove failed connections
        failed_connections = [
            conn for conn, success in zip(connections, results)
            if success is not True
        ]
        self._cleanup_connections(room_id, failed_connections)

    async def _safe_send(self, connection: WebSocket, frame: dict) -> bool:
        """Send a frame to a WebSocket connection with error handling.

        Returns:
            True if successful, False if connection failed.
        """
        try:
            await connection.send_json(frame)
            return True
        except Exception as e:
            logger.debug(f"Failed to send to connection: {e}")
            return False

    def _cleanup_connections(
        self, room_id: str, failed_connections: List[WebSocket]
    ) -> None:
        """Remove failed connections from a room."""
        if not failed_connections or room_id not in self.active_connections:
            return

        for conn in failed_connections:
            if conn in self.active_connections.get(room_id, []):
                self.leave(conn, room_id)
                logger.debug(f"Removed dead connection from room {room_id}")

    def get_room_size(self, room_id: str) -> int:
        """Get the number of active connections in a room."""
        return len(self.active_connections.get(room_id, []))
