"""
Realtime connection and room registry.

WHAT: Tracks open WebSocket connections and which session rooms each has joined
WHY: Fan-out needs the set of live sockets per session
HOW: In-memory maps guarded by the event loop; bounded, process-scoped, rebuilt from zero on restart
"""

import asyncio
import itertools
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket

from ..core.config import settings
from ..core.security import Principal
from ..models.events import frame
from ..utils.exceptions import CapacityExceededException
from ..utils.logger import get_logger

logger = get_logger(__name__)

_connection_ids = itertools.count(1)


class Connection:
    """One authenticated WebSocket plus its joined rooms."""

    def __init__(self, websocket: WebSocket, principal: Principal):
        self.id = next(_connection_ids)
        self.websocket = websocket
        self.principal = principal
        self.rooms: Set[str] = set()
        # Frames from broadcasts and direct replies must not interleave on one socket
        self._send_lock = asyncio.Lock()

    async def send(self, event: str, data: Dict[str, Any]):
        async with self._send_lock:
            await self.websocket.send_json(frame(event, data))

    def __repr__(self) -> str:
        return f"Connection(id={self.id}, principal={self.principal.id})"


class RoomRegistry:
    """
    session_id -> connections, with capacity limits.

    All methods run on the event loop thread, so no locking is needed.
    """

    def __init__(self, max_connections: Optional[int] = None, max_rooms_per_connection: Optional[int] = None):
        self.max_connections = max_connections or settings.WS_MAX_CONNECTIONS
        self.max_rooms_per_connection = max_rooms_per_connection or settings.WS_MAX_ROOMS_PER_CONNECTION
        self._connections: Dict[int, Connection] = {}
        self._rooms: Dict[str, Dict[int, Connection]] = {}

    def register(self, connection: Connection):
        """
        Raises:
            CapacityExceededException: the process already holds max_connections sockets
        """
        if len(self._connections) >= self.max_connections:
            raise CapacityExceededException("Too many realtime connections", self.max_connections)
        self._connections[connection.id] = connection
        logger.debug(f"Registered {connection} ({len(self._connections)} open)")

    def unregister(self, connection: Connection):
        """Drop a connection from the registry and every room it joined. Idempotent."""
        self._connections.pop(connection.id, None)
        for session_id in list(connection.rooms):
            self.leave(connection, session_id)
        logger.debug(f"Unregistered {connection} ({len(self._connections)} open)")

    def join(self, connection: Connection, session_id: str):
        """
        Raises:
            CapacityExceededException: the connection already joined max_rooms_per_connection rooms
        """
        if session_id in connection.rooms:
            return
        if len(connection.rooms) >= self.max_rooms_per_connection:
            raise CapacityExceededException(
                "Too many rooms joined on this connection", self.max_rooms_per_connection
            )
        connection.rooms.add(session_id)
        self._rooms.setdefault(session_id, {})[connection.id] = connection

    def leave(self, connection: Connection, session_id: str):
        connection.rooms.discard(session_id)
        members = self._rooms.get(session_id)
        if members is None:
            return
        members.pop(connection.id, None)
        if not members:
            del self._rooms[session_id]

    def members(self, session_id: str) -> List[Connection]:
        """Snapshot of a room's connections, safe to iterate while sends await."""
        return list(self._rooms.get(session_id, {}).values())

    def stats(self) -> dict:
        return {"connections": len(self._connections), "rooms": len(self._rooms)}
