import asyncio
import logging
from typing import Any, Dict, FrozenSet, Optional, Set

from fastapi import WebSocket
from starlette.websockets import WebSocketDisconnect, WebSocketState
from websockets.exceptions import ConnectionClosed

logger = logging.getLogger(__name__)


class ClientConnection:
    """
    A browser socket with its own FIFO outbox.

    Everything sent to the client goes through ``deliver``; a single sender task
    drains the outbox so messages reach the client in the order they were queued.
    """

    def __init__(self, connection_id: str, websocket: WebSocket, outbox_size: int = 100, send_timeout: float = 3.0):
        self.connection_id = connection_id
        self.websocket = websocket
        self.send_timeout = send_timeout
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=outbox_size)
        self._sender: Optional[asyncio.Task] = None

    def start(self):
        if self._sender is None:
            self._sender = asyncio.create_task(self._pump())

    def deliver(self, message: Dict[str, Any]) -> bool:
        try:
            self.outbox.put_nowait(message)
            return True
        except asyncio.QueueFull:
            logger.warning(f"Outbox full for client {self.connection_id}; dropping {message.get('type')} message.")
            return False

    async def _pump(self):
        while True:
            message = await self.outbox.get()
            try:
                if self.websocket.client_state != WebSocketState.CONNECTED:
                    logger.warning(f"Client {self.connection_id} no longer connected; dropping {message.get('type')} message.")
                    continue
                await asyncio.wait_for(self.websocket.send_json(message), timeout=self.send_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Timed out sending {message.get('type')} to client {self.connection_id}; message dropped.")
            except (WebSocketDisconnect, ConnectionClosed, RuntimeError) as e:
                logger.warning(f"WebSocket for client {self.connection_id} closed while sending: {e}")
                break

    async def close(self):
        if self._sender is not None:
            self._sender.cancel()
            try:
                await self._sender
            except asyncio.CancelledError:
                pass
            self._sender = None


class RoomRegistry:
    """Which connection is in which room. All access goes through one lock."""

    def __init__(self):
        self._lock = asyncio.Lock()
        self._room_by_connection: Dict[str, str] = {}
        self._connections: Dict[str, ClientConnection] = {}
        self._members: Dict[str, Set[str]] = {}

    async def join(self, connection: ClientConnection, room_name: str) -> Optional[str]:
        """Puts ``connection`` in ``room_name``, leaving its previous room. Returns the previous room."""
        async with self._lock:
            previous = self._remove(connection.connection_id)
            self._room_by_connection[connection.connection_id] = room_name
            self._connections[connection.connection_id] = connection
            self._members.setdefault(room_name, set()).add(connection.connection_id)
        logger.info(f"Client {connection.connection_id} joined room: {room_name}")
        return previous

    async def leave(self, connection_id: str) -> Optional[str]:
        async with self._lock:
            room_name = self._remove(connection_id)
        if room_name is not None:
            logger.info(f"Client {connection_id} left room: {room_name}")
        return room_name

    def _remove(self, connection_id: str) -> Optional[str]:
        room_name = self._room_by_connection.pop(connection_id, None)
        self._connections.pop(connection_id, None)
        if room_name is not None:
            members = self._members.get(room_name)
            if members is not None:
                members.discard(connection_id)
                if not members:
                    del self._members[room_name]
        return room_name

    async def members_of(self, room_name: str) -> FrozenSet[ClientConnection]:
        async with self._lock:
            return frozenset(self._connections[cid] for cid in self._members.get(room_name, ()))

    async def room_of(self, connection_id: str) -> Optional[str]:
        async with self._lock:
            return self._room_by_connection.get(connection_id)

    async def counts(self) -> Dict[str, int]:
        async with self._lock:
            return {room: len(members) for room, members in self._members.items()}


class SlideEventRelay:
    """Fans a message out to the current members of a room. Never waits for delivery."""

    def __init__(self, registry: RoomRegistry):
        self.registry = registry

    async def publish(self, room_name: str, message: Dict[str, Any]) -> int:
        members = await self.registry.members_of(room_name)
        if not members:
            logger.debug(f"No clients in room {room_name}; dropping {message.get('type')} message.")
            return 0

        delivered = sum(1 for connection in members if connection.deliver(message))
        logger.info(f"Relayed {message.get('type')} to {delivered}/{len(members)} client(s) in room {room_name}")
        return delivered
