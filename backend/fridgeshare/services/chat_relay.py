"""In-process registry of live chat sockets, keyed by transaction id."""
from typing import Any, Dict, Optional, Set, Tuple

from fastapi import WebSocket

from ..core.logging import get_logger

logger = get_logger(__name__)


class ConnectionRegistry:
    """Maps each room (transaction id) to the sockets currently joined to it.

    One instance is built at application startup and handed to endpoints as
    a dependency. Entries are dropped on leave, on disconnect, and whenever
    a send to the socket fails.
    """

    def __init__(self):
        # room id -> id(socket) -> (socket, username)
        self._rooms: Dict[str, Dict[int, Tuple[WebSocket, str]]] = {}

    def join(self, room_id: str, username: str, websocket: WebSocket) -> None:
        self._rooms.setdefault(str(room_id), {})[id(websocket)] = (websocket, username)

    def leave(self, room_id: str, websocket: WebSocket) -> Optional[str]:
        """Remove a socket from a room. Returns the username if that user has
        no other socket left in the room."""
        room_id = str(room_id)
        members = self._rooms.get(room_id)
        if not members or id(websocket) not in members:
            return None
        _, username = members.pop(id(websocket))
        if not members:
            del self._rooms[room_id]
        if any(name == username for _, name in members.values()):
            return None
        return username

    def disconnect(self, websocket: WebSocket) -> Set[Tuple[str, str]]:
        """Drop a socket from every room. Returns (room_id, username) pairs of
        users who went fully offline in a room."""
        gone = set()
        for room_id in self.rooms_of(websocket):
            username = self.leave(room_id, websocket)
            if username:
                gone.add((room_id, username))
        return gone

    def rooms_of(self, websocket: WebSocket) -> Set[str]:
        return {room_id for room_id, members in self._rooms.items() if id(websocket) in members}

    def online_users(self, room_id: str) -> Set[str]:
        return {name for _, name in self._rooms.get(str(room_id), {}).values()}

    def is_joined(self, room_id: str, websocket: WebSocket) -> bool:
        return id(websocket) in self._rooms.get(str(room_id), {})

    async def broadcast(self, room_id: str, event: str, data: Any,
                        exclude: Optional[WebSocket] = None) -> int:
        """Send an event to every socket in the room except `exclude`.

        Returns the number of sockets reached. Sockets that fail are removed
        and logged; nothing is retried.
        """
        room_id = str(room_id)
        delivered = 0
        for websocket, username in list(self._rooms.get(room_id, {}).values()):
            if websocket is exclude:
                continue
            try:
                await websocket.send_json({"event": event, "data": data})
                delivered += 1
            except Exception as e:
                logger.warning("Dropping socket of %s in room %s: %s: %s",
                               username, room_id, type(e).__name__, e)
                self.leave(room_id, websocket)
        return delivered
