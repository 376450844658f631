"""
Event Relay - per-session publish/subscribe over pluggable connection handles.

The relay knows nothing about websockets: a transport adapter wraps each live
client in a ConnectionHandle and the relay only calls ``send``. Publishing is
serialised per session, so every subscriber of a session observes the same
relative order of messages.
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Set

logger = logging.getLogger(__name__)


class ConnectionHandle(ABC):
    """A live client connection as seen by the relay."""

    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        self.closed = False

    @abstractmethod
    async def send(self, message: Dict[str, Any]) -> None:
        """Deliver one JSON-compatible message. Raises if the peer is gone."""

    def __hash__(self) -> int:
        return hash(self.connection_id)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, ConnectionHandle) and other.connection_id == self.connection_id

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.connection_id!r})"


class EventRelay:
    """
    Explicit session room map: session_id -> set of connection handles.

    Delivery is at-most-once; a failed send marks the connection dead and
    removes it from every room without affecting the other subscribers.
    """

    def __init__(self):
        self._rooms: Dict[str, Set[ConnectionHandle]] = {}
        self._publish_locks: Dict[str, asyncio.Lock] = {}

    def subscribe(self, connection: ConnectionHandle, session_id: str) -> bool:
        """
        Add a connection to a session room.

        Returns:
            True if newly subscribed, False if it already was
        """
        room = self._rooms.setdefault(session_id, set())
        if connection in room:
            return False
        room.add(connection)
        logger.info(f"Connection {connection.connection_id} joined session room: {session_id}")
        return True

    def unsubscribe(self, connection: ConnectionHandle, session_id: str) -> None:
        """Remove a connection from one session room."""
        room = self._rooms.get(session_id)
        if room and connection in room:
            room.discard(connection)
            logger.info(f"Connection {connection.connection_id} left session room: {session_id}")
            if not room:
                del self._rooms[session_id]

    def drop_connection(self, connection: ConnectionHandle) -> List[str]:
        """
        Remove a connection from every room.

        Returns:
            Session ids the connection was subscribed to
        """
        left = []
        for session_id in list(self._rooms.keys()):
            room = self._rooms[session_id]
            if connection in room:
                room.discard(connection)
                left.append(session_id)
                if not room:
                    del self._rooms[session_id]
        return left

    def release(self, session_id: str) -> None:
        """Forget a session room and its publish lock."""
        room = self._rooms.pop(session_id, None)
        self._publish_locks.pop(session_id, None)
        if room is not None:
            logger.info(f"Released session room {session_id} ({len(room)} subscribers)")

    def subscriber_count(self, session_id: str) -> int:
        return len(self._rooms.get(session_id, ()))

    def connection_count(self) -> int:
        """Number of distinct connections subscribed to any room."""
        connections: Set[ConnectionHandle] = set()
        for room in self._rooms.values():
            connections.update(room)
        return len(connections)

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        lock = self._publish_locks.get(session_id)
        if lock is None:
            lock = asyncio.Lock()
            self._publish_locks[session_id] = lock
        return lock

    async def publish(self, session_id: str, message: Dict[str, Any]) -> int:
        """
        Deliver a message to every connection subscribed to the session.

        Calls for the same session are delivered one after another in call
        order; different sessions do not wait on each other.

        Returns:
            Number of connections the message was delivered to
        """
        async with self._lock_for(session_id):
            delivered = 0
            for connection in list(self._rooms.get(session_id, ())):
                if connection.closed:
                    self.drop_connection(connection)
                    continue
                try:
                    await connection.send(message)
                    delivered += 1
                except Exception as e:
                    logger.warning(
                        f"Dropping connection {connection.connection_id} after failed delivery "
                        f"to session {session_id}: {e}"
                    )
                    connection.closed = True
                    self.drop_connection(connection)
            return delivered
