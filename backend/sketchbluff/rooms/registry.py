from __future__ import annotations

from dataclasses import dataclass, field
from threading import RLock


@dataclass
class Connection:
    id: str
    name: str | None = None
    rooms: set[str] = field(default_factory=set)


class ConnectionRegistry:
    """Live connections keyed by socket id.

    Every operation on an unknown connection id is a no-op.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._connections: dict[str, Connection] = {}

    def __contains__(self, connection_id: object) -> bool:
        with self._lock:
            return connection_id in self._connections

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)

    def register(self, connection_id: str) -> Connection:
        with self._lock:
            conn = self._connections.get(connection_id)
            if conn is None:
                conn = Connection(id=connection_id)
                self._connections[connection_id] = conn
            return conn

    def get(self, connection_id: str) -> Connection | None:
        with self._lock:
            return self._connections.get(connection_id)

    def set_name(self, connection_id: str, name: str | None) -> None:
        with self._lock:
            conn = self._connections.get(connection_id)
            if conn is not None:
                conn.name = name

    def name_of(self, connection_id: str) -> str | None:
        with self._lock:
            conn = self._connections.get(connection_id)
            return conn.name if conn else None

    def rooms_of(self, connection_id: str) -> list[str]:
        with self._lock:
            conn = self._connections.get(connection_id)
            return sorted(conn.rooms) if conn else []

    def add_room(self, connection_id: str, room_id: str) -> None:
        with self._lock:
            conn = self._connections.get(connection_id)
            if conn is not None:
                conn.rooms.add(room_id)

    def discard_room(self, connection_id: str, room_id: str) -> None:
        with self._lock:
            conn = self._connections.get(connection_id)
            if conn is not None:
                conn.rooms.discard(room_id)

    def unregister(self, connection_id: str) -> set[str]:
        """Drop the connection and return the rooms it still belonged to."""
        with self._lock:
            conn = self._connections.pop(connection_id, None)
            if conn is None:
                return set()
            return set(conn.rooms)
