from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from threading import RLock

from ..errors import NotAuthorized, NotFound
from .registry import ConnectionRegistry

logger = logging.getLogger(__name__)


@dataclass
class Room:
    id: str
    # dict keys keep insertion order, which makes leader succession stable.
    members: dict[str, None] = field(default_factory=dict)
    leader_id: str | None = None


@dataclass(frozen=True)
class Member:
    id: str
    name: str
    is_leader: bool

    def to_payload(self) -> dict:
        return {"id": self.id, "name": self.name, "isLeader": self.is_leader}


@dataclass(frozen=True)
class Departure:
    """Outcome of a member leaving (or being removed from) a room."""

    room_id: str
    remaining: list[str]
    new_leader_id: str | None
    leadership_changed: bool
    kicked: bool = False

    @property
    def room_empty(self) -> bool:
        return not self.remaining


class RoomDirectory:
    def __init__(self, registry: ConnectionRegistry, rng: random.Random | None = None) -> None:
        self._lock = RLock()
        self._rooms: dict[str, Room] = {}
        self._registry = registry
        self._rng = rng or random.Random()

    def __contains__(self, room_id: object) -> bool:
        with self._lock:
            return room_id in self._rooms

    def room_ids(self) -> list[str]:
        with self._lock:
            return list(self._rooms.keys())

    def leader_of(self, room_id: str) -> str | None:
        with self._lock:
            room = self._rooms.get(room_id)
            return room.leader_id if room else None

    def is_member(self, room_id: str, connection_id: str) -> bool:
        with self._lock:
            room = self._rooms.get(room_id)
            return bool(room) and connection_id in room.members

    def member_ids(self, room_id: str) -> list[str]:
        with self._lock:
            room = self._rooms.get(room_id)
            return list(room.members.keys()) if room else []

    def join(self, room_id: str, connection_id: str, requested_leader: bool = False) -> list[Member]:
        """Add a member, creating the room on first join.

        The first member of an empty room always becomes its leader, so the
        leader is settled atomically here rather than guessed by the client.
        ``requested_leader`` can therefore never promote a later joiner.
        """
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                room = Room(id=room_id)
                self._rooms[room_id] = room

            if connection_id not in room.members:
                was_empty = not room.members
                room.members[connection_id] = None
                if was_empty:
                    room.leader_id = connection_id
                    if not requested_leader:
                        logger.debug("room %s: first joiner %s made leader without asking", room_id, connection_id)

            self._registry.add_room(connection_id, room_id)
            return self.members_of(room_id)

    def leave(self, room_id: str, connection_id: str) -> Departure:
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None or connection_id not in room.members:
                raise NotFound(f"{connection_id} is not in room {room_id}")
            return self._remove_locked(room, connection_id)

    def kick(self, room_id: str, requester_id: str, target_id: str) -> Departure | None:
        """Remove ``target_id`` on behalf of the room leader.

        Returns None when the target is not a member.
        """
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                raise NotFound(f"room {room_id} does not exist")
            if room.leader_id != requester_id:
                raise NotAuthorized("only the room leader can kick")
            if target_id not in room.members:
                return None
            departure = self._remove_locked(room, target_id)
            return Departure(
                room_id=departure.room_id,
                remaining=departure.remaining,
                new_leader_id=departure.new_leader_id,
                leadership_changed=departure.leadership_changed,
                kicked=True,
            )

    def _remove_locked(self, room: Room, connection_id: str) -> Departure:
        del room.members[connection_id]
        self._registry.discard_room(connection_id, room.id)

        changed = False
        if room.leader_id == connection_id:
            room.leader_id = next(iter(room.members), None)
            changed = True

        remaining = list(room.members.keys())
        if not remaining:
            del self._rooms[room.id]
            logger.info("room %s is empty, removed", room.id)

        return Departure(
            room_id=room.id,
            remaining=remaining,
            new_leader_id=room.leader_id,
            leadership_changed=changed,
        )

    def members_of(self, room_id: str) -> list[Member]:
        with self._lock:
            room = self._rooms.get(room_id)
            if room is None:
                return []
            members = []
            for cid in room.members:
                name = self._registry.name_of(cid)
                if not name:
                    continue
                members.append(Member(id=cid, name=name, is_leader=cid == room.leader_id))
            return members

    def pick_random_non_empty_room(self) -> str | None:
        with self._lock:
            candidates = [rid for rid, room in self._rooms.items() if room.members]
            if not candidates:
                return None
            return self._rng.choice(candidates)
