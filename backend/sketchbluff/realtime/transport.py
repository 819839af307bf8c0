from __future__ import annotations

import logging
from typing import Any, Callable, Protocol

from flask_socketio import SocketIO

logger = logging.getLogger(__name__)


class Transport(Protocol):
    def emit(self, event: str, payload: Any, to: str, skip_sid: str | None = None) -> None: ...

    def enter_room(self, sid: str, room_id: str) -> None: ...

    def leave_room(self, sid: str, room_id: str) -> None: ...

    def start_background_task(self, target: Callable[..., Any], *args: Any) -> Any: ...

    def sleep(self, seconds: float) -> None: ...


class SocketIOTransport:
    """Fire-and-forget delivery over Flask-SocketIO.

    ``to`` is either a room id or a socket id (every socket sits in a
    personal room named after its sid).
    """

    def __init__(self, socketio: SocketIO, namespace: str = "/") -> None:
        self.socketio = socketio
        self.namespace = namespace

    def emit(self, event: str, payload: Any, to: str, skip_sid: str | None = None) -> None:
        try:
            self.socketio.emit(event, payload, to=to, skip_sid=skip_sid, namespace=self.namespace)
        except Exception:
            # Delivery is best-effort; a broken socket must not break the room.
            logger.warning("emit %s to %s failed", event, to, exc_info=True)

    def enter_room(self, sid: str, room_id: str) -> None:
        self.socketio.server.enter_room(sid, room_id, namespace=self.namespace)

    def leave_room(self, sid: str, room_id: str) -> None:
        try:
            self.socketio.server.leave_room(sid, room_id, namespace=self.namespace)
        except Exception:
            logger.debug("leave_room %s/%s failed", sid, room_id, exc_info=True)

    def start_background_task(self, target: Callable[..., Any], *args: Any) -> Any:
        return self.socketio.start_background_task(target, *args)

    def sleep(self, seconds: float) -> None:
        self.socketio.sleep(seconds)
