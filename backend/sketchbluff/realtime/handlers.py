from __future__ import annotations

from flask import request
from flask_socketio import SocketIO

from . import events as ev
from .router import EventRouter


def register_socketio_handlers(socketio: SocketIO, router: EventRouter) -> None:
    def _make_handler(name: str):
        def _handler(data=None):
            result = router.handle(request.sid, name, data)
            if name in ev.ACK_EVENTS:
                # One-element tuple so a None result reaches the client as null.
                return (result,)
            return None

        _handler.__name__ = f"on_{name.replace('-', '_')}"
        return _handler

    for name in ev.INBOUND_EVENT_NAMES:
        socketio.on_event(name, _make_handler(name))

    @socketio.on("connect")
    def on_connect(auth=None):
        router.connect(request.sid)

    @socketio.on("disconnect")
    def on_disconnect(*args):
        router.dispatch(request.sid, ev.Disconnect())
