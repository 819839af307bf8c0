import os
import random
import sys

import pytest

# Ensure the backend root (containing the `sketchbluff` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from sketchbluff.config import Config  # noqa: E402
from sketchbluff.realtime.router import EventRouter  # noqa: E402
from sketchbluff.server import create_app  # noqa: E402


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret'
    SOCKETIO_ASYNC_MODE = 'threading'
    PHASE_TIMERS_ENABLED = False
    TRUST_PROXY_HEADERS = False


class FakeTransport:
    """Records emits and resolves recipients the way Socket.IO rooms would."""

    def __init__(self):
        self.sent = []
        self.groups = {}
        self.tasks = []

    def emit(self, event, payload, to, skip_sid=None):
        if to in self.groups:
            recipients = set(self.groups[to])
        else:
            recipients = {to}
        recipients.discard(skip_sid)
        self.sent.append({'event': event, 'payload': payload, 'to': to, 'recipients': recipients})

    def enter_room(self, sid, room_id):
        self.groups.setdefault(room_id, set()).add(sid)

    def leave_room(self, sid, room_id):
        self.groups.get(room_id, set()).discard(sid)

    def start_background_task(self, target, *args):
        self.tasks.append((target, args))

    def sleep(self, seconds):
        pass

    def received(self, sid, event=None):
        return [
            m['payload'] for m in self.sent
            if sid in m['recipients'] and (event is None or m['event'] == event)
        ]

    def last(self, sid, event):
        got = self.received(sid, event)
        return got[-1] if got else None

    def clear(self):
        self.sent = []


class FakeClock:
    def __init__(self, start_ms=1_700_000_000_000):
        self.now = start_ms

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += int(seconds * 1000)


@pytest.fixture()
def transport():
    return FakeTransport()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def router(transport, clock):
    return EventRouter(transport, clock=clock, rng=random.Random(7), timers_enabled=False)


@pytest.fixture()
def join(router):
    def _join(sid, room_id, name, event='join-room', is_leader=False):
        router.connect(sid)
        router.handle(sid, event, {'roomId': room_id, 'userName': name, 'isLeader': is_leader})
    return _join


@pytest.fixture()
def flask_app():
    app, socketio = create_app(TestConfig)
    app.extensions['test.socketio'] = socketio
    yield app


@pytest.fixture()
def socketio(flask_app):
    return flask_app.extensions['test.socketio']


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()
