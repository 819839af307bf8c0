from __future__ import annotations

import logging
import random
from datetime import datetime, timezone
from threading import Lock, RLock
from typing import Any, Callable
from weakref import WeakValueDictionary

from ..errors import CoordinatorError, InvalidPayload, InvalidState, NotAuthorized, NotFound
from ..game import service
from ..game.models import GameSession, GameSettings
from ..rooms.directory import Departure, RoomDirectory
from ..rooms.registry import ConnectionRegistry
from . import events as ev
from .timers import PhaseClock
from .transport import Transport

logger = logging.getLogger(__name__)

SYSTEM_NAME = "System"
KICK_REASON = "You have been kicked by the room leader."


class RoomLock:
    """Re-entrant lock for one room. Kept alive only while someone holds it."""

    def __init__(self) -> None:
        self._lock = RLock()

    def __enter__(self) -> "RoomLock":
        self._lock.acquire()
        return self

    def __exit__(self, *exc: Any) -> None:
        self._lock.release()


def _iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


class EventRouter:
    """Owns all room, connection and game state for one server process.

    Every inbound event goes through ``dispatch``; mutations of a room
    happen under that room's lock, so a timer-driven transition can never
    interleave with a client action on the same room.
    """

    def __init__(
        self,
        transport: Transport,
        defaults: GameSettings | None = None,
        clock: Callable[[], int] = service.now_ms,
        rng: random.Random | None = None,
        timers_enabled: bool = True,
    ) -> None:
        self.transport = transport
        self.defaults = defaults or GameSettings()
        self.clock = clock
        self.rng = rng or random.Random()

        self.registry = ConnectionRegistry()
        self.directory = RoomDirectory(self.registry, rng=self.rng)
        self.sessions: dict[str, GameSession] = {}

        self._locks_guard = Lock()
        self._room_locks: WeakValueDictionary[str, RoomLock] = WeakValueDictionary()
        self._last_countdown: dict[str, int] = {}
        self.phase_clock = PhaseClock(self, transport) if timers_enabled else None

        self._handlers: dict[type, Callable[[str | None, Any], Any]] = {
            ev.JoinRoom: self._on_join_room,
            ev.JoinChat: self._on_join_chat,
            ev.SendMessage: self._on_send_message,
            ev.Signal: self._on_signal,
            ev.KickUser: self._on_kick_user,
            ev.GetRandomRoom: self._on_get_random_room,
            ev.LeaveRoom: self._on_leave_room,
            ev.Disconnect: self._on_disconnect,
            ev.StartGame: self._on_start_game,
            ev.SelectPrompt: self._on_select_prompt,
            ev.DrawingUpdate: self._on_drawing_update,
            ev.SubmitLie: self._on_submit_lie,
            ev.CastVote: self._on_vote,
            ev.NextRound: self._on_next_round,
            ev.EndGame: self._on_end_game,
            ev.PhaseExpired: self._on_phase_expired,
        }

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def room_lock(self, room_id: str) -> RoomLock:
        with self._locks_guard:
            lock = self._room_locks.get(room_id)
            if lock is None:
                lock = RoomLock()
                self._room_locks[room_id] = lock
            return lock

    def connect(self, sid: str) -> None:
        self.registry.register(sid)
        logger.info("client connected: %s", sid)

    def handle(self, sid: str, name: str, data: Any) -> Any:
        """Parse a raw Socket.IO event and dispatch it."""
        try:
            event = ev.parse_event(name, data)
        except InvalidPayload as exc:
            logger.debug("dropped %s from %s: %s", name, sid, exc.message)
            return None
        return self.dispatch(sid, event)

    def dispatch(self, sid: str | None, event: Any) -> Any:
        handler = self._handlers.get(type(event))
        if handler is None:
            logger.debug("no handler for %r", event)
            return None
        try:
            return handler(sid, event)
        except CoordinatorError as exc:
            name = ev.EVENT_NAMES.get(type(event), type(event).__name__)
            if exc.notify_actor and sid:
                self.transport.emit(ev.ACTION_ERROR, {"event": name, "error": exc.code, "message": exc.message}, to=sid)
            logger.debug("rejected %s from %s: %s (%s)", name, sid, exc.code, exc.message)
            return None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _system_message(self, room_id: str, text: str) -> None:
        self.transport.emit(
            ev.CHAT_MESSAGE,
            {"userName": SYSTEM_NAME, "text": text, "timestamp": _iso_now(), "socketId": None},
            to=room_id,
        )

    def _broadcast_members(self, room_id: str) -> None:
        members = [m.to_payload() for m in self.directory.members_of(room_id)]
        self.transport.emit(ev.ROOM_MEMBERS, members, to=room_id)

    def _players(self, room_id: str) -> list[tuple[str, str]]:
        return [(m.id, m.name) for m in self.directory.members_of(room_id)]

    def _require_leader(self, room_id: str, sid: str | None) -> None:
        if room_id not in self.directory:
            raise NotFound(f"room {room_id} does not exist")
        if sid is None or self.directory.leader_of(room_id) != sid:
            raise NotAuthorized("only the room leader can do that")

    def _session(self, room_id: str) -> GameSession:
        session = self.sessions.get(room_id)
        if session is None:
            raise NotFound(f"no game in room {room_id}")
        return session

    def _broadcast_game_state(self, session: GameSession) -> None:
        now = self.clock()
        drawer = session.active_player_id
        self.transport.emit(ev.GAME_STATE_UPDATE, service.public_state(session, now), to=session.room_id, skip_sid=drawer)
        if drawer and self.directory.is_member(session.room_id, drawer):
            self.transport.emit(ev.GAME_STATE_UPDATE, service.public_state(session, now, viewer_id=drawer), to=drawer)

    def _ensure_clock(self, room_id: str) -> None:
        if self.phase_clock is not None:
            self.phase_clock.ensure(room_id)

    def _destroy_session(self, room_id: str, notify: bool) -> None:
        session = self.sessions.pop(room_id, None)
        self._last_countdown.pop(room_id, None)
        if session is None:
            return
        logger.info("room %s: game over after round %s", room_id, session.round)
        if notify:
            self.transport.emit(ev.GAME_RESET, {}, to=room_id)
            self.transport.emit(ev.GAME_STATE_UPDATE, {"gameState": "waiting"}, to=room_id)

    def _after_departure(self, departure: Departure) -> None:
        room_id = departure.room_id
        if departure.leadership_changed and departure.new_leader_id:
            new_name = self.registry.name_of(departure.new_leader_id)
            self._system_message(room_id, f"{new_name} is now the room leader")
            logger.info("room %s: leadership passed to %s", room_id, departure.new_leader_id)

        session = self.sessions.get(room_id)
        if session is None:
            return
        if departure.room_empty:
            self._destroy_session(room_id, notify=False)
            return

        # The leaver may have been the last one we were waiting on.
        member_ids = self.directory.member_ids(room_id)
        if session.phase == "submitting_lies" and service.lies_complete(session, member_ids):
            self._open_voting(session)
        elif session.phase == "voting" and service.votes_complete(session, member_ids):
            self._show_results(session)

    def _open_voting(self, session: GameSession) -> None:
        service.open_voting(session, self.clock(), self.rng)
        self._broadcast_game_state(session)
        for member_id in self.directory.member_ids(session.room_id):
            self.transport.emit(ev.LIES_UPDATE, service.voting_options(session, member_id), to=member_id)

    def _show_results(self, session: GameSession) -> None:
        results = service.score_round(session)
        self._broadcast_game_state(session)
        self.transport.emit(ev.ROUND_RESULTS, results, to=session.room_id)

    # ------------------------------------------------------------------
    # Membership and chat
    # ------------------------------------------------------------------

    def _join(self, sid: str, room_id: str, user_name: str, is_leader: bool) -> None:
        if sid not in self.registry:
            self.registry.register(sid)
        self.registry.set_name(sid, user_name)
        self.transport.enter_room(sid, room_id)
        self.directory.join(room_id, sid, requested_leader=is_leader)
        self._broadcast_members(room_id)
        logger.info("%s (%s) joined room %s", sid, user_name, room_id)

        session = self.sessions.get(room_id)
        if session is not None:
            now = self.clock()
            self.transport.emit(ev.GAME_STATE_UPDATE, service.public_state(session, now, viewer_id=sid), to=sid)
            if session.drawing and session.phase in ("drawing", "submitting_lies", "voting"):
                self.transport.emit(ev.DRAWING_UPDATE, {"dataUrl": session.drawing}, to=sid)
            # A joiner counts towards vote completion, so they need the options.
            if session.phase == "voting":
                self.transport.emit(ev.LIES_UPDATE, service.voting_options(session, sid), to=sid)
            elif session.phase == "results" and session.last_results is not None:
                self.transport.emit(ev.ROUND_RESULTS, session.last_results, to=sid)

    def _on_join_room(self, sid: str, event: ev.JoinRoom) -> None:
        with self.room_lock(event.room_id):
            self._join(sid, event.room_id, event.user_name, event.is_leader)
            self.transport.emit(
                ev.USER_CONNECTED,
                {"userId": sid, "userName": event.user_name},
                to=event.room_id,
                skip_sid=sid,
            )

    def _on_join_chat(self, sid: str, event: ev.JoinChat) -> None:
        with self.room_lock(event.room_id):
            self._join(sid, event.room_id, event.user_name, event.is_leader)
            self._system_message(event.room_id, f"{event.user_name} has joined the chat")

    def _on_send_message(self, sid: str, event: ev.SendMessage) -> None:
        with self.room_lock(event.room_id):
            if not self.directory.is_member(event.room_id, sid):
                raise NotFound(f"{sid} is not in room {event.room_id}")
            self.transport.emit(
                ev.CHAT_MESSAGE,
                {
                    "userName": event.user_name or self.registry.name_of(sid),
                    "text": event.text,
                    "timestamp": event.timestamp or _iso_now(),
                    "socketId": sid,
                },
                to=event.room_id,
            )

    def _on_signal(self, sid: str, event: ev.Signal) -> None:
        if event.to not in self.registry:
            raise NotFound(f"signal target {event.to} is gone")
        logger.debug("signal from %s to %s", sid, event.to)
        self.transport.emit(
            ev.SIGNAL,
            {"signal": event.signal, "from": sid, "userName": event.user_name or self.registry.name_of(sid)},
            to=event.to,
        )

    def _on_kick_user(self, sid: str, event: ev.KickUser) -> None:
        with self.room_lock(event.room_id):
            target_name = self.registry.name_of(event.target_id)
            departure = self.directory.kick(event.room_id, sid, event.target_id)
            if departure is None:
                logger.debug("kick of %s ignored: not in room %s", event.target_id, event.room_id)
                return

            self.transport.emit(
                ev.KICKED_FROM_ROOM,
                {"roomId": event.room_id, "reason": KICK_REASON},
                to=event.target_id,
            )
            self._system_message(event.room_id, f"{target_name or event.target_id} has been kicked from the room")
            self.transport.leave_room(event.target_id, event.room_id)
            self._after_departure(departure)
            self._broadcast_members(event.room_id)
            logger.info("%s kicked %s from room %s", sid, event.target_id, event.room_id)

    def _on_get_random_room(self, sid: str | None, event: ev.GetRandomRoom) -> str | None:
        return self.directory.pick_random_non_empty_room()

    def _on_leave_room(self, sid: str, event: ev.LeaveRoom) -> None:
        room_id = event.room_id
        with self.room_lock(room_id):
            user_name = event.user_name or self.registry.name_of(sid)
            departure = self.directory.leave(room_id, sid)
            self.transport.leave_room(sid, room_id)
            self._after_departure(departure)
            self._broadcast_members(room_id)
            self._system_message(room_id, f"{user_name} has left the room")
            self.transport.emit(ev.USER_DISCONNECTED, {"socketId": sid}, to=room_id)

        if not self.registry.rooms_of(sid):
            self.registry.set_name(sid, None)
        logger.info("%s (%s) left room %s", sid, user_name, room_id)

    def _on_disconnect(self, sid: str, event: ev.Disconnect) -> None:
        user_name = self.registry.name_of(sid)
        for room_id in self.registry.rooms_of(sid):
            with self.room_lock(room_id):
                try:
                    departure = self.directory.leave(room_id, sid)
                except NotFound:
                    continue
                self._after_departure(departure)
                if user_name:
                    self._system_message(room_id, f"{user_name} has disconnected")
                self._broadcast_members(room_id)
                self.transport.emit(ev.USER_DISCONNECTED, {"socketId": sid}, to=room_id)

        self.registry.unregister(sid)
        logger.info("client disconnected: %s%s", sid, f" ({user_name})" if user_name else "")

    # ------------------------------------------------------------------
    # Game
    # ------------------------------------------------------------------

    def _on_start_game(self, sid: str, event: ev.StartGame) -> None:
        with self.room_lock(event.room_id):
            self._require_leader(event.room_id, sid)
            existing = self.sessions.get(event.room_id)
            if existing is not None and existing.phase != "waiting":
                raise InvalidState("game already running")

            settings = service.build_settings(event.settings, self.defaults)
            session = GameSession(room_id=event.room_id, settings=settings)
            service.start_game(session, self._players(event.room_id), self.clock(), self.rng)
            self.sessions[event.room_id] = session

            self._broadcast_game_state(session)
            self._ensure_clock(event.room_id)

    def _on_select_prompt(self, sid: str, event: ev.SelectPrompt) -> None:
        with self.room_lock(event.room_id):
            session = self._session(event.room_id)
            service.select_prompt(session, sid, event.prompt, self.clock())
            self._broadcast_game_state(session)

    def _on_drawing_update(self, sid: str, event: ev.DrawingUpdate) -> None:
        with self.room_lock(event.room_id):
            session = self._session(event.room_id)
            service.update_drawing(session, sid, event.data_url)
            self.transport.emit(ev.DRAWING_UPDATE, {"dataUrl": event.data_url}, to=event.room_id, skip_sid=sid)

    def _on_submit_lie(self, sid: str, event: ev.SubmitLie) -> None:
        with self.room_lock(event.room_id):
            session = self._session(event.room_id)
            member_ids = self.directory.member_ids(event.room_id)
            name = self.registry.name_of(sid) or ""
            service.submit_lie(session, sid, name, event.lie, member_ids)

            self.transport.emit(ev.LIES_UPDATE, service.lies_progress(session), to=event.room_id)
            if service.lies_complete(session, member_ids):
                self._open_voting(session)

    def _on_vote(self, sid: str, event: ev.CastVote) -> None:
        with self.room_lock(event.room_id):
            session = self._session(event.room_id)
            member_ids = self.directory.member_ids(event.room_id)
            name = self.registry.name_of(sid) or ""
            service.cast_vote(session, sid, name, event.lie_id, member_ids)

            if service.votes_complete(session, member_ids):
                self._show_results(session)

    def _on_next_round(self, sid: str, event: ev.NextRound) -> None:
        with self.room_lock(event.room_id):
            self._require_leader(event.room_id, sid)
            session = self._session(event.room_id)
            if service.advance_round(session, self._players(event.room_id), self.clock(), self.rng):
                self._broadcast_game_state(session)
                self._ensure_clock(event.room_id)
            else:
                self._destroy_session(event.room_id, notify=True)

    def _on_end_game(self, sid: str, event: ev.EndGame) -> None:
        with self.room_lock(event.room_id):
            self._require_leader(event.room_id, sid)
            self._session(event.room_id)
            self._destroy_session(event.room_id, notify=True)

    def _on_phase_expired(self, sid: str | None, event: ev.PhaseExpired) -> None:
        with self.room_lock(event.room_id):
            session = self.sessions.get(event.room_id)
            if session is None or session.phase != event.phase or session.round != event.round:
                logger.debug("stale expiry for room %s (%s, round %s)", event.room_id, event.phase, event.round)
                return
            logger.info("room %s: %s timer expired", event.room_id, event.phase)

            if session.phase == "submitting_lies":
                self._open_voting(session)
            elif session.phase == "voting":
                self._show_results(session)
            else:
                service.expire_phase(session, self.clock(), self.rng)
                self._broadcast_game_state(session)

    def tick(self, room_id: str) -> bool:
        """Advance the room's phase clock once. Returns False when no game is left."""
        with self.room_lock(room_id):
            session = self.sessions.get(room_id)
            if session is None:
                return False
            now = self.clock()
            expired = service.is_expired(session, now)
            phase, round_no = session.phase, session.round
            has_deadline = session.deadline_ms is not None
            remaining = service.seconds_remaining(session, now)

            if not expired and has_deadline and self._last_countdown.get(room_id) != remaining:
                self._last_countdown[room_id] = remaining
                self.transport.emit(ev.TIMER_UPDATE, {"secondsRemaining": remaining}, to=room_id)

        if expired:
            self.dispatch(None, ev.PhaseExpired(room_id=room_id, phase=phase, round=round_no))
        return room_id in self.sessions

    # ------------------------------------------------------------------
    # Read-only views (HTTP)
    # ------------------------------------------------------------------

    def has_session(self, room_id: str) -> bool:
        return room_id in self.sessions

    def room_summary(self, room_id: str) -> dict | None:
        with self.room_lock(room_id):
            if room_id not in self.directory:
                return None
            session = self.sessions.get(room_id)
            return {
                "roomId": room_id,
                "leaderId": self.directory.leader_of(room_id),
                "members": [m.to_payload() for m in self.directory.members_of(room_id)],
                "memberCount": len(self.directory.member_ids(room_id)),
                "gameState": session.phase if session else "waiting",
                "currentRound": session.round if session else 0,
            }

    def list_rooms(self) -> list[dict]:
        out = []
        for room_id in self.directory.room_ids():
            summary = self.room_summary(room_id)
            if summary is not None:
                out.append(summary)
        return out
