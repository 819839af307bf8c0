from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from ..errors import InvalidPayload


# Outbound event names
ROOM_MEMBERS = "room-members"
CHAT_MESSAGE = "chat-message"
USER_CONNECTED = "user-connected"
USER_DISCONNECTED = "user-disconnected"
KICKED_FROM_ROOM = "kicked-from-room"
SIGNAL = "signal"
GAME_STATE_UPDATE = "game-state-update"
DRAWING_UPDATE = "drawing-update"
LIES_UPDATE = "lies-update"
ROUND_RESULTS = "round-results"
TIMER_UPDATE = "timer-update"
GAME_RESET = "game-reset"
ACTION_ERROR = "action-error"


@dataclass(frozen=True)
class JoinRoom:
    room_id: str
    user_name: str
    is_leader: bool = False


@dataclass(frozen=True)
class JoinChat:
    room_id: str
    user_name: str
    is_leader: bool = False


@dataclass(frozen=True)
class SendMessage:
    room_id: str
    user_name: str
    text: str
    timestamp: Any = None


@dataclass(frozen=True)
class Signal:
    to: str
    signal: Any
    user_name: str | None = None


@dataclass(frozen=True)
class KickUser:
    room_id: str
    target_id: str


@dataclass(frozen=True)
class GetRandomRoom:
    pass


@dataclass(frozen=True)
class LeaveRoom:
    room_id: str
    user_name: str | None = None


@dataclass(frozen=True)
class Disconnect:
    pass


@dataclass(frozen=True)
class StartGame:
    room_id: str
    settings: dict


@dataclass(frozen=True)
class SelectPrompt:
    room_id: str
    prompt: str


@dataclass(frozen=True)
class DrawingUpdate:
    room_id: str
    data_url: str


@dataclass(frozen=True)
class SubmitLie:
    room_id: str
    lie: str


@dataclass(frozen=True)
class CastVote:
    room_id: str
    lie_id: str


@dataclass(frozen=True)
class NextRound:
    room_id: str


@dataclass(frozen=True)
class EndGame:
    room_id: str


@dataclass(frozen=True)
class PhaseExpired:
    """Synthetic event raised by a room's phase clock."""

    room_id: str
    phase: str
    round: int


InboundEvent = Union[
    JoinRoom,
    JoinChat,
    SendMessage,
    Signal,
    KickUser,
    GetRandomRoom,
    LeaveRoom,
    Disconnect,
    StartGame,
    SelectPrompt,
    DrawingUpdate,
    SubmitLie,
    CastVote,
    NextRound,
    EndGame,
    PhaseExpired,
]


def _str(payload: dict, key: str, required: bool = True) -> str:
    value = payload.get(key)
    if value is None:
        value = ""
    if not isinstance(value, (str, int)):
        raise InvalidPayload(f"{key} must be a string")
    value = str(value).strip()
    if required and not value:
        raise InvalidPayload(f"{key} is required")
    return value


def _parse_join(cls, payload: dict):
    return cls(
        room_id=_str(payload, "roomId"),
        user_name=_str(payload, "userName"),
        is_leader=bool(payload.get("isLeader", False)),
    )


def _parse_send_message(payload: dict) -> SendMessage:
    text = payload.get("text")
    if not isinstance(text, str) or not text.strip():
        raise InvalidPayload("text is required")
    return SendMessage(
        room_id=_str(payload, "roomId"),
        user_name=_str(payload, "userName", required=False),
        text=text,
        timestamp=payload.get("timestamp"),
    )


def _parse_signal(payload: dict) -> Signal:
    if "signal" not in payload:
        raise InvalidPayload("signal is required")
    return Signal(
        to=_str(payload, "to"),
        signal=payload.get("signal"),
        user_name=_str(payload, "userName", required=False) or None,
    )


def _parse_drawing(payload: dict) -> DrawingUpdate:
    data_url = payload.get("dataUrl")
    if not isinstance(data_url, str) or not data_url:
        raise InvalidPayload("dataUrl is required")
    return DrawingUpdate(room_id=_str(payload, "roomId"), data_url=data_url)


_PARSERS = {
    "join-room": lambda p: _parse_join(JoinRoom, p),
    "join-chat": lambda p: _parse_join(JoinChat, p),
    "send-message": _parse_send_message,
    "signal": _parse_signal,
    "kick-user": lambda p: KickUser(room_id=_str(p, "roomId"), target_id=_str(p, "userToKickId")),
    "get-random-room": lambda p: GetRandomRoom(),
    "leave-room": lambda p: LeaveRoom(room_id=_str(p, "roomId"), user_name=_str(p, "userName", required=False) or None),
    "start-game": lambda p: StartGame(
        room_id=_str(p, "roomId"),
        settings=p.get("settings") if isinstance(p.get("settings"), dict) else {},
    ),
    "select-prompt": lambda p: SelectPrompt(room_id=_str(p, "roomId"), prompt=_str(p, "prompt")),
    "drawing-update": _parse_drawing,
    "submit-lie": lambda p: SubmitLie(room_id=_str(p, "roomId"), lie=_str(p, "lie")),
    "vote": lambda p: CastVote(room_id=_str(p, "roomId"), lie_id=_str(p, "lieId")),
    "next-round": lambda p: NextRound(room_id=_str(p, "roomId")),
    "end-game": lambda p: EndGame(room_id=_str(p, "roomId")),
}

INBOUND_EVENT_NAMES = tuple(_PARSERS.keys())

# Events whose handler result is sent back as the Socket.IO ack.
ACK_EVENTS = frozenset({"get-random-room"})


def parse_event(name: str, data: Any) -> InboundEvent:
    """Turn a raw Socket.IO payload into a typed inbound event.

    Raises InvalidPayload for unknown names or malformed payloads.
    """
    parser = _PARSERS.get(name)
    if parser is None:
        raise InvalidPayload(f"unknown event {name}")
    payload = data if isinstance(data, dict) else {}
    return parser(payload)


EVENT_TYPES = {
    "join-room": JoinRoom,
    "join-chat": JoinChat,
    "send-message": SendMessage,
    "signal": Signal,
    "kick-user": KickUser,
    "get-random-room": GetRandomRoom,
    "leave-room": LeaveRoom,
    "disconnect": Disconnect,
    "start-game": StartGame,
    "select-prompt": SelectPrompt,
    "drawing-update": DrawingUpdate,
    "submit-lie": SubmitLie,
    "vote": CastVote,
    "next-round": NextRound,
    "end-game": EndGame,
    "phase-expired": PhaseExpired,
}

EVENT_NAMES = {cls: name for name, cls in EVENT_TYPES.items()}
