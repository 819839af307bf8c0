from __future__ import annotations

import logging
import math
import random
import re
import time
import uuid
from typing import Any

from ..errors import DuplicateAction, InvalidPayload, InvalidState, NotAuthorized, NotFound
from .models import GamePhase, GameSession, GameSettings, Lie, PlayerScore, Vote
from .prompts import DEFAULT_PROMPTS, pick_prompts

logger = logging.getLogger(__name__)

Player = tuple[str, str]

MIN_PHASE_SEC = 10
MAX_PHASE_SEC = 300
MAX_ROUNDS = 20


def now_ms() -> int:
    return int(time.time() * 1000)


def _normalize_text(text: str) -> str:
    t = text.strip().lower()
    t = re.sub(r"\s+", "", t)
    t = re.sub(r"[^0-9a-z\u4e00-\u9fff]", "", t)
    return t


def _new_id() -> str:
    return uuid.uuid4().hex[:12]


def _bounded_int(raw: Any, default: int, low: int, high: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        return default
    if value < low or value > high:
        return default
    return value


def build_settings(raw: dict | None, defaults: GameSettings) -> GameSettings:
    """Merge client-supplied start-game settings over the configured defaults."""
    raw = raw if isinstance(raw, dict) else {}
    return GameSettings(
        drawing_time=_bounded_int(raw.get("drawingTime"), defaults.drawing_time, MIN_PHASE_SEC, MAX_PHASE_SEC),
        submitting_time=_bounded_int(raw.get("submittingTime"), defaults.submitting_time, MIN_PHASE_SEC, MAX_PHASE_SEC),
        voting_time=_bounded_int(raw.get("votingTime"), defaults.voting_time, MIN_PHASE_SEC, MAX_PHASE_SEC),
        prompt_selection_time=_bounded_int(
            raw.get("promptSelectionTime"), defaults.prompt_selection_time, MIN_PHASE_SEC, MAX_PHASE_SEC
        ),
        total_rounds=_bounded_int(raw.get("totalRounds"), defaults.total_rounds, 1, MAX_ROUNDS),
        prompt_choices=defaults.prompt_choices,
        min_players=defaults.min_players,
        correct_points=defaults.correct_points,
        decoy_points=defaults.decoy_points,
    )


def phase_duration(settings: GameSettings, phase: GamePhase) -> int | None:
    return {
        "prompt_selection": settings.prompt_selection_time,
        "drawing": settings.drawing_time,
        "submitting_lies": settings.submitting_time,
        "voting": settings.voting_time,
    }.get(phase)


def _enter_phase(session: GameSession, phase: GamePhase, now: int) -> None:
    session.phase = phase
    duration = phase_duration(session.settings, phase)
    session.deadline_ms = now + duration * 1000 if duration else None
    logger.info("room %s: round %s -> %s", session.room_id, session.round, phase)


def seconds_remaining(session: GameSession, now: int) -> int:
    if session.deadline_ms is None:
        return 0
    return max(0, math.ceil((session.deadline_ms - now) / 1000))


def is_expired(session: GameSession, now: int) -> bool:
    return session.deadline_ms is not None and now >= session.deadline_ms


def _pick_next_drawer(session: GameSession, player_ids: list[str]) -> str:
    prev = session.active_player_id
    if prev is None:
        return player_ids[0]
    if prev in player_ids:
        return player_ids[(player_ids.index(prev) + 1) % len(player_ids)]

    # Previous drawer left: continue from their seat in the old rotation.
    if prev in session.rotation:
        idx = session.rotation.index(prev)
        for offset in range(1, len(session.rotation)):
            candidate = session.rotation[(idx + offset) % len(session.rotation)]
            if candidate in player_ids:
                return candidate
    return player_ids[0]


def _start_round(session: GameSession, players: list[Player], now: int, rng: random.Random | None) -> None:
    ids = [pid for pid, _ in players]
    names = dict(players)

    drawer = _pick_next_drawer(session, ids)
    session.round += 1
    session.rotation = ids
    session.active_player_id = drawer
    session.active_player_name = names[drawer]

    session.prompt = None
    session.drawing = None
    session.lies = {}
    session.options = []
    session.votes = {}
    session.last_results = None

    for score in session.scores.values():
        score.round_score = 0
    for pid, name in players:
        score = session.scores.get(pid)
        if score is None:
            session.scores[pid] = PlayerScore(name=name)
        else:
            score.name = name

    session.prompt_choices = pick_prompts(DEFAULT_PROMPTS, session.settings.prompt_choices, rng)
    _enter_phase(session, "prompt_selection", now)


def start_game(session: GameSession, players: list[Player], now: int, rng: random.Random | None = None) -> None:
    if session.phase != "waiting":
        raise InvalidState("game already running")
    if len(players) < session.settings.min_players:
        raise InvalidState("not_enough_players", notify_actor=True)

    session.round = 0
    session.active_player_id = None
    session.rotation = []
    session.scores = {pid: PlayerScore(name=name) for pid, name in players}
    _start_round(session, players, now, rng)


def _begin_drawing(session: GameSession, prompt: str, now: int) -> None:
    session.prompt = prompt
    session.prompt_choices = []
    _enter_phase(session, "drawing", now)


def select_prompt(session: GameSession, chooser_id: str, prompt: str, now: int) -> None:
    if session.phase != "prompt_selection":
        raise InvalidState("not choosing a prompt")
    if chooser_id != session.active_player_id:
        raise NotAuthorized("only the active player picks the prompt")

    p = (prompt or "").strip()
    if not p:
        raise InvalidPayload("empty prompt")
    if session.prompt_choices and p not in session.prompt_choices:
        raise NotFound(f"prompt {p!r} was not offered")

    _begin_drawing(session, p, now)


def auto_select_prompt(session: GameSession, now: int) -> None:
    if session.phase != "prompt_selection":
        return

    if session.prompt_choices:
        _begin_drawing(session, session.prompt_choices[0], now)
        return

    # Fallback (should not happen because DEFAULT_PROMPTS is non-empty)
    _begin_drawing(session, pick_prompts(DEFAULT_PROMPTS, 1)[0], now)


def update_drawing(session: GameSession, sender_id: str, data_url: str) -> None:
    if session.phase != "drawing":
        raise InvalidState("not drawing")
    if sender_id != session.active_player_id:
        raise NotAuthorized("only the active player draws")
    if not isinstance(data_url, str) or not data_url:
        raise InvalidPayload("missing dataUrl")
    session.drawing = data_url


def submit_lie(session: GameSession, player_id: str, player_name: str, text: str, member_ids: list[str]) -> Lie:
    if session.phase != "submitting_lies":
        raise InvalidState("not collecting lies")
    if player_id == session.active_player_id:
        raise NotAuthorized("the active player knows the answer")
    if player_id not in member_ids:
        raise NotFound(f"{player_id} is not playing")
    if player_id in session.lies:
        raise DuplicateAction("lie already submitted this round")

    t = (text or "").strip()
    if not t:
        raise InvalidPayload("empty lie")
    if session.prompt and _normalize_text(t) == _normalize_text(session.prompt):
        raise InvalidState("lie matches the prompt")

    lie = Lie(id=_new_id(), player_id=player_id, player_name=player_name, text=t)
    session.lies[player_id] = lie
    return lie


def lies_complete(session: GameSession, member_ids: list[str]) -> bool:
    return all(pid in session.lies for pid in member_ids if pid != session.active_player_id)


def open_voting(session: GameSession, now: int, rng: random.Random | None = None) -> None:
    truth = Lie(
        id=_new_id(),
        player_id=session.active_player_id,
        player_name=session.active_player_name,
        text=session.prompt or "",
        is_correct=True,
    )
    options = list(session.lies.values()) + [truth]
    (rng or random).shuffle(options)
    session.options = options
    session.votes = {}
    _enter_phase(session, "voting", now)


def _find_option(session: GameSession, lie_id: str) -> Lie | None:
    for option in session.options:
        if option.id == lie_id:
            return option
    return None


def cast_vote(session: GameSession, voter_id: str, voter_name: str, lie_id: str, member_ids: list[str]) -> Vote:
    if session.phase != "voting":
        raise InvalidState("not voting")
    if voter_id == session.active_player_id:
        raise NotAuthorized("the active player does not vote")
    if voter_id not in member_ids:
        raise NotFound(f"{voter_id} is not playing")
    if voter_id in session.votes:
        raise DuplicateAction("already voted this round")

    option = _find_option(session, lie_id)
    if option is None:
        raise NotFound(f"no answer {lie_id}")
    if not option.is_correct and option.player_id == voter_id:
        raise InvalidState("cannot vote for your own lie")

    vote = Vote(voter_id=voter_id, voter_name=voter_name, lie_id=lie_id)
    session.votes[voter_id] = vote
    return vote


def votes_complete(session: GameSession, member_ids: list[str]) -> bool:
    return all(pid in session.votes for pid in member_ids if pid != session.active_player_id)


def score_round(session: GameSession) -> dict:
    """Tally votes, credit drawer and decoy authors, and enter RESULTS.

    Votes for the truth pay the drawer; votes for a decoy pay its author.
    Voters themselves earn nothing.
    """
    settings = session.settings
    for score in session.scores.values():
        score.round_score = 0

    lies_payload = []
    for option in session.options:
        votes = [v for v in session.votes.values() if v.lie_id == option.id]
        credited = session.active_player_id if option.is_correct else option.player_id
        points = settings.correct_points if option.is_correct else settings.decoy_points
        if credited and votes:
            score = session.scores.get(credited)
            if score is None:
                score = PlayerScore(name=option.player_name or "")
                session.scores[credited] = score
            score.round_score += points * len(votes)
            score.total += points * len(votes)

        lies_payload.append(
            {
                "id": option.id,
                "text": option.text,
                "playerName": option.player_name,
                "isCorrect": option.is_correct,
                "votes": [{"voterId": v.voter_id, "voterName": v.voter_name} for v in votes],
            }
        )

    session.last_results = {
        "prompt": session.prompt,
        "lies": lies_payload,
        "scores": {
            pid: {"name": s.name, "total": s.total, "roundScore": s.round_score}
            for pid, s in session.scores.items()
        },
    }
    _enter_phase(session, "results", 0)
    return session.last_results


def expire_phase(session: GameSession, now: int, rng: random.Random | None = None) -> GamePhase:
    """Force the current timed phase forward with whatever was submitted."""
    if session.phase == "prompt_selection":
        auto_select_prompt(session, now)
    elif session.phase == "drawing":
        _enter_phase(session, "submitting_lies", now)
    elif session.phase == "submitting_lies":
        open_voting(session, now, rng)
    elif session.phase == "voting":
        score_round(session)
    return session.phase


def advance_round(session: GameSession, players: list[Player], now: int, rng: random.Random | None = None) -> bool:
    """Start the next round. Returns False when the game is over."""
    if session.phase != "results":
        raise InvalidState("round still in progress")
    if session.round >= session.settings.total_rounds:
        return False
    if len(players) < session.settings.min_players:
        return False
    _start_round(session, players, now, rng)
    return True


def public_state(session: GameSession, now: int, viewer_id: str | None = None) -> dict:
    payload: dict[str, Any] = {
        "gameState": session.phase,
        "currentRound": session.round,
        "totalRounds": session.settings.total_rounds,
        "countdown": seconds_remaining(session, now),
    }
    if session.active_player_id:
        payload["activePlayer"] = {"id": session.active_player_id, "name": session.active_player_name}

    is_drawer = viewer_id is not None and viewer_id == session.active_player_id
    if is_drawer and session.phase == "prompt_selection":
        payload["drawingPrompts"] = list(session.prompt_choices)
    if session.prompt and (session.phase == "results" or is_drawer):
        payload["prompt"] = session.prompt
    return payload


def lies_progress(session: GameSession) -> list[dict]:
    return [
        {"id": lie.id, "playerId": lie.player_id, "playerName": lie.player_name, "text": None}
        for lie in session.lies.values()
    ]


def voting_options(session: GameSession, viewer_id: str) -> list[dict]:
    """Voting options as seen by one player: authorship shown only on their own lie."""
    out = []
    for option in session.options:
        own = not option.is_correct and option.player_id == viewer_id
        out.append(
            {
                "id": option.id,
                "playerId": option.player_id if own else None,
                "playerName": option.player_name if own else None,
                "text": option.text,
            }
        )
    return out
