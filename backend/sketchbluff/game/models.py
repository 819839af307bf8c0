from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal


GamePhase = Literal[
    "waiting",
    "prompt_selection",
    "drawing",
    "submitting_lies",
    "voting",
    "results",
]


@dataclass
class GameSettings:
    drawing_time: int = 60
    submitting_time: int = 45
    voting_time: int = 30
    prompt_selection_time: int = 15
    total_rounds: int = 3
    prompt_choices: int = 3
    min_players: int = 2
    correct_points: int = 500
    decoy_points: int = 100


@dataclass
class Lie:
    id: str
    player_id: str | None
    player_name: str | None
    text: str
    is_correct: bool = False


@dataclass
class Vote:
    voter_id: str
    voter_name: str
    lie_id: str


@dataclass
class PlayerScore:
    name: str
    total: int = 0
    round_score: int = 0


@dataclass
class GameSession:
    room_id: str
    settings: GameSettings = field(default_factory=GameSettings)
    phase: GamePhase = "waiting"
    round: int = 0
    active_player_id: str | None = None
    active_player_name: str | None = None
    # Member order the current round's drawer was picked from.
    rotation: list[str] = field(default_factory=list)
    prompt_choices: list[str] = field(default_factory=list)
    prompt: str | None = None
    drawing: str | None = None
    lies: dict[str, Lie] = field(default_factory=dict)
    # Voting options (decoys plus the truth), shuffled when voting opens.
    options: list[Lie] = field(default_factory=list)
    votes: dict[str, Vote] = field(default_factory=dict)
    scores: dict[str, PlayerScore] = field(default_factory=dict)
    deadline_ms: int | None = None
    last_results: dict | None = None
