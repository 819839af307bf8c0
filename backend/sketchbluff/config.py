import os
import sys


def default_async_mode() -> str:
    # eventlet is not installed on Windows or Python >= 3.13.
    if sys.platform.startswith("win") or sys.version_info >= (3, 13):
        return "threading"
    return "eventlet"


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev")

    # CORS
    CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")

    # Reverse proxy / IP headers
    TRUST_PROXY_HEADERS = os.environ.get("TRUST_PROXY_HEADERS", "1") == "1"

    # Listening address
    HOST = os.environ.get("HOST", "0.0.0.0")
    PORT = int(os.environ.get("PORT", "5000"))

    # Realtime
    SOCKETIO_ASYNC_MODE = os.environ.get("SOCKETIO_ASYNC_MODE", "").strip() or default_async_mode()
    PHASE_TIMERS_ENABLED = os.environ.get("PHASE_TIMERS_ENABLED", "1") == "1"

    # Logging
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Game
    MIN_PLAYERS = int(os.environ.get("MIN_PLAYERS", "2"))
    TOTAL_ROUNDS = int(os.environ.get("TOTAL_ROUNDS", "3"))
    PROMPT_CHOICES_COUNT = int(os.environ.get("PROMPT_CHOICES_COUNT", "3"))
    PROMPT_SELECTION_SEC = int(os.environ.get("PROMPT_SELECTION_SEC", "15"))
    DRAWING_SEC = int(os.environ.get("DRAWING_SEC", "60"))
    SUBMITTING_SEC = int(os.environ.get("SUBMITTING_SEC", "45"))
    VOTING_SEC = int(os.environ.get("VOTING_SEC", "30"))

    # Scoring
    CORRECT_VOTE_POINTS = int(os.environ.get("CORRECT_VOTE_POINTS", "500"))
    DECOY_VOTE_POINTS = int(os.environ.get("DECOY_VOTE_POINTS", "100"))
