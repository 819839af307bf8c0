from __future__ import annotations

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO
from werkzeug.middleware.proxy_fix import ProxyFix

from .config import Config, default_async_mode
from .game.models import GameSettings
from .realtime.handlers import register_socketio_handlers
from .realtime.router import EventRouter
from .realtime.transport import SocketIOTransport
from .routes.health import bp as health_bp
from .routes.rooms import bp as rooms_bp

ROUTER_EXTENSION = "sketchbluff.router"


def default_game_settings(config) -> GameSettings:
    return GameSettings(
        drawing_time=config["DRAWING_SEC"],
        submitting_time=config["SUBMITTING_SEC"],
        voting_time=config["VOTING_SEC"],
        prompt_selection_time=config["PROMPT_SELECTION_SEC"],
        total_rounds=config["TOTAL_ROUNDS"],
        prompt_choices=config["PROMPT_CHOICES_COUNT"],
        min_players=config["MIN_PLAYERS"],
        correct_points=config["CORRECT_VOTE_POINTS"],
        decoy_points=config["DECOY_VOTE_POINTS"],
    )


def create_app(config_class=Config) -> tuple[Flask, SocketIO]:
    app = Flask(__name__)
    app.config.from_object(config_class)

    if app.config.get("TRUST_PROXY_HEADERS", False):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1)

    cors_origins = app.config.get("CORS_ORIGINS", "*")
    CORS(app, resources={r"/api/*": {"origins": cors_origins}})

    socketio = SocketIO(
        app,
        cors_allowed_origins=cors_origins,
        async_mode=app.config.get("SOCKETIO_ASYNC_MODE") or default_async_mode(),
    )

    router = EventRouter(
        SocketIOTransport(socketio),
        defaults=default_game_settings(app.config),
        timers_enabled=app.config.get("PHASE_TIMERS_ENABLED", True),
    )
    app.extensions[ROUTER_EXTENSION] = router

    app.register_blueprint(health_bp, url_prefix="/api")
    app.register_blueprint(rooms_bp, url_prefix="/api")

    register_socketio_handlers(socketio, router)

    return app, socketio
