import logging
import os
from pathlib import Path

from dotenv import load_dotenv


def _patch_for_eventlet(async_mode: str) -> None:
    # Must run before Flask-SocketIO (and its socket users) are imported.
    if async_mode != "eventlet":
        return
    import eventlet

    eventlet.monkey_patch()


def main() -> None:
    load_dotenv(Path(__file__).resolve().parents[1] / ".env")

    try:
        from backend.sketchbluff.config import Config
    except ImportError:  # pragma: no cover
        from sketchbluff.config import Config

    logging.basicConfig(
        level=Config.LOG_LEVEL.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    _patch_for_eventlet(Config.SOCKETIO_ASYNC_MODE)

    try:
        from backend.sketchbluff.server import create_app
    except ImportError:  # pragma: no cover
        from sketchbluff.server import create_app

    app, socketio = create_app(Config)
    host, port = app.config["HOST"], app.config["PORT"]

    logging.getLogger(__name__).info(
        "SketchBluff coordinator listening on %s:%s (%s)", host, port, Config.SOCKETIO_ASYNC_MODE
    )
    socketio.run(
        app,
        host=host,
        port=port,
        debug=os.environ.get("FLASK_DEBUG", "0") == "1",
        allow_unsafe_werkzeug=os.environ.get("ALLOW_UNSAFE_WERKZEUG", "1") == "1",
        use_reloader=os.environ.get("FLASK_USE_RELOADER", "0") == "1",
    )


if __name__ == "__main__":
    main()
