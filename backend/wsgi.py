try:
    from backend.sketchbluff.server import create_app
except ImportError:  # pragma: no cover
    from sketchbluff.server import create_app

app, socketio = create_app()
