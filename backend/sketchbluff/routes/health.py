from __future__ import annotations

from flask import Blueprint, current_app, jsonify

bp = Blueprint("health", __name__)


@bp.get("/health")
def health():
    router = current_app.extensions["sketchbluff.router"]
    return jsonify({"ok": True, "connections": len(router.registry), "rooms": len(router.directory.room_ids())})
