from __future__ import annotations

from flask import Blueprint, current_app, jsonify

bp = Blueprint("rooms", __name__)


def _router():
    return current_app.extensions["sketchbluff.router"]


@bp.get("/rooms")
def list_rooms():
    return jsonify({"rooms": _router().list_rooms()})


@bp.get("/rooms/random")
def random_room():
    return jsonify({"roomId": _router().directory.pick_random_non_empty_room()})


@bp.get("/rooms/<room_id>")
def get_room(room_id: str):
    summary = _router().room_summary(room_id)
    if summary is None:
        return jsonify({"error": "room_not_found"}), 404
    return jsonify(summary)
