from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..game.service import room_public_state

bp = Blueprint("rooms", __name__)


def _engine():
    return current_app.extensions["duohunt"]


@bp.post("/rooms")
def create_room():
    data = request.get_json(silent=True) or {}
    return jsonify(_engine().create_room(mode=data.get("mode")))


@bp.get("/rooms/<code>")
def get_room(code: str):
    room = _engine().registry.get_room(code)
    if not room:
        return jsonify({"error": "ROOM_NOT_FOUND"}), 404
    return jsonify(room_public_state(room))
