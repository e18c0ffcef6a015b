from __future__ import annotations

from flask import request
from flask_socketio import SocketIO

from ..game.engine import RoundEngine


def _payload(data) -> dict:
    return data if isinstance(data, dict) else {}


def register_socketio_handlers(socketio: SocketIO, engine: RoundEngine) -> None:
    @socketio.on("createRoom")
    def create_room(data=None):
        payload = _payload(data)
        return engine.create_room(mode=payload.get("mode"))

    @socketio.on("joinRoom")
    def join_room(data=None):
        payload = _payload(data)
        room_id = str(payload.get("roomId", "")).strip()
        if not room_id:
            return {"ok": False, "error": "ROOM_NOT_FOUND"}
        return engine.join_room(room_id, request.sid)

    @socketio.on("playerReady")
    def player_ready(data=None):
        payload = _payload(data)
        return engine.player_ready(
            request.sid,
            preferred_role=payload.get("preferredRole"),
            mode=payload.get("mode"),
        )

    @socketio.on("submitAnswer")
    def submit_answer(data=None):
        payload = _payload(data)
        room_id = str(payload.get("roomId", "")).strip()
        return engine.submit_answer(
            room_id,
            request.sid,
            payload.get("answer"),
            payload.get("remainMs"),
        )

    @socketio.on("chat")
    def chat(data=None):
        payload = _payload(data)
        room_id = str(payload.get("roomId", "")).strip()
        engine.chat(room_id, request.sid, payload.get("message"))

    @socketio.on("continueGame")
    def continue_game(data=None):
        payload = _payload(data)
        room_id = str(payload.get("roomId", "")).strip()
        if room_id:
            engine.continue_game(room_id)

    @socketio.on("disconnect")
    def on_disconnect(reason=None):
        engine.disconnect(request.sid)
