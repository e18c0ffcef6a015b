from __future__ import annotations

import logging

from flask_socketio import SocketIO


logger = logging.getLogger(__name__)


class SocketIONotifier:
    """Room broadcast / unicast delivery over Flask-SocketIO."""

    def __init__(self, socketio: SocketIO, namespace: str = "/"):
        self.socketio = socketio
        self.namespace = namespace

    def to_room(self, room_id: str, event: str, payload: dict) -> None:
        self.socketio.emit(event, payload, to=room_id, namespace=self.namespace)

    def to_connection(self, sid: str, event: str, payload: dict) -> None:
        self.socketio.emit(event, payload, to=sid, namespace=self.namespace)

    def join(self, sid: str, room_id: str) -> None:
        self.socketio.server.enter_room(sid, room_id, namespace=self.namespace)

    def leave(self, sid: str, room_id: str) -> None:
        try:
            self.socketio.server.leave_room(sid, room_id, namespace=self.namespace)
        except (KeyError, ValueError):
            logger.debug("Connection %s was not in room group %s", sid, room_id)
