from __future__ import annotations

import logging
import uuid
from threading import RLock

from .models import ROLES, Role, RoomState


logger = logging.getLogger(__name__)

ROOM_CAPACITY = 2


class ConnectionBinding:
    """connection id -> (room id, role)."""

    def __init__(self) -> None:
        self._room_of: dict[str, str] = {}
        self._role_of: dict[str, Role] = {}

    def bind(self, sid: str, room_id: str) -> None:
        self._room_of[sid] = room_id
        self._role_of.pop(sid, None)

    def set_role(self, sid: str, role: Role) -> None:
        self._role_of[sid] = role

    def room_of(self, sid: str) -> str | None:
        return self._room_of.get(sid)

    def role_of(self, sid: str) -> Role | None:
        return self._role_of.get(sid)

    def unbind(self, sid: str) -> tuple[str | None, Role | None]:
        return self._room_of.pop(sid, None), self._role_of.pop(sid, None)


class RoomRegistry:
    """Process-wide room map plus connection bindings.

    All access goes through ``lock``; the engine holds it for the whole of
    each event so a handler never observes a half-updated room.
    """

    def __init__(self, scheduler, unused_ttl_sec: float = 60):
        self.lock = RLock()
        self.scheduler = scheduler
        self.unused_ttl_sec = unused_ttl_sec
        self.bindings = ConnectionBinding()
        self._rooms: dict[str, RoomState] = {}

    def create_room(self, requested_mode: str | None = None) -> RoomState:
        with self.lock:
            code = uuid.uuid4().hex[:6]
            while code in self._rooms:
                code = uuid.uuid4().hex[:6]

            room = RoomState(id=code, requested_mode=requested_mode)
            self._rooms[code] = room
            self.schedule_disuse_check(code)
            logger.info("Created room %s", code)
            return room

    def get_room(self, code: str | None) -> RoomState | None:
        if not code:
            return None
        with self.lock:
            return self._rooms.get(code)

    def delete_room(self, code: str) -> bool:
        with self.lock:
            if code in self._rooms:
                del self._rooms[code]
                return True
            return False

    def list_rooms(self) -> list[RoomState]:
        with self.lock:
            return list(self._rooms.values())

    def schedule_disuse_check(self, code: str) -> None:
        self.scheduler.call_later(self.unused_ttl_sec, self._check_disuse, code)

    def _check_disuse(self, code: str) -> None:
        with self.lock:
            room = self._rooms.get(code)
            if room is None:
                return
            if room.status != "waiting" or room.members or any(room.players.get(r) for r in ROLES):
                return
            self.delete_room(code)
            logger.info("Deleted unused room %s", code)

    def join_room(self, code: str, sid: str) -> tuple[RoomState | None, str | None]:
        """Add ``sid`` to the room's member list and waiting set.

        Returns ``(room, error_code)``.
        """
        with self.lock:
            room = self._rooms.get(code)
            if room is None:
                return None, "ROOM_NOT_FOUND"
            if sid in room.members:
                return room, None
            if len(room.members) >= ROOM_CAPACITY:
                return room, "ROOM_FULL"

            room.members.append(sid)
            if sid not in room.waiting:
                room.waiting.append(sid)
            self.bindings.bind(sid, code)
            return room, None

    def assign_role(self, room: RoomState, sid: str, preferred: str | None = None) -> Role | None:
        with self.lock:
            current = room.role_of(sid)
            if current:
                return current

            if preferred in ROLES and not room.players.get(preferred):
                role = preferred
            else:
                role = next((r for r in ROLES if not room.players.get(r)), None)
            if role is None:
                return None

            room.players[role] = sid
            if sid in room.waiting:
                room.waiting.remove(sid)
            self.bindings.set_role(sid, role)
            return role

    def release_connection(self, sid: str) -> tuple[RoomState | None, Role | None]:
        """Drop every trace of ``sid``. Returns the room it was in and its role."""
        with self.lock:
            code, role = self.bindings.unbind(sid)
            room = self._rooms.get(code) if code else None
            if room is None:
                return None, role

            if sid in room.waiting:
                room.waiting.remove(sid)
            if sid in room.members:
                room.members.remove(sid)
            room.ready.pop(sid, None)
            for r in ROLES:
                if room.players.get(r) == sid:
                    room.players[r] = None
            return room, role


def room_public_state(room: RoomState) -> dict:
    # No role views or answers here; those only go out per role.
    payload = {
        "roomId": room.id,
        "status": room.status,
        "mode": room.mode,
        "round": room.round,
        "cumulativeScore": room.cumulative_score,
        "lives": room.lives,
        "players": {r: bool(room.players.get(r)) for r in ROLES},
        "waiting": len(room.waiting),
        "ready": room.ready_snapshot(),
        "expiresAt": room.expires_at_ms,
    }
    if room.current is not None:
        payload["title"] = room.current.definition.title
    return payload
