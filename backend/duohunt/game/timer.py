from __future__ import annotations

import logging
from threading import RLock
from typing import Callable

from .models import RoomState
from .scheduling import ScheduledTask


logger = logging.getLogger(__name__)


class TimerHandle:
    def __init__(self, room_id: str):
        self.room_id = room_id
        self.task: ScheduledTask | None = None
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True
        if self.task is not None:
            self.task.cancel()


class RoundTimer:
    """Per-room countdown.

    Ticks every ``tick_sec`` while the room's deadline is in the future,
    calling ``on_tick(room, remain_ms)``. When the remaining time reaches zero
    the handle is released and ``on_expire(room)`` runs once. Ticks run under
    the registry lock.
    """

    def __init__(
        self,
        scheduler,
        lock: RLock,
        on_tick: Callable[[RoomState, int], None],
        on_expire: Callable[[RoomState], None],
        tick_sec: float = 1.0,
    ):
        self.scheduler = scheduler
        self.lock = lock
        self.on_tick = on_tick
        self.on_expire = on_expire
        self.tick_sec = tick_sec

    def start(self, room: RoomState) -> TimerHandle:
        self.stop(room)
        handle = TimerHandle(room.id)
        room.timer = handle
        handle.task = self.scheduler.call_later(self.tick_sec, self._tick, room, handle)
        return handle

    def stop(self, room: RoomState) -> None:
        handle = room.timer
        if handle is None:
            return
        handle.cancel()
        room.timer = None

    def running(self, room: RoomState) -> bool:
        return room.timer is not None and not room.timer.cancelled

    def _tick(self, room: RoomState, handle: TimerHandle) -> None:
        with self.lock:
            if handle.cancelled or room.timer is not handle:
                return
            if room.status != "playing" or room.expires_at_ms is None:
                self.stop(room)
                return

            remain_ms = max(0, room.expires_at_ms - self.scheduler.now_ms())
            self.on_tick(room, remain_ms)

            if remain_ms <= 0:
                self.stop(room)
                logger.debug("Timer expired in room %s", room.id)
                self.on_expire(room)
                return

            handle.task = self.scheduler.call_later(self.tick_sec, self._tick, room, handle)
