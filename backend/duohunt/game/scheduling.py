from __future__ import annotations

import logging
import time
from typing import Any, Callable

from flask_socketio import SocketIO


logger = logging.getLogger(__name__)


def now_ms() -> int:
    return int(time.time() * 1000)


class ScheduledTask:
    """Handle for a delayed callback. Cancelling twice is harmless."""

    def __init__(self) -> None:
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class SocketIOScheduler:
    """Runs delayed callbacks as Socket.IO background tasks."""

    def __init__(self, socketio: SocketIO):
        self.socketio = socketio

    def now_ms(self) -> int:
        return now_ms()

    def call_later(self, delay_sec: float, fn: Callable[..., Any], *args: Any) -> ScheduledTask:
        task = ScheduledTask()

        def _runner() -> None:
            self.socketio.sleep(delay_sec)
            if task.cancelled:
                return
            try:
                fn(*args)
            except Exception:
                logger.exception("Scheduled callback %s failed", getattr(fn, "__name__", fn))

        self.socketio.start_background_task(_runner)
        return task
