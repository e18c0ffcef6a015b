from __future__ import annotations

import logging
import random
from typing import Any, Callable, Mapping

from ..config import Config
from .catalog import ChallengeCatalog, levels_for_mode
from .matching import match_answer
from .models import MODES, ROLES, FlatChallenge, Mode, NestedChallenge, RoomState
from .scoring import ScoringPolicy
from .service import ROOM_CAPACITY, RoomRegistry
from .timer import RoundTimer


logger = logging.getLogger(__name__)

ROLE_LABELS = {"A": "Instructor", "B": "Answerer"}


def _settings(config: Mapping[str, Any] | None) -> dict[str, Any]:
    merged = {k: getattr(Config, k) for k in dir(Config) if k.isupper()}
    merged.update(config or {})
    return merged


def coerce_mode(value: Any) -> Mode | None:
    if not isinstance(value, str):
        return None
    wanted = value.strip().lower()
    for mode in MODES:
        if mode.lower() == wanted:
            return mode
    return None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class RoundEngine:
    """Drives rooms through readiness, rounds, scoring and game end.

    Every public method takes the registry lock for its whole body, as do the
    timer ticks and deferred actions it schedules, so room state is only ever
    touched by one callback at a time.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        catalog: ChallengeCatalog,
        notifier,
        scheduler,
        config: Mapping[str, Any] | None = None,
        rng: random.Random | None = None,
    ):
        self.registry = registry
        self.catalog = catalog
        self.notifier = notifier
        self.scheduler = scheduler
        self.config = _settings(config)
        self.rng = rng or random.Random()
        self.lock = registry.lock

        self.scoring = ScoringPolicy({"Hard": float(self.config["HARD_SCORE_MULTIPLIER"])})
        self.timer = RoundTimer(
            scheduler,
            self.lock,
            on_tick=self._on_tick,
            on_expire=self.on_timer_expire,
            tick_sec=float(self.config["TIMER_TICK_SEC"]),
        )

    # ---- helpers -----------------------------------------------------

    @property
    def next_round_delay_ms(self) -> int:
        return int(self.config["NEXT_ROUND_DELAY_MS"])

    def _system(self, room: RoomState, message: str) -> None:
        self.notifier.to_room(room.id, "system", {"message": message})

    def _broadcast_membership(self, room: RoomState) -> None:
        self.notifier.to_room(room.id, "roomUpdate", room.membership_snapshot())

    def _broadcast_ready(self, room: RoomState) -> None:
        self.notifier.to_room(room.id, "readyUpdate", {"ready": room.ready_snapshot()})

    def _initial_lives(self, mode: str | None) -> int | None:
        if mode == "Hard":
            return int(self.config["LIVES_HARD"])
        if mode == "Normal":
            return int(self.config["LIVES_NORMAL"])
        return None

    @staticmethod
    def _uses_lives(room: RoomState) -> bool:
        return room.mode in ("Normal", "Hard")

    def _defer(self, room: RoomState, action: Callable[[str], None]) -> None:
        self.scheduler.call_later(
            self.next_round_delay_ms / 1000,
            self._run_deferred,
            room.id,
            room.epoch,
            action,
        )

    def _run_deferred(self, room_id: str, epoch: int, action: Callable[[str], None]) -> None:
        with self.lock:
            room = self.registry.get_room(room_id)
            if room is None or room.epoch != epoch:
                logger.debug("Dropping stale %s for room %s", getattr(action, "__name__", action), room_id)
                return
            action(room_id)

    def _reset_game(self, room: RoomState) -> None:
        self.timer.stop(room)
        room.status = "waiting"
        room.round = 0
        room.cumulative_score = 0
        room.used_indices.clear()
        room.current = None
        room.lives = None
        room.mode = None
        room.ready = {}
        room.time_limit_sec = None
        room.expires_at_ms = None
        room.epoch += 1

    def _finish_game(self, room: RoomState, message: str) -> None:
        self.notifier.to_room(
            room.id,
            "gameFinished",
            {"message": message, "totalscore": room.cumulative_score},
        )
        logger.info("Game finished in room %s (score=%s)", room.id, room.cumulative_score)
        self._reset_game(room)

    def _lose_life(self, room: RoomState) -> bool:
        """Take one life. Returns True when that ended the game."""
        if room.lives is None:
            room.lives = self._initial_lives(room.mode) or 0
        room.lives = max(0, room.lives - 1)
        self.notifier.to_room(room.id, "livesUpdate", {"lives": room.lives})
        if room.lives == 0:
            self._finish_game(room, "Out of lives... game over!")
            return True
        return False

    def _question_terms(self, room: RoomState) -> tuple[int, int]:
        """(base score, unscaled time limit) of the active question."""
        current = room.current
        definition = current.definition
        if isinstance(current, NestedChallenge):
            sub = current.subquestion
            base = sub.base_score or definition.base_score
            limit = sub.time_limit_sec or definition.time_limit_sec
        else:
            base = definition.base_score
            limit = definition.time_limit_sec
        return (
            base or int(self.config["DEFAULT_BASE_SCORE"]),
            limit or int(self.config["DEFAULT_TIME_LIMIT_SEC"]),
        )

    def _conclude_question(self, room: RoomState) -> None:
        current = room.current
        if isinstance(current, NestedChallenge):
            if current.has_next:
                current.sub_index += 1
                return
            self.notifier.to_room(
                room.id,
                "bigQuestionFinished",
                {
                    "message": f'Big question "{current.definition.title}" complete!',
                    "totalscore": room.cumulative_score,
                },
            )
        room.current = None

    def _demote(self, room: RoomState) -> None:
        self.timer.stop(room)
        room.status = "waiting"
        room.current = None
        room.expires_at_ms = None
        room.epoch += 1

    def _leave(self, sid: str) -> RoomState | None:
        room, role = self.registry.release_connection(sid)
        if room is None:
            return None

        self.notifier.leave(sid, room.id)
        if room.status != "waiting" and not room.is_full():
            self._demote(room)

        self._broadcast_membership(room)
        label = ROLE_LABELS.get(role, "waiting") if role else "waiting"
        self._system(room, f"Your partner ({label}) disconnected.")

        if not room.members:
            self.registry.schedule_disuse_check(room.id)
        return room

    # ---- room membership ---------------------------------------------

    def create_room(self, mode: Any = None) -> dict:
        room = self.registry.create_room(requested_mode=coerce_mode(mode))
        return {"roomId": room.id}

    def join_room(self, room_id: str, sid: str) -> dict:
        with self.lock:
            room = self.registry.get_room(room_id)
            if room is None:
                return {"ok": False, "error": "ROOM_NOT_FOUND"}
            if sid not in room.members and len(room.members) >= ROOM_CAPACITY:
                return {"ok": False, "error": "ROOM_FULL"}

            previous = self.registry.bindings.room_of(sid)
            if previous and previous != room_id:
                self._leave(sid)

            room, error = self.registry.join_room(room_id, sid)
            if error:
                return {"ok": False, "error": error}

            self.notifier.join(sid, room.id)
            self._broadcast_membership(room)
            return {"ok": True, "roleAssigned": None, "roomStatus": room.status}

    def disconnect(self, sid: str) -> None:
        with self.lock:
            self._leave(sid)

    # ---- readiness ---------------------------------------------------

    def player_ready(self, sid: str, preferred_role: Any = None, mode: Any = None) -> dict:
        with self.lock:
            room = self.registry.get_room(self.registry.bindings.room_of(sid))
            if room is None:
                return {"ok": False, "error": "ROOM_NOT_FOUND"}

            role = room.role_of(sid)
            if role is None:
                role = self.registry.assign_role(room, sid, preferred_role)
                if role is None:
                    return {"ok": False, "error": "ROLES_FULL"}
                self._broadcast_membership(room)

            requested = coerce_mode(mode)
            if room.mode is None:
                room.mode = requested or room.requested_mode or "Normal"
                room.lives = self._initial_lives(room.mode)
            elif requested and requested != room.mode:
                self._system(room, f"Mode unified to {room.mode}")

            room.ready[sid] = True
            self._broadcast_ready(room)

            started = False
            snapshot = room.ready_snapshot()
            if room.is_full() and all(snapshot.values()) and room.status == "waiting":
                room.status = "playing"
                started = True
                logger.info("Room %s starting (mode=%s)", room.id, room.mode)
                self._defer(room, self.start_round)

            return {"ok": True, "roleAssigned": role, "started": started, "mode": room.mode}

    def continue_game(self, room_id: str) -> None:
        with self.lock:
            room = self.registry.get_room(room_id)
            if room is None:
                return
            self._reset_game(room)
            room.waiting = [sid for sid in room.members if room.role_of(sid) is None]

            self.notifier.to_room(
                room.id,
                "roomReset",
                {"message": "Preparing a new game... press Ready"},
            )
            self._broadcast_membership(room)
            self._broadcast_ready(room)

    # ---- rounds ------------------------------------------------------

    def start_round(self, room_id: str) -> None:
        with self.lock:
            room = self.registry.get_room(room_id)
            if room is None:
                return

            # A big question in progress always runs to its last subquestion.
            if room.current is None and room.round >= int(self.config["ROUNDS_PER_GAME"]):
                self._finish_game(room, "Game over!")
                return

            if not room.is_full():
                self.timer.stop(room)
                room.status = "waiting"
                self._system(room, "Waiting for your partner...")
                return

            if room.current is None:
                levels = levels_for_mode(room.mode, self.config["DIFFICULTY_TABLE"])
                picked = self.catalog.pick(levels, room.used_indices, self.rng)
                if picked is None:
                    logger.warning("No challenges for mode %s in room %s", room.mode, room.id)
                    room.status = "between"
                    self._system(room, f"No challenges available for mode {room.mode}")
                    return

                index, definition = picked
                room.used_indices.add(index)
                if definition.nested:
                    room.current = NestedChallenge(index=index, definition=definition)
                else:
                    room.current = FlatChallenge(index=index, definition=definition)
                room.round += 1

            room.status = "playing"
            self._dispatch(room)

    def _dispatch(self, room: RoomState) -> None:
        current = room.current
        definition = current.definition
        base, limit = self._question_terms(room)
        if room.mode == "Hard":
            limit = max(1, int(limit * float(self.config["HARD_TIME_FACTOR"])))

        now = self.scheduler.now_ms()
        room.time_limit_sec = limit
        room.expires_at_ms = now + limit * 1000

        payload = {
            "title": definition.title,
            "baseScore": base,
            "timeLimitSec": limit,
            "endsAt": room.expires_at_ms,
            "round": room.round,
            "cumulativeScore": room.cumulative_score,
            "lives": room.lives,
            "mode": room.mode,
        }

        if isinstance(current, NestedChallenge):
            event = "gameStarted"
            views = current.subquestion
            payload["subIndex"] = current.sub_index
            payload["subCount"] = len(definition.subquestions)
            self._system(room, f"Question {current.sub_index + 1} start!")
        else:
            event = "newQuestion"
            views = definition
            self._system(room, f"Round {room.round} start!")

        # Each role only ever sees its own view.
        for role in ROLES:
            sid = room.players.get(role)
            if sid:
                self.notifier.to_connection(sid, event, {**payload, "role": role, "view": views.view_for(role)})

        self.timer.start(room)
        self.notifier.to_room(room.id, "livesUpdate", {"lives": room.lives})

    def _on_tick(self, room: RoomState, remain_ms: int) -> None:
        self.notifier.to_room(room.id, "timer", {"remainMs": remain_ms})

    def on_timer_expire(self, room: RoomState) -> None:
        with self.lock:
            if self.registry.get_room(room.id) is not room:
                return
            self.timer.stop(room)

            if self._uses_lives(room) and self._lose_life(room):
                return

            room.status = "between"
            self.notifier.to_room(
                room.id,
                "roundTimeout",
                {"round": room.round, "nextInMs": self.next_round_delay_ms},
            )
            self._conclude_question(room)
            self._defer(room, self.start_round)

    # ---- answers & chat ----------------------------------------------

    def _remain_ms(self, room: RoomState, reported: Any) -> float:
        if _is_number(reported):
            return max(0.0, float(reported))
        if room.expires_at_ms is None:
            return 0.0
        return float(max(0, room.expires_at_ms - self.scheduler.now_ms()))

    def submit_answer(self, room_id: str, sid: str, answer: Any, remain_ms: Any = None) -> dict:
        with self.lock:
            room = self.registry.get_room(room_id)
            if room is None or room.status != "playing":
                return {"ok": False, "error": "NOT_PLAYING"}
            if self.registry.bindings.room_of(sid) != room_id:
                return {"ok": False, "error": "NOT_PLAYING"}

            current = room.current
            if current is None:
                return {"ok": False, "error": "NO_QUESTION"}
            if isinstance(current, NestedChallenge):
                sub = current.subquestion
                if sub is None:
                    return {"ok": False, "error": "NO_SUBQUESTION"}
                spec = sub.answer
            else:
                spec = current.definition.answer

            if match_answer(spec, answer):
                base, _ = self._question_terms(room)
                score = self.scoring.score(
                    base,
                    room.time_limit_sec or 0,
                    self._remain_ms(room, remain_ms),
                    room.mode,
                )
                room.cumulative_score += score
                self.timer.stop(room)
                room.status = "between"

                self.notifier.to_room(
                    room.id,
                    "answerResult",
                    {"correct": True, "score": score, "cumulativeScore": room.cumulative_score},
                )
                self.notifier.to_room(room.id, "updateScore", {"cumulativeScore": room.cumulative_score})
                self._conclude_question(room)
                self._defer(room, self.start_round)
                return {"ok": True, "correct": True, "score": score}

            if self._uses_lives(room) and self._lose_life(room):
                return {"ok": True, "correct": False, "gameOver": True}

            self.notifier.to_room(room.id, "answerResult", {"correct": False})
            return {"ok": True, "correct": False}

    def chat(self, room_id: str, sid: str, message: Any) -> None:
        if not room_id or not isinstance(message, str):
            return
        with self.lock:
            if self.registry.bindings.room_of(sid) != room_id:
                return
            role = self.registry.bindings.role_of(sid)
            self.notifier.to_room(
                room_id,
                "chat",
                {
                    "from": ROLE_LABELS.get(role, "Participant") if role else "Participant",
                    "message": message[: int(self.config["CHAT_MAX_LEN"])],
                },
            )
