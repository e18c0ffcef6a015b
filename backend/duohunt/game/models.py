from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Union


Role = Literal["A", "B"]
RoomStatus = Literal["waiting", "playing", "between"]
Mode = Literal["Easy", "Normal", "Hard"]

ROLES: tuple[Role, ...] = ("A", "B")
MODES: tuple[Mode, ...] = ("Easy", "Normal", "Hard")


@dataclass(frozen=True)
class AnswerSpec:
    kind: Literal["exact", "regex"]
    value: str = ""
    pattern: str = ""
    flags: str = ""


@dataclass(frozen=True)
class Subquestion:
    view_a: str
    view_b: str
    answer: AnswerSpec
    time_limit_sec: int | None = None
    base_score: int | None = None

    def view_for(self, role: Role) -> str:
        return self.view_a if role == "A" else self.view_b


@dataclass(frozen=True)
class ChallengeDefinition:
    title: str
    level: str
    base_score: int
    time_limit_sec: int
    view_a: str = ""
    view_b: str = ""
    answer: AnswerSpec | None = None
    subquestions: tuple[Subquestion, ...] = ()

    @property
    def nested(self) -> bool:
        return bool(self.subquestions)

    def view_for(self, role: Role) -> str:
        return self.view_a if role == "A" else self.view_b


@dataclass
class FlatChallenge:
    index: int
    definition: ChallengeDefinition


@dataclass
class NestedChallenge:
    index: int
    definition: ChallengeDefinition
    sub_index: int = 0

    @property
    def subquestion(self) -> Subquestion | None:
        subs = self.definition.subquestions
        if 0 <= self.sub_index < len(subs):
            return subs[self.sub_index]
        return None

    @property
    def has_next(self) -> bool:
        return self.sub_index + 1 < len(self.definition.subquestions)


ActiveChallenge = Union[FlatChallenge, NestedChallenge]


@dataclass
class RoomState:
    id: str
    status: RoomStatus = "waiting"
    players: dict[str, str | None] = field(default_factory=lambda: {"A": None, "B": None})
    waiting: list[str] = field(default_factory=list)
    # Connections in the transport room group (capacity is counted here).
    members: list[str] = field(default_factory=list)
    mode: Mode | None = None
    requested_mode: Mode | None = None
    round: int = 0
    cumulative_score: int = 0
    lives: int | None = None
    used_indices: set[int] = field(default_factory=set)
    current: ActiveChallenge | None = None
    time_limit_sec: int | None = None
    expires_at_ms: int | None = None
    ready: dict[str, bool] = field(default_factory=dict)
    epoch: int = 0
    timer: Any = field(default=None, repr=False)

    def role_of(self, sid: str) -> Role | None:
        for role in ROLES:
            if self.players.get(role) == sid:
                return role
        return None

    def is_full(self) -> bool:
        return all(self.players.get(role) for role in ROLES)

    def ready_snapshot(self) -> dict[str, bool]:
        out = {}
        for role in ROLES:
            sid = self.players.get(role)
            out[role] = bool(sid and self.ready.get(sid))
        return out

    def membership_snapshot(self) -> dict:
        return {
            "players": {role: bool(self.players.get(role)) for role in ROLES},
            "waiting": len(self.waiting),
        }
