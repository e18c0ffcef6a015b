from __future__ import annotations

import json
import logging
import random
from pathlib import Path
from typing import Any, Iterable, Sequence

from .models import AnswerSpec, ChallengeDefinition, Subquestion


logger = logging.getLogger(__name__)


# mode -> accepted level tags
DIFFICULTY_TABLES: dict[str, dict[str, frozenset[str]]] = {
    "strict": {
        "Easy": frozenset({"easy"}),
        "Normal": frozenset({"normal"}),
        "Hard": frozenset({"hard"}),
    },
    "tiered": {
        "Easy": frozenset({"easy", "normal"}),
        "Normal": frozenset({"easy", "normal"}),
        "Hard": frozenset({"hard", "expert"}),
    },
}


def levels_for_mode(mode: str | None, table: str = "strict") -> frozenset[str]:
    mapping = DIFFICULTY_TABLES.get(table) or DIFFICULTY_TABLES["strict"]
    return mapping.get(mode or "Normal", mapping["Normal"])


def _parse_answer(raw: Any) -> AnswerSpec:
    if not isinstance(raw, dict):
        raise ValueError("answer must be an object")
    kind = str(raw.get("type", "")).strip().lower()
    if kind == "regex":
        return AnswerSpec(kind="regex", pattern=str(raw.get("pattern") or ""), flags=str(raw.get("flags") or ""))
    if kind == "exact":
        return AnswerSpec(kind="exact", value=str(raw.get("value") or ""))
    raise ValueError(f"unknown answer type {kind!r}")


def _views(raw: dict) -> tuple[str, str]:
    roles = raw.get("roles") or {}
    if not isinstance(roles, dict):
        roles = {}

    def _view(role: str) -> str:
        entry = roles.get(role)
        if isinstance(entry, dict):
            return str(entry.get("view") or "")
        return ""

    return _view("A"), _view("B")


def _optional_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    return int(value)


def parse_definition(
    raw: Any,
    default_time_limit_sec: int = 300,
    default_base_score: int = 100,
) -> ChallengeDefinition:
    """Build a ChallengeDefinition from one JSON record.

    Raises ValueError when the record is unusable.
    """
    if not isinstance(raw, dict):
        raise ValueError("challenge must be an object")

    title = str(raw.get("title") or "Challenge")
    level = str(raw.get("level") or "").strip().lower()
    base_score = _optional_int(raw.get("baseScore"))
    time_limit = _optional_int(raw.get("timeLimitSec"))
    view_a, view_b = _views(raw)

    subs_raw = raw.get("subquestions") or []
    if not isinstance(subs_raw, list):
        raise ValueError("subquestions must be a list")

    subquestions = []
    for sub in subs_raw:
        if not isinstance(sub, dict):
            raise ValueError("subquestion must be an object")
        sub_a, sub_b = _views(sub)
        subquestions.append(
            Subquestion(
                view_a=sub_a,
                view_b=sub_b,
                answer=_parse_answer(sub.get("answer")),
                time_limit_sec=_optional_int(sub.get("timeLimitSec")),
                base_score=_optional_int(sub.get("baseScore")),
            )
        )

    answer = None
    if subquestions:
        if raw.get("answer") is not None:
            logger.warning("Challenge %r has both answer and subquestions; using subquestions", title)
    elif raw.get("answer") is not None:
        answer = _parse_answer(raw.get("answer"))
    else:
        raise ValueError("challenge has neither answer nor subquestions")

    return ChallengeDefinition(
        title=title,
        level=level,
        base_score=base_score if base_score is not None else default_base_score,
        time_limit_sec=time_limit if time_limit is not None else default_time_limit_sec,
        view_a=view_a,
        view_b=view_b,
        answer=answer,
        subquestions=tuple(subquestions),
    )


class ChallengeCatalog:
    """Read-only list of challenge definitions."""

    def __init__(self, definitions: Iterable[ChallengeDefinition] = ()):
        self._definitions: tuple[ChallengeDefinition, ...] = tuple(definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def eligible(self, levels: Iterable[str], exclude: Iterable[int] = ()) -> list[tuple[int, ChallengeDefinition]]:
        accepted = {lv.lower() for lv in levels}
        skip = set(exclude)
        return [
            (i, d)
            for i, d in enumerate(self._definitions)
            if i not in skip and d.level in accepted
        ]

    def pick(
        self,
        levels: Iterable[str],
        used: set[int],
        rng: random.Random | None = None,
    ) -> tuple[int, ChallengeDefinition] | None:
        """Pick an unused definition uniformly at random.

        When every matching definition has been used, ``used`` is cleared in
        place and the pick is made from the full matching set. Returns None if
        nothing matches the levels at all.
        """
        levels = list(levels)
        candidates = self.eligible(levels, exclude=used)
        if not candidates:
            if not self.eligible(levels):
                return None
            used.clear()
            candidates = self.eligible(levels)
        return (rng or random).choice(candidates)

    @classmethod
    def from_records(
        cls,
        records: Sequence[Any],
        default_time_limit_sec: int = 300,
        default_base_score: int = 100,
    ) -> "ChallengeCatalog":
        definitions = []
        for pos, raw in enumerate(records):
            try:
                definitions.append(parse_definition(raw, default_time_limit_sec, default_base_score))
            except (TypeError, ValueError) as exc:
                logger.warning("Skipping challenge #%d: %s", pos, exc)
        return cls(definitions)

    @classmethod
    def from_file(
        cls,
        path: str | Path,
        default_time_limit_sec: int = 300,
        default_base_score: int = 100,
    ) -> "ChallengeCatalog":
        try:
            with open(path, encoding="utf-8") as fh:
                records = json.load(fh)
        except (OSError, ValueError):
            logger.exception("Failed to load challenges from %s", path)
            return cls()

        if not isinstance(records, list):
            logger.error("Challenge file %s must contain a JSON array", path)
            return cls()

        catalog = cls.from_records(records, default_time_limit_sec, default_base_score)
        logger.info("Loaded %d challenges from %s", len(catalog), path)
        return catalog
