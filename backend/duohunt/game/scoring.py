from __future__ import annotations

import math


class ScoringPolicy:
    """Linear time penalty on the base score, floored at zero.

    ``elapsed = time_limit - floor(remain_ms / 1000)``; each elapsed second
    costs ``penalty_per_sec`` points. A mode multiplier is applied last and the
    result is rounded down.
    """

    def __init__(self, multipliers: dict[str, float] | None = None, penalty_per_sec: int = 1):
        self.multipliers = dict(multipliers or {})
        self.penalty_per_sec = penalty_per_sec

    def multiplier_for(self, mode: str | None) -> float:
        return self.multipliers.get(mode or "", 1.0)

    def score(self, base_score: int, time_limit_sec: int, remain_ms: float, mode: str | None = None) -> int:
        remain_sec = math.floor(max(0.0, float(remain_ms)) / 1000)
        remain_sec = min(remain_sec, time_limit_sec)
        elapsed_sec = time_limit_sec - remain_sec

        raw = max(0, base_score - self.penalty_per_sec * elapsed_sec)
        return int(math.floor(raw * self.multiplier_for(mode)))
