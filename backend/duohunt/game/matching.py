from __future__ import annotations

import logging
import re
from typing import Any

from .models import AnswerSpec


logger = logging.getLogger(__name__)

_CASE_MARKER = "(?i)"

# Client-side regex flags as they appear in challenge files.
_FLAG_MAP = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}


def normalize(text: Any) -> str:
    if text is None:
        return ""
    return str(text).strip()


def _compile(pattern: str, flags: str) -> re.Pattern[str] | None:
    re_flags = 0
    if pattern.startswith(_CASE_MARKER):
        pattern = pattern[len(_CASE_MARKER):]
        re_flags |= re.IGNORECASE
    for ch in flags or "":
        re_flags |= _FLAG_MAP.get(ch, 0)

    try:
        return re.compile(pattern, re_flags)
    except re.error as exc:
        logger.debug("Bad answer pattern %r: %s", pattern, exc)
        return None


def match_answer(spec: AnswerSpec | None, answer: Any) -> bool:
    """Check a submitted answer against a challenge's answer spec.

    Empty submissions never match. Malformed patterns count as a miss.
    """
    if spec is None:
        return False
    text = normalize(answer)
    if not text:
        return False

    if spec.kind == "regex":
        compiled = _compile(spec.pattern or "", spec.flags or "")
        if compiled is None:
            return False
        return compiled.search(text) is not None

    if spec.kind == "exact":
        return text.lower() == (spec.value or "").lower()

    return False
