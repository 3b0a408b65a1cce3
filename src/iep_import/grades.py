"""
Grade-level vocabulary shared by the parser and the matcher.

Grades are normalized to a small closed vocabulary: TK, K, 1-12.
Anything else is returned unchanged and reported as unrecognized.
"""

from __future__ import annotations

import re

GRADE_ORDER: tuple[str, ...] = ("TK", "K") + tuple(str(n) for n in range(1, 13))

_GRADE_INDEX = {grade: idx for idx, grade in enumerate(GRADE_ORDER)}

_NUMBER_WORDS = {
    "FIRST": "1", "SECOND": "2", "THIRD": "3", "FOURTH": "4",
    "FIFTH": "5", "SIXTH": "6", "SEVENTH": "7", "EIGHTH": "8",
    "NINTH": "9", "TENTH": "10", "ELEVENTH": "11", "TWELFTH": "12",
}

_TK_PATTERN = re.compile(r"^(?:T\.?\s*K\.?|TRANSITIONAL\s*K(?:INDER(?:GARTEN)?)?|-1)$")
_K_PATTERN = re.compile(r"^(?:K\.?|KG|KN|KDG|KINDER|KINDERGARTEN|0+)$")
_NUMERIC_PATTERN = re.compile(r"^0*(\d{1,2})(?:\.0+)?(?:ST|ND|RD|TH)?$")
_NOISE_PATTERN = re.compile(r"\b(?:GRADE|GRD|GR|LEVEL|LVL|CURRENT)\b\.?|[:#]")


def normalize_grade(raw: str | None) -> tuple[str, bool]:
    """
    Normalize a grade token.

    Args:
        raw: Grade cell text such as "Grade 3", "3rd", "Kindergarten", "T.K."

    Returns:
        Tuple of (grade, recognized). Unrecognized tokens come back
        stripped but otherwise unchanged with recognized=False.
    """
    if raw is None:
        return "", False

    original = raw.strip()
    if not original:
        return "", False

    token = _NOISE_PATTERN.sub(" ", original.upper())
    token = re.sub(r"\s+", " ", token).strip()

    if _TK_PATTERN.match(token):
        return "TK", True

    if _K_PATTERN.match(token):
        return "K", True

    if token in _NUMBER_WORDS:
        return _NUMBER_WORDS[token], True

    match = _NUMERIC_PATTERN.match(token)
    if match:
        number = int(match.group(1))
        if 1 <= number <= 12:
            return str(number), True

    return original, False


def grade_index(grade: str) -> int | None:
    """Position of a normalized grade in GRADE_ORDER, or None."""
    normalized, recognized = normalize_grade(grade)
    if not recognized:
        return None
    return _GRADE_INDEX[normalized]


def grade_distance(a: str, b: str) -> int | None:
    """Number of grade bands between two grades, or None if either is unknown."""
    ia = grade_index(a)
    ib = grade_index(b)
    if ia is None or ib is None:
        return None
    return abs(ia - ib)
