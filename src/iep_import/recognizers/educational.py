"""Custom Presidio recognizers for structured identifiers in goal text.

This module implements PatternRecognizer subclasses for detecting
student/district ID numbers and specific calendar dates. IEP goals
routinely embed both ("By 3/15/2025, given ...", "SSID 1234567"), and
either one can re-identify a student once combined with the roster.

The recognizers are run directly through ``PatternRecognizer.analyze``;
no AnalyzerEngine or spaCy model is needed.
"""

import re
from typing import List

from presidio_analyzer import Pattern, PatternRecognizer, RecognizerResult

_REGEX_FLAGS = re.DOTALL | re.MULTILINE | re.IGNORECASE

_MONTHS = (
    r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?|"
    r"aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
)

_FULL_MONTHS = (
    r"(?:january|february|march|april|may|june|july|august|september|"
    r"october|november|december)"
)


class StudentIDRecognizer(PatternRecognizer):
    """Recognizer for student and district ID numbers.

    Detects patterns like:
    - "Student ID: 123456"
    - "SSID 1234567890", "District ID #88812"
    - "ID# 4471"
    - "S12345678" (bare student ID with S prefix)
    """

    PATTERNS = [
        Pattern(
            name="student_id_labelled",
            regex=(
                r"\b(?:(?:student|district|state|local|seis)\s*)?id\s*"
                r"(?:number|no\.?|#)?\s*[:#]?\s*\d{3,12}\b"
            ),
            score=0.9,
        ),
        Pattern(
            name="ssid_labelled",
            regex=r"\bssid\s*[:#]?\s*\d{3,12}\b",
            score=0.9,
        ),
        Pattern(
            name="student_number_labelled",
            regex=r"\bstudent\s*(?:number|no\.?|#)\s*[:#]?\s*\d{3,12}\b",
            score=0.85,
        ),
        Pattern(
            name="student_id_bare",
            regex=r"\bS\d{7,9}\b",
            score=0.7,
        ),
    ]

    def __init__(self) -> None:
        super().__init__(
            supported_entity="STUDENT_ID",
            patterns=self.PATTERNS,
            context=["student", "id", "number", "district"],
            global_regex_flags=_REGEX_FLAGS,
        )


class CalendarDateRecognizer(PatternRecognizer):
    """Recognizer for specific calendar dates.

    Detects patterns like:
    - "3/15/2025", "03-15-25", "2025-03-15"
    - "March 15th, 2025", "Mar. 15 2025"
    - "March 2025" (lower score, still a re-identifying timeline)

    Durations ("in 36 weeks") and ratios ("4/5 trials") are not dates
    and are left alone.
    """

    PATTERNS = [
        Pattern(
            name="date_numeric",
            regex=r"\b\d{1,2}[/-]\d{1,2}[/-](?:\d{4}|\d{2})\b",
            score=0.85,
        ),
        Pattern(
            name="date_iso",
            regex=r"\b\d{4}-\d{1,2}-\d{1,2}\b",
            score=0.85,
        ),
        Pattern(
            name="date_month_day_year",
            regex=rf"\b{_MONTHS}\.?\s+\d{{1,2}}(?:st|nd|rd|th)?,?\s+\d{{4}}\b",
            score=0.85,
        ),
        Pattern(
            name="date_month_year",
            regex=rf"\b{_FULL_MONTHS},?\s+\d{{4}}\b",
            score=0.6,
        ),
    ]

    def __init__(self) -> None:
        super().__init__(
            supported_entity="CALENDAR_DATE",
            patterns=self.PATTERNS,
            context=["by", "on", "date", "annual"],
            global_regex_flags=_REGEX_FLAGS,
        )


_RECOGNIZERS: List[PatternRecognizer] = [StudentIDRecognizer(), CalendarDateRecognizer()]


def find_structured_identifiers(text: str) -> List[RecognizerResult]:
    """Run the ID and date recognizers over one text.

    Args:
        text: Goal text to analyze

    Returns:
        RecognizerResults sorted by start offset. ``entity_type`` is
        STUDENT_ID or CALENDAR_DATE.
    """
    results: List[RecognizerResult] = []
    for recognizer in _RECOGNIZERS:
        results.extend(recognizer.analyze(text, entities=recognizer.supported_entities))
    return sorted(results, key=lambda r: (r.start, -(r.end - r.start)))


__all__ = [
    "StudentIDRecognizer",
    "CalendarDateRecognizer",
    "find_structured_identifiers",
]
