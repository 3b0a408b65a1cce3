"""Custom Presidio recognizers for identifiers found in IEP goal text.

This module contains pattern recognizers for student/district IDs and
specific calendar dates, used by the PII scrubber without a full
AnalyzerEngine (no NLP model required).
"""

from iep_import.recognizers.educational import (
    CalendarDateRecognizer,
    StudentIDRecognizer,
    find_structured_identifiers,
)

__all__ = [
    "StudentIDRecognizer",
    "CalendarDateRecognizer",
    "find_structured_identifiers",
]
