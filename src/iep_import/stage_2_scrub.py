"""
Stage 2: PII Scrubbing

This is the PRIVACY GATE for imported goals.

Goal narratives are written about one student and routinely contain the
student's name, nicknames, dates and ID numbers. Every goal passes
through this layer before it is displayed or persisted; the original
text never leaves this stage.

Key features:
- Known-name detection (full name, first, last, nickname expansions)
- Structured identifiers (email, phone, student ID, calendar dates)
- Heuristic fallback for unknown names (cue phrases, honorifics,
  goal-subject slot, possessives), optional Presidio NER
- Fail closed: a goal that cannot be proven clean is omitted

This stage is 100% local - no external API calls.
"""

from __future__ import annotations

import re
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from re import Pattern
from typing import Any

import structlog

from iep_import.errors import ScrubError
from iep_import.models import ConfidenceLevel, ScrubbedGoal, ScrubResult
from iep_import.nicknames import name_variants
from iep_import.recognizers.educational import find_structured_identifiers

logger = structlog.get_logger()


class PIICategory(str, Enum):
    """Categories reported in ``pii_detected``, in canonical order."""
    FIRST_NAME = "first_name"
    LAST_NAME = "last_name"
    NICKNAME = "nickname"
    EMAIL = "email"
    PHONE = "phone"
    STUDENT_ID = "student_id"
    DATE = "date"
    POSSIBLE_NAME = "possible_name"


CATEGORY_ORDER = list(PIICategory)

DEFAULT_PLACEHOLDERS = {
    "name": "[name]",
    "date": "[date]",
    "id": "[id]",
    "email": "[email]",
    "phone": "[phone]",
}

CATEGORY_PLACEHOLDER = {
    PIICategory.FIRST_NAME: "name",
    PIICategory.LAST_NAME: "name",
    PIICategory.NICKNAME: "name",
    PIICategory.POSSIBLE_NAME: "name",
    PIICategory.EMAIL: "email",
    PIICategory.PHONE: "phone",
    PIICategory.STUDENT_ID: "id",
    PIICategory.DATE: "date",
}

# Detection priorities; lower wins an overlap
PRIORITY_KNOWN = 0
PRIORITY_STRUCTURED = 1
PRIORITY_HEURISTIC = 2

ENTITY_CATEGORIES = {
    "STUDENT_ID": PIICategory.STUDENT_ID,
    "CALENDAR_DATE": PIICategory.DATE,
}


@dataclass(frozen=True)
class Detection:
    """One span of text to redact."""
    start: int
    end: int
    categories: tuple[PIICategory, ...]
    priority: int
    source: str

    @property
    def length(self) -> int:
        return self.end - self.start

    def overlaps(self, other: Detection) -> bool:
        return self.start < other.end and self.end > other.start


# =============================================================================
# Known names
# =============================================================================

# Common English words that should NOT be matched as names when lowercase
COMMON_WORD_EXCLUSIONS = {
    "will", "bill", "bob", "rob", "pat", "art", "ray", "joy", "may",
    "mark", "nick", "jack", "frank", "grace", "hope", "faith",
    "gene", "jean", "sue", "dawn", "don", "drew", "dean", "grant",
    "wade", "chase", "chance", "clay", "cliff", "dale", "glen", "lane",
    "miles", "pierce", "reed", "sterling", "troy", "ward",
    "read", "rose", "summer", "june", "april", "august", "page", "king",
    "young", "long", "brown", "white", "black", "green", "hunter", "sage",
    "sky", "river", "star", "penny", "sunny", "rich", "sam", "ben", "ted",
    "tim", "kit", "meg", "em", "al", "ed", "dom", "nat", "cat", "kat",
}


def _name_pattern(body: str) -> Pattern[str]:
    return re.compile(r"(?<!\w)" + body + r"(?!\w)", re.IGNORECASE)


def _escape_name(name: str) -> str:
    """Escape a name for regex use, letting any run of whitespace stand for a space."""
    return r"\s+".join(re.escape(part) for part in name.split())


@dataclass
class KnownNames:
    """Compiled patterns for one student's known name variants."""
    patterns: list[tuple[Pattern[str], tuple[PIICategory, ...]]] = field(default_factory=list)
    has_names: bool = False

    @classmethod
    def build(
        cls,
        first_name: str | None,
        last_name: str | None,
        expand_nicknames: bool = True,
        middle_name: str | None = None,
    ) -> KnownNames:
        """
        Build patterns for full name, first, middle, last and nickname variants.

        Middle names are reported as ``first_name`` hits. Names shorter
        than two characters are skipped; a single letter cannot be
        redacted safely.
        """
        first = re.sub(r"\s+", " ", (first_name or "").strip())
        middle = re.sub(r"\s+", " ", (middle_name or "").strip())
        last = re.sub(r"\s+", " ", (last_name or "").strip())
        if len(first) < 2:
            first = ""
        if len(middle) < 2:
            middle = ""
        if len(last) < 2:
            last = ""

        known = cls(has_names=bool(first or middle or last))
        both = (PIICategory.FIRST_NAME, PIICategory.LAST_NAME)

        if first and middle:
            f, m = _escape_name(first), _escape_name(middle)
            if last:
                l = _escape_name(last)
                known.add(rf"{f}\s+{m}\s+{l}", both)
                known.add(rf"{l}\s*,\s*{f}\s+{m}", both)
            known.add(rf"{f}\s+{m}", (PIICategory.FIRST_NAME,))

        if first and last:
            f, l = _escape_name(first), _escape_name(last)
            known.add(rf"{f}\s+(?:(?-i:[A-Z][\w'.\-]*)\s+)?{l}", both)
            known.add(rf"{l}\s*,\s*{f}", both)

        if first:
            known.add(_escape_name(first), (PIICategory.FIRST_NAME,))
            for token in first.split():
                if len(token) >= 2 and token != first:
                    known.add(re.escape(token), (PIICategory.FIRST_NAME,))

        for token in re.split(r"[\s\-]+", middle):
            if len(token) >= 2:
                known.add(re.escape(token), (PIICategory.FIRST_NAME,))

        if last:
            known.add(_escape_name(last), (PIICategory.LAST_NAME,))
            for token in re.split(r"[\s\-]+", last):
                if len(token) >= 2 and token != last:
                    known.add(re.escape(token), (PIICategory.LAST_NAME,))

        if first and expand_nicknames:
            # e.g., "William" -> also "Will", "Bill", "Billy", "Liam"
            for variant in name_variants(first.split()[0]):
                if len(variant) < 2:
                    continue
                known.add(re.escape(variant), (PIICategory.NICKNAME,))
                if last:
                    known.add(
                        rf"{re.escape(variant)}\s+{_escape_name(last)}",
                        (PIICategory.NICKNAME, PIICategory.LAST_NAME),
                    )

        logger.debug("known_name_patterns_built", count=len(known.patterns))
        return known

    def add(self, body: str, categories: tuple[PIICategory, ...]) -> None:
        self.patterns.append((_name_pattern(body), categories))

    def find(self, text: str) -> list[Detection]:
        """All known-name hits in text, skipping lowercase common words."""
        detections = []
        for pattern, categories in self.patterns:
            for match in pattern.finditer(text):
                matched = match.group()
                # "will" (modal verb) vs "Will" (name)
                if matched.islower() and matched in COMMON_WORD_EXCLUSIONS:
                    continue
                detections.append(
                    Detection(match.start(), match.end(), categories, PRIORITY_KNOWN, "known")
                )
        return detections


# =============================================================================
# Heuristic names
# =============================================================================

_TOKEN = r"[A-Z][a-z]*(?:['’\-][A-Z][a-z]*|[A-Z][a-z]+)*\b"
_NAME = rf"{_TOKEN}(?:[ \t]+{_TOKEN})?"

HEURISTIC_PATTERNS: dict[str, Pattern[str]] = {
    "cue": re.compile(
        r"(?i:\b(?:student|child|pupil)(?:'s)?\s*(?:name)?\s*:\s*"
        r"|\b(?:child's|student's|his|her|their)\s+name\s+is\s+"
        r"|\bnamed\s+|\bcalled\s+|\bknown\s+as\s+)"
        rf"(?P<name>{_NAME})"
    ),
    "honorific": re.compile(rf"\b(?:Mr|Mrs|Ms|Miss|Mx|Dr)\.?[ \t]+(?P<name>{_NAME})"),
    "subject": re.compile(
        rf"(?:^[ \t]*|(?<=[.!?;:,])\s+)(?P<name>{_NAME})\s+"
        r"(?:will|shall|can|would|should|is\s+able)\b",
        re.MULTILINE,
    ),
    "possessive": re.compile(rf"(?<![\w\[])(?P<name>{_TOKEN})['’]s\b"),
}

# Capitalized words that open goal sentences or name roles, never students
HEURISTIC_STOP_WORDS = {
    "a", "an", "the", "i", "we", "you", "he", "she", "they", "it", "his", "her",
    "their", "this", "that", "these", "those", "each", "all", "both", "one",
    "student", "students", "child", "children", "pupil", "learner", "peer",
    "peers", "teacher", "teachers", "parent", "parents", "staff", "adult",
    "adults", "provider", "therapist", "aide", "class", "classroom", "school",
    "given", "when", "while", "once", "if", "by", "in", "on", "at", "for",
    "from", "to", "of", "with", "without", "within", "during", "after",
    "before", "upon", "using", "across", "throughout", "following",
    "provided", "independently", "and", "or", "but", "then", "also",
    "iep", "goal", "goals", "objective", "annual", "baseline", "grade",
    "kindergarten", "speech", "language", "reading", "writing", "math",
    "english", "spanish", "ela", "ot", "pt", "slp", "rsp", "sai",
    "monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday",
    "january", "february", "march", "april", "may", "june", "july", "august",
    "september", "october", "november", "december",
    "first", "second", "third", "fourth", "fifth", "sixth", "seventh",
    "eighth", "ninth", "tenth", "eleventh", "twelfth", "trimester", "semester",
    "name", "named", "will", "can", "should",
}


def _heuristic_span(match: re.Match[str]) -> tuple[int, int] | None:
    """Trim stop words from a heuristic name capture; None if nothing is left."""
    start, end = match.span("name")
    tokens = list(re.finditer(r"\S+", match.group("name")))
    kept = []
    for token in tokens:
        word = token.group().lower()
        if word in HEURISTIC_STOP_WORDS or len(word) < 2:
            break
        kept.append(token)
    if not kept:
        return None
    return start + kept[0].start(), start + kept[-1].end()


def find_heuristic_names(text: str) -> list[Detection]:
    """Capitalized words in name-like positions, filtered by stop words."""
    detections = []
    for source, pattern in HEURISTIC_PATTERNS.items():
        for match in pattern.finditer(text):
            span = _heuristic_span(match)
            if span is None:
                continue
            detections.append(
                Detection(span[0], span[1], (PIICategory.POSSIBLE_NAME,), PRIORITY_HEURISTIC, source)
            )
    return detections


# =============================================================================
# Scrubber
# =============================================================================

class PIIScrubber:
    """
    Detects and redacts PII in goal text.

    Combines:
    1. Known-name detection (the student's own names and nicknames)
    2. Regex and Presidio pattern recognizers (structured identifiers)
    3. Heuristics and optional Presidio NER (unknown names)
    """

    # Regex patterns for structured PII not covered by the Presidio recognizers
    PATTERNS = {
        PIICategory.EMAIL: re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"),
        PIICategory.PHONE: re.compile(r"(?<!\w)(?:\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}(?!\w)"),
        PIICategory.STUDENT_ID: re.compile(r"\b\d{3}-\d{2}-\d{4}\b"),  # SSN-shaped
    }

    def __init__(
        self,
        placeholders: dict[str, str] | None = None,
        use_presidio_ner: bool = False,
        ner_score_threshold: float = 0.6,
        max_workers: int = 1,
        expand_nicknames: bool = True,
    ) -> None:
        """
        Initialize PII scrubber.

        Args:
            placeholders: Overrides for the name/date/id/email/phone placeholders
            use_presidio_ner: Whether to add Presidio PERSON entities (needs a spaCy model)
            ner_score_threshold: Minimum Presidio score for PERSON entities
            max_workers: Threads used to scrub the goals of one student
            expand_nicknames: Whether to redact nickname variants of the first name
        """
        self.placeholders = {**DEFAULT_PLACEHOLDERS, **(placeholders or {})}
        self.use_presidio_ner = use_presidio_ner
        self.ner_score_threshold = ner_score_threshold
        self.max_workers = max(1, max_workers)
        self.expand_nicknames = expand_nicknames
        self._analyzer: Any | None = None
        self._analyzer_lock = threading.Lock()

        logger.info(
            "pii_scrubber_initialized",
            use_presidio_ner=use_presidio_ner,
            max_workers=self.max_workers,
            expand_nicknames=expand_nicknames,
        )

    @property
    def analyzer(self) -> Any | None:
        """Lazy-load the Presidio AnalyzerEngine for PERSON detection."""
        if not self.use_presidio_ner:
            return None
        with self._analyzer_lock:
            if self._analyzer is None:
                from presidio_analyzer import AnalyzerEngine

                try:
                    self._analyzer = AnalyzerEngine()
                    logger.info("presidio_analyzer_loaded")
                except (OSError, ValueError) as e:
                    # Usually a missing spaCy model
                    logger.warning("presidio_ner_unavailable", error=type(e).__name__)
                    self.use_presidio_ner = False
                    return None
        return self._analyzer

    def known_names(
        self,
        first_name: str | None,
        last_name: str | None,
        middle_name: str | None = None,
    ) -> KnownNames:
        return KnownNames.build(
            first_name, last_name, expand_nicknames=self.expand_nicknames, middle_name=middle_name
        )

    def detect(self, text: str, known: KnownNames) -> list[Detection]:
        """
        Detect all PII spans in text.

        Returns:
            Non-overlapping detections sorted by start offset
        """
        detections = known.find(text)

        for category, pattern in self.PATTERNS.items():
            for match in pattern.finditer(text):
                detections.append(
                    Detection(match.start(), match.end(), (category,), PRIORITY_STRUCTURED, "regex")
                )

        for result in find_structured_identifiers(text):
            category = ENTITY_CATEGORIES.get(result.entity_type)
            if category is not None:
                detections.append(
                    Detection(result.start, result.end, (category,), PRIORITY_STRUCTURED, "presidio")
                )

        detections.extend(find_heuristic_names(text))

        if self.analyzer is not None:
            for result in self.analyzer.analyze(
                text, entities=["PERSON"], language="en", score_threshold=self.ner_score_threshold
            ):
                detections.append(
                    Detection(
                        result.start, result.end, (PIICategory.POSSIBLE_NAME,), PRIORITY_HEURISTIC, "presidio_ner"
                    )
                )

        return self._resolve(detections)

    @staticmethod
    def _resolve(detections: list[Detection]) -> list[Detection]:
        """
        Merge overlapping detections into non-overlapping spans.

        Higher-priority spans are placed first. A lower-priority span that
        overlaps them is folded into their union, so text it covers beyond
        them is still redacted; its categories are added only when it
        extends the covered text.
        """
        # A name inside an email address is covered by redacting the whole address
        emails = [d for d in detections if PIICategory.EMAIL in d.categories]
        if emails:
            detections = [
                d for d in detections
                if not (
                    d.priority == PRIORITY_KNOWN
                    and any(e.start <= d.start and d.end <= e.end for e in emails)
                )
            ]

        accepted: list[Detection] = []
        for detection in sorted(detections, key=lambda d: (d.priority, d.start, -d.length)):
            overlapping = sorted((kept for kept in accepted if detection.overlaps(kept)), key=lambda d: d.start)
            if not overlapping:
                accepted.append(detection)
                continue

            covered = sum(
                min(detection.end, kept.end) - max(detection.start, kept.start) for kept in overlapping
            )
            if covered >= detection.length and len(overlapping) == 1:
                continue

            categories: list[PIICategory] = []
            for kept in overlapping:
                categories.extend(c for c in kept.categories if c not in categories)
            if covered < detection.length:
                categories.extend(c for c in detection.categories if c not in categories)

            for kept in overlapping:
                accepted.remove(kept)
            accepted.append(
                Detection(
                    start=min(detection.start, overlapping[0].start),
                    end=max(detection.end, max(kept.end for kept in overlapping)),
                    categories=tuple(categories),
                    priority=min(kept.priority for kept in overlapping),
                    source=overlapping[0].source,
                )
            )

        return sorted(accepted, key=lambda d: d.start)

    def _placeholder(self, detection: Detection) -> str:
        return self.placeholders[CATEGORY_PLACEHOLDER[detection.categories[0]]]

    def redact(self, text: str, detections: list[Detection]) -> str:
        """Replace detections right to left so earlier offsets stay valid."""
        result = text
        for detection in sorted(detections, key=lambda d: d.start, reverse=True):
            result = result[:detection.start] + self._placeholder(detection) + result[detection.end:]
        return result

    def _mask_placeholders(self, text: str) -> str:
        for placeholder in set(self.placeholders.values()):
            text = text.replace(placeholder, " " * len(placeholder))
        return text

    def scrub_goal(self, goal: Any, known: KnownNames, index: int = 0) -> ScrubbedGoal:
        """
        Scrub one goal.

        Raises:
            ScrubError: If the goal is not text, a known name survives
                redaction, or detection fails unexpectedly
        """
        if not isinstance(goal, str):
            raise ScrubError(f"goal is {type(goal).__name__}, not text", goal_index=index)

        try:
            detections = self.detect(goal, known)
            scrubbed = self.redact(goal, detections)
            survivors = known.find(self._mask_placeholders(scrubbed))
        except ScrubError:
            raise
        except Exception as e:
            raise ScrubError(f"unexpected {type(e).__name__} during redaction", goal_index=index) from e

        if survivors:
            raise ScrubError("a known name was still present after redaction", goal_index=index)

        found = {category for d in detections for category in d.categories}
        pii_detected = [c.value for c in CATEGORY_ORDER if c in found]

        heuristic_fired = any(PIICategory.POSSIBLE_NAME in d.categories for d in detections)
        if not heuristic_fired:
            confidence = ConfidenceLevel.HIGH
        elif known.has_names:
            confidence = ConfidenceLevel.MEDIUM
        else:
            confidence = ConfidenceLevel.LOW

        return ScrubbedGoal(
            original=goal,
            scrubbed=scrubbed,
            pii_detected=pii_detected,
            confidence=confidence,
        )

    def scrub_goals(
        self,
        goals: list[Any],
        first_name: str | None = None,
        last_name: str | None = None,
        middle_name: str | None = None,
    ) -> ScrubResult:
        """
        Scrub a batch of goals for one student.

        Goals are independent: a failure omits that goal only, and the
        remaining goals keep their input order.
        """
        known = self.known_names(first_name, last_name, middle_name)
        outcomes: list[ScrubbedGoal | ScrubError] = []

        if self.max_workers > 1 and len(goals) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                futures = [
                    executor.submit(self._scrub_or_error, goal, known, i)
                    for i, goal in enumerate(goals)
                ]
                outcomes = [f.result() for f in futures]
        else:
            outcomes = [self._scrub_or_error(goal, known, i) for i, goal in enumerate(goals)]

        scrubbed = [o for o in outcomes if isinstance(o, ScrubbedGoal)]
        errors = [str(o) for o in outcomes if isinstance(o, ScrubError)]

        logger.debug(
            "goals_scrubbed",
            total=len(goals),
            scrubbed=len(scrubbed),
            failed=len(errors),
        )
        return ScrubResult(goals=scrubbed, errors=errors)

    def _scrub_or_error(self, goal: Any, known: KnownNames, index: int) -> ScrubbedGoal | ScrubError:
        try:
            return self.scrub_goal(goal, known, index)
        except ScrubError as e:
            logger.warning("goal_scrub_failed", goal_index=index, reason=e.detail)
            return e


# =============================================================================
# Convenience Functions
# =============================================================================

def create_pii_scrubber(config: dict[str, Any] | None = None) -> PIIScrubber:
    """
    Factory function for creating a PIIScrubber.

    Args:
        config: The ``scrubbing`` section of the pipeline settings with keys:
            - placeholders: dict (name/date/id/email/phone overrides)
            - use_presidio_ner: bool (default False)
            - ner_score_threshold: float (default 0.6)
            - max_workers: int (default 1)
            - expand_nicknames: bool (default True)

    Returns:
        Configured PIIScrubber instance.
    """
    config = config or {}
    return PIIScrubber(
        placeholders=config.get("placeholders"),
        use_presidio_ner=bool(config.get("use_presidio_ner", False)),
        ner_score_threshold=float(config.get("ner_score_threshold", 0.6)),
        max_workers=int(config.get("max_workers", 1)),
        expand_nicknames=bool(config.get("expand_nicknames", True)),
    )


def scrub_pii_from_goals(
    goals: list[Any],
    first_name: str | None = None,
    last_name: str | None = None,
    config: dict[str, Any] | None = None,
    middle_name: str | None = None,
) -> ScrubResult:
    """
    Scrub PII from a student's goals.

    Args:
        goals: Raw goal strings
        first_name: Student's first name, if known
        last_name: Student's last name, if known
        middle_name: Middle name(s) from a combined name cell, if any
        config: Optional ``scrubbing`` settings

    Returns:
        ScrubResult with scrubbed goals (failed goals omitted) and errors
    """
    return create_pii_scrubber(config).scrub_goals(goals, first_name, last_name, middle_name)
