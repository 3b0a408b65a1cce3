"""
Core data models for the IEP goals import pipeline.

All data structures are defined here to ensure consistent typing
across the pipeline stages. Models handed to the caller (ProcessedMatch
and friends) serialize with camelCase keys; internal models keep the
Python field names.
"""

from __future__ import annotations

from datetime import date
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class ConfidenceLevel(str, Enum):
    """Confidence levels for match and scrub decisions."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


CONFIDENCE_RANK = {
    ConfidenceLevel.NONE: 0,
    ConfidenceLevel.LOW: 1,
    ConfidenceLevel.MEDIUM: 2,
    ConfidenceLevel.HIGH: 3,
}


def weakest(*levels: ConfidenceLevel) -> ConfidenceLevel:
    """Return the least certain of the given confidence levels."""
    return min(levels, key=lambda level: CONFIDENCE_RANK[level])


# =============================================================================
# Parser models
# =============================================================================

class ParsedStudent(BaseModel):
    """One student record extracted from a source report (PII - handle carefully)."""
    model_config = ConfigDict(frozen=True)

    first_name: str = Field(default="", description="First name as written in the source")
    last_name: str = Field(default="", description="Last name as written in the source")
    middle_name: str = Field(default="", description="Middle name(s) from a combined name cell; used only for redaction")
    initials: str = Field(default="", description="Explicit or derived initials")
    grade_level: str = Field(default="", description="Normalized grade (TK, K, 1-12) or raw token")
    school_site: str | None = Field(default=None, description="School of attendance, free text")
    goals: list[str] = Field(default_factory=list, description="Raw goal narratives")
    iep_date: str | None = Field(default=None, description="IEP date as YYYY-MM-DD")

    # Provenance for reviewer-facing messages
    source_sheet: str = Field(default="", description="Sheet or file the row came from")
    source_row: int = Field(default=0, description="1-based row number in the source sheet")

    @model_validator(mode="after")
    def _require_identity(self) -> ParsedStudent:
        if not self.last_name.strip() and not self.initials.strip():
            raise ValueError("student has neither a last name nor initials")
        return self

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name.strip(), self.last_name.strip()) if p)

    @property
    def has_full_name(self) -> bool:
        return bool(self.first_name.strip() and self.last_name.strip())


class TargetStudent(BaseModel):
    """A known roster student used to narrow parsing to a single row."""
    model_config = ConfigDict(frozen=True)

    initials: str
    grade_level: str = ""
    school_name: str = ""
    first_name: str | None = None
    last_name: str | None = None


class ParseOptions(BaseModel):
    """Explicit filters applied by the report parser."""
    model_config = ConfigDict(frozen=True)

    user_schools: list[str] | None = Field(default=None, description="School-site tokens to keep")
    provider_role: str | None = Field(default=None, description="Provider role for goal filtering")
    target_student: TargetStudent | None = Field(default=None)
    reference_date: date | None = Field(default=None, description="'Today' for IEP staleness checks")


class ParseMetadata(BaseModel):
    """Caller-visible facts about a parse run."""
    model_config = ConfigDict(frozen=True)

    format_detected: str = "unknown"
    container: str = ""
    sheets_processed: list[str] = Field(default_factory=list)
    dialects: dict[str, str] = Field(default_factory=dict)
    total_rows: int = 0
    goals_filtered: int = 0
    rows_filtered_by_school: int = 0
    students_filtered_by_target: int = 0


class ParseResult(BaseModel):
    """Output of the report parser."""
    model_config = ConfigDict(frozen=True)

    students: list[ParsedStudent] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    metadata: ParseMetadata = Field(default_factory=ParseMetadata)


# =============================================================================
# Matcher models
# =============================================================================

class DatabaseStudent(BaseModel):
    """A roster record the matcher compares against."""
    model_config = ConfigDict(frozen=True)

    id: str
    initials: str
    grade_level: str = ""
    first_name: str | None = None
    last_name: str | None = None
    school_site: str | None = None

    @property
    def has_full_name(self) -> bool:
        return bool((self.first_name or "").strip() and (self.last_name or "").strip())


class MatchResult(BaseModel):
    """Result of matching one parsed student against the roster."""
    model_config = ConfigDict(frozen=True)

    excel_student: ParsedStudent
    matched_student: DatabaseStudent | None = None
    confidence: ConfidenceLevel
    reason: str
    candidates: list[str] = Field(default_factory=list, description="Roster ids considered")

    @model_validator(mode="after")
    def _none_iff_unmatched(self) -> MatchResult:
        if (self.confidence == ConfidenceLevel.NONE) != (self.matched_student is None):
            raise ValueError("confidence 'none' must coincide with a missing matched_student")
        return self


class MatchSummary(BaseModel):
    """Per-tier counts, always derived from a match list."""
    model_config = ConfigDict(frozen=True)

    high_confidence: int = 0
    medium_confidence: int = 0
    low_confidence: int = 0
    no_match: int = 0

    @classmethod
    def from_matches(cls, matches: list[MatchResult]) -> MatchSummary:
        counts = {level: 0 for level in ConfidenceLevel}
        for match in matches:
            counts[match.confidence] += 1
        return cls(
            high_confidence=counts[ConfidenceLevel.HIGH],
            medium_confidence=counts[ConfidenceLevel.MEDIUM],
            low_confidence=counts[ConfidenceLevel.LOW],
            no_match=counts[ConfidenceLevel.NONE],
        )

    @property
    def total(self) -> int:
        return self.high_confidence + self.medium_confidence + self.low_confidence + self.no_match


class MatchOutcome(BaseModel):
    """Output of the student matcher."""
    model_config = ConfigDict(frozen=True)

    matches: list[MatchResult] = Field(default_factory=list)
    summary: MatchSummary = Field(default_factory=MatchSummary)


# =============================================================================
# Scrubber models
# =============================================================================

class ScrubbedGoal(BaseModel):
    """One goal after PII redaction.

    ``original`` is transient: it is excluded from serialization and repr
    so it cannot leak through logs or payloads.
    """
    model_config = ConfigDict(frozen=True)

    original: str = Field(exclude=True, repr=False, description="Input text, never persisted")
    scrubbed: str = Field(description="Redacted text")
    pii_detected: list[str] = Field(default_factory=list, description="PII categories found")
    confidence: ConfidenceLevel = Field(description="Confidence that all PII was removed")

    @model_validator(mode="after")
    def _no_none_confidence(self) -> ScrubbedGoal:
        if self.confidence == ConfidenceLevel.NONE:
            raise ValueError("scrub confidence must be high, medium or low")
        return self


class ScrubResult(BaseModel):
    """Output of scrubbing a batch of goals."""
    model_config = ConfigDict(frozen=True)

    goals: list[ScrubbedGoal] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


# =============================================================================
# Caller-facing payload
# =============================================================================

class _PayloadModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class ImportOptions(_PayloadModel):
    """Options recognized by the import pipeline; absent means no filtering."""

    user_schools: list[str] | None = None
    target_student_id: str | None = None
    provider_role: str | None = None


class GoalPreview(_PayloadModel):
    """A scrubbed goal as shown to the reviewer. Has no ``original`` field."""

    scrubbed: str
    pii_detected: list[str] = Field(default_factory=list)
    confidence: ConfidenceLevel

    @classmethod
    def from_scrubbed(cls, goal: ScrubbedGoal) -> GoalPreview:
        return cls(scrubbed=goal.scrubbed, pii_detected=list(goal.pii_detected), confidence=goal.confidence)


class ProcessedMatch(_PayloadModel):
    """One roster student with its match provenance and scrubbed goals."""

    student_id: str
    student_initials: str
    student_grade: str
    match_confidence: ConfidenceLevel
    match_reason: str
    iep_date: str | None = None
    source_sheets: list[str] = Field(default_factory=list)
    goals: list[GoalPreview] = Field(default_factory=list)


class ImportSummary(_PayloadModel):
    total_parsed: int = 0
    matched: int = 0
    unmatched: int = 0
    high_confidence: int = 0
    medium_confidence: int = 0
    low_confidence: int = 0
    format_detected: str = "unknown"
    goals_filtered: int = 0


class UnmatchedStudent(_PayloadModel):
    initials: str
    grade: str
    reason: str


class ImportPreview(_PayloadModel):
    """The preview handed to the upload/review UI."""

    matches: list[ProcessedMatch] = Field(default_factory=list)
    summary: ImportSummary = Field(default_factory=ImportSummary)
    parse_errors: list[str] = Field(default_factory=list)
    parse_warnings: list[str] = Field(default_factory=list)
    scrub_errors: list[str] = Field(default_factory=list)
    unmatched_students: list[UnmatchedStudent] = Field(default_factory=list)

    def to_payload(self) -> dict:
        """JSON-ready dict with camelCase keys."""
        return self.model_dump(by_alias=True, mode="json")

    @property
    def total_goals(self) -> int:
        return sum(len(m.goals) for m in self.matches)
