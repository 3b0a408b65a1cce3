"""
Stage 1: Student Matching

Matches each parsed report student to an existing roster record. The
roster stores only initials and grade long-term, so most matches rest on
initials + grade with names as an optional tie-breaker.

This module provides:
- Small named predicates (initials_equal, compare_grades, compare_names)
- An explicit tier table combining them (candidate_tier)
- StudentMatcher for ranking candidates and resolving ties
- match_students / create_student_matcher convenience functions

A match is never accepted automatically; every result goes to a human
reviewer. Reasons carry initials, grades and roster ids only.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

import structlog
from rapidfuzz import fuzz

from iep_import.grades import grade_distance, normalize_grade
from iep_import.models import (
    CONFIDENCE_RANK,
    ConfidenceLevel,
    DatabaseStudent,
    MatchOutcome,
    MatchResult,
    MatchSummary,
    ParsedStudent,
)

logger = structlog.get_logger()


class GradeRelation(str, Enum):
    """How two grade levels relate."""
    SAME = "same"
    ADJACENT = "adjacent"
    CONFLICT = "conflict"
    UNKNOWN = "unknown"


class NameRelation(str, Enum):
    """How two full names relate."""
    EQUAL = "equal"
    SIMILAR = "similar"
    CONFLICT = "conflict"
    UNAVAILABLE = "unavailable"


GRADE_CLOSENESS = {
    GradeRelation.SAME: 2,
    GradeRelation.ADJACENT: 1,
    GradeRelation.CONFLICT: 0,
    GradeRelation.UNKNOWN: 0,
}


# =============================================================================
# Predicates
# =============================================================================

def normalize_initials(initials: str) -> str:
    """Uppercase letters only: "j.d." -> "JD"."""
    return re.sub(r"[^A-Z]", "", (initials or "").upper())


def normalize_name(name: Optional[str]) -> str:
    """Lowercase letters only, for name comparison."""
    return re.sub(r"[^a-z]", "", (name or "").strip().lower())


def _extended_initials_match(three: str, two: str, first_name: str) -> bool:
    # "JOS" matches "JS" when the first name is Jo...
    if len(three) != 3 or len(two) != 2 or len(first_name) < 2:
        return False
    return (
        three[0] == two[0]
        and three[2] == two[1]
        and three[1] == first_name[1].upper()
    )


def initials_equal(parsed: ParsedStudent, roster_student: DatabaseStudent) -> bool:
    """
    Check whether the parsed student's initials match the roster entry.

    Accepts exact normalized equality and the extended 3-letter form in
    either direction, verified against the parsed first name.
    """
    excel = normalize_initials(parsed.initials)
    db = normalize_initials(roster_student.initials)
    if not excel or not db:
        return False
    if excel == db:
        return True

    first_name = parsed.first_name.strip()
    return (
        _extended_initials_match(db, excel, first_name)
        or _extended_initials_match(excel, db, first_name)
    )


def compare_grades(a: str, b: str) -> GradeRelation:
    """Relate two grades over the ordered vocabulary TK < K < 1 ... 12."""
    distance = grade_distance(a or "", b or "")
    if distance is None:
        raw_a, _ = normalize_grade(a)
        raw_b, _ = normalize_grade(b)
        if raw_a and raw_b and raw_a.casefold() == raw_b.casefold():
            return GradeRelation.SAME
        return GradeRelation.UNKNOWN
    if distance == 0:
        return GradeRelation.SAME
    if distance == 1:
        return GradeRelation.ADJACENT
    return GradeRelation.CONFLICT


def compare_names(
    parsed: ParsedStudent,
    roster_student: DatabaseStudent,
    threshold: int = 85,
) -> NameRelation:
    """
    Relate the parsed full name to the roster full name.

    Returns UNAVAILABLE when either side lacks a first or last name.
    """
    if not parsed.has_full_name or not roster_student.has_full_name:
        return NameRelation.UNAVAILABLE

    excel_first = normalize_name(parsed.first_name)
    excel_last = normalize_name(parsed.last_name)
    db_first = normalize_name(roster_student.first_name)
    db_last = normalize_name(roster_student.last_name)

    if excel_first == db_first and excel_last == db_last:
        return NameRelation.EQUAL

    score = fuzz.token_sort_ratio(f"{excel_first} {excel_last}", f"{db_first} {db_last}")
    if score >= threshold:
        return NameRelation.SIMILAR
    return NameRelation.CONFLICT


# =============================================================================
# Tier table
# =============================================================================

@dataclass(frozen=True)
class Candidate:
    """A roster student that could be the parsed student."""
    student: DatabaseStudent
    position: int
    initials_match: bool
    grade: GradeRelation
    name: NameRelation


def candidate_tier(
    candidate: Candidate,
    only_candidate: bool,
    same_grade_exists: bool,
) -> ConfidenceLevel:
    """
    Confidence tier for one candidate.

    | initials  | grade            | name          | tier                          |
    |-----------|------------------|---------------|-------------------------------|
    | equal     | same             | equal         | high                          |
    | equal     | same             | similar       | high if only candidate        |
    | equal     | same             | unavailable   | medium                        |
    | equal     | adjacent         | not conflict  | medium unless a same-grade    |
    |           |                  |               | candidate without a name      |
    |           |                  |               | conflict exists, then low     |
    | equal     | conflict/unknown | not conflict  | low                           |
    | equal     | any              | conflict      | low                           |
    | not equal | same/adjacent    | equal         | medium                        |
    | not equal | other            | equal         | low                           |
    """
    if not candidate.initials_match:
        if candidate.grade in (GradeRelation.SAME, GradeRelation.ADJACENT):
            return ConfidenceLevel.MEDIUM
        return ConfidenceLevel.LOW

    if candidate.name == NameRelation.CONFLICT:
        return ConfidenceLevel.LOW

    if candidate.grade == GradeRelation.SAME:
        if candidate.name == NameRelation.EQUAL:
            return ConfidenceLevel.HIGH
        if candidate.name == NameRelation.SIMILAR:
            return ConfidenceLevel.HIGH if only_candidate else ConfidenceLevel.MEDIUM
        return ConfidenceLevel.MEDIUM

    if candidate.grade == GradeRelation.ADJACENT:
        return ConfidenceLevel.LOW if same_grade_exists else ConfidenceLevel.MEDIUM

    return ConfidenceLevel.LOW


# =============================================================================
# Matcher
# =============================================================================

class StudentMatcher:
    """Ranks roster candidates for each parsed student."""

    def __init__(self, name_similarity_threshold: int = 85) -> None:
        """
        Initialize student matcher.

        Args:
            name_similarity_threshold: Minimum rapidfuzz token_sort_ratio (0-100)
                for two full names to count as similar
        """
        self.name_similarity_threshold = name_similarity_threshold

    def find_candidates(
        self, parsed: ParsedStudent, roster: list[DatabaseStudent]
    ) -> list[Candidate]:
        """Roster students whose initials match or whose full name is equal, in roster order."""
        candidates = []
        for position, roster_student in enumerate(roster):
            initials_match = initials_equal(parsed, roster_student)
            name = compare_names(parsed, roster_student, self.name_similarity_threshold)
            if not initials_match and name != NameRelation.EQUAL:
                continue
            candidates.append(
                Candidate(
                    student=roster_student,
                    position=position,
                    initials_match=initials_match,
                    grade=compare_grades(parsed.grade_level, roster_student.grade_level),
                    name=name,
                )
            )
        return candidates

    def match_one(self, parsed: ParsedStudent, roster: list[DatabaseStudent]) -> MatchResult:
        """
        Find the best roster match for one parsed student.

        Args:
            parsed: Student from the report
            roster: Full roster, in its stored order

        Returns:
            MatchResult; confidence NONE with no matched student when there
            is no candidate
        """
        initials = normalize_initials(parsed.initials)
        grade = parsed.grade_level or "unknown"
        candidates = self.find_candidates(parsed, roster)

        if not candidates:
            return MatchResult(
                excel_student=parsed,
                matched_student=None,
                confidence=ConfidenceLevel.NONE,
                reason=f'No roster student with initials "{initials}" (grade {grade})',
            )

        only_candidate = len(candidates) == 1
        same_grade_exists = any(
            c.grade == GradeRelation.SAME and c.name != NameRelation.CONFLICT for c in candidates
        )

        ranked = []
        for candidate in candidates:
            tier = candidate_tier(candidate, only_candidate, same_grade_exists)
            rank = (CONFIDENCE_RANK[tier], GRADE_CLOSENESS[candidate.grade])
            ranked.append((rank, tier, candidate))

        best_rank = max(rank for rank, _, _ in ranked)
        tied = [(tier, c) for rank, tier, c in ranked if rank == best_rank]

        if len(tied) > 1:
            with_names = [(tier, c) for tier, c in tied if c.student.has_full_name]
            if with_names:
                tied = with_names

        candidate_ids = [c.student.id for c in candidates]

        if len(tied) > 1:
            tied_ids = ", ".join(c.student.id for _, c in tied)
            first = tied[0][1]
            return MatchResult(
                excel_student=parsed,
                matched_student=first.student,
                confidence=ConfidenceLevel.LOW,
                reason=(
                    f'Ambiguous: {len(tied)} roster students match initials "{initials}" '
                    f"(grade {grade}) equally well: {tied_ids}"
                ),
                candidates=candidate_ids,
            )

        tier, best = tied[0]
        return MatchResult(
            excel_student=parsed,
            matched_student=best.student,
            confidence=tier,
            reason=self._describe(best, initials, parsed.grade_level, len(candidates)),
            candidates=candidate_ids,
        )

    def match(self, parsed: list[ParsedStudent], roster: list[DatabaseStudent]) -> MatchOutcome:
        """
        Match every parsed student against the roster.

        Returns:
            MatchOutcome with exactly one MatchResult per parsed student,
            in input order, and a summary derived from those results
        """
        matches = [self.match_one(student, roster) for student in parsed]
        summary = MatchSummary.from_matches(matches)

        logger.info(
            "students_matched",
            total=len(matches),
            high=summary.high_confidence,
            medium=summary.medium_confidence,
            low=summary.low_confidence,
            none=summary.no_match,
        )

        return MatchOutcome(matches=matches, summary=summary)

    @staticmethod
    def _describe(candidate: Candidate, initials: str, grade: str, candidate_count: int) -> str:
        """Reviewer-facing reason built from initials, grades and counts only."""
        parts = []
        if candidate.initials_match:
            parts.append(f'Initials "{initials}" match')
        else:
            parts.append("Initials differ but full name matches")

        roster_grade = candidate.student.grade_level or "unknown"
        if candidate.grade == GradeRelation.SAME:
            parts.append(f"grade {grade} matches")
        elif candidate.grade == GradeRelation.ADJACENT:
            parts.append(f"adjacent grade ({grade or 'unknown'} vs {roster_grade})")
        elif candidate.grade == GradeRelation.CONFLICT:
            parts.append(f"grade mismatch ({grade} vs {roster_grade})")
        else:
            parts.append("grade could not be compared")

        if candidate.initials_match:
            if candidate.name == NameRelation.EQUAL:
                parts.append("full name matches")
            elif candidate.name == NameRelation.SIMILAR:
                parts.append("full name closely matches")
            elif candidate.name == NameRelation.CONFLICT:
                parts.append("full name does not match")
            elif not candidate.student.has_full_name:
                parts.append("no name on roster to verify")
            else:
                parts.append("no name in report to verify")

        reason = "; ".join(parts)
        if candidate_count > 1:
            reason += f" ({candidate_count} candidates considered)"
        return reason


# =============================================================================
# Convenience Functions
# =============================================================================

def create_student_matcher(config: dict[str, Any] | None = None) -> StudentMatcher:
    """
    Factory function for creating a StudentMatcher.

    Args:
        config: The ``matching`` section of the pipeline settings with keys:
            - name_similarity_threshold: int (default 85)

    Returns:
        Configured StudentMatcher instance.
    """
    config = config or {}
    return StudentMatcher(
        name_similarity_threshold=int(config.get("name_similarity_threshold", 85)),
    )


def match_students(
    parsed: list[ParsedStudent],
    roster: list[DatabaseStudent],
    config: dict[str, Any] | None = None,
) -> MatchOutcome:
    """
    Match parsed students to roster students.

    Pure and deterministic: the same inputs always give the same outcome.
    """
    return create_student_matcher(config).match(parsed, roster)
