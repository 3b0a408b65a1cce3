"""
Unit tests for Stage 1: Student Matching.

Tests cover:
- Initials, grade and name predicates
- The confidence tier table
- Ambiguous ties, no-match results and name-only candidates
- Summary and coverage guarantees of match_students
"""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from iep_import.models import ConfidenceLevel, DatabaseStudent
from iep_import.stage_1_matching import (
    Candidate,
    GradeRelation,
    NameRelation,
    StudentMatcher,
    candidate_tier,
    compare_grades,
    compare_names,
    create_student_matcher,
    initials_equal,
    match_students,
    normalize_initials,
)


# ============================================================================
# Predicates
# ============================================================================


class TestInitials:
    """Tests for initials normalization and comparison."""

    def test_normalize_strips_punctuation(self):
        assert normalize_initials("j.d.") == "JD"
        assert normalize_initials(" J D ") == "JD"

    def test_equal_after_normalization(self, make_parsed):
        parsed = make_parsed(initials="j.d.")
        assert initials_equal(parsed, DatabaseStudent(id="s1", initials="JD"))

    def test_extended_roster_form(self, make_parsed):
        """Roster "JOS" matches report "JS" when the first name is Jo..."""
        parsed = make_parsed(initials="JS", first_name="Josh", last_name="Smith")
        assert initials_equal(parsed, DatabaseStudent(id="s1", initials="JOS"))

    def test_extended_report_form(self, make_parsed):
        """Report "JoS" matches roster "JS" when verified by the first name."""
        parsed = make_parsed(initials="JoS", first_name="Joanna", last_name="Smith")
        assert initials_equal(parsed, DatabaseStudent(id="s1", initials="JS"))

    def test_extended_form_needs_first_name_agreement(self, make_parsed):
        parsed = make_parsed(initials="JS", first_name="Jasmine", last_name="Smith")
        assert not initials_equal(parsed, DatabaseStudent(id="s1", initials="JOS"))

    def test_extended_form_needs_first_name(self, make_parsed):
        parsed = make_parsed(initials="JS")
        assert not initials_equal(parsed, DatabaseStudent(id="s1", initials="JOS"))


class TestGrades:
    """Tests for compare_grades."""

    @pytest.mark.parametrize(
        "a, b, expected",
        [
            ("3", "3rd", GradeRelation.SAME),
            ("K", "Kindergarten", GradeRelation.SAME),
            ("K", "1", GradeRelation.ADJACENT),
            ("TK", "K", GradeRelation.ADJACENT),
            ("2", "5", GradeRelation.CONFLICT),
            ("Ungraded", "ungraded", GradeRelation.SAME),
            ("Ungraded", "3", GradeRelation.UNKNOWN),
            ("", "3", GradeRelation.UNKNOWN),
        ],
    )
    def test_relations(self, a, b, expected):
        assert compare_grades(a, b) == expected


class TestNames:
    """Tests for compare_names."""

    def test_unavailable_without_roster_names(self, make_parsed):
        parsed = make_parsed(initials="JD", first_name="Jane", last_name="Doe")
        assert compare_names(parsed, DatabaseStudent(id="s1", initials="JD")) == NameRelation.UNAVAILABLE

    def test_equal_ignores_case_and_spacing(self, make_parsed):
        parsed = make_parsed(initials="JD", first_name="jane ", last_name="DOE")
        roster_student = DatabaseStudent(id="s1", initials="JD", first_name="Jane", last_name="Doe")
        assert compare_names(parsed, roster_student) == NameRelation.EQUAL

    def test_similar_spelling(self, make_parsed):
        parsed = make_parsed(initials="JD", first_name="Jane", last_name="Doe")
        roster_student = DatabaseStudent(id="s1", initials="JD", first_name="Jayne", last_name="Doe")
        assert compare_names(parsed, roster_student) == NameRelation.SIMILAR

    def test_conflict(self, make_parsed):
        parsed = make_parsed(initials="JD", first_name="Jane", last_name="Doe")
        roster_student = DatabaseStudent(id="s1", initials="JD", first_name="John", last_name="Davis")
        assert compare_names(parsed, roster_student) == NameRelation.CONFLICT


# ============================================================================
# Tier Table
# ============================================================================


def _candidate(initials_match=True, grade=GradeRelation.SAME, name=NameRelation.UNAVAILABLE):
    return Candidate(
        student=DatabaseStudent(id="s1", initials="JD"),
        position=0,
        initials_match=initials_match,
        grade=grade,
        name=name,
    )


class TestCandidateTier:
    """Tests for the confidence tier table."""

    def test_all_agree_is_high(self):
        assert candidate_tier(_candidate(name=NameRelation.EQUAL), False, True) == ConfidenceLevel.HIGH

    def test_similar_name_high_only_when_alone(self):
        candidate = _candidate(name=NameRelation.SIMILAR)
        assert candidate_tier(candidate, True, True) == ConfidenceLevel.HIGH
        assert candidate_tier(candidate, False, True) == ConfidenceLevel.MEDIUM

    def test_no_names_is_medium(self):
        assert candidate_tier(_candidate(), True, True) == ConfidenceLevel.MEDIUM

    def test_adjacent_grade(self):
        candidate = _candidate(grade=GradeRelation.ADJACENT)
        assert candidate_tier(candidate, True, False) == ConfidenceLevel.MEDIUM
        assert candidate_tier(candidate, False, True) == ConfidenceLevel.LOW

    def test_grade_conflict_is_low(self):
        assert candidate_tier(_candidate(grade=GradeRelation.CONFLICT), True, False) == ConfidenceLevel.LOW

    def test_name_conflict_is_low(self):
        candidate = _candidate(name=NameRelation.CONFLICT)
        assert candidate_tier(candidate, True, True) == ConfidenceLevel.LOW

    def test_name_only_candidate(self):
        assert candidate_tier(
            _candidate(initials_match=False, name=NameRelation.EQUAL), True, True
        ) == ConfidenceLevel.MEDIUM
        assert candidate_tier(
            _candidate(initials_match=False, grade=GradeRelation.CONFLICT, name=NameRelation.EQUAL),
            True,
            False,
        ) == ConfidenceLevel.LOW


# ============================================================================
# Matcher
# ============================================================================


class TestStudentMatcher:
    """Tests for StudentMatcher.match_one."""

    def test_initials_and_grade_without_roster_names(self, make_parsed):
        """Jane Doe against an initials-only roster entry is a medium match."""
        parsed = make_parsed(
            initials="J.D.",
            first_name="Jane",
            last_name="Doe",
            grade_level="3",
            goals=["Jane Doe will read 50 words per minute."],
        )
        roster = [DatabaseStudent(id="s1", initials="J.D.", grade_level="3")]

        result = StudentMatcher().match_one(parsed, roster)

        assert result.confidence == ConfidenceLevel.MEDIUM
        assert result.matched_student.id == "s1"
        assert result.reason == 'Initials "JD" match; grade 3 matches; no name on roster to verify'
        assert "Jane" not in result.reason
        assert "Doe" not in result.reason

    def test_full_agreement_is_high(self, make_parsed):
        parsed = make_parsed(initials="JD", first_name="Jane", last_name="Doe")
        roster = [DatabaseStudent(id="s1", initials="JD", grade_level="3", first_name="Jane", last_name="Doe")]
        result = StudentMatcher().match_one(parsed, roster)
        assert result.confidence == ConfidenceLevel.HIGH
        assert "full name matches" in result.reason

    def test_ambiguous_tie_is_low(self, make_parsed):
        """Two identical initials-only candidates give a low match naming both ids."""
        parsed = make_parsed(initials="A.B.", grade_level="2")
        roster = [
            DatabaseStudent(id="a1", initials="A.B.", grade_level="2"),
            DatabaseStudent(id="a2", initials="A.B.", grade_level="2"),
        ]

        result = StudentMatcher().match_one(parsed, roster)

        assert result.confidence == ConfidenceLevel.LOW
        assert result.matched_student.id == "a1"
        assert "a1" in result.reason
        assert "a2" in result.reason
        assert result.reason.startswith("Ambiguous")
        assert result.candidates == ["a1", "a2"]

    def test_tie_prefers_roster_entry_with_names(self, make_parsed):
        """Among equal candidates, the one whose names could be checked wins."""
        parsed = make_parsed(initials="AB", grade_level="2")
        roster = [
            DatabaseStudent(id="a1", initials="AB", grade_level="2"),
            DatabaseStudent(id="a2", initials="AB", grade_level="2", first_name="Ana", last_name="Bell"),
        ]
        result = StudentMatcher().match_one(parsed, roster)
        assert result.confidence == ConfidenceLevel.MEDIUM
        assert result.matched_student.id == "a2"

    def test_no_match(self, make_parsed):
        """Initials with no roster counterpart give confidence none and no student."""
        parsed = make_parsed(initials="Z.Z.", grade_level="3")
        result = StudentMatcher().match_one(parsed, [DatabaseStudent(id="s1", initials="JD", grade_level="3")])

        assert result.confidence == ConfidenceLevel.NONE
        assert result.matched_student is None
        assert result.reason == 'No roster student with initials "ZZ" (grade 3)'

    def test_same_grade_beats_adjacent(self, make_parsed):
        parsed = make_parsed(initials="JD", grade_level="3")
        roster = [
            DatabaseStudent(id="s4", initials="JD", grade_level="4"),
            DatabaseStudent(id="s3", initials="JD", grade_level="3"),
        ]
        result = StudentMatcher().match_one(parsed, roster)
        assert result.matched_student.id == "s3"
        assert result.confidence == ConfidenceLevel.MEDIUM
        assert "2 candidates considered" in result.reason

    def test_adjacent_grade_alone_is_medium(self, make_parsed):
        parsed = make_parsed(initials="JD", grade_level="3")
        result = StudentMatcher().match_one(parsed, [DatabaseStudent(id="s4", initials="JD", grade_level="4")])
        assert result.confidence == ConfidenceLevel.MEDIUM
        assert "adjacent grade (3 vs 4)" in result.reason

    def test_conflicting_same_grade_does_not_demote_adjacent(self, make_parsed):
        """A same-grade entry whose name conflicts is not a same-grade match."""
        parsed = make_parsed(initials="JD", grade_level="4", first_name="Jane", last_name="Doe")
        roster = [
            DatabaseStudent(id="s1", initials="JD", grade_level="4", first_name="Jill", last_name="Dunn"),
            DatabaseStudent(id="s2", initials="JD", grade_level="3"),
        ]
        result = StudentMatcher().match_one(parsed, roster)
        assert result.matched_student.id == "s2"
        assert result.confidence == ConfidenceLevel.MEDIUM

    def test_grade_mismatch_is_low(self, make_parsed):
        parsed = make_parsed(initials="JD", grade_level="3")
        result = StudentMatcher().match_one(parsed, [DatabaseStudent(id="s7", initials="JD", grade_level="7")])
        assert result.confidence == ConfidenceLevel.LOW
        assert "grade mismatch (3 vs 7)" in result.reason

    def test_name_conflict_is_low(self, make_parsed):
        parsed = make_parsed(initials="JD", first_name="Jane", last_name="Doe")
        roster = [DatabaseStudent(id="s1", initials="JD", grade_level="3", first_name="John", last_name="Davis")]
        result = StudentMatcher().match_one(parsed, roster)
        assert result.confidence == ConfidenceLevel.LOW
        assert "full name does not match" in result.reason

    def test_name_only_candidate(self, make_parsed):
        """A roster entry with different initials but the same full name is still a candidate."""
        parsed = make_parsed(initials="JD", first_name="Jane", last_name="Doe")
        roster = [DatabaseStudent(id="s9", initials="XD", grade_level="3", first_name="Jane", last_name="Doe")]
        result = StudentMatcher().match_one(parsed, roster)
        assert result.matched_student.id == "s9"
        assert result.confidence == ConfidenceLevel.MEDIUM
        assert result.reason.startswith("Initials differ but full name matches")


class TestMatchStudents:
    """Tests for match_students across a whole report."""

    def test_summary_counts_every_match(self, make_parsed, roster):
        parsed = [
            make_parsed(initials="JD", grade_level="3"),
            make_parsed(initials="TS", grade_level="4"),
            make_parsed(initials="ZZ", grade_level="5"),
            make_parsed(initials="ML", grade_level="2"),
        ]
        outcome = match_students(parsed, roster)
        summary = outcome.summary

        assert summary.total == len(outcome.matches) == len(parsed)
        assert summary.no_match == 1
        assert summary.low_confidence == 1
        assert summary.medium_confidence == 2

    def test_every_parsed_student_matched_once(self, make_parsed, roster):
        """Duplicate report entries each get their own result, in order."""
        parsed = [
            make_parsed(initials="JD", source_sheet="Fall"),
            make_parsed(initials="JD", source_sheet="Spring"),
        ]
        outcome = match_students(parsed, roster)
        assert [m.excel_student.source_sheet for m in outcome.matches] == ["Fall", "Spring"]
        assert all(m.matched_student.id == "s1" for m in outcome.matches)

    def test_deterministic(self, make_parsed, roster):
        parsed = [make_parsed(initials="JD"), make_parsed(initials="QQ")]
        assert match_students(parsed, roster) == match_students(parsed, roster)

    def test_empty_inputs(self, roster):
        outcome = match_students([], roster)
        assert outcome.matches == []
        assert outcome.summary.total == 0

    def test_threshold_from_config(self, make_parsed):
        """A strict threshold turns a near-spelling into a conflict."""
        parsed = make_parsed(initials="JD", first_name="Jane", last_name="Doe")
        roster = [DatabaseStudent(id="s1", initials="JD", grade_level="3", first_name="Jayne", last_name="Doe")]

        assert match_students([parsed], roster).matches[0].confidence == ConfidenceLevel.HIGH
        strict = match_students([parsed], roster, {"name_similarity_threshold": 99})
        assert strict.matches[0].confidence == ConfidenceLevel.LOW

    def test_factory_default_threshold(self):
        assert create_student_matcher().name_similarity_threshold == 85
