"""
Integration tests for the IEP import pipeline.

Tests cover:
- Configuration loading from YAML
- Roster CSV loading
- End-to-end parse -> match -> scrub -> merge
- Multi-sheet merging and goal de-duplication
- Payload shape (camelCase, no original text, no names)
- Target-student resolution, message caps and the import deadline
"""

import json
import sys
import time
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from iep_import.errors import ImportTimeoutError, ParseError
from iep_import.models import ConfidenceLevel, DatabaseStudent, ImportOptions
from iep_import.pipeline import (
    IEPImportPipeline,
    PipelineConfig,
    RosterLoader,
    _cap,
    create_pipeline,
)

SETTINGS_PATH = Path(__file__).parent.parent / "config" / "settings.yaml"


@pytest.fixture
def pipeline():
    """Pipeline with default configuration."""
    return IEPImportPipeline()


@pytest.fixture
def two_sheet_report(make_workbook):
    """The same student on two sheets with one overlapping goal."""
    header = ["Last Name", "First Name", "Grade", "Goal"]
    return make_workbook({
        "Fall": [
            header,
            ["Doe", "Jane", "3", "Jane will read 50 words per minute."],
        ],
        "Spring": [
            header,
            ["Doe", "Jane", "3", "Jane will read 50 words per minute."],
            ["Doe", "Jane", "3", "Jane will write three sentences."],
        ],
    })


# ============================================================================
# Configuration
# ============================================================================


class TestPipelineConfig:
    """Tests for PipelineConfig."""

    def test_defaults_without_file(self):
        config = PipelineConfig()
        assert config.parsing_config == {}
        assert config.max_workers == 4
        assert config.timeout_seconds is None
        assert config.max_reported_errors == 10
        assert config.max_reported_unmatched == 20

    def test_missing_file_uses_defaults(self, tmp_path):
        config = PipelineConfig(tmp_path / "missing.yaml")
        assert config.config == {}

    def test_shipped_settings(self):
        config = PipelineConfig(SETTINGS_PATH)
        assert config.parsing_config["min_goal_length"] == 10
        assert config.matching_config["name_similarity_threshold"] == 85
        assert config.scrubbing_config["placeholders"]["name"] == "[name]"
        assert config.timeout_seconds == 60.0

    def test_yaml_file(self, tmp_path):
        path = tmp_path / "settings.yaml"
        path.write_text(
            "pipeline:\n"
            "  max_workers: 2\n"
            "  timeout_seconds: 5\n"
            "scrubbing:\n"
            "  placeholders:\n"
            "    name: \"[student]\"\n"
        )
        config = PipelineConfig(path)
        assert config.max_workers == 2
        assert config.timeout_seconds == 5.0
        assert config.scrubbing_config["placeholders"] == {"name": "[student]"}

    def test_non_mapping_section_ignored(self):
        config = PipelineConfig.from_dict({"parsing": "oops"})
        assert config.parsing_config == {}

    def test_create_pipeline_with_settings(self):
        pipeline = create_pipeline(str(SETTINGS_PATH))
        assert pipeline.config.timeout_seconds == 60.0
        assert pipeline.parser.stale_iep_days == 365


class TestRosterLoader:
    """Tests for loading the roster CSV."""

    def test_from_csv(self, tmp_path):
        path = tmp_path / "roster.csv"
        path.write_text(
            "id,initials,grade_level,first_name,last_name,school\n"
            "s1,J.D.,3,,,Lincoln Elementary\n"
            "s2,,4,Tom,Smith,\n"
            ",AB,2,,,\n"
            "s4,,5,,,\n",
            encoding="utf-8",
        )
        roster = RosterLoader.from_csv(path)

        assert [s.id for s in roster] == ["s1", "s2"]
        assert roster[0].initials == "JD"
        assert roster[0].school_site == "Lincoln Elementary"
        assert roster[0].first_name is None
        assert roster[1].initials == "TS"
        assert roster[1].has_full_name

    def test_alias_columns(self, tmp_path):
        path = tmp_path / "roster.csv"
        path.write_text("Student_ID,Initials,Grade\ns9,ab,K\n", encoding="utf-8-sig")
        roster = RosterLoader.from_csv(path)
        assert roster == [DatabaseStudent(id="s9", initials="ab", grade_level="K")]


# ============================================================================
# End to End
# ============================================================================


class TestPipelineRun:
    """End-to-end tests for IEPImportPipeline.run."""

    def test_seis_report(self, pipeline, make_workbook, seis_rows, roster):
        preview = pipeline.run(make_workbook({"Goals": seis_rows}), roster)

        assert preview.summary.total_parsed == 2
        assert preview.summary.matched == 2
        assert preview.summary.unmatched == 0
        assert preview.summary.format_detected == "seis-student-goals"

        by_id = {m.student_id: m for m in preview.matches}
        jane = by_id["s1"]
        assert jane.student_initials == "J.D."
        assert jane.match_confidence == ConfidenceLevel.MEDIUM
        assert jane.iep_date == "2024-03-15"
        assert [g.scrubbed for g in jane.goals] == [
            "[name] will read 50 words per minute.",
            "[name] will produce /r/ in 8 of 10 trials.",
        ]
        assert preview.total_goals == 3

    def test_multi_sheet_merge(self, pipeline, two_sheet_report, roster):
        """Two report entries for one roster student become one match."""
        preview = pipeline.run(two_sheet_report, roster)

        assert preview.summary.total_parsed == 2
        assert len(preview.matches) == 1

        match = preview.matches[0]
        assert match.student_id == "s1"
        assert match.source_sheets == ["Fall", "Spring"]
        assert [g.scrubbed for g in match.goals] == [
            "[name] will read 50 words per minute.",
            "[name] will write three sentences.",
        ]

    def test_merged_confidence_is_weakest(self, pipeline, make_workbook):
        """A merged student keeps the least certain of its match confidences."""
        header = ["Last Name", "First Name", "Grade", "Goal"]
        report = make_workbook({
            "Fall": [header, ["Doe", "Jane", "3", "Jane will read 50 words per minute."]],
            "Spring": [header, ["Doe", "Jane", "7", "Jane will write three sentences."]],
        })
        roster = [DatabaseStudent(id="s1", initials="JD", grade_level="3")]

        preview = pipeline.run(report, roster)

        assert len(preview.matches) == 1
        assert preview.matches[0].match_confidence == ConfidenceLevel.LOW
        assert preview.matches[0].match_reason.startswith("Merged 2 report entries")

    def test_unmatched_students(self, pipeline, make_csv, grid_rows):
        roster = [DatabaseStudent(id="s1", initials="SL", grade_level="2")]
        preview = pipeline.run(make_csv(grid_rows), roster, filename="goals.csv")

        assert preview.summary.unmatched == 1
        assert len(preview.unmatched_students) == 1
        unmatched = preview.unmatched_students[0]
        assert unmatched.initials == "ML"
        assert unmatched.grade == "K"
        assert "ML" in unmatched.reason

    def test_parse_error_propagates(self, pipeline, roster):
        with pytest.raises(ParseError):
            pipeline.run(b"\xd0\xcf\x11\xe0" + b"\x00" * 64, roster, filename="old.xls")

    def test_school_and_role_filters(self, pipeline, make_workbook, seis_rows, roster):
        preview = pipeline.run(
            make_workbook({"Goals": seis_rows}),
            roster,
            options=ImportOptions(user_schools=["Lincoln"], provider_role="speech"),
        )
        assert [m.student_id for m in preview.matches] == ["s1"]
        assert len(preview.matches[0].goals) == 1
        assert preview.summary.goals_filtered == 1


class TestPayload:
    """Tests for the caller-facing payload."""

    def test_no_original_text_or_names(self, pipeline, two_sheet_report, roster):
        payload = pipeline.run(two_sheet_report, roster).to_payload()
        text = json.dumps(payload)

        assert "original" not in text
        assert "Jane" not in text
        assert "Doe" not in text

    def test_compound_names_fully_redacted(self, pipeline, make_csv):
        """Middle and compound name parts never reach the payload."""
        data = make_csv([
            ["Student", "Grade", "Goal"],
            ["Maria Garcia Lopez", "3", "Maria Garcia will read 40 words per minute."],
            ["Mary Ann Smith", "3", "Mary Ann will read 40 words per minute."],
        ])
        roster = [
            DatabaseStudent(id="s1", initials="ML", grade_level="3"),
            DatabaseStudent(id="s2", initials="MS", grade_level="3"),
        ]

        payload = pipeline.run(data, roster, filename="goals.csv").to_payload()
        text = json.dumps(payload)

        goals = {m["studentId"]: [g["scrubbed"] for g in m["goals"]] for m in payload["matches"]}
        assert goals == {
            "s1": ["[name] will read 40 words per minute."],
            "s2": ["[name] will read 40 words per minute."],
        }
        for part in ("Maria", "Garcia", "Lopez", "Mary", "Ann", "Smith"):
            assert part not in text

    def test_camel_case_keys(self, pipeline, two_sheet_report, roster):
        payload = pipeline.run(two_sheet_report, roster).to_payload()

        assert set(payload) == {
            "matches",
            "summary",
            "parseErrors",
            "parseWarnings",
            "scrubErrors",
            "unmatchedStudents",
        }
        match = payload["matches"][0]
        assert match["studentId"] == "s1"
        assert match["matchConfidence"] == "medium"
        assert "sourceSheets" in match
        assert set(match["goals"][0]) == {"scrubbed", "piiDetected", "confidence"}
        assert payload["summary"]["totalParsed"] == 2


class TestTargetStudent:
    """Tests for target-student resolution."""

    def test_known_target(self, pipeline, make_workbook, seis_rows, roster):
        preview = pipeline.run(
            make_workbook({"Goals": seis_rows}),
            roster,
            options=ImportOptions(target_student_id="s2"),
        )
        assert [m.student_id for m in preview.matches] == ["s2"]
        assert preview.summary.total_parsed == 1

    def test_unknown_target_warns_and_imports_all(self, pipeline, make_workbook, seis_rows, roster):
        preview = pipeline.run(
            make_workbook({"Goals": seis_rows}),
            roster,
            options=ImportOptions(target_student_id="nobody"),
        )
        assert preview.parse_warnings[0] == (
            "Selected student was not found in the roster; no student filter applied"
        )
        assert preview.summary.total_parsed == 2

    def test_options_accept_camel_case(self):
        options = ImportOptions.model_validate({"targetStudentId": "s2", "userSchools": ["Lincoln"]})
        assert options.target_student_id == "s2"
        assert options.user_schools == ["Lincoln"]


class TestFailures:
    """Tests for scrub failures, caps and the deadline."""

    def test_student_scrub_failure_omits_goals(self, pipeline, two_sheet_report, roster, monkeypatch):
        def broken(goals, first_name=None, last_name=None, middle_name=None):
            raise RuntimeError("boom")

        monkeypatch.setattr(pipeline.scrubber, "scrub_goals", broken)
        preview = pipeline.run(two_sheet_report, roster)

        assert preview.total_goals == 0
        assert preview.scrub_errors[0] == "Student s1: scrubbing failed; all goals omitted"

    def test_cap(self):
        messages = [f"message {i}" for i in range(12)]
        capped = _cap(messages, 10)
        assert len(capped) == 11
        assert capped[-1] == "... and 2 more"
        assert _cap(messages[:3], 10) == messages[:3]

    def test_errors_capped(self, make_csv):
        rows = [["First Name", "Last Name", "Grade", "Goal"]]
        rows += [["", "", "3", "Will complete the assigned work."] for _ in range(5)]
        pipeline = IEPImportPipeline(PipelineConfig.from_dict({"pipeline": {"max_reported_errors": 2}}))

        preview = pipeline.run(make_csv(rows), [])

        assert len(preview.parse_errors) == 3
        assert preview.parse_errors[-1] == "... and 3 more"

    def test_timeout_raises(self, make_csv, grid_rows, monkeypatch):
        """Exceeding the deadline raises instead of returning partial results."""
        config = PipelineConfig.from_dict({"pipeline": {"timeout_seconds": 0.5, "max_workers": 2}})
        pipeline = IEPImportPipeline(config)

        def slow(goals, first_name=None, last_name=None, middle_name=None):
            time.sleep(3)

        monkeypatch.setattr(pipeline.scrubber, "scrub_goals", slow)
        roster = [DatabaseStudent(id="s1", initials="ML", grade_level="K")]

        with pytest.raises(ImportTimeoutError) as exc_info:
            pipeline.run(make_csv(grid_rows), roster)
        assert exc_info.value.timeout_seconds == 0.5
