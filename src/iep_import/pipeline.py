"""
Pipeline Orchestrator

Coordinates the processing stages of an IEP goals import.

Processing flow:
1. Report Ingestion (Stage 0) - parse the uploaded report
2. Student Matching (Stage 1) - match each parsed student to the roster
3. PII Scrubbing (Stage 2) - redact every goal of every matched student
4. Merge - one ProcessedMatch per roster student, goals de-duplicated

Stages 0-2 handle raw PII. Only the ImportPreview leaves this module,
and it carries scrubbed goals and initials only.
"""

from __future__ import annotations

import csv
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path
from typing import Any, BinaryIO, cast

import structlog
import yaml  # type: ignore[import-untyped]

from iep_import.errors import ImportTimeoutError
from iep_import.models import (
    ConfidenceLevel,
    DatabaseStudent,
    GoalPreview,
    ImportOptions,
    ImportPreview,
    ImportSummary,
    MatchResult,
    ParseOptions,
    ParseResult,
    ProcessedMatch,
    ScrubResult,
    TargetStudent,
    UnmatchedStudent,
    weakest,
)
from iep_import.stage_0_ingestion import ReportParser, clean_initials, create_report_parser, derive_initials
from iep_import.stage_1_matching import StudentMatcher, create_student_matcher
from iep_import.stage_2_scrub import PIIScrubber, create_pii_scrubber

logger = structlog.get_logger()


class PipelineConfig:
    """Configuration container for the pipeline."""

    def __init__(self, config_path: Path | None = None):
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to settings.yaml
        """
        self.config: dict[str, Any] = {}

        if config_path and config_path.exists():
            with open(config_path) as f:
                self.config = yaml.safe_load(f) or {}
            logger.info("config_loaded", path=str(config_path))
        else:
            logger.debug("using_default_config")

    @classmethod
    def from_dict(cls, config: dict[str, Any]) -> PipelineConfig:
        """Build a configuration from an already-loaded mapping."""
        instance = cls()
        instance.config = dict(config)
        return instance

    def _section(self, name: str) -> dict[str, Any]:
        result = self.config.get(name) or {}
        if not isinstance(result, dict):
            return {}
        return cast(dict[str, Any], result)

    @property
    def parsing_config(self) -> dict[str, Any]:
        """Get report parser configuration."""
        return self._section("parsing")

    @property
    def matching_config(self) -> dict[str, Any]:
        """Get student matcher configuration."""
        return self._section("matching")

    @property
    def scrubbing_config(self) -> dict[str, Any]:
        """Get PII scrubber configuration."""
        return self._section("scrubbing")

    @property
    def max_workers(self) -> int:
        return int(self._section("pipeline").get("max_workers", 4))

    @property
    def timeout_seconds(self) -> float | None:
        value = self._section("pipeline").get("timeout_seconds")
        return float(value) if value else None

    @property
    def max_reported_errors(self) -> int:
        return int(self._section("pipeline").get("max_reported_errors", 10))

    @property
    def max_reported_unmatched(self) -> int:
        return int(self._section("pipeline").get("max_reported_unmatched", 20))


# =============================================================================
# Roster Integration
# =============================================================================

class RosterLoader:
    """Loads the roster the matcher compares against."""

    @staticmethod
    def from_csv(file_path: Path) -> list[DatabaseStudent]:
        """
        Load roster from CSV file.

        Expected columns: id (or student_id), initials, grade_level (or grade),
        and optionally first_name, last_name, school_site (or school).
        Initials are derived from the names when the column is empty.
        """
        roster: list[DatabaseStudent] = []
        skipped = 0
        with open(file_path, newline="", encoding="utf-8-sig") as f:
            reader = csv.DictReader(f)
            for row in reader:
                row = {(k or "").strip().lower(): (v or "").strip() for k, v in row.items()}
                student_id = row.get("id") or row.get("student_id", "")
                first_name = row.get("first_name") or None
                last_name = row.get("last_name") or None
                initials = clean_initials(row.get("initials", ""))
                if not initials and last_name:
                    initials = derive_initials(first_name or "", last_name)

                if not student_id or not initials:
                    skipped += 1
                    continue

                roster.append(
                    DatabaseStudent(
                        id=student_id,
                        initials=initials,
                        grade_level=row.get("grade_level") or row.get("grade", ""),
                        first_name=first_name,
                        last_name=last_name,
                        school_site=row.get("school_site") or row.get("school") or None,
                    )
                )

        logger.info("roster_loaded", count=len(roster), skipped=skipped, source=str(file_path))
        return roster


# =============================================================================
# Merge
# =============================================================================

@dataclass
class _MergedStudent:
    """Accumulates every match of one roster student."""
    student: DatabaseStudent
    confidences: list[ConfidenceLevel] = field(default_factory=list)
    reasons: list[str] = field(default_factory=list)
    iep_dates: list[str] = field(default_factory=list)
    source_sheets: list[str] = field(default_factory=list)
    goals: list[GoalPreview] = field(default_factory=list)

    def add(self, match: MatchResult, scrubbed: ScrubResult) -> None:
        parsed = match.excel_student
        self.confidences.append(match.confidence)
        if match.reason not in self.reasons:
            self.reasons.append(match.reason)
        if parsed.iep_date:
            self.iep_dates.append(parsed.iep_date)
        if parsed.source_sheet and parsed.source_sheet not in self.source_sheets:
            self.source_sheets.append(parsed.source_sheet)

        seen = {g.scrubbed for g in self.goals}
        for goal in scrubbed.goals:
            if goal.scrubbed not in seen:
                seen.add(goal.scrubbed)
                self.goals.append(GoalPreview.from_scrubbed(goal))

    def to_processed_match(self) -> ProcessedMatch:
        if len(self.reasons) == 1:
            reason = self.reasons[0]
        else:
            reason = f"Merged {len(self.confidences)} report entries: " + " | ".join(self.reasons)
        return ProcessedMatch(
            student_id=self.student.id,
            student_initials=self.student.initials,
            student_grade=self.student.grade_level,
            match_confidence=weakest(*self.confidences),
            match_reason=reason,
            iep_date=max(self.iep_dates) if self.iep_dates else None,
            source_sheets=self.source_sheets,
            goals=self.goals,
        )


def _cap(messages: list[str], limit: int) -> list[str]:
    """Keep the first ``limit`` messages, noting how many were dropped."""
    if len(messages) <= limit:
        return list(messages)
    return messages[:limit] + [f"... and {len(messages) - limit} more"]


# =============================================================================
# Pipeline
# =============================================================================

class IEPImportPipeline:
    """
    Main pipeline orchestrator for IEP goal imports.

    The pipeline is a pure function of its inputs: the report buffer, the
    roster, and explicit options. Nothing is persisted.
    """

    def __init__(self, config: PipelineConfig | None = None):
        """
        Initialize the pipeline.

        Args:
            config: Pipeline configuration
        """
        self.config = config or PipelineConfig()

        self.parser: ReportParser = create_report_parser(self.config.parsing_config)
        self.matcher: StudentMatcher = create_student_matcher(self.config.matching_config)
        self.scrubber: PIIScrubber = create_pii_scrubber(self.config.scrubbing_config)

        logger.info(
            "pipeline_initialized",
            max_workers=self.config.max_workers,
            timeout_seconds=self.config.timeout_seconds,
        )

    @staticmethod
    def resolve_target(
        target_student_id: str | None, roster: list[DatabaseStudent]
    ) -> tuple[TargetStudent | None, str | None]:
        """
        Resolve a roster id into a TargetStudent filter.

        Returns:
            Tuple of (target, warning). An unknown id gives no target and a warning.
        """
        if not target_student_id:
            return None, None

        for student in roster:
            if student.id == target_student_id:
                return TargetStudent(
                    initials=student.initials,
                    grade_level=student.grade_level,
                    school_name=student.school_site or "",
                    first_name=student.first_name,
                    last_name=student.last_name,
                ), None

        logger.warning("target_student_not_found", target_student_id=target_student_id)
        return None, "Selected student was not found in the roster; no student filter applied"

    def run(
        self,
        buffer: bytes | BinaryIO,
        roster: list[DatabaseStudent],
        options: ImportOptions | None = None,
        filename: str | None = None,
        reference_date: date | None = None,
    ) -> ImportPreview:
        """
        Run parse -> match -> scrub -> merge over one uploaded report.

        Args:
            buffer: Raw .xlsx or CSV bytes
            roster: Roster students to match against
            options: School, target-student and provider-role filters
            filename: Original filename
            reference_date: "Today" for IEP staleness warnings

        Returns:
            ImportPreview ready for human review

        Raises:
            ParseError: If the report cannot be opened
            ImportTimeoutError: If the configured deadline passes
        """
        options = options or ImportOptions()
        timeout = self.config.timeout_seconds
        deadline = time.monotonic() + timeout if timeout else None

        target, target_warning = self.resolve_target(options.target_student_id, roster)
        parse_options = ParseOptions(
            user_schools=options.user_schools or None,
            provider_role=options.provider_role,
            target_student=target,
            reference_date=reference_date,
        )

        logger.info(
            "import_started",
            roster_size=len(roster),
            has_school_filter=bool(options.user_schools),
            has_target=target is not None,
            provider_role=options.provider_role,
        )

        executor = ThreadPoolExecutor(max_workers=max(1, self.config.max_workers))
        timed_out = False
        try:
            parse_future = executor.submit(self.parser.parse, buffer, parse_options, filename)
            parsed: ParseResult = self._await(parse_future, deadline, "parsing")

            outcome = self.matcher.match(parsed.students, roster)
            self._check_deadline(deadline, "matching")

            matched = [m for m in outcome.matches if m.matched_student is not None]
            futures = [executor.submit(self._scrub_match, m) for m in matched]

            scrubbed: list[ScrubResult] = []
            scrub_errors: list[str] = []
            for match, future in zip(matched, futures):
                try:
                    scrubbed.append(self._await(future, deadline, "scrubbing"))
                except ImportTimeoutError:
                    raise
                except Exception as e:
                    logger.error(
                        "student_scrub_failed",
                        student_id=match.matched_student.id if match.matched_student else None,
                        error=type(e).__name__,
                    )
                    scrubbed.append(ScrubResult())
                    scrub_errors.append(
                        f"Student {match.matched_student.id if match.matched_student else '?'}: "
                        "scrubbing failed; all goals omitted"
                    )
        except ImportTimeoutError:
            timed_out = True
            raise
        finally:
            executor.shutdown(wait=not timed_out, cancel_futures=timed_out)

        merged: dict[str, _MergedStudent] = {}
        for match, result in zip(matched, scrubbed):
            student = cast(DatabaseStudent, match.matched_student)
            for error in result.errors:
                scrub_errors.append(f"Student {student.id}: {error}")
            merged.setdefault(student.id, _MergedStudent(student=student)).add(match, result)

        unmatched = [
            UnmatchedStudent(
                initials=clean_initials(m.excel_student.initials).upper(),
                grade=m.excel_student.grade_level,
                reason=m.reason,
            )
            for m in outcome.matches
            if m.confidence == ConfidenceLevel.NONE
        ]

        warnings = ([target_warning] if target_warning else []) + parsed.warnings
        summary = ImportSummary(
            total_parsed=len(parsed.students),
            matched=len(matched),
            unmatched=outcome.summary.no_match,
            high_confidence=outcome.summary.high_confidence,
            medium_confidence=outcome.summary.medium_confidence,
            low_confidence=outcome.summary.low_confidence,
            format_detected=parsed.metadata.format_detected,
            goals_filtered=parsed.metadata.goals_filtered,
        )

        preview = ImportPreview(
            matches=[m.to_processed_match() for m in merged.values()],
            summary=summary,
            parse_errors=_cap(parsed.errors, self.config.max_reported_errors),
            parse_warnings=_cap(warnings, self.config.max_reported_errors),
            scrub_errors=_cap(scrub_errors, self.config.max_reported_errors),
            unmatched_students=unmatched[: self.config.max_reported_unmatched],
        )

        logger.info(
            "import_complete",
            total_parsed=summary.total_parsed,
            matched=summary.matched,
            unmatched=summary.unmatched,
            roster_students=len(preview.matches),
            goals=preview.total_goals,
            scrub_errors=len(scrub_errors),
        )
        return preview

    def _scrub_match(self, match: MatchResult) -> ScrubResult:
        """Scrub one matched student's goals, anchored on the best known names."""
        parsed = match.excel_student
        roster_student = match.matched_student
        first_name = parsed.first_name or (roster_student.first_name if roster_student else None)
        last_name = parsed.last_name or (roster_student.last_name if roster_student else None)
        return self.scrubber.scrub_goals(
            list(parsed.goals), first_name, last_name, middle_name=parsed.middle_name or None
        )

    def _await(self, future: Future[Any], deadline: float | None, stage: str) -> Any:
        if deadline is None:
            return future.result()
        remaining = deadline - time.monotonic()
        try:
            return future.result(timeout=max(0.0, remaining))
        except FutureTimeoutError as e:
            future.cancel()
            logger.error("import_timed_out", stage=stage, timeout_seconds=self.config.timeout_seconds)
            raise ImportTimeoutError(
                f"Import exceeded {self.config.timeout_seconds} seconds during {stage}",
                timeout_seconds=self.config.timeout_seconds,
            ) from e

    def _check_deadline(self, deadline: float | None, stage: str) -> None:
        if deadline is not None and time.monotonic() > deadline:
            logger.error("import_timed_out", stage=stage, timeout_seconds=self.config.timeout_seconds)
            raise ImportTimeoutError(
                f"Import exceeded {self.config.timeout_seconds} seconds during {stage}",
                timeout_seconds=self.config.timeout_seconds,
            )


# Convenience function for CLI usage
def create_pipeline(config_path: str | None = None) -> IEPImportPipeline:
    """
    Create a configured pipeline.

    Args:
        config_path: Path to settings.yaml

    Returns:
        Configured IEPImportPipeline
    """
    config = PipelineConfig(Path(config_path) if config_path else None)
    return IEPImportPipeline(config=config)
