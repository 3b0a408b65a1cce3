"""
Stage 0: Report Ingestion

Parses third-party special-education reports (SEIS exports, district
spreadsheets, hand-built CSVs) into structured ParsedStudent records.

Key features:
- Container detection from the byte signature (xlsx vs delimited text)
- Per-table dialect detection from header-synonym tables
- Merged-cell expansion, title/footer skipping, continuation rows
- Multi-goal cell splitting on bullets and numbering
- Grade normalization and IEP date parsing with staleness warnings
- Explicit filters: provider role, school sites, single target student

Malformed rows become reviewer-facing messages; only a container that
cannot be opened at all raises ParseError.

This stage is 100% local - no external API calls.
"""

from __future__ import annotations

import csv
import io
import re
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Any, BinaryIO
from zipfile import BadZipFile

import structlog
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException
from pydantic import ValidationError

from iep_import.dialects import ColumnField, ColumnMapping, ReportDialect, map_header_row
from iep_import.errors import ParseError, RowError
from iep_import.grades import normalize_grade
from iep_import.models import (
    ParsedStudent,
    ParseMetadata,
    ParseOptions,
    ParseResult,
    TargetStudent,
)
from iep_import.service_types import is_goal_for_provider, role_filters_goals

logger = structlog.get_logger()


# =============================================================================
# Container handling
# =============================================================================

class ContainerType(str, Enum):
    """Physical container of the uploaded report."""
    WORKBOOK = "workbook"
    DELIMITED = "delimited"


ZIP_SIGNATURE = b"PK\x03\x04"
OLE_SIGNATURE = b"\xd0\xcf\x11\xe0"

TEXT_ENCODINGS = ("utf-8-sig", "utf-8", "cp1252")
DELIMITER_CANDIDATES = (",", ";", "\t", "|")

# Excel's day zero (accounts for the 1900 leap-year bug)
EXCEL_EPOCH = date(1899, 12, 30)


@dataclass
class SheetData:
    """One sheet (or the single table of a delimited file) as a string matrix."""
    name: str
    rows: list[list[str]]


def detect_container(data: bytes, filename: str | None = None) -> ContainerType:
    """
    Detect the container from the leading bytes.

    The filename is only used to phrase the error for legacy workbooks;
    a report named ``.csv`` that is really an xlsx is read as a workbook.
    """
    if data.startswith(ZIP_SIGNATURE):
        return ContainerType.WORKBOOK
    if data.startswith(OLE_SIGNATURE):
        hint = f" ({filename})" if filename else ""
        raise ParseError(
            f"Legacy .xls workbooks are not supported{hint}; save the report as .xlsx or CSV",
            container="xls",
        )
    return ContainerType.DELIMITED


def stringify_cell(value: Any) -> str:
    """Render a cell value as text: dates as ISO, integral floats without '.0'."""
    if value is None:
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, time):
        return value.isoformat()
    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"
    if isinstance(value, float):
        if value.is_integer():
            return str(int(value))
        return str(value)
    return str(value).strip()


def read_workbook(data: bytes) -> list[SheetData]:
    """
    Read every sheet of an xlsx workbook, expanding merged cells.

    Raises:
        ParseError: If the archive is not a readable workbook
    """
    try:
        wb = load_workbook(io.BytesIO(data), read_only=False, data_only=True)
        try:
            return [_read_sheet(ws) for ws in wb.worksheets]
        finally:
            wb.close()
    except (BadZipFile, InvalidFileException, KeyError, ValueError, OSError, SyntaxError) as e:
        # SyntaxError covers malformed part XML from both ElementTree and lxml
        raise ParseError(f"Could not open workbook: {type(e).__name__}", container="workbook") from e
    except Exception as e:
        logger.warning("workbook_read_failed", error_type=type(e).__name__)
        raise ParseError(f"Could not read workbook: {type(e).__name__}", container="workbook") from e


def _read_sheet(ws: Any) -> SheetData:
    matrix = [
        [stringify_cell(v) for v in row]
        for row in ws.iter_rows(values_only=True)
    ]

    # Every cell covered by a merged range carries the top-left value
    for merged in ws.merged_cells.ranges:
        min_col, min_row, max_col, max_row = merged.bounds
        top_left = stringify_cell(ws.cell(min_row, min_col).value)
        for r in range(min_row - 1, min(max_row, len(matrix))):
            row = matrix[r]
            for c in range(min_col - 1, max_col):
                if c < len(row) and not row[c]:
                    row[c] = top_left

    return SheetData(name=ws.title, rows=matrix)


def decode_text(data: bytes) -> str:
    """Decode delimited text, trying utf-8-sig, utf-8 and cp1252 in order."""
    if b"\x00" in data:
        raise ParseError("File contains binary data and is not a CSV or xlsx report", container="delimited")

    for encoding in TEXT_ENCODINGS:
        try:
            return data.decode(encoding)
        except UnicodeDecodeError:
            continue

    raise ParseError("Could not decode text file as UTF-8 or Windows-1252", container="delimited")


def guess_delimiter(sample: str) -> str:
    """Sniff the delimiter, falling back to the most frequent candidate per line."""
    try:
        dialect = csv.Sniffer().sniff(sample, delimiters="".join(DELIMITER_CANDIDATES))
        if dialect.delimiter in DELIMITER_CANDIDATES:
            return dialect.delimiter
    except csv.Error:
        pass

    lines = [ln for ln in sample.splitlines() if ln.strip()][:20]
    if not lines:
        return ","

    scores = {d: sum(ln.count(d) for ln in lines) / len(lines) for d in DELIMITER_CANDIDATES}
    best = max(DELIMITER_CANDIDATES, key=lambda d: scores[d])
    return best if scores[best] > 0 else ","


def read_delimited(data: bytes, sheet_name: str = "CSV") -> list[SheetData]:
    """Read delimited text into a single SheetData."""
    text = decode_text(data)
    delimiter = guess_delimiter(text[:65536])
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)
    rows = [[cell.strip() for cell in row] for row in reader]
    logger.debug("delimiter_detected", delimiter=repr(delimiter), rows=len(rows))
    return [SheetData(name=sheet_name, rows=rows)]


# =============================================================================
# Cell-level helpers
# =============================================================================

FOOTER_PATTERN = re.compile(
    r"^(?:total\b|grand\s+total|page\s+\d+(?:\s+of\s+\d+)?|"
    r"(?:report\s+)?(?:generated|printed|run)\b|confidential|end\s+of\s+report)",
    re.IGNORECASE,
)

_BULLET_PATTERN = re.compile(r"^(?:[•●▪◦‣·*\-–]|\(?\d{1,2}[.)])\s+")
_INLINE_BULLET_PATTERN = re.compile(r"\s+(?=[•●▪◦‣]\s*)")

_ISO_DATE_PATTERN = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})(?:[T\s].*)?$")
_US_DATE_PATTERN = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4}|\d{2})$")
# Five or six digits; a bare four-digit cell is a year, not a serial day
_SERIAL_PATTERN = re.compile(r"^\d{5,6}(?:\.\d+)?$")


def split_goals(text: str, min_length: int = 10) -> list[str]:
    """
    Split one goal cell into individual goals.

    Lines starting with a bullet or number marker begin a new goal;
    lines starting lowercase continue the previous goal. Fragments
    shorter than ``min_length`` are dropped.
    """
    if not text or not text.strip():
        return []

    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    normalized = _INLINE_BULLET_PATTERN.sub("\n", normalized)

    items: list[str] = []
    for raw_line in normalized.split("\n"):
        line = raw_line.strip()
        if not line:
            continue

        marker = _BULLET_PATTERN.match(line)
        if marker:
            items.append(line[marker.end():].strip())
        elif items and line[0].islower():
            items[-1] = f"{items[-1]} {line}"
        else:
            items.append(line)

    goals = []
    for item in items:
        item = re.sub(r"\s+", " ", item).strip()
        if len(item) >= min_length and item not in goals:
            goals.append(item)
    return goals


def split_full_name(full_name: str) -> tuple[str, str, str]:
    """
    Split a combined name cell into (first_name, middle_name, last_name).

    Handles "Last, First [Middle]" and "First [Middle ...] Last". Every
    token between the first and last name is kept as the middle name so
    it can still be redacted. A single token is treated as a last name.
    """
    name = re.sub(r"\s+", " ", full_name).strip()
    if not name:
        return "", "", ""

    if "," in name:
        last, first = name.split(",", 1)
        first_parts = first.split()
        if not first_parts:
            return "", "", last.strip()
        return first_parts[0], " ".join(first_parts[1:]), last.strip()

    parts = name.split(" ")
    if len(parts) >= 2:
        return parts[0], " ".join(parts[1:-1]), parts[-1]
    return "", "", parts[0]


def clean_initials(raw: str) -> str:
    """Keep letters only ("J.D." -> "JD"), preserving case for the 3-letter form."""
    return re.sub(r"[^A-Za-z]", "", raw or "")


def derive_initials(first_name: str, last_name: str) -> str:
    """Initials from the first letter of each name part present."""
    letters = [clean_initials(p)[:1].upper() for p in (first_name, last_name)]
    return "".join(letter for letter in letters if letter)


def initials_key(initials: str) -> str:
    """Uppercase initials with the lowercase middle letter of "JoS" dropped."""
    cleaned = clean_initials(initials)
    if len(cleaned) == 3 and cleaned[1].islower():
        cleaned = cleaned[0] + cleaned[2]
    return cleaned.upper()


def school_matches(school: str | None, tokens: list[str]) -> bool:
    """Case-insensitive, either-way substring match against school tokens."""
    if not school or not school.strip():
        return False
    value = school.strip().casefold()
    for token in tokens:
        needle = token.strip().casefold()
        if needle and (needle in value or value in needle):
            return True
    return False


def parse_iep_date(raw: str) -> str | None:
    """
    Parse an IEP date cell into ISO ``YYYY-MM-DD``.

    Accepts ISO dates (with optional time), M/D/YYYY, M-D-YYYY, two-digit
    years (as 20YY) and Excel serial day numbers. Returns None when the
    value is not a valid date.
    """
    value = (raw or "").strip()
    if not value:
        return None

    try:
        match = _ISO_DATE_PATTERN.match(value)
        if match:
            y, m, d = (int(g) for g in match.groups())
            return date(y, m, d).isoformat()

        match = _US_DATE_PATTERN.match(value)
        if match:
            m, d, y = match.groups()
            year = int(y) + 2000 if len(y) == 2 else int(y)
            return date(year, int(m), int(d)).isoformat()
    except ValueError:
        return None

    if _SERIAL_PATTERN.match(value):
        parsed = EXCEL_EPOCH + timedelta(days=int(float(value)))
        if 1900 <= parsed.year <= 2100:
            return parsed.isoformat()

    return None


# =============================================================================
# Parser
# =============================================================================

@dataclass
class _StudentRecord:
    """Mutable accumulator for one student while a sheet is being read."""
    first_name: str
    last_name: str
    middle_name: str
    initials: str
    grade_level: str
    school_site: str | None
    iep_date: str | None
    source_sheet: str
    source_row: int
    goals: list[str] = field(default_factory=list)
    goals_filtered: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def key(self) -> tuple[str, str, str, str, str]:
        return (
            self.first_name.strip().lower(),
            self.last_name.strip().lower(),
            initials_key(self.initials),
            self.grade_level,
            (self.school_site or "").strip().lower(),
        )

    def add_goals(self, goals: list[str]) -> None:
        for goal in goals:
            if goal not in self.goals:
                self.goals.append(goal)


@dataclass
class _ParseState:
    """Counters and messages collected across sheets."""
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    dialects: dict[str, str] = field(default_factory=dict)
    total_rows: int = 0
    goals_filtered: int = 0
    rows_filtered_by_school: int = 0


class ReportParser:
    """
    Parses IEP goal reports into ParsedStudent records.

    Supports four report dialects with auto-detection per table:
    1. seis-student-goals: one goal per row with goal-category columns
    2. seis-goals-grid: first/last name columns, goals across columns
    3. student-name-list: a single "Student"/"Name" column
    4. initials-list: initials only
    """

    def __init__(
        self,
        min_goal_length: int = 10,
        header_scan_rows: int = 25,
        stale_iep_days: int = 365,
    ) -> None:
        self.min_goal_length = min_goal_length
        self.header_scan_rows = header_scan_rows
        self.stale_iep_days = stale_iep_days

    def parse(
        self,
        buffer: bytes | bytearray | memoryview | BinaryIO,
        options: ParseOptions | None = None,
        filename: str | None = None,
    ) -> ParseResult:
        """
        Parse a report buffer.

        Args:
            buffer: Raw file bytes or a binary file object
            options: Explicit filters; None means no filtering
            filename: Original filename, used for the sheet name of CSVs

        Returns:
            ParseResult with students, errors, warnings and metadata

        Raises:
            ParseError: If the container cannot be opened at all
        """
        options = options or ParseOptions()
        data = self._read_bytes(buffer)

        container = detect_container(data, filename)
        logger.info("parsing_report", container=container.value, size=len(data))

        if container == ContainerType.WORKBOOK:
            sheets = read_workbook(data)
        else:
            sheets = read_delimited(data, sheet_name=filename or "CSV")

        state = _ParseState()
        students: list[ParsedStudent] = []
        for sheet in sheets:
            students.extend(self._parse_sheet(sheet, options, state))

        students_filtered_by_target = 0
        if options.target_student is not None:
            kept = [s for s in students if self._matches_target(s, options.target_student)]
            students_filtered_by_target = len(students) - len(kept)
            students = kept
            if not students:
                state.warnings.append("No rows in the report match the selected student")

        if not state.dialects:
            state.errors.append(
                "No student table found: expected a header row with a student name "
                "or initials column and at least one goal column"
            )
        elif not students and options.target_student is None:
            state.warnings.append("No students with goals were found in the report")

        metadata = ParseMetadata(
            format_detected=self._format_detected(state.dialects),
            container=container.value,
            sheets_processed=[s.name for s in sheets],
            dialects=dict(state.dialects),
            total_rows=state.total_rows,
            goals_filtered=state.goals_filtered,
            rows_filtered_by_school=state.rows_filtered_by_school,
            students_filtered_by_target=students_filtered_by_target,
        )

        logger.info(
            "parsing_complete",
            student_count=len(students),
            error_count=len(state.errors),
            warning_count=len(state.warnings),
            format=metadata.format_detected,
        )

        return ParseResult(
            students=students,
            errors=state.errors,
            warnings=state.warnings,
            metadata=metadata,
        )

    @staticmethod
    def _read_bytes(buffer: bytes | bytearray | memoryview | BinaryIO) -> bytes:
        if isinstance(buffer, (bytes, bytearray, memoryview)):
            return bytes(buffer)
        if hasattr(buffer, "read"):
            return buffer.read()
        raise TypeError(f"expected bytes or a binary file object, got {type(buffer).__name__}")

    @staticmethod
    def _format_detected(dialects: dict[str, str]) -> str:
        found = set(dialects.values())
        if not found:
            return "unknown"
        if len(found) == 1:
            return found.pop()
        return "mixed"

    def _iter_tables(
        self, sheet: SheetData, state: _ParseState
    ) -> Iterator[tuple[ColumnMapping, int, list[str]]]:
        """
        Yield (mapping, row_index, cells) for every data row of every table.

        Rows before the first header are titles/metadata and are skipped.
        A later header row starts a new logical table.
        """
        mapping: ColumnMapping | None = None
        table_count = 0

        for idx, row in enumerate(sheet.rows):
            if not any(row):
                if mapping is not None:
                    yield mapping, idx, row
                continue

            candidate = map_header_row(row, idx)
            if candidate.is_table_header:
                mapping = candidate
                table_count += 1
                label = sheet.name if table_count == 1 else f"{sheet.name}#{table_count}"
                dialect = candidate.dialect or ReportDialect.INITIALS_LIST
                state.dialects[label] = dialect.value
                logger.debug("header_detected", sheet=sheet.name, row=idx + 1, dialect=dialect.value)
                continue

            if mapping is None:
                if idx + 1 >= self.header_scan_rows:
                    state.warnings.append(
                        f'Sheet "{sheet.name}": no header row found in the first '
                        f"{self.header_scan_rows} rows; sheet skipped"
                    )
                    return
                continue

            yield mapping, idx, row

    def _parse_sheet(
        self, sheet: SheetData, options: ParseOptions, state: _ParseState
    ) -> list[ParsedStudent]:
        """Parse one sheet into consolidated students."""
        records: dict[tuple[str, str, str, str, str], _StudentRecord] = {}
        previous: _StudentRecord | None = None
        previous_mapping: ColumnMapping | None = None
        warned_no_school = False
        filter_role = role_filters_goals(options.provider_role)

        for mapping, idx, row in self._iter_tables(sheet, state):
            row_number = idx + 1

            if mapping is not previous_mapping:
                previous = None
                previous_mapping = mapping

            if not any(row):
                previous = None
                continue

            first_cell = next(cell for cell in row if cell)
            if FOOTER_PATTERN.match(first_cell) and not self._cell(row, mapping, ColumnField.GRADE):
                previous = None
                continue

            state.total_rows += 1

            try:
                record = self._decode_row(
                    row, mapping, sheet.name, row_number, options, state, filter_role, previous
                )
            except RowError as e:
                state.errors.append(str(e))
                previous = None
                continue

            if record is None:
                # Continuation rows keep ``previous``; school-filtered rows reset it
                if self._has_identity(row, mapping):
                    previous = None
                continue

            if options.user_schools and not mapping.has(ColumnField.SCHOOL) and not warned_no_school:
                state.warnings.append(
                    f'Sheet "{sheet.name}" has no school column; school filter not applied'
                )
                warned_no_school = True

            existing = records.get(record.key)
            if existing is None:
                state.warnings.extend(record.warnings)
                records[record.key] = record
                previous = record
            else:
                existing.add_goals(record.goals)
                existing.goals_filtered += record.goals_filtered
                if existing.iep_date is None and record.iep_date:
                    existing.iep_date = record.iep_date
                previous = existing

        students = []
        for record in records.values():
            if not record.goals:
                if record.goals_filtered == 0:
                    state.warnings.append(
                        str(RowError("no goals found for this student", sheet.name, record.source_row))
                    )
                continue

            try:
                students.append(
                    ParsedStudent(
                        first_name=record.first_name,
                        last_name=record.last_name,
                        middle_name=record.middle_name,
                        initials=record.initials,
                        grade_level=record.grade_level,
                        school_site=record.school_site,
                        goals=record.goals,
                        iep_date=record.iep_date,
                        source_sheet=record.source_sheet,
                        source_row=record.source_row,
                    )
                )
            except ValidationError:
                state.errors.append(
                    str(RowError("student record is missing a last name or initials", sheet.name, record.source_row))
                )

        logger.info(
            "sheet_parsed",
            sheet=sheet.name,
            students=len(students),
            errors=len(state.errors),
        )
        return students

    @staticmethod
    def _cell(row: list[str], mapping: ColumnMapping, column: ColumnField) -> str:
        idx = mapping.get(column)
        if idx is None or idx >= len(row):
            return ""
        return row[idx].strip()

    def _has_identity(self, row: list[str], mapping: ColumnMapping) -> bool:
        return any(
            self._cell(row, mapping, c)
            for c in (ColumnField.FIRST_NAME, ColumnField.LAST_NAME, ColumnField.FULL_NAME, ColumnField.INITIALS)
        )

    def _row_goals(
        self,
        row: list[str],
        mapping: ColumnMapping,
        options: ParseOptions,
        filter_role: bool,
    ) -> tuple[list[str], int]:
        """Collect goals from the row's goal columns, applying the role filter."""
        goals: list[str] = []
        for col in mapping.goal_columns:
            if col < len(row):
                for goal in split_goals(row[col], self.min_goal_length):
                    if goal not in goals:
                        goals.append(goal)

        if goals and filter_role and mapping.has_goal_categories:
            keep = is_goal_for_provider(
                options.provider_role,
                area_of_need=self._cell(row, mapping, ColumnField.AREA_OF_NEED),
                goal_type=self._cell(row, mapping, ColumnField.GOAL_TYPE),
                person_responsible=self._cell(row, mapping, ColumnField.PERSON_RESPONSIBLE),
            )
            if not keep:
                return [], len(goals)

        return goals, 0

    def _decode_row(
        self,
        row: list[str],
        mapping: ColumnMapping,
        sheet_name: str,
        row_number: int,
        options: ParseOptions,
        state: _ParseState,
        filter_role: bool,
        previous: _StudentRecord | None,
    ) -> _StudentRecord | None:
        """
        Decode one data row through the table's column mapping.

        Returns:
            A new _StudentRecord, or None for continuation rows and rows
            removed by the school filter

        Raises:
            RowError: If the row has content but no usable identity
        """
        goals, filtered = self._row_goals(row, mapping, options, filter_role)

        if not self._has_identity(row, mapping):
            if previous is not None and (goals or filtered):
                previous.add_goals(goals)
                previous.goals_filtered += filtered
                state.goals_filtered += filtered
                return None
            raise RowError("row has content but no student name or initials", sheet_name, row_number)

        first_name = self._cell(row, mapping, ColumnField.FIRST_NAME)
        last_name = self._cell(row, mapping, ColumnField.LAST_NAME)
        full_name = self._cell(row, mapping, ColumnField.FULL_NAME)
        middle_name = ""
        if full_name and not (first_name and last_name):
            split_first, middle_name, split_last = split_full_name(full_name)
            first_name = first_name or split_first
            last_name = last_name or split_last

        explicit_initials = clean_initials(self._cell(row, mapping, ColumnField.INITIALS))
        if explicit_initials:
            initials = explicit_initials
        elif last_name:
            initials = derive_initials(first_name, last_name)
        else:
            raise RowError("row has no last name or initials", sheet_name, row_number)

        school = self._cell(row, mapping, ColumnField.SCHOOL) or None
        if options.user_schools and mapping.has(ColumnField.SCHOOL):
            if not school_matches(school, options.user_schools):
                state.rows_filtered_by_school += 1
                return None

        state.goals_filtered += filtered

        warnings: list[str] = []
        raw_grade = self._cell(row, mapping, ColumnField.GRADE)
        grade, recognized = normalize_grade(raw_grade)
        if not raw_grade:
            warnings.append(str(RowError("missing grade level", sheet_name, row_number)))
        elif not recognized:
            warnings.append(
                str(RowError(f'unrecognized grade "{raw_grade[:20]}" kept as written', sheet_name, row_number))
            )

        raw_date = self._cell(row, mapping, ColumnField.IEP_DATE)
        iep_date = parse_iep_date(raw_date)
        if raw_date and iep_date is None:
            warnings.append(str(RowError("IEP date could not be read", sheet_name, row_number)))
        elif iep_date and options.reference_date is not None:
            age = (options.reference_date - date.fromisoformat(iep_date)).days
            if age > self.stale_iep_days:
                warnings.append(
                    str(RowError(f"IEP date is more than {self.stale_iep_days} days old", sheet_name, row_number))
                )

        record = _StudentRecord(
            first_name=first_name,
            last_name=last_name,
            middle_name=middle_name,
            initials=initials,
            grade_level=grade,
            school_site=school,
            iep_date=iep_date,
            source_sheet=sheet_name,
            source_row=row_number,
            goals_filtered=filtered,
            warnings=warnings,
        )
        record.add_goals(goals)
        return record

    @staticmethod
    def _matches_target(student: ParsedStudent, target: TargetStudent) -> bool:
        """Initials must agree; grade and school must agree when both sides carry them."""
        if initials_key(student.initials) != initials_key(target.initials):
            return False

        if student.grade_level and target.grade_level:
            target_grade, _ = normalize_grade(target.grade_level)
            if student.grade_level != target_grade:
                return False

        if student.school_site and target.school_name:
            if not school_matches(student.school_site, [target.school_name]):
                return False

        return True


# =============================================================================
# Convenience Functions
# =============================================================================

def create_report_parser(config: dict[str, Any] | None = None) -> ReportParser:
    """
    Factory function to create a configured ReportParser.

    Args:
        config: The ``parsing`` section of the pipeline settings

    Returns:
        Configured ReportParser
    """
    config = config or {}
    return ReportParser(
        min_goal_length=int(config.get("min_goal_length", 10)),
        header_scan_rows=int(config.get("header_scan_rows", 25)),
        stale_iep_days=int(config.get("stale_iep_days", 365)),
    )


def parse_report(
    buffer: bytes | bytearray | memoryview | BinaryIO,
    options: ParseOptions | None = None,
    filename: str | None = None,
) -> ParseResult:
    """
    Parse a report buffer with default settings.

    Args:
        buffer: Raw .xlsx or CSV bytes
        options: Optional filters
        filename: Original filename

    Returns:
        ParseResult
    """
    return ReportParser().parse(buffer, options=options, filename=filename)
