"""
Report dialects and header-synonym tables.

Source reports have no fixed schema. Each logical table is resolved once
from its header row into a ColumnMapping tagged with a ReportDialect;
every data row is then decoded through that mapping.

Header matching is deterministic: a header cell is normalized
(case-folded, whitespace collapsed, trailing punctuation dropped) and
resolved to at most one column field, checking fields in a fixed
priority order so that e.g. "Annual Goal #" is never read as goal text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from re import Pattern


class ReportDialect(str, Enum):
    """Column-naming/layout conventions recognized by the parser."""
    SEIS_STUDENT_GOALS = "seis-student-goals"   # Long format, one goal per row, goal category columns
    SEIS_GOALS_GRID = "seis-goals-grid"         # First/last name columns, goals across columns
    STUDENT_NAME_LIST = "student-name-list"     # Single "Student"/"Name" column
    INITIALS_LIST = "initials-list"             # Initials only, no names


class ColumnField(str, Enum):
    """Canonical columns a header cell can resolve to."""
    STUDENT_ID = "student_id"
    INITIALS = "initials"
    FIRST_NAME = "first_name"
    LAST_NAME = "last_name"
    FULL_NAME = "full_name"
    GRADE = "grade"
    SCHOOL = "school"
    IEP_DATE = "iep_date"
    AREA_OF_NEED = "area_of_need"
    GOAL_TYPE = "goal_type"
    PERSON_RESPONSIBLE = "person_responsible"
    IGNORED = "ignored"
    GOAL = "goal"


# Checked top to bottom; the first field with a matching pattern wins.
HEADER_SYNONYMS: list[tuple[ColumnField, list[str]]] = [
    (ColumnField.STUDENT_ID, [
        r"^(?:ss|state|district|local|seis|sis|aeries)?\s*(?:student\s*)?id(?:\s*(?:number|no\.?|#))?$",
        r"^student\s*(?:number|no\.?|#)$",
        r"^ssid$",
    ]),
    (ColumnField.INITIALS, [
        r"^(?:student\s*)?initials?$",
        r"^inits?$",
    ]),
    (ColumnField.FIRST_NAME, [
        r"^(?:student|legal|preferred)?\s*first\s*(?:name)?$",
        r"^given\s*name$",
    ]),
    (ColumnField.LAST_NAME, [
        r"^(?:student|legal)?\s*last\s*(?:name)?$",
        r"^(?:surname|family\s*name)$",
    ]),
    (ColumnField.FULL_NAME, [
        r"^(?:student|pupil|child|learner)(?:\s*full)?\s*name(?:\s*\(.*\))?$",
        r"^(?:full\s*)?name(?:\s*\(.*\))?$",
        r"^(?:student|pupil|child|learner)$",
    ]),
    (ColumnField.GRADE, [
        r"^(?:current|student)?\s*grade\s*(?:level|lvl)?$",
        r"^(?:gr\.?|grd|gradelevel|grade/class|class)$",
    ]),
    (ColumnField.SCHOOL, [
        r"^(?:school|campus|site)(?:\s*(?:of\s*attendance|name|site))?$",
        r"^attending\s*school$",
    ]),
    (ColumnField.IEP_DATE, [
        r"iep\s*(?:meeting\s*)?date",
        r"^(?:meeting\s*date|(?:annual|last)\s*(?:iep\s*)?review(?:\s*date)?)$",
    ]),
    (ColumnField.AREA_OF_NEED, [
        r"area\s*of\s*need|area\s*need|need\s*area|goal\s*area|^domain$",
    ]),
    (ColumnField.GOAL_TYPE, [
        r"annual\s*goal\s*#|goal\s*(?:#|type|number)|service\s*(?:type|area|code)",
    ]),
    (ColumnField.PERSON_RESPONSIBLE, [
        r"person\s*responsible|responsible\s*(?:person|party)|assigned\s*to|^provider$",
    ]),
    (ColumnField.IGNORED, [
        r"goal\s*(?:status|met|progress|date)|target\s*date|present\s*level|baseline",
    ]),
    (ColumnField.GOAL, [
        r"goal|objective|benchmark|^targets?$",
    ]),
]

_COMPILED_SYNONYMS: list[tuple[ColumnField, list[Pattern[str]]]] = [
    (column, [re.compile(p) for p in patterns]) for column, patterns in HEADER_SYNONYMS
]

# Header cells longer than this are treated as data, not labels
MAX_HEADER_LENGTH = 60

_SINGLE_FIELDS = (
    ColumnField.STUDENT_ID,
    ColumnField.INITIALS,
    ColumnField.FIRST_NAME,
    ColumnField.LAST_NAME,
    ColumnField.FULL_NAME,
    ColumnField.GRADE,
    ColumnField.SCHOOL,
    ColumnField.IEP_DATE,
    ColumnField.AREA_OF_NEED,
    ColumnField.GOAL_TYPE,
    ColumnField.PERSON_RESPONSIBLE,
)


def normalize_header(text: str) -> str:
    """Case-fold and tidy a header cell for synonym lookup."""
    normalized = text.lower().replace("_", " ").replace("(s)", "")
    normalized = re.sub(r"\s+", " ", normalized).strip()
    return normalized.strip(" :.*-")


def resolve_header(text: str) -> ColumnField | None:
    """Resolve one header cell to a canonical column, or None."""
    if not text or len(text) > MAX_HEADER_LENGTH:
        return None

    normalized = normalize_header(text)
    if not normalized:
        return None

    for column, patterns in _COMPILED_SYNONYMS:
        if any(p.search(normalized) for p in patterns):
            return column
    return None


@dataclass
class ColumnMapping:
    """Resolved column positions for one logical table (0-based indexes)."""

    columns: dict[ColumnField, int] = field(default_factory=dict)
    goal_columns: list[int] = field(default_factory=list)
    header_row: int = 0

    def get(self, column: ColumnField) -> int | None:
        return self.columns.get(column)

    def has(self, column: ColumnField) -> bool:
        return column in self.columns

    @property
    def has_identity(self) -> bool:
        return any(
            self.has(c)
            for c in (ColumnField.LAST_NAME, ColumnField.FULL_NAME, ColumnField.INITIALS)
        )

    @property
    def has_goal_categories(self) -> bool:
        return any(
            self.has(c)
            for c in (ColumnField.AREA_OF_NEED, ColumnField.GOAL_TYPE, ColumnField.PERSON_RESPONSIBLE)
        )

    @property
    def is_table_header(self) -> bool:
        return self.has_identity and bool(self.goal_columns)

    @property
    def dialect(self) -> ReportDialect | None:
        if not self.is_table_header:
            return None
        if self.has_goal_categories:
            return ReportDialect.SEIS_STUDENT_GOALS
        if self.has(ColumnField.LAST_NAME):
            return ReportDialect.SEIS_GOALS_GRID
        if self.has(ColumnField.FULL_NAME):
            return ReportDialect.STUDENT_NAME_LIST
        return ReportDialect.INITIALS_LIST


def map_header_row(cells: list[str], row_index: int = 0) -> ColumnMapping:
    """
    Build a ColumnMapping from one candidate header row.

    Args:
        cells: Stringified cell values of the row
        row_index: 0-based position of the row in its sheet

    Returns:
        ColumnMapping; check ``is_table_header`` before using it.
    """
    mapping = ColumnMapping(header_row=row_index)

    for idx, cell in enumerate(cells):
        column = resolve_header(cell)
        if column is None or column == ColumnField.IGNORED:
            continue
        if column == ColumnField.GOAL:
            mapping.goal_columns.append(idx)
        elif column in _SINGLE_FIELDS and column not in mapping.columns:
            mapping.columns[column] = idx

    return mapping
