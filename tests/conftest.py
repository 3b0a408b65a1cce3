"""
Shared pytest fixtures for iep_import tests.

This module provides common fixtures used across test modules including:
- In-memory workbook and CSV builders
- Sample SEIS-style report rows
- Roster fixtures
- ParsedStudent factory
"""

import csv
import io
import sys
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest
from openpyxl import Workbook

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from iep_import.models import DatabaseStudent, ParsedStudent

# ============================================================================
# Report Builders
# ============================================================================


def build_workbook(
    sheets: Dict[str, List[list]],
    merges: Optional[Dict[str, List[str]]] = None,
) -> bytes:
    """Build an xlsx workbook in memory.

    Args:
        sheets: Sheet title -> rows (lists of cell values)
        merges: Sheet title -> merged ranges such as "A2:A4"
    """
    wb = Workbook()
    wb.remove(wb.active)
    for title, rows in sheets.items():
        ws = wb.create_sheet(title=title)
        for row in rows:
            ws.append(row)
        for cell_range in (merges or {}).get(title, []):
            ws.merge_cells(cell_range)

    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def build_csv(rows: List[list], delimiter: str = ",", encoding: str = "utf-8") -> bytes:
    """Build delimited text bytes from rows."""
    out = io.StringIO()
    writer = csv.writer(out, delimiter=delimiter, lineterminator="\n")
    for row in rows:
        writer.writerow(row)
    return out.getvalue().encode(encoding)


@pytest.fixture
def make_workbook() -> Callable[..., bytes]:
    """Factory fixture returning xlsx bytes."""
    return build_workbook


@pytest.fixture
def make_csv() -> Callable[..., bytes]:
    """Factory fixture returning CSV bytes."""
    return build_csv


# ============================================================================
# Sample Report Rows
# ============================================================================

SEIS_HEADER = [
    "Last Name", "First Name", "Grade", "School of Attendance",
    "IEP Date", "Area of Need", "Annual Goal #", "Person Responsible", "Goal",
]


@pytest.fixture
def seis_rows() -> List[list]:
    """Long-format SEIS Student Goals report with a title block and footer."""
    return [
        ["Student Goals Report"],
        ["Generated for district export"],
        [],
        SEIS_HEADER,
        ["Doe", "Jane", "3", "Lincoln Elementary", "3/15/2024", "Reading",
         "Academic (1 of 2)", "RSP Teacher", "Jane will read 50 words per minute."],
        ["Doe", "Jane", "3", "Lincoln Elementary", "3/15/2024", "Speech/Language",
         "Communication (2 of 2)", "SLP", "Jane will produce /r/ in 8 of 10 trials."],
        ["Smith", "Tom", "4th", "Washington Middle", "2024-01-10", "Math",
         "Academic (1 of 1)", "RSP Teacher", "Tom will solve two-step word problems."],
        ["Total students: 2"],
    ]


@pytest.fixture
def grid_rows() -> List[list]:
    """Wide format: first/last name columns and several goal columns."""
    return [
        ["First Name", "Last Name", "Grade", "Goal 1", "Goal 2"],
        ["Maria", "Lopez", "K", "Maria will identify 20 letters.", "Maria will count to 30 aloud."],
        ["Sam", "Lee", "Grade 2", "Sam will write a five-sentence paragraph.", ""],
    ]


# ============================================================================
# Roster Fixtures
# ============================================================================


@pytest.fixture
def roster() -> List[DatabaseStudent]:
    """Roster with initials and grades only, as stored long-term."""
    return [
        DatabaseStudent(id="s1", initials="J.D.", grade_level="3"),
        DatabaseStudent(id="s2", initials="TS", grade_level="4"),
        DatabaseStudent(id="s3", initials="ML", grade_level="K"),
    ]


@pytest.fixture
def make_parsed() -> Callable[..., ParsedStudent]:
    """Factory for ParsedStudent records."""

    def _make(
        initials: str = "",
        grade_level: str = "3",
        first_name: str = "",
        last_name: str = "",
        goals: Optional[List[str]] = None,
        source_sheet: str = "Sheet1",
        **kwargs,
    ) -> ParsedStudent:
        return ParsedStudent(
            first_name=first_name,
            last_name=last_name,
            initials=initials,
            grade_level=grade_level,
            goals=goals if goals is not None else ["Will complete the assigned task."],
            source_sheet=source_sheet,
            **kwargs,
        )

    return _make
