"""Exception classes for the IEP goals import pipeline.

Only ParseError and ImportTimeoutError propagate to the caller. RowError
and ScrubError are raised inside a stage and collected into the result
as reviewer-facing messages. Messages never carry names or goal text.
"""

from typing import Optional


class IEPImportError(Exception):
    """Base class for all pipeline errors."""


class ParseError(IEPImportError):
    """Raised when the uploaded file cannot be opened at all.

    This typically occurs when:
    - The bytes are not a workbook or readable delimited text
    - The workbook archive is truncated or corrupted
    - The file is a legacy .xls workbook
    """

    def __init__(self, message: str, container: Optional[str] = None) -> None:
        self.container = container
        super().__init__(message)


class RowError(IEPImportError):
    """Raised for a single malformed row; processing continues."""

    def __init__(self, message: str, sheet: Optional[str] = None, row: Optional[int] = None) -> None:
        self.sheet = sheet
        self.row = row
        self.detail = message
        super().__init__(message)

    def __str__(self) -> str:
        location = []
        if self.sheet:
            location.append(f'Sheet "{self.sheet}"')
        if self.row:
            location.append(f"row {self.row}")
        if location:
            return f"{' '.join(location)}: {self.detail}"
        return self.detail


class ScrubError(IEPImportError):
    """Raised when one goal cannot be scrubbed safely.

    The goal is omitted from the output (fail closed) and the error
    is reported with its index only.
    """

    def __init__(self, message: str, goal_index: Optional[int] = None) -> None:
        self.goal_index = goal_index
        self.detail = message
        super().__init__(message)

    def __str__(self) -> str:
        if self.goal_index is not None:
            return f"Goal {self.goal_index + 1}: {self.detail}; goal omitted"
        return f"{self.detail}; goal omitted"


class ImportTimeoutError(IEPImportError):
    """Raised when the whole import exceeds its deadline.

    No partial output is returned because partially scrubbed
    results must never reach the client.
    """

    def __init__(self, message: str, timeout_seconds: Optional[float] = None) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(message)
