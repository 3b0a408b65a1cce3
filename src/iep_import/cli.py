"""
CLI Entrypoint for the IEP Goals Import Pipeline

Provides a local operator surface for previewing an IEP goals import:
parse a report, match it against a roster CSV and write the scrubbed
preview payload. Output shows initials and grades only.

Usage:
    iep-import preview REPORT --roster ROSTER.csv [OPTIONS]
    iep-import parse REPORT [OPTIONS]
"""

from __future__ import annotations

import json
from datetime import date
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from iep_import.errors import ImportTimeoutError, ParseError
from iep_import.models import ImportOptions, ImportPreview, ParseOptions
from iep_import.pipeline import PipelineConfig, RosterLoader, create_pipeline
from iep_import.stage_0_ingestion import create_report_parser

app = typer.Typer(
    name="iep-import",
    help="Parse, match and scrub IEP goal reports for import",
    add_completion=False,
)

console = Console()

CONFIDENCE_STYLES = {
    "high": "green",
    "medium": "yellow",
    "low": "red",
}


def print_messages(title: str, messages: list[str], style: str) -> None:
    """Print a titled list of reviewer messages, if any."""
    if not messages:
        return
    console.print(f"\n[{style}]{title} ({len(messages)}):[/]")
    for message in messages:
        console.print(f"  - {message}")


def print_preview(preview: ImportPreview) -> None:
    """Print the match table and summary for an import preview."""
    table = Table(title="Matched students")
    table.add_column("Roster ID")
    table.add_column("Initials")
    table.add_column("Grade")
    table.add_column("Confidence")
    table.add_column("Goals", justify="right")
    table.add_column("Sheets")

    for match in preview.matches:
        style = CONFIDENCE_STYLES.get(match.match_confidence.value, "white")
        table.add_row(
            match.student_id,
            match.student_initials,
            match.student_grade,
            f"[{style}]{match.match_confidence.value}[/]",
            str(len(match.goals)),
            ", ".join(match.source_sheets),
        )

    console.print(table)

    summary = preview.summary
    console.print("\n[bold]Summary:[/]")
    console.print(f"  Format: {summary.format_detected}")
    console.print(f"  Students parsed: {summary.total_parsed}")
    console.print(
        f"  Matched: {summary.matched} "
        f"([green]{summary.high_confidence} high[/], "
        f"[yellow]{summary.medium_confidence} medium[/], "
        f"[red]{summary.low_confidence} low[/])"
    )
    console.print(f"  Unmatched: {summary.unmatched}")
    console.print(f"  Goals filtered by role: {summary.goals_filtered}")
    console.print(f"  Goals ready for review: {preview.total_goals}")

    if preview.unmatched_students:
        console.print("\n[yellow]Unmatched students:[/]")
        for student in preview.unmatched_students:
            console.print(f"  - {student.initials} (grade {student.grade or '?'}): {student.reason}")

    print_messages("Parse errors", preview.parse_errors, "red")
    print_messages("Parse warnings", preview.parse_warnings, "yellow")
    print_messages("Scrub errors", preview.scrub_errors, "red")


@app.command()
def preview(
    report: Path = typer.Argument(
        ...,
        help="Path to the .xlsx or CSV report",
        exists=True,
        dir_okay=False,
    ),
    roster: Path = typer.Option(
        ...,
        "--roster",
        "-r",
        help="Path to roster CSV (id, initials, grade_level, optional names and school)",
        exists=True,
        dir_okay=False,
    ),
    school: Optional[List[str]] = typer.Option(
        None,
        "--school",
        "-s",
        help="Keep only rows for this school (repeatable)",
    ),
    target_student: Optional[str] = typer.Option(
        None,
        "--target-student",
        "-t",
        help="Roster ID of a single student to import",
    ),
    role: Optional[str] = typer.Option(
        None,
        "--role",
        help="Provider role used to filter goals (resource, speech, ot, counseling, ...)",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to settings.yaml configuration file",
        exists=True,
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the preview payload JSON to this path",
    ),
) -> None:
    """
    Preview an IEP goals import.

    Parses the report, matches every student against the roster and
    scrubs PII from the goals. Nothing is imported; the payload is for
    human review.
    """
    console.print(f"[bold blue]Previewing:[/] {report.name}")

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
    ) as progress:
        progress.add_task("Loading roster and configuration...", total=None)
        pipeline = create_pipeline(config_path=str(config) if config else None)
        roster_students = RosterLoader.from_csv(roster)

    options = ImportOptions(
        user_schools=school or None,
        target_student_id=target_student,
        provider_role=role,
    )

    try:
        result = pipeline.run(
            report.read_bytes(),
            roster_students,
            options=options,
            filename=report.name,
            reference_date=date.today(),
        )
    except ParseError as e:
        console.print(f"[red]Could not read report:[/] {e}")
        raise typer.Exit(code=1) from e
    except ImportTimeoutError as e:
        console.print(f"[red]Import timed out:[/] {e}")
        raise typer.Exit(code=2) from e

    print_preview(result)

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(result.to_payload(), indent=2), encoding="utf-8")
        console.print(f"\n[green]Payload written:[/] {output}")


@app.command()
def parse(
    report: Path = typer.Argument(
        ...,
        help="Path to the .xlsx or CSV report",
        exists=True,
        dir_okay=False,
    ),
    school: Optional[List[str]] = typer.Option(
        None,
        "--school",
        "-s",
        help="Keep only rows for this school (repeatable)",
    ),
    role: Optional[str] = typer.Option(
        None,
        "--role",
        help="Provider role used to filter goals",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to settings.yaml configuration file",
        exists=True,
    ),
) -> None:
    """
    Parse a report and print counts, dialects and messages.

    Useful for checking whether a new report layout is recognized.
    """
    parser = create_report_parser(PipelineConfig(config).parsing_config)

    try:
        result = parser.parse(
            report.read_bytes(),
            ParseOptions(user_schools=school or None, provider_role=role, reference_date=date.today()),
            filename=report.name,
        )
    except ParseError as e:
        console.print(f"[red]Could not read report:[/] {e}")
        raise typer.Exit(code=1) from e

    metadata = result.metadata
    console.print(f"[bold]Container:[/] {metadata.container}")
    console.print(f"[bold]Format:[/] {metadata.format_detected}")

    table = Table(title="Tables")
    table.add_column("Sheet")
    table.add_column("Dialect")
    for sheet, dialect in metadata.dialects.items():
        table.add_row(sheet, dialect)
    console.print(table)

    goal_count = sum(len(s.goals) for s in result.students)
    console.print(f"  Data rows: {metadata.total_rows}")
    console.print(f"  Students: {len(result.students)}")
    console.print(f"  Goals: {goal_count}")
    console.print(f"  Goals filtered by role: {metadata.goals_filtered}")
    console.print(f"  Rows filtered by school: {metadata.rows_filtered_by_school}")

    print_messages("Errors", result.errors, "red")
    print_messages("Warnings", result.warnings, "yellow")


if __name__ == "__main__":
    app()
