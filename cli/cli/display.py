"""Rich output formatting for the PTRS CLI.

All functions write to a :class:`rich.console.Console` instance (typically
bound to *stderr*) so that machine-readable output on *stdout* is never
polluted with human-readable decoration.  Inputs are the decoded JSON
payloads returned by the compliance API.
"""

from __future__ import annotations

from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# ---------------------------------------------------------------------------
# Status colour mapping
# ---------------------------------------------------------------------------

_STATUS_COLOURS: dict[str, str] = {
    "APPLIED": "green",
    "PASSED": "green",
    "APPLIED_WITH_WARNINGS": "yellow",
    "PASSED_WITH_WARNINGS": "yellow",
    "BLOCKED": "red",
}


def _coloured_status(status: str | None) -> str:
    """Return a Rich markup string with the status colour-coded."""
    if not status:
        return "[dim]-[/dim]"
    colour = _STATUS_COLOURS.get(status, "white")
    return f"[{colour}]{status}[/{colour}]"


def _counts_table(title: str, counts: dict[str, Any]) -> Table:
    table = Table(title=title, show_header=False)
    table.add_column("Counter", style="bold")
    table.add_column("Value", justify="right")
    for key, value in counts.items():
        table.add_row(key.replace("_", " "), str(value))
    return table


# ---------------------------------------------------------------------------
# Metrics derivation
# ---------------------------------------------------------------------------


def display_derivation_summary(console: Console, summary: dict[str, Any]) -> None:
    """Render the outcome of a metrics derivation pass."""
    console.print(
        Panel(
            f"Run [bold]{summary.get('run_id')}[/bold]  "
            f"records updated: [bold]{summary.get('applied_count', 0)}[/bold]  "
            f"partial payments: {summary.get('partial_payments', 0)}",
            title="Metrics derived",
        )
    )

    refs = summary.get("reference_counts") or {}
    if refs:
        console.print(_counts_table("Payment time reference", refs))
    sources = summary.get("term_source_counts") or {}
    if sources:
        console.print(_counts_table("Payment term source", sources))


# ---------------------------------------------------------------------------
# Metrics preview
# ---------------------------------------------------------------------------


def _days(value: Any) -> str:
    return "-" if value is None else f"{value:g}"


def _percent(value: Any) -> str:
    return "-" if value is None else f"{value:.2f}%"


def display_metrics_preview(console: Console, preview: dict[str, Any]) -> None:
    """Render the report preview: population, small-business timing and gaps."""
    console.print(
        Panel(
            f"Run [bold]{preview.get('run_id')}[/bold]  "
            f"records: [bold]{preview.get('record_count', 0)}[/bold]  "
            f"value: {preview.get('total_value')}\n"
            f"Small business: [bold]{preview.get('small_business_count', 0)}[/bold] records, "
            f"value {preview.get('small_business_value')} "
            f"({_percent(preview.get('small_business_value_pct'))})",
            title="Metrics preview",
        )
    )

    bands = preview.get("bands") or {}
    band_table = Table(title="Small business payment times")
    band_table.add_column("Band", style="bold")
    band_table.add_column("Records", justify="right")
    band_table.add_column("Share", justify="right")
    for label, key in (
        ("0-30 days", "within_30_days"),
        ("31-60 days", "days_31_to_60"),
        (">60 days", "over_60_days"),
    ):
        band_table.add_row(label, str(bands.get(key, 0)), _percent(bands.get(f"{key}_pct")))
    console.print(band_table)

    stats = Table(title="Statistics", show_header=False)
    stats.add_column("Statistic", style="bold")
    stats.add_column("Value", justify="right")
    stats.add_row("average days", _days(preview.get("average_payment_days")))
    stats.add_row("median days", _days(preview.get("median_payment_days")))
    stats.add_row("p80 days", _days(preview.get("p80_payment_days")))
    stats.add_row("p95 days", _days(preview.get("p95_payment_days")))
    stats.add_row("paid within terms", _percent(preview.get("paid_within_terms_pct")))
    stats.add_row("shortest term", _days(preview.get("term_min_days")))
    stats.add_row("longest term", _days(preview.get("term_max_days")))
    stats.add_row("most common term", _days(preview.get("term_mode_days")))
    console.print(stats)

    missing = preview.get("missing") or {}
    if any(missing.values()):
        console.print(_counts_table("Missing data", missing))
    for note in preview.get("notes") or []:
        console.print(f"[yellow]{note}[/yellow]")


# ---------------------------------------------------------------------------
# SBI import
# ---------------------------------------------------------------------------


def display_import_outcome(console: Console, outcome: dict[str, Any]) -> None:
    """Render the result of applying an SBI results file.

    Parameters
    ----------
    console:
        Rich console to write to (typically stderr).
    outcome:
        ``ImportOutcome`` payload from the API.
    """
    summary = outcome.get("summary") or {}
    stage = summary.get("stage") or {}

    console.print(
        Panel(
            f"Upload [bold]#{outcome.get('sbi_upload_id')}[/bold]  "
            f"{summary.get('file_name') or '(unnamed)'}\n"
            f"Status: {_coloured_status(outcome.get('status'))}\n"
            f"ABNs parsed: {summary.get('parsed_abns', 0)}  "
            f"invalid: {summary.get('invalid_abns', 0)}  "
            f"unknown outcomes: {summary.get('unknown_outcomes', 0)}",
            title="SBI import",
        )
    )

    if stage:
        console.print(_counts_table("Stage rows", stage))

    for reason in summary.get("blocking_reasons") or []:
        console.print(f"[red]Blocked:[/red] {reason}")
    for reason in summary.get("warning_reasons") or []:
        console.print(f"[yellow]Warning:[/yellow] {reason}")


def display_sbi_status(console: Console, status: dict[str, Any]) -> None:
    """Render the latest SBI upload for a run."""
    upload = status.get("latest_upload")
    if not upload:
        console.print(f"[yellow]No SBI upload recorded for run {status.get('run_id')}.[/yellow]")
        return

    table = Table(title=f"Latest SBI upload: {status.get('run_id')}")
    table.add_column("Upload", style="dim")
    table.add_column("File")
    table.add_column("Status")
    table.add_column("ABNs", justify="right")
    table.add_column("Rows", justify="right")
    table.add_column("Uploaded by")
    table.add_column("Created")
    table.add_row(
        str(upload.get("id")),
        upload.get("file_name") or "-",
        _coloured_status(upload.get("status")),
        str(upload.get("parsed_abn_count", 0)),
        str(upload.get("raw_row_count", 0)),
        upload.get("uploaded_by") or "-",
        str(upload.get("created_at") or "-"),
    )
    console.print(table)


# ---------------------------------------------------------------------------
# SBI validation
# ---------------------------------------------------------------------------


def _issue_table(title: str, issues: list[dict[str, Any]], style: str) -> Table:
    table = Table(title=title, title_style=style)
    table.add_column("Row", justify="right")
    table.add_column("Code", style=style)
    table.add_column("Payee ABN")
    table.add_column("Message")
    for issue in issues:
        row_no = issue.get("row_no")
        table.add_row(
            "-" if row_no is None else str(row_no),
            issue.get("code", "-"),
            issue.get("payee_abn") or "-",
            issue.get("message", ""),
        )
    return table


def display_validation_report(console: Console, report: dict[str, Any]) -> None:
    """Render an SBI validation report.

    Issue tables show the (possibly truncated) lists returned by the API;
    the counters panel always reports true totals.
    """
    counts = report.get("counts") or {}
    sbi = report.get("sbi") or {}

    console.print(
        Panel(
            f"Status: {_coloured_status(report.get('status'))}\n"
            f"Upload: {sbi.get('latest_upload_id') or '-'} "
            f"({sbi.get('upload_status') or 'none'})\n"
            f"Rows: {counts.get('total_rows', 0)}  "
            f"excluded: {counts.get('excluded_rows', 0)}  "
            f"compliant: {counts.get('compliant_rows', 0)}  "
            f"blockers: {counts.get('blockers', 0)}  "
            f"warnings: {counts.get('warnings', 0)}",
            title=f"SBI validation: {report.get('run_id')}",
        )
    )

    blockers = report.get("blockers") or []
    if blockers:
        console.print(_issue_table("Blockers", blockers, "red"))
    warnings = report.get("warnings") or []
    if warnings:
        console.print(_issue_table("Warnings", warnings, "yellow"))

    shown = len(blockers) + len(warnings)
    total = counts.get("blockers", 0) + counts.get("warnings", 0)
    if total > shown:
        console.print(f"[dim]Showing {shown} of {total} issues.[/dim]")
