"""PTRS CLI application -- Typer-based operator interface.

Talks to the compliance API over HTTP.  Human-readable output goes to
*stderr* via Rich; machine-readable output (``--json`` payloads and the
exported ABN CSV) goes to *stdout* so that pipelines can compose cleanly.
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any

import typer
from rich.console import Console

from cli.display import (
    display_derivation_summary,
    display_import_outcome,
    display_metrics_preview,
    display_sbi_status,
    display_validation_report,
)

# ---------------------------------------------------------------------------
# App & global state
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="ptrs",
    help="PTRS - payment times reporting compliance tooling",
    no_args_is_help=True,
)
console = Console(stderr=True)

DEFAULT_API_URL = "http://localhost:8000"

# Mutable global options populated by the Typer callback.
_json_output: bool = False


# ---------------------------------------------------------------------------
# Callback -- global options
# ---------------------------------------------------------------------------


@app.callback()
def _global_options(
    json_mode: bool = typer.Option(
        False,
        "--json/--no-json",
        help="Emit structured JSON to stdout instead of human-readable output.",
    ),
) -> None:
    """Global options applied to every command."""
    global _json_output  # noqa: PLW0603
    _json_output = json_mode


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_path(tenant: str, run: str, suffix: str) -> str:
    return f"/api/v1/tenants/{tenant}/runs/{run}{suffix}"


def _api_request(
    method: str,
    api_url: str,
    path: str,
    *,
    content: bytes | None = None,
    headers: dict[str, str] | None = None,
    raw: bool = False,
) -> Any:
    """Send an HTTP request to the compliance API.

    Returns the decoded JSON body, or the response text when *raw* is set.
    The ``PTRS_API_TOKEN`` environment variable, when present, is sent as a
    bearer token for the gateway in front of the API.
    """
    import httpx

    request_headers: dict[str, str] = {"Accept": "text/csv" if raw else "application/json"}
    token = os.environ.get("PTRS_API_TOKEN")
    if token:
        request_headers["Authorization"] = f"Bearer {token}"
    if headers:
        request_headers.update(headers)

    url = f"{api_url.rstrip('/')}{path}"
    try:
        with httpx.Client(timeout=30.0) as client:
            response = client.request(method, url, headers=request_headers, content=content)
            response.raise_for_status()
            return response.text if raw else response.json()
    except httpx.HTTPStatusError as exc:
        detail = exc.response.text
        try:
            detail = exc.response.json().get("detail", detail)
        except ValueError:
            pass
        console.print(f"[red]API error ({exc.response.status_code}): {detail}[/red]")
        raise typer.Exit(code=3) from exc
    except httpx.ConnectError as exc:
        console.print(f"[red]Cannot connect to API at {api_url}: {exc}[/red]")
        raise typer.Exit(code=3) from exc


def _write_json(result: Any) -> None:
    sys.stdout.write(json.dumps(result, indent=2, default=str) + "\n")


_TENANT_OPTION = typer.Option(
    ...,
    "--tenant",
    "-t",
    help="Ten-character tenant identifier.",
    envvar="PTRS_TENANT_ID",
)
_RUN_OPTION = typer.Option(..., "--run", "-r", help="Reporting run identifier.")
_API_URL_OPTION = typer.Option(
    DEFAULT_API_URL,
    "--api-url",
    help="Compliance API base URL.",
    envvar="PTRS_API_URL",
)


# ---------------------------------------------------------------------------
# derive-metrics
# ---------------------------------------------------------------------------


@app.command("derive-metrics")
def derive_metrics(
    tenant: str = _TENANT_OPTION,
    run: str = _RUN_OPTION,
    api_url: str = _API_URL_OPTION,
) -> None:
    """Recompute payment time, payment term and partial-payment metrics for a run."""
    result = _api_request("POST", api_url, _run_path(tenant, run, "/metrics/derive"))

    if _json_output:
        _write_json(result)
    else:
        display_derivation_summary(console, result)


# ---------------------------------------------------------------------------
# metrics
# ---------------------------------------------------------------------------


@app.command("metrics")
def metrics(
    tenant: str = _TENANT_OPTION,
    run: str = _RUN_OPTION,
    api_url: str = _API_URL_OPTION,
) -> None:
    """Preview the report figures for a run: bands, percentiles and missing data."""
    result = _api_request("GET", api_url, _run_path(tenant, run, "/metrics"))

    if _json_output:
        _write_json(result)
    else:
        display_metrics_preview(console, result)


# ---------------------------------------------------------------------------
# sbi-export
# ---------------------------------------------------------------------------


@app.command("sbi-export")
def sbi_export(
    tenant: str = _TENANT_OPTION,
    run: str = _RUN_OPTION,
    output: Path | None = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the ABN CSV to this file instead of stdout.",
        dir_okay=False,
    ),
    api_url: str = _API_URL_OPTION,
) -> None:
    """Export the run's distinct payee ABNs for submission to the SBI tool."""
    csv_text: str = _api_request("GET", api_url, _run_path(tenant, run, "/sbi/export"), raw=True)
    abn_count = max(len(csv_text.splitlines()) - 1, 0)

    if output is None:
        sys.stdout.write(csv_text)
        return

    output.write_text(csv_text, encoding="utf-8")
    console.print(f"Wrote [bold]{abn_count}[/bold] ABN(s) to {output}")


# ---------------------------------------------------------------------------
# sbi-import
# ---------------------------------------------------------------------------


@app.command("sbi-import")
def sbi_import(
    results_file: Path = typer.Argument(
        ...,
        help="SBI results CSV downloaded from the SBI tool.",
        exists=True,
        dir_okay=False,
        resolve_path=True,
    ),
    tenant: str = _TENANT_OPTION,
    run: str = _RUN_OPTION,
    actor: str | None = typer.Option(
        None,
        "--actor",
        help="User id recorded against the upload and its row changes.",
        envvar="PTRS_ACTOR_ID",
    ),
    api_url: str = _API_URL_OPTION,
) -> None:
    """Apply an SBI results file to the run's stage rows.

    Exits with code 1 when the upload is BLOCKED by unrecognised outcomes.
    """
    headers = {"Content-Type": "text/csv", "X-File-Name": results_file.name}
    if actor:
        headers["X-Actor-Id"] = actor

    result = _api_request(
        "POST",
        api_url,
        _run_path(tenant, run, "/sbi/import"),
        content=results_file.read_bytes(),
        headers=headers,
    )

    if _json_output:
        _write_json(result)
    else:
        display_import_outcome(console, result)

    if result.get("status") == "BLOCKED":
        raise typer.Exit(code=1)


# ---------------------------------------------------------------------------
# sbi-status
# ---------------------------------------------------------------------------


@app.command("sbi-status")
def sbi_status(
    tenant: str = _TENANT_OPTION,
    run: str = _RUN_OPTION,
    api_url: str = _API_URL_OPTION,
) -> None:
    """Show the latest SBI upload recorded for a run."""
    result = _api_request("GET", api_url, _run_path(tenant, run, "/sbi/status"))

    if _json_output:
        _write_json(result)
    else:
        display_sbi_status(console, result)


# ---------------------------------------------------------------------------
# sbi-validate
# ---------------------------------------------------------------------------


@app.command("sbi-validate")
def sbi_validate(
    tenant: str = _TENANT_OPTION,
    run: str = _RUN_OPTION,
    api_url: str = _API_URL_OPTION,
) -> None:
    """Check that every stage row reflects the latest applied SBI upload.

    Exits with code 1 when the run is BLOCKED so that the command can gate
    a submission pipeline.
    """
    result = _api_request("GET", api_url, _run_path(tenant, run, "/sbi/validate"))

    if _json_output:
        _write_json(result)
    else:
        display_validation_report(console, result)

    if result.get("status") == "BLOCKED":
        raise typer.Exit(code=1)
