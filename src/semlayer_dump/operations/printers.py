"""
Human-readable output formatting.

Centralizes all CLI output formatting so the runtime only deals in
Outcomes. Dump payloads go to stdout (or a file); headlines, statistics
next to a stdout dump, and errors go to stderr.
"""
from __future__ import annotations

import json
from typing import Any, List, Optional, Sequence

import typer
from rich.console import Console
from rich.markup import escape

from ..payload_io import format_payload, write_payload_file
from ..runtime_types import (
    Aborted,
    Failed,
    NotFoundExhausted,
    OperationKind,
    OperationRequest,
    Outcome,
    PollPolicy,
    Success,
    TimedOut,
)
from ..runtime import CANCELLED_REASON
from ..summary import (
    ExportSummary,
    ImportSummary,
    describe_item,
    display_name,
    summarize_export,
    summarize_import,
)

_console = Console(highlight=False)
_err_console = Console(stderr=True, highlight=False)

DEFAULT_OBJECTS_LIMIT = 20
VERBOSE_OBJECTS_LIMIT = 1000
DRY_RUN_BANNER = "== DRY RUN SIMULATION - NO CHANGES WERE MADE =="


def print_error(message: str) -> None:
    """Print an error line on stderr."""
    _err_console.print(f"[bold red]Error:[/] {escape(message)}", soft_wrap=True)


def print_starting(kind: OperationKind, db_conn_key: str) -> None:
    """Announce the operation before it is submitted."""
    _err_console.print(
        f"Starting semantic layer {kind.value} for database connection '{escape(db_conn_key)}'...",
        soft_wrap=True,
    )


def print_request(request: OperationRequest, policy: PollPolicy) -> None:
    """
    Echo the request body and poll policy (verbose mode).

    Args:
        request: Request about to be submitted
        policy: Poll policy it will be tracked with
    """
    if request.kind is OperationKind.IMPORT:
        typer.echo(
            f"Options: strict_mode={request.payload.strict_mode}, dry_run={request.payload.dry_run_mode}",
            err=True,
        )
    body = json.dumps(request.to_wire(), indent=2, default=str)
    typer.echo(f"{request.kind.value.capitalize()} request: {body}", err=True)
    typer.echo(
        f"Polling every {policy.poll_interval_ms} ms, timeout {policy.timeout_ms} ms, "
        f"up to {policy.max_not_found_retries} not-found retries",
        err=True,
    )


def format_export_statistics(summary: ExportSummary, verbose: bool = False) -> str:
    """
    Format export statistics.

    Shows the total, per-type counts and, in verbose mode, the exported
    objects grouped by category.

    Args:
        summary: Summary of the exported dump
        verbose: Include the object listing

    Returns:
        Multi-line statistics text
    """
    if summary.empty:
        return "No export data available"

    lines = ["\nExport statistics:"]
    if summary.is_list:
        lines.append(f"  Total exported objects: {summary.total}")
    else:
        lines.append(f"  Total exported categories: {summary.total}")

    if summary.counts:
        lines.append("\n  By type:")
        for kind, count in summary.counts.items():
            lines.append(f"    {display_name(kind)}: {count}")

    if verbose:
        lines.append("\n  Exported objects:")
        if summary.is_list:
            for label in summary.items.get("", []):
                lines.append(f"    - {label}")
        else:
            for category, labels in summary.items.items():
                lines.append(f"\n    {display_name(category)}:")
                for label in labels:
                    lines.append(f"      - {label}")

    return "\n".join(lines)


def _append_objects(lines: List[str], title: str, category: str, items: Sequence[Any],
                    limit: int, noun: str) -> None:
    if not items:
        return
    lines.append(f"\n    {title}:")
    if len(items) > limit:
        lines.append(f"      Showing {limit} of {len(items)} {noun}:")
    for item in items[:limit]:
        lines.append(f"      - {describe_item(category, item)}")
    if len(items) > limit:
        lines.append(f"      ... and {len(items) - limit} more objects")


def format_import_results(summary: ImportSummary, verbose: bool = False) -> str:
    """
    Format import results per category.

    Lists imported and ignored objects, 20 per list (1000 in verbose mode).
    Dry runs carry a banner so a simulation is never mistaken for an
    applied change.

    Args:
        summary: Summary of the import payload
        verbose: Raise the per-list object limit

    Returns:
        Multi-line results text
    """
    lines = []
    if summary.message:
        lines.append(summary.message)
    if summary.dry_run:
        lines.append(f"\n{DRY_RUN_BANNER}")
    if not summary.has_stats:
        lines.append("No detailed information available")
        return "\n".join(lines)

    limit = VERBOSE_OBJECTS_LIMIT if verbose else DEFAULT_OBJECTS_LIMIT
    lines.append("\nImport statistics:")
    for category in summary.categories:
        lines.append(f"  {category.display_name}:")
        lines.append(f"    Imported: {category.imported_count}")
        lines.append(f"    Ignored: {category.ignored_count}")
        _append_objects(lines, "Imported objects", category.name, category.imported, limit, "objects")
        _append_objects(lines, "Ignored objects", category.name, category.ignored, limit, "ignored objects")

    return "\n".join(lines)


def print_export_result(outcome: Success, *, file: Optional[str] = None,
                        fmt: str = "yaml", verbose: bool = False) -> None:
    """
    Write an exported dump to file or stdout.

    Args:
        outcome: Successful export outcome
        file: Output path (stdout if None)
        fmt: "yaml" or "json"
        verbose: Also print export statistics
    """
    _err_console.print("[bold green]Export completed successfully![/]")
    payload = outcome.payload

    if not payload:
        typer.echo("Export completed but no data was returned.", err=True)
        typer.echo("This may indicate that the database has no exportable semantic layer configuration.", err=True)
        typer.echo("Consider checking if:", err=True)
        typer.echo(" - The database connection is valid and contains semantic layer configuration", err=True)
        typer.echo(" - Your permissions allow access to the semantic layer configuration", err=True)
        typer.echo(" - The search context is correctly specified (if used)", err=True)
        return

    if file:
        path = write_payload_file(payload, file, fmt)
        typer.echo(f"Semantic layer configuration exported to {path} ({fmt} format)")
    else:
        typer.echo(format_payload(payload, fmt))

    if verbose:
        typer.echo(format_export_statistics(summarize_export(payload), verbose=True), err=file is None)


def print_import_result(outcome: Success, *, verbose: bool = False, detailed: bool = False) -> None:
    """
    Print import results.

    Args:
        outcome: Successful import outcome
        verbose: Raise the per-list object limit
        detailed: Also print the raw JSON payload
    """
    headline = "Import simulation (dry run)" if outcome.dry_run else "Import"
    _console.print(f"[bold green]{headline} completed successfully![/]")

    if not outcome.payload:
        if outcome.dry_run:
            typer.echo(DRY_RUN_BANNER)
        typer.echo("Import completed but no detailed information was returned.")
        return

    summary = summarize_import(outcome.payload, dry_run=outcome.dry_run)
    typer.echo(format_import_results(summary, verbose=verbose))

    if detailed:
        typer.echo("\nDetailed information:")
        typer.echo(json.dumps(outcome.payload, indent=2, default=str))


def print_outcome_failure(outcome: Outcome, kind: OperationKind) -> None:
    """
    Explain a non-success outcome on stderr.

    Args:
        outcome: Failed, TimedOut, NotFoundExhausted or Aborted outcome
        kind: Kind of the operation, for the message prefix
    """
    label = kind.value.capitalize()

    if isinstance(outcome, Failed):
        print_error(f"{label} failed: {outcome.message}")
    elif isinstance(outcome, TimedOut):
        print_error(
            f"{label} operation timed out after {outcome.elapsed_ms / 1000:.1f} seconds "
            f"(timeout {outcome.timeout_ms / 1000:g} seconds). Operation ID: {outcome.operation_id}"
        )
    elif isinstance(outcome, NotFoundExhausted):
        print_error(
            f"{label} operation not found on server after {outcome.retries} retries. "
            f"Operation ID: {outcome.operation_id}"
        )
        typer.echo("This could mean the operation was never started or was already completed and cleaned up.", err=True)
        typer.echo("If this is a persistent issue, please check if the database connection is valid.", err=True)
    elif isinstance(outcome, Aborted):
        if outcome.reason == CANCELLED_REASON:
            print_error(f"{label} operation {outcome.operation_id} was cancelled.")
        else:
            shown = "(missing)" if outcome.status is None else outcome.status
            print_error(f'Received unknown operation status: "{shown}"')
            typer.echo("This may indicate a version mismatch between the client and server.", err=True)
            typer.echo("Please check that this client version is compatible with the server.", err=True)
