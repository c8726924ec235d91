"""
Semantic Layer Dump CLI

Implements 2 CLI verbs with Operations facade integration:
- export: Export the semantic layer of a database connection to YAML/JSON
- import: Import a YAML/JSON dump into a database connection

Both verbs submit a long-running operation to the service and poll it to
completion; the exit code reflects the terminal outcome.
"""
from __future__ import annotations

import logging
import typer
from typing import Any, Dict, List, Optional

from .cli_context import CLIContext
from .operations import Operations, OpsConfig, run_and_exit
from .operations.printers import (
    print_export_result, print_import_result, print_outcome_failure, print_starting
)
from .payload_io import INPUT_FORMATS, OUTPUT_FORMATS, parse_json_option, read_payload_file
from .runtime_types import OperationKind, Outcome, Success
from .settings import str_to_bool

app = typer.Typer(name="semlayer-dump", help="Semantic layer dump CLI")


@app.callback()
def _configure(
    log_level: str = typer.Option("WARNING", "--log-level", envvar="SEMDUMP_LOG_LEVEL", help="Logging level (DEBUG, INFO, WARNING, ERROR)")
) -> None:
    """Export and import semantic layer configuration."""
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise typer.BadParameter(f"Unknown log level '{log_level}'", param_hint="--log-level")
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _parse_search_context(value: Optional[str]) -> Optional[List[Dict[str, Any]]]:
    """
    Parse --search-context.

    Accepts a JSON list of filters or a single filter object.

    Raises:
        ValueError: If the value is not a JSON object or list of objects
    """
    parsed = parse_json_option(value, "search_context")
    if parsed is None:
        return None
    if isinstance(parsed, dict):
        parsed = [parsed]
    if not isinstance(parsed, list) or not all(isinstance(c, dict) for c in parsed):
        raise ValueError("Option 'search_context' must be a JSON object or a list of objects")
    return parsed


def _parse_mapping(value: Optional[str], name: str) -> Optional[Dict[str, str]]:
    """
    Parse a --schema-mapping / --database-mapping JSON object.

    Raises:
        ValueError: If the value is not a JSON object
    """
    parsed = parse_json_option(value, name)
    if parsed is None:
        return None
    if not isinstance(parsed, dict):
        raise ValueError(f"Option '{name}' must be a JSON object")
    return {str(k): str(v) for k, v in parsed.items()}


def _build_operations(context: CLIContext, config: OpsConfig) -> Operations:
    return Operations(config=config, service=context.service, settings=context.settings)


@app.command()
def export(
    db_conn_key: str = typer.Option(..., "--db-conn-key", help="Database connection key"),
    file: Optional[str] = typer.Option(None, "--file", help="Output file (prints to stdout if omitted)"),
    fmt: str = typer.Option("yaml", "--format", help="Output format: yaml or json"),
    search_context: Optional[str] = typer.Option(None, "--search-context", help="JSON search context filters"),
    poll_interval: Optional[int] = typer.Option(None, "--poll-interval", help="Interval in ms between status checks (default: 1000)"),
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Timeout in ms for the export (default: 300000)"),
    max_retries: Optional[int] = typer.Option(None, "--max-retries", help="Retries while the operation is reported as not existing (default: 3)"),
    ci: bool = typer.Option(False, "--ci", help="CI mode (suppress progress indicator)"),
    verbose: bool = typer.Option(False, "--verbose", help="Show status responses and export statistics")
) -> None:
    """Export semantic layer configuration for a database connection."""

    def _export() -> Outcome:
        if fmt not in OUTPUT_FORMATS:
            raise typer.BadParameter(f"Invalid format '{fmt}'. Use 'yaml' or 'json'.")

        contexts = _parse_search_context(search_context)
        config = OpsConfig(
            ci=ci, verbose=verbose,
            poll_interval_ms=poll_interval, timeout_ms=timeout, max_retries=max_retries
        )
        with CLIContext.from_env() as context:
            ops = _build_operations(context, config)
            print_starting(OperationKind.EXPORT, db_conn_key)
            outcome = ops.export(db_conn_key, search_context=contexts)

        if isinstance(outcome, Success):
            print_export_result(outcome, file=file, fmt=fmt, verbose=verbose)
        else:
            print_outcome_failure(outcome, OperationKind.EXPORT)
        return outcome

    run_and_exit(_export)


@app.command("import")
def import_(
    db_conn_key: str = typer.Option(..., "--db-conn-key", help="Database connection key"),
    file: str = typer.Option(..., "--file", help="Input file containing the configuration"),
    fmt: str = typer.Option("auto", "--format", help="Input format: auto, yaml or json"),
    schema_mapping: Optional[str] = typer.Option(None, "--schema-mapping", help="JSON object mapping source to target schemas"),
    database_mapping: Optional[str] = typer.Option(None, "--database-mapping", help="JSON object mapping source to target databases"),
    search_context: Optional[str] = typer.Option(None, "--search-context", help="JSON search context selecting what to import"),
    strict_mode: str = typer.Option("false", "--strict-mode", help="Replace existing configuration instead of merging (true/false)"),
    dry_run_mode: str = typer.Option("false", "--dry-run-mode", help="Validate and report changes without applying them (true/false)"),
    detailed: bool = typer.Option(False, "--detailed", help="Show the full JSON response from the server"),
    poll_interval: Optional[int] = typer.Option(None, "--poll-interval", help="Interval in ms between status checks (default: 1000)"),
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Timeout in ms for the import (default: 300000)"),
    max_retries: Optional[int] = typer.Option(None, "--max-retries", help="Retries while the operation is reported as not existing (default: 5)"),
    ci: bool = typer.Option(False, "--ci", help="CI mode (suppress progress indicator)"),
    verbose: bool = typer.Option(False, "--verbose", help="Show status responses and full import statistics")
) -> None:
    """Import semantic layer configuration into a database connection."""

    def _import() -> Outcome:
        if fmt not in INPUT_FORMATS:
            raise typer.BadParameter(f"Invalid format '{fmt}'. Use 'auto', 'yaml' or 'json'.")

        configuration = read_payload_file(file, fmt)
        if not isinstance(configuration, dict):
            raise ValueError(f"{file} must contain a mapping of category -> objects")
        schemas = _parse_mapping(schema_mapping, "schema_mapping")
        databases = _parse_mapping(database_mapping, "database_mapping")
        contexts = _parse_search_context(search_context)

        config = OpsConfig(
            ci=ci, verbose=verbose,
            poll_interval_ms=poll_interval, timeout_ms=timeout, max_retries=max_retries
        )
        with CLIContext.from_env() as context:
            ops = _build_operations(context, config)
            print_starting(OperationKind.IMPORT, db_conn_key)
            outcome = ops.import_dump(
                db_conn_key,
                configuration,
                schema_mapping=schemas,
                database_mapping=databases,
                search_context=contexts,
                strict_mode=str_to_bool(strict_mode),
                dry_run_mode=str_to_bool(dry_run_mode),
            )

        if isinstance(outcome, Success):
            print_import_result(outcome, verbose=verbose, detailed=detailed)
        else:
            print_outcome_failure(outcome, OperationKind.IMPORT)
        return outcome

    run_and_exit(_import)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
