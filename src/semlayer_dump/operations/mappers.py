"""
Error mapping and CLI utilities.

Provides centralized exception/outcome-to-exit-code mapping and a CLI command
wrapper to ensure consistent error handling across all Typer commands.
"""
from __future__ import annotations

import typer
from typing import Callable, TypeVar

from ..runtime_types import Aborted, Failed, NotFoundExhausted, Success, TimedOut

T = TypeVar('T')

# Exceptions raised before or instead of an operation outcome
EXIT_CODES = {
    "ValidationError": 2,
    "ValueError": 2,
    "BadParameter": 2,
    "TransportError": 3,
    "ServiceAuthError": 3,
    "ServiceProtocolError": 3,
}

# Terminal outcomes of a tracked operation
OUTCOME_EXIT_CODES = {
    Success: 0,
    Failed: 4,
    TimedOut: 5,
    NotFoundExhausted: 6,
    Aborted: 7,
}


def exit_code_for(exc: BaseException) -> int:
    """
    Map exception to standardized exit code.

    - 2: Validation error (ValidationError, ValueError, BadParameter)
    - 3: Transport error (TransportError and subclasses) or unknown error

    Args:
        exc: Exception to map

    Returns:
        Exit code, with 3 as fallback for unknown exceptions
    """
    return EXIT_CODES.get(type(exc).__name__, 3)


def exit_code_for_outcome(outcome: object) -> int:
    """
    Map an operation outcome to its exit code.

    - 0: Success
    - 4: Failed (server reported failure)
    - 5: TimedOut
    - 6: NotFoundExhausted
    - 7: Aborted (unknown status or cancelled)

    Anything that is not an outcome maps to 0.
    """
    return OUTCOME_EXIT_CODES.get(type(outcome), 0)


def run_and_exit(func: Callable[[], T]) -> T:
    """
    Unified error wrapper for CLI commands.

    Executes the given function; exceptions are reported on stderr and
    mapped to exit codes, and a non-success outcome returned by the
    function is mapped the same way. Exits are always via typer.Exit.

    Args:
        func: Function to execute

    Returns:
        Function result if successful

    Raises:
        typer.Exit: With appropriate exit code if function fails
    """
    try:
        result = func()
    except typer.Exit:
        raise
    except Exception as e:
        from .printers import print_error
        print_error(str(e))
        raise typer.Exit(code=exit_code_for(e)) from e

    code = exit_code_for_outcome(result)
    if code:
        raise typer.Exit(code=code)
    return result
