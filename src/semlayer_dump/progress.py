"""
Progress sinks for the poll loop.

The runtime never writes to the console itself; it reports events to a
ProgressSink. ConsoleProgress renders them on stderr so stdout stays clean
for dump payloads, NullProgress discards them.
"""
from __future__ import annotations

import typer

from .models import StatusResponse
from .runtime_types import OperationHandle, OperationKind, Outcome, PollState
from .service.errors import ServiceAuthError

__all__ = ["NullProgress", "ConsoleProgress"]


class NullProgress:
    """Progress sink that ignores every event."""

    def started(self, handle: OperationHandle) -> None:
        pass

    def tick(self, state: PollState) -> None:
        pass

    def snapshot(self, response: StatusResponse) -> None:
        pass

    def not_found(self, retry: int, max_retries: int) -> None:
        pass

    def poll_error(self, error: Exception) -> None:
        pass

    def finished(self, outcome: Outcome) -> None:
        pass


class ConsoleProgress:
    """
    Console progress for one operation.

    Shows a "Waiting for <kind> to complete" line with a cycling dot
    indicator; CI mode keeps the start/finish lines but drops the spinner.
    """

    def __init__(self, kind: OperationKind, *, ci: bool = False):
        self.kind = kind
        self.ci = ci
        self._dots = 0
        self._line_open = False
        self._auth_hinted = False

    @property
    def _waiting(self) -> str:
        return f"Waiting for {self.kind.value} to complete"

    def started(self, handle: OperationHandle) -> None:
        typer.echo(f"{self.kind.value.capitalize()} operation started with ID: {handle.operation_id}", err=True)
        if not self.ci:
            typer.echo(self._waiting, nl=False, err=True)
            self._line_open = True

    def tick(self, state: PollState) -> None:
        if self.ci:
            return
        self._dots = (self._dots + 1) % 4
        dots = "." * self._dots
        typer.echo(f"\r{self._waiting}{dots}{' ' * (4 - self._dots)}", nl=False, err=True)
        self._line_open = True

    def snapshot(self, response: StatusResponse) -> None:
        self._close_line()
        typer.echo(f"Status response: {response.model_dump_json()}", err=True)

    def not_found(self, retry: int, max_retries: int) -> None:
        self._close_line()
        typer.echo(f"Operation not found on server (retry {retry}/{max_retries})...", err=True)

    def poll_error(self, error: Exception) -> None:
        cause = getattr(error, "cause", error)
        if isinstance(cause, ServiceAuthError):
            if self._auth_hinted:
                return
            self._auth_hinted = True
            self._close_line()
            typer.echo(str(error), err=True)
            typer.echo(
                "The service rejected the API key; check SEMDUMP_API_KEY or apiKey in the config file. "
                "Polling continues until the timeout.",
                err=True,
            )
            return
        self._close_line()
        typer.echo(str(error), err=True)

    def finished(self, outcome: Outcome) -> None:
        self._close_line()

    def _close_line(self) -> None:
        if self._line_open:
            typer.echo("", err=True)
            self._line_open = False
