"""
Runtime types for semantic layer dump operations.

These types define the values exchanged between the submitter, the poll
loop and the output layer, plus the two capabilities the runtime consumes
by injection: the remote dump service and a progress sink.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Protocol, Union, runtime_checkable

from .models import ExportPayload, ImportPayload, StatusResponse, SubmitResponse

__all__ = [
    "OperationKind",
    "PollStatus",
    "OperationRequest",
    "OperationHandle",
    "PollPolicy",
    "PollState",
    "Success",
    "Failed",
    "TimedOut",
    "NotFoundExhausted",
    "Aborted",
    "Outcome",
    "DumpService",
    "ProgressSink",
]


class OperationKind(str, Enum):
    """Long-running operations offered by the dump service."""
    EXPORT = "export"
    IMPORT = "import"


class PollStatus(str, Enum):
    """Operation status as reported by the status check endpoints."""
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    NOT_FOUND = "not_exists"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, raw: Optional[str]) -> PollStatus:
        """Map a wire status string, folding anything unrecognised into UNKNOWN."""
        try:
            return cls(raw)
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class OperationRequest:
    """
    What to run against the service.

    target is the database connection key. payload must match kind:
    ExportPayload for exports, ImportPayload for imports.
    """
    kind: OperationKind
    target: str
    payload: Union[ExportPayload, ImportPayload]

    def __post_init__(self) -> None:
        if not self.target:
            raise ValueError("target (db_conn_key) is required")
        expected = ExportPayload if self.kind is OperationKind.EXPORT else ImportPayload
        if not isinstance(self.payload, expected):
            raise ValueError(
                f"{self.kind.value} requests need a {expected.__name__}, "
                f"got {type(self.payload).__name__}"
            )

    @property
    def dry_run(self) -> bool:
        return isinstance(self.payload, ImportPayload) and self.payload.dry_run_mode

    def to_wire(self) -> dict:
        """Request body as sent to the service."""
        body = {"db_conn_key": self.target}
        body.update(self.payload.model_dump(mode="json"))
        return body


@dataclass(frozen=True)
class OperationHandle:
    """Opaque operation id returned by a successful submit."""
    operation_id: str
    kind: OperationKind
    submitted_at: datetime


@dataclass(frozen=True)
class PollPolicy:
    """
    How a poll loop paces itself and when it gives up.

    not_found_backoff_factor adds an extra sleep of
    factor * poll_interval_ms after each non-terminal NotFound.
    """
    poll_interval_ms: int = 1000
    timeout_ms: int = 300_000
    max_not_found_retries: int = 3
    not_found_backoff_factor: float = 0.0
    verbose: bool = False

    def __post_init__(self) -> None:
        if self.poll_interval_ms < 0:
            raise ValueError(f"poll_interval_ms must be non-negative, got {self.poll_interval_ms}")
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if self.max_not_found_retries < 1:
            raise ValueError(f"max_not_found_retries must be at least 1, got {self.max_not_found_retries}")
        if self.not_found_backoff_factor < 0:
            raise ValueError(
                f"not_found_backoff_factor must be non-negative, got {self.not_found_backoff_factor}"
            )


@dataclass
class PollState:
    """Mutable state of one poll loop. Never shared between loops."""
    status: PollStatus = PollStatus.IN_PROGRESS
    not_found_retry_count: int = 0
    elapsed_ms: int = 0
    last_info: Any = None
    poll_count: int = 0
    transient_errors: int = 0


# Outcomes: exactly one is produced per run_operation call.

@dataclass(frozen=True)
class Success:
    operation_id: str
    kind: OperationKind
    payload: Any
    elapsed_ms: int
    dry_run: bool = False


@dataclass(frozen=True)
class Failed:
    operation_id: str
    message: str
    elapsed_ms: int


@dataclass(frozen=True)
class TimedOut:
    operation_id: str
    elapsed_ms: int
    timeout_ms: int


@dataclass(frozen=True)
class NotFoundExhausted:
    operation_id: str
    retries: int


@dataclass(frozen=True)
class Aborted:
    operation_id: str
    reason: str
    status: Optional[str] = None


Outcome = Union[Success, Failed, TimedOut, NotFoundExhausted, Aborted]


@runtime_checkable
class DumpService(Protocol):
    """
    Protocol for the remote side of a dump operation.

    Implementations raise service.errors.TransportError (or a subclass)
    for any failure that prevents a response from being obtained.
    """

    def submit(self, request: OperationRequest) -> SubmitResponse:
        """Start an export or import and return its operation id."""
        ...

    def poll_status(self, kind: OperationKind, op_id: str) -> StatusResponse:
        """
        Query the status of a running operation.

        A succeeded operation may be deleted server-side once this has
        returned it, so callers must keep the info of the first
        succeeded response.
        """
        ...


class ProgressSink(Protocol):
    """Receives human-facing progress events from the poll loop."""

    def started(self, handle: OperationHandle) -> None:
        ...

    def tick(self, state: PollState) -> None:
        ...

    def snapshot(self, response: StatusResponse) -> None:
        ...

    def not_found(self, retry: int, max_retries: int) -> None:
        ...

    def poll_error(self, error: Exception) -> None:
        ...

    def finished(self, outcome: Outcome) -> None:
        ...
