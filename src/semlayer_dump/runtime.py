"""
Semantic Layer Dump Runtime Layer.

This module implements submit() and the poll state machine that tracks an
export or import operation to exactly one terminal Outcome. Export and
import share a single loop; the kind only selects the service endpoints
and the policy defaults.

Server quirks the loop has to live with:

- a freshly submitted operation id may not resolve yet (not_exists), and
- a succeeded operation is deleted after its first successful read, so
  the payload of the first succeeded response is the only copy we get.
"""
from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from .models import StatusResponse
from .progress import NullProgress
from .runtime_types import (
    Aborted,
    DumpService,
    Failed,
    NotFoundExhausted,
    OperationHandle,
    OperationRequest,
    Outcome,
    PollPolicy,
    PollState,
    PollStatus,
    ProgressSink,
    Success,
    TimedOut,
)
from .service.errors import ServiceAuthError, ServiceError, ServiceProtocolError

__all__ = [
    "submit",
    "run_operation",
    "OperationPoller",
    "TransientPollError",
    "UNKNOWN_STATUS_REASON",
    "CANCELLED_REASON",
]

logger = logging.getLogger(__name__)

UNKNOWN_STATUS_REASON = "unknown status"
CANCELLED_REASON = "cancelled"


class TransientPollError(Exception):
    """
    A single status check failed before a status was obtained.

    Never fatal on its own: the loop logs it and polls again, bounded only
    by the overall timeout.
    """

    def __init__(self, operation_id: str, cause: Exception):
        super().__init__(f"Error while checking status of operation {operation_id}: {cause}")
        self.operation_id = operation_id
        self.cause = cause


def submit(service: DumpService, request: OperationRequest) -> OperationHandle:
    """
    Start an operation on the service.

    Args:
        service: Dump service to submit to
        request: What to run

    Returns:
        Handle carrying the opaque operation id

    Raises:
        TransportError: If the service call fails; never retried here
    """
    logger.debug(f"Submitting {request.kind.value} for connection {request.target}")
    response = service.submit(request)
    if not response.op_id:
        raise ServiceProtocolError(f"{request.kind.value} submit returned no operation id")

    logger.info(f"{request.kind.value} operation started with id {response.op_id}")
    return OperationHandle(
        operation_id=response.op_id,
        kind=request.kind,
        submitted_at=datetime.now(timezone.utc),
    )


class OperationPoller:
    """
    Drives one submitted operation to a terminal Outcome.

    Each tick: check the deadline (and cancel flag), sleep one interval,
    query the status, then branch on it. Elapsed time is always re-read
    from the clock so slow status calls count against the timeout.

    A poller is single-use; its PollState is available as .state for
    inspection after run() returns.
    """

    def __init__(self, service: DumpService, handle: OperationHandle, policy: PollPolicy, *,
                 progress: Optional[ProgressSink] = None,
                 dry_run: bool = False,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Any] = time.sleep,
                 cancel_event: Optional[threading.Event] = None):
        """
        Initialize poller.

        Args:
            service: Dump service to query
            handle: Handle returned by submit()
            policy: Interval, timeout and NotFound budget
            progress: Sink for human-facing progress (silent if None)
            dry_run: Tag a Success outcome as a simulation
            clock: Monotonic clock in seconds
            sleep: Sleep function in seconds (ignored when cancel_event is set)
            cancel_event: Optional event; setting it aborts at the next check
        """
        self.service = service
        self.handle = handle
        self.policy = policy
        self.progress = progress or NullProgress()
        self.dry_run = dry_run
        self.state = PollState()
        self._clock = clock
        self._sleep = sleep
        self._cancel = cancel_event
        self._start: Optional[float] = None
        self._outcome: Optional[Outcome] = None
        self._auth_failures = 0

    @property
    def operation_id(self) -> str:
        return self.handle.operation_id

    def run(self) -> Outcome:
        """
        Poll until a terminal status, the NotFound budget, the deadline or
        a cancel request ends the loop.

        Returns:
            The single Outcome of this operation

        Raises:
            RuntimeError: If called a second time
        """
        if self._outcome is not None:
            raise RuntimeError(f"operation {self.operation_id} already produced an outcome")

        self._start = self._clock()
        self.progress.started(self.handle)

        outcome = None
        while outcome is None:
            outcome = self._tick()

        self._outcome = outcome
        logger.debug(
            f"Operation {self.operation_id} finished as {type(outcome).__name__} "
            f"after {self.state.poll_count} polls, {self.state.elapsed_ms} ms"
        )
        self.progress.finished(outcome)
        return outcome

    def _tick(self) -> Optional[Outcome]:
        outcome = self._check_deadline()
        if outcome is not None:
            return outcome

        self._pause(self.policy.poll_interval_ms)
        if self._cancelled():
            return Aborted(operation_id=self.operation_id, reason=CANCELLED_REASON)

        self.state.poll_count += 1
        try:
            response = self.service.poll_status(self.handle.kind, self.operation_id)
        except ServiceError as e:
            error = TransientPollError(self.operation_id, e)
            self.state.transient_errors += 1
            self._update_elapsed()
            # Repeated auth failures only repeat the first warning
            if isinstance(e, ServiceAuthError):
                self._auth_failures += 1
                log = logger.warning if self._auth_failures == 1 else logger.debug
            else:
                log = logger.warning
            log(str(error))
            self.progress.poll_error(error)
            return None

        self._update_elapsed()
        return self._interpret(response)

    def _interpret(self, response: StatusResponse) -> Optional[Outcome]:
        status = PollStatus.parse(response.status)
        self.state.status = status
        if self.policy.verbose:
            self.progress.snapshot(response)

        if status is PollStatus.SUCCEEDED:
            # First and only read: the service drops the record after this.
            self.state.last_info = response.info
            return Success(
                operation_id=self.operation_id,
                kind=self.handle.kind,
                payload=response.info,
                elapsed_ms=self.state.elapsed_ms,
                dry_run=self.dry_run,
            )

        if status is PollStatus.FAILED:
            self.state.last_info = response.info
            return Failed(
                operation_id=self.operation_id,
                message=_failure_message(response.info),
                elapsed_ms=self.state.elapsed_ms,
            )

        if status is PollStatus.NOT_FOUND:
            self.state.not_found_retry_count += 1
            retries = self.state.not_found_retry_count
            if retries >= self.policy.max_not_found_retries:
                return NotFoundExhausted(operation_id=self.operation_id, retries=retries)

            logger.debug(
                f"Operation {self.operation_id} not found "
                f"(retry {retries}/{self.policy.max_not_found_retries})"
            )
            if self.policy.verbose:
                self.progress.not_found(retries, self.policy.max_not_found_retries)
            if self.policy.not_found_backoff_factor:
                self._pause(self.policy.poll_interval_ms * self.policy.not_found_backoff_factor)
            return None

        if status is PollStatus.IN_PROGRESS:
            self.state.last_info = response.info
            self.progress.tick(self.state)
            return None

        logger.error(f"Operation {self.operation_id} returned unknown status {response.status!r}")
        return Aborted(
            operation_id=self.operation_id,
            reason=UNKNOWN_STATUS_REASON,
            status=response.status,
        )

    def _check_deadline(self) -> Optional[Outcome]:
        if self._cancelled():
            return Aborted(operation_id=self.operation_id, reason=CANCELLED_REASON)
        if self.state.elapsed_ms > self.policy.timeout_ms:
            return TimedOut(
                operation_id=self.operation_id,
                elapsed_ms=self.state.elapsed_ms,
                timeout_ms=self.policy.timeout_ms,
            )
        return None

    def _pause(self, ms: float) -> None:
        seconds = ms / 1000.0
        if self._cancel is not None:
            self._cancel.wait(seconds)
        else:
            self._sleep(seconds)
        self._update_elapsed()

    def _cancelled(self) -> bool:
        return self._cancel is not None and self._cancel.is_set()

    def _update_elapsed(self) -> None:
        self.state.elapsed_ms = int(round((self._clock() - self._start) * 1000))


def _failure_message(info: Any) -> str:
    if info is None or info == "":
        return "operation failed without a message"
    if isinstance(info, str):
        return info
    return str(info)


def run_operation(service: DumpService, request: OperationRequest, policy: PollPolicy, *,
                  progress: Optional[ProgressSink] = None,
                  clock: Callable[[], float] = time.monotonic,
                  sleep: Callable[[float], Any] = time.sleep,
                  cancel_event: Optional[threading.Event] = None) -> Outcome:
    """
    Submit an operation and poll it to completion.

    Args:
        service: Dump service
        request: Export or import request
        policy: Poll pacing, timeout and NotFound budget
        progress: Progress sink (silent if None)
        clock: Monotonic clock in seconds
        sleep: Sleep function in seconds
        cancel_event: Optional cancel flag

    Returns:
        Exactly one Outcome; poll-time failures never raise

    Raises:
        TransportError: If submission itself fails
    """
    handle = submit(service, request)
    poller = OperationPoller(
        service,
        handle,
        policy,
        progress=progress,
        dry_run=request.dry_run,
        clock=clock,
        sleep=sleep,
        cancel_event=cancel_event,
    )
    return poller.run()
