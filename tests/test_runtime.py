"""
Tests for the semantic layer dump runtime layer.

Drives submit(), OperationPoller and run_operation() against a scripted
fake service and a fake clock: terminal outcomes, the not-found budget,
timeout accounting, first-success capture and dry-run imports.
"""
import logging
import math
import threading

import pytest

from semlayer_dump.models import ImportPayload
from semlayer_dump.runtime import (
    CANCELLED_REASON,
    UNKNOWN_STATUS_REASON,
    OperationPoller,
    TransientPollError,
    run_operation,
    submit,
)
from semlayer_dump.runtime_types import (
    Aborted,
    Failed,
    NotFoundExhausted,
    OperationKind,
    OperationRequest,
    PollPolicy,
    Success,
    TimedOut,
)
from semlayer_dump.service.errors import ServiceAuthError, ServiceProtocolError, TransportError
from tests.fakes import FakeDumpService, status


def _run(service, request, policy, clock, progress=None, **kwargs):
    return run_operation(service, request, policy, progress=progress,
                         clock=clock, sleep=clock.sleep, **kwargs)


# =============================================================================
# Submit
# =============================================================================

def test_submit_returns_handle_with_operation_id(export_request):
    service = FakeDumpService(op_id="abc-1")

    handle = submit(service, export_request)

    assert handle.operation_id == "abc-1"
    assert handle.kind is OperationKind.EXPORT
    assert handle.submitted_at.tzinfo is not None
    assert service.submitted == [export_request]


def test_submit_error_propagates_without_polling(export_request, policy, clock):
    """Submission failures are not retried and never reach the poll loop."""
    service = FakeDumpService(submit_error=TransportError("connection refused"))

    with pytest.raises(TransportError, match="connection refused"):
        _run(service, export_request, policy, clock)

    assert service.poll_count == 0
    assert clock.sleeps == []


# =============================================================================
# Terminal outcomes
# =============================================================================

def test_example_sequence_with_one_not_found(export_request, policy, clock):
    """InProgress, NotFound, InProgress, Succeeded ends in Success."""
    service = FakeDumpService([
        status("in_progress"),
        status("not_exists"),
        status("in_progress"),
        status("succeeded", {"a": 1}),
    ])
    handle = submit(service, export_request)
    poller = OperationPoller(service, handle, policy, clock=clock, sleep=clock.sleep)

    outcome = poller.run()

    assert isinstance(outcome, Success)
    assert outcome.payload == {"a": 1}
    assert outcome.kind is OperationKind.EXPORT
    assert outcome.operation_id == "op-123"
    assert poller.state.not_found_retry_count == 1
    assert poller.state.poll_count == 4
    assert service.poll_calls == [(OperationKind.EXPORT, "op-123")] * 4


def test_success_payload_is_captured_from_first_read(export_request, policy, clock):
    """The service deletes a succeeded operation; one read must be enough."""
    service = FakeDumpService([
        status("in_progress"),
        status("succeeded", {"tables": [{"name": "orders"}]}),
        status("succeeded", {"tables": []}),
    ])

    outcome = _run(service, export_request, policy, clock)

    assert isinstance(outcome, Success)
    assert outcome.payload == {"tables": [{"name": "orders"}]}
    assert service.poll_count == 2
    # The second scripted success is never consumed
    assert len(service.script) == 1


def test_failed_status_carries_message(export_request, policy, clock):
    service = FakeDumpService([status("in_progress"), status("failed", "connection key not found")])

    outcome = _run(service, export_request, policy, clock)

    assert isinstance(outcome, Failed)
    assert outcome.message == "connection key not found"
    assert outcome.elapsed_ms == 2000


@pytest.mark.parametrize("info,expected", [
    (None, "operation failed without a message"),
    ("", "operation failed without a message"),
    ({"error": "bad"}, "{'error': 'bad'}"),
])
def test_failed_message_fallbacks(export_request, policy, clock, info, expected):
    service = FakeDumpService([status("failed", info)])

    outcome = _run(service, export_request, policy, clock)

    assert isinstance(outcome, Failed)
    assert outcome.message == expected


def test_unknown_status_aborts_immediately(export_request, policy, clock):
    service = FakeDumpService([
        status("in_progress"),
        status("paused"),
        status("succeeded", {"a": 1}),
    ])

    outcome = _run(service, export_request, policy, clock)

    assert isinstance(outcome, Aborted)
    assert outcome.reason == UNKNOWN_STATUS_REASON
    assert outcome.status == "paused"
    assert service.poll_count == 2


# =============================================================================
# Not-found budget
# =============================================================================

def test_not_found_exhausts_budget_without_extra_poll(export_request, clock):
    policy = PollPolicy(poll_interval_ms=1000, max_not_found_retries=3)
    service = FakeDumpService(default=status("not_exists"))

    outcome = _run(service, export_request, policy, clock)

    assert outcome == NotFoundExhausted(operation_id="op-123", retries=3)
    assert service.poll_count == 3


def test_not_found_below_budget_then_success(export_request, clock):
    policy = PollPolicy(poll_interval_ms=1000, max_not_found_retries=5)
    service = FakeDumpService([status("not_exists")] * 4 + [status("succeeded", [])])

    outcome = _run(service, export_request, policy, clock)

    assert isinstance(outcome, Success)
    assert outcome.payload == []
    assert service.poll_count == 5


def test_not_found_count_is_not_reset_by_in_progress(export_request, clock):
    policy = PollPolicy(poll_interval_ms=1000, max_not_found_retries=2)
    service = FakeDumpService([
        status("not_exists"),
        status("in_progress"),
        status("not_exists"),
        status("succeeded", {"a": 1}),
    ])

    outcome = _run(service, export_request, policy, clock)

    assert isinstance(outcome, NotFoundExhausted)
    assert outcome.retries == 2
    assert service.poll_count == 3


def test_not_found_backoff_adds_extra_sleep(import_request, clock):
    policy = PollPolicy(poll_interval_ms=1000, not_found_backoff_factor=2.0)
    service = FakeDumpService([status("not_exists"), status("succeeded", {"message": "ok"})])

    outcome = _run(service, import_request, policy, clock)

    assert isinstance(outcome, Success)
    assert clock.sleeps == [1.0, 2.0, 1.0]
    assert outcome.elapsed_ms == 4000


def test_no_backoff_when_factor_is_zero(export_request, policy, clock):
    service = FakeDumpService([status("not_exists"), status("succeeded", {})])

    _run(service, export_request, policy, clock)

    assert clock.sleeps == [1.0, 1.0]


# =============================================================================
# Timeout accounting
# =============================================================================

def test_timeout_when_always_in_progress(export_request, clock):
    policy = PollPolicy(poll_interval_ms=2000, timeout_ms=5000)
    service = FakeDumpService(default=status("in_progress"))

    outcome = _run(service, export_request, policy, clock)

    assert isinstance(outcome, TimedOut)
    assert outcome.elapsed_ms >= 5000
    assert outcome.elapsed_ms == 6000
    assert outcome.timeout_ms == 5000
    assert service.poll_count == 3
    assert service.poll_count <= math.ceil(5000 / 2000) + 1


def test_slow_status_calls_count_against_timeout(export_request, clock):
    policy = PollPolicy(poll_interval_ms=1000, timeout_ms=5000)
    service = FakeDumpService(default=status("in_progress"), clock=clock, poll_cost_s=3.0)

    outcome = _run(service, export_request, policy, clock)

    assert isinstance(outcome, TimedOut)
    assert outcome.elapsed_ms == 8000
    assert service.poll_count == 2


def test_transient_errors_do_not_end_the_loop(export_request, policy, clock, progress):
    service = FakeDumpService([
        TransportError("read timed out"),
        status("in_progress"),
        ServiceProtocolError("not json"),
        status("succeeded", {"a": 1}),
    ])
    handle = submit(service, export_request)
    poller = OperationPoller(service, handle, policy, progress=progress,
                             clock=clock, sleep=clock.sleep)

    outcome = poller.run()

    assert isinstance(outcome, Success)
    assert poller.state.transient_errors == 2
    errors = [e for name, e in progress.events if name == "poll_error"]
    assert len(errors) == 2
    assert all(isinstance(e, TransientPollError) for e in errors)
    assert errors[0].cause.args == ("read timed out",)
    assert "op-123" in str(errors[0])


def test_repeated_auth_failures_warn_once(export_request, policy, clock, caplog):
    caplog.set_level(logging.DEBUG, logger="semlayer_dump.runtime")
    service = FakeDumpService([
        ServiceAuthError("Authentication failed (HTTP 401)"),
        ServiceAuthError("Authentication failed (HTTP 401)"),
        ServiceAuthError("Authentication failed (HTTP 401)"),
        status("succeeded", {"a": 1}),
    ])
    handle = submit(service, export_request)
    poller = OperationPoller(service, handle, policy, clock=clock, sleep=clock.sleep)

    outcome = poller.run()

    assert isinstance(outcome, Success)
    assert poller.state.transient_errors == 3
    auth_records = [r for r in caplog.records if "HTTP 401" in r.getMessage()]
    assert [r.levelno for r in auth_records] == [logging.WARNING, logging.DEBUG, logging.DEBUG]


def test_transient_errors_are_bounded_by_timeout(export_request, clock):
    policy = PollPolicy(poll_interval_ms=1000, timeout_ms=3000)
    service = FakeDumpService(default=TransportError("down"))

    outcome = _run(service, export_request, policy, clock)

    assert isinstance(outcome, TimedOut)
    assert service.poll_count == 4


def test_unexpected_exceptions_propagate(export_request, policy, clock):
    service = FakeDumpService([RuntimeError("bug in service")])

    with pytest.raises(RuntimeError, match="bug in service"):
        _run(service, export_request, policy, clock)


# =============================================================================
# Progress, cancellation and single use
# =============================================================================

def test_progress_events_for_successful_run(export_request, policy, clock, progress):
    service = FakeDumpService([status("in_progress"), status("succeeded", {"a": 1})])

    outcome = _run(service, export_request, policy, clock, progress=progress)

    assert progress.names() == ["started", "tick", "finished"]
    assert progress.events[-1] == ("finished", outcome)


def test_verbose_policy_emits_snapshots_and_not_found(export_request, clock, progress):
    policy = PollPolicy(poll_interval_ms=1000, verbose=True)
    service = FakeDumpService([status("not_exists"), status("in_progress"), status("succeeded", {})])

    _run(service, export_request, policy, clock, progress=progress)

    assert progress.names() == [
        "started",
        "snapshot", "not_found",
        "snapshot", "tick",
        "snapshot",
        "finished",
    ]
    assert ("not_found", (1, 3)) in progress.events


def test_quiet_policy_emits_no_snapshots(export_request, policy, clock, progress):
    service = FakeDumpService([status("not_exists"), status("succeeded", {})])

    _run(service, export_request, policy, clock, progress=progress)

    assert "snapshot" not in progress.names()
    assert "not_found" not in progress.names()


def test_cancel_before_first_poll(export_request, clock):
    policy = PollPolicy(poll_interval_ms=0)
    cancel = threading.Event()
    cancel.set()
    service = FakeDumpService(default=status("in_progress"))

    outcome = _run(service, export_request, policy, clock, cancel_event=cancel)

    assert outcome == Aborted(operation_id="op-123", reason=CANCELLED_REASON)
    assert service.poll_count == 0


def test_cancel_while_polling(export_request, clock):
    policy = PollPolicy(poll_interval_ms=0)
    cancel = threading.Event()
    service = FakeDumpService(
        default=status("in_progress"),
        on_poll=lambda n: cancel.set() if n == 2 else None,
    )

    outcome = _run(service, export_request, policy, clock, cancel_event=cancel)

    assert isinstance(outcome, Aborted)
    assert outcome.reason == CANCELLED_REASON
    assert service.poll_count == 2


def test_poller_is_single_use(export_request, policy, clock):
    service = FakeDumpService([status("succeeded", {"a": 1})])
    handle = submit(service, export_request)
    poller = OperationPoller(service, handle, policy, clock=clock, sleep=clock.sleep)
    poller.run()

    with pytest.raises(RuntimeError, match="already produced an outcome"):
        poller.run()
    assert service.poll_count == 1


# =============================================================================
# Imports and dry runs
# =============================================================================

def test_import_polls_import_endpoint(import_request, policy, clock):
    service = FakeDumpService([status("succeeded", {"message": "done"})])

    outcome = _run(service, import_request, policy, clock)

    assert isinstance(outcome, Success)
    assert outcome.kind is OperationKind.IMPORT
    assert outcome.dry_run is False
    assert service.poll_calls == [(OperationKind.IMPORT, "op-123")]
    assert service.commits == 1


def test_dry_run_import_is_tagged_and_commits_nothing(policy, clock):
    payload = ImportPayload(configuration={"tables": [{"name": "orders"}]}, dry_run_mode=True)
    request = OperationRequest(kind=OperationKind.IMPORT, target="snowflake://demo", payload=payload)
    service = FakeDumpService([status("in_progress"), status("succeeded", {"message": "simulated"})])

    outcome = _run(service, request, policy, clock)

    assert isinstance(outcome, Success)
    assert outcome.dry_run is True
    assert outcome.payload == {"message": "simulated"}
    assert service.submitted[-1].to_wire()["dry_run_mode"] is True
    assert service.commits == 0
    # success ends the loop; the consumed operation is never polled again
    assert service.poll_count == 2
