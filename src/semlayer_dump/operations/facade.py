"""
Operations Facade - Application service layer.

Provides a clean interface between CLI and runtime APIs, centralizing
request construction, poll policy and progress wiring while keeping CLI
commands thin and testable.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..models import ExportPayload, ImportPayload, default_search_context
from ..progress import ConsoleProgress
from ..runtime import run_operation
from ..runtime_types import (
    DumpService,
    OperationKind,
    OperationRequest,
    Outcome,
    PollPolicy,
    ProgressSink,
)
from ..settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OpsConfig:
    """
    Configuration for Operations facade.

    Per-invocation overrides of the poll policy; None keeps the value
    derived from Settings for the operation kind.
    """
    ci: bool = False                        # Running in CI (no spinner)
    verbose: bool = False                   # Echo requests and status snapshots
    poll_interval_ms: Optional[int] = None
    timeout_ms: Optional[int] = None
    max_retries: Optional[int] = None


class Operations:
    """
    Application service facade for CLI operations.

    One method per CLI verb. Each builds an OperationRequest, derives the
    PollPolicy for its kind and hands both to run_operation(). Submit-time
    TransportErrors bubble up for central mapping; everything after submit
    comes back as an Outcome.
    """

    def __init__(self, config: OpsConfig, service: Optional[DumpService] = None,
                 settings: Optional[Settings] = None, *,
                 progress: Optional[ProgressSink] = None,
                 clock: Callable[[], float] = time.monotonic,
                 sleep: Callable[[float], Any] = time.sleep,
                 cancel_event: Optional[threading.Event] = None):
        """
        Initialize Operations facade.

        Args:
            config: Configuration settings
            service: Dump service (if None, an HTTP client is built from settings)
            settings: Optional settings (if None, loaded from environment)
            progress: Progress sink (if None, console progress per operation)
            clock: Monotonic clock used by the poll loop
            sleep: Sleep function used by the poll loop
            cancel_event: Optional cancel flag shared with the poll loop
        """
        self.cfg = config

        if settings is None:
            from ..settings import create_settings_from_env
            settings = create_settings_from_env()
        self.settings = settings

        if service is None:
            from ..service.http_client import DumpServiceHTTP
            service = DumpServiceHTTP(settings)
        self.service = service

        self._progress = progress
        self._clock = clock
        self._sleep = sleep
        self._cancel = cancel_event

    def policy_for(self, kind: OperationKind) -> PollPolicy:
        """Poll policy for kind, with this invocation's overrides applied."""
        return self.settings.poll_policy(
            kind,
            poll_interval_ms=self.cfg.poll_interval_ms,
            timeout_ms=self.cfg.timeout_ms,
            max_retries=self.cfg.max_retries,
            verbose=self.cfg.verbose,
        )

    def export(self, db_conn_key: str, *,
               search_context: Optional[List[Dict[str, Any]]] = None) -> Outcome:
        """
        Export the semantic layer of a database connection.

        Args:
            db_conn_key: Database connection key
            search_context: Filters selecting what to export (everything if None)

        Returns:
            Outcome of the export; a Success carries the dump as payload
        """
        payload = ExportPayload(search_context=search_context or default_search_context())
        request = OperationRequest(kind=OperationKind.EXPORT, target=db_conn_key, payload=payload)
        return self.run(request)

    def import_dump(self, db_conn_key: str, configuration: Dict[str, Any], *,
                    schema_mapping: Optional[Dict[str, str]] = None,
                    database_mapping: Optional[Dict[str, str]] = None,
                    search_context: Optional[List[Dict[str, Any]]] = None,
                    strict_mode: bool = False,
                    dry_run_mode: bool = False) -> Outcome:
        """
        Import a semantic layer dump into a database connection.

        Args:
            db_conn_key: Database connection key
            configuration: Parsed dump
            schema_mapping: Source -> target schema names
            database_mapping: Source -> target database names
            search_context: Filters selecting what to import (everything if None)
            strict_mode: Replace the target's configuration instead of merging
            dry_run_mode: Validate and plan without applying anything

        Returns:
            Outcome of the import; a Success is tagged dry_run in dry-run mode
        """
        payload = ImportPayload(
            configuration=configuration,
            schema_mapping=schema_mapping or {},
            database_mapping=database_mapping or {},
            search_context=search_context or default_search_context(),
            strict_mode=strict_mode,
            dry_run_mode=dry_run_mode,
        )
        request = OperationRequest(kind=OperationKind.IMPORT, target=db_conn_key, payload=payload)
        return self.run(request)

    def run(self, request: OperationRequest) -> Outcome:
        """Track one request to its Outcome."""
        policy = self.policy_for(request.kind)
        if self.cfg.verbose:
            from .printers import print_request
            print_request(request, policy)

        progress = self._progress or ConsoleProgress(request.kind, ci=self.cfg.ci)
        logger.info(f"Starting {request.kind.value} for connection '{request.target}'")
        return run_operation(
            self.service,
            request,
            policy,
            progress=progress,
            clock=self._clock,
            sleep=self._sleep,
            cancel_event=self._cancel,
        )
