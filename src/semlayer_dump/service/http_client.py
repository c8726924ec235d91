"""
HTTP client for the semantic layer dump API.

Implements the DumpService protocol on top of httpx: one POST to start an
export or import, one POST per status check. HTTP failures are mapped onto
service.errors so the runtime stays transport-agnostic.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .. import __version__
from ..models import StatusResponse, SubmitResponse
from ..runtime_types import OperationKind, OperationRequest
from ..settings import Settings
from .errors import ServiceAuthError, ServiceProtocolError, TransportError

__all__ = ["DumpServiceHTTP", "ENDPOINTS"]

logger = logging.getLogger(__name__)

# kind -> (start endpoint, status endpoint), relative to the API base URL
ENDPOINTS = {
    OperationKind.EXPORT: ("export-semantic-layer-dump", "check-export-semantic-layer-dump-status"),
    OperationKind.IMPORT: ("import-semantic-layer-dump", "check-import-semantic-layer-dump-status"),
}


class DumpServiceHTTP:
    """
    HTTP implementation of the DumpService protocol.

    Only connection failures are retried (the request never reached the
    service); a submit is never re-sent once it may have been received.
    """

    def __init__(self, settings: Settings, *, transport: Optional[httpx.BaseTransport] = None):
        """
        Initialize dump service client.

        Args:
            settings: Settings carrying the API URL, key and HTTP timeout
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.settings = settings

        headers = {
            "User-Agent": f"semlayer-dump/{__version__}",
            "Content-Type": "application/json",
        }
        if settings.api_key:
            headers["Authorization"] = f"Bearer {settings.api_key}"

        self.client = httpx.Client(
            base_url=settings.api_url.rstrip("/") + "/",
            timeout=httpx.Timeout(settings.http_timeout_s, connect=5.0),
            headers=headers,
            follow_redirects=True,
            transport=transport,
        )
        logger.debug(f"Dump service client for {settings.api_url}, timeout {settings.http_timeout_s}s")

    def submit(self, request: OperationRequest) -> SubmitResponse:
        """
        Start an export or import.

        Raises:
            ServiceAuthError: On 401/403
            ServiceProtocolError: If the response has no op_id
            TransportError: On any other network or HTTP failure
        """
        start_path, _ = ENDPOINTS[request.kind]
        data = self._post_json(start_path, request.to_wire(), what=f"{request.kind.value} submit")
        try:
            return SubmitResponse.model_validate(data)
        except ValidationError as e:
            raise ServiceProtocolError(f"Malformed {request.kind.value} submit response: {e}") from e

    def poll_status(self, kind: OperationKind, op_id: str) -> StatusResponse:
        """
        Check the status of an operation.

        Raises:
            ServiceAuthError: On 401/403
            ServiceProtocolError: If the response is not a status object
            TransportError: On any other network or HTTP failure
        """
        _, status_path = ENDPOINTS[kind]
        data = self._post_json(status_path, {"op_id": op_id}, what=f"{kind.value} status check for {op_id}")
        try:
            return StatusResponse.model_validate(data)
        except ValidationError as e:
            raise ServiceProtocolError(f"Malformed {kind.value} status response: {e}") from e

    def _post_json(self, path: str, body: dict, *, what: str) -> Any:
        try:
            response = self._request("POST", path, json=body)
        except httpx.HTTPStatusError as e:
            code = e.response.status_code
            if code in (401, 403):
                raise ServiceAuthError(f"Authentication failed for {what} (HTTP {code})") from e
            raise TransportError(f"Service error {code} during {what}: {e.response.text[:200]}") from e
        except httpx.RequestError as e:
            raise TransportError(f"Network error during {what}: {e}") from e

        try:
            return response.json()
        except json.JSONDecodeError as e:
            raise ServiceProtocolError(f"Invalid JSON in response to {what}: {e}") from e

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception_type((httpx.ConnectError, httpx.ConnectTimeout)),
        reraise=True,
    )
    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Make an HTTP request and raise for non-2xx statuses."""
        response = self.client.request(method, path, **kwargs)
        response.raise_for_status()
        return response

    def close(self):
        """Close HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
