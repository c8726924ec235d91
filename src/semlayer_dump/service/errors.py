"""
Dump service error classes.

Provides a clear taxonomy of errors that can occur while talking to the
semantic layer dump service. HTTP status codes and httpx exceptions are
mapped onto these so the runtime never has to know about the transport.
"""
from __future__ import annotations


class ServiceError(Exception):
    """
    Base class for all dump service errors.
    """
    pass


class TransportError(ServiceError):
    """
    The remote call failed before a usable response was obtained.

    Raised when:
    - Connection refused, DNS failure, read/connect timeout
    - HTTP 5xx or any other non-success status not covered below
    """
    pass


class ServiceAuthError(TransportError):
    """
    Authentication or authorization error.

    Raised when:
    - HTTP 401 Unauthorized (missing or invalid API key)
    - HTTP 403 Forbidden (insufficient permissions for the connection)
    """
    pass


class ServiceProtocolError(TransportError):
    """
    The service answered, but not in a shape this client understands.

    Raised when:
    - Response body is not valid JSON
    - A submit response carries no operation id
    """
    pass


__all__ = [
    "ServiceError",
    "TransportError",
    "ServiceAuthError",
    "ServiceProtocolError",
]
