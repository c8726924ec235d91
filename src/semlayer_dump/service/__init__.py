"""
Service package - transport adapters for the semantic layer dump API.
"""
from .errors import ServiceAuthError, ServiceError, ServiceProtocolError, TransportError
from .http_client import DumpServiceHTTP

__all__ = [
    "DumpServiceHTTP",
    "ServiceAuthError",
    "ServiceError",
    "ServiceProtocolError",
    "TransportError",
]
