"""
Data models for the semantic layer dump wire protocol.

These Pydantic models provide type safety and validation for the payloads
sent to and received from the dump service, from the kind-specific request
bodies to the submit and status responses.
"""
from __future__ import annotations

import json
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SearchContext(BaseModel):
    """Filter selecting which database objects an operation touches."""
    model_config = ConfigDict(extra="allow")

    db_name: str = Field(default="*", description="Database name or '*'")
    schema_name: str = Field(default="*", description="Schema name or '*'")
    table_name: str = Field(default="*", description="Table name or '*'")


def default_search_context() -> List[SearchContext]:
    """Match everything reachable through the connection."""
    return [SearchContext()]


class ExportPayload(BaseModel):
    """Export-specific request fields."""
    search_context: List[SearchContext] = Field(default_factory=default_search_context)


class ImportPayload(BaseModel):
    """
    Import-specific request fields.

    strict_mode and dry_run_mode are forwarded to the service verbatim;
    the client never interprets them beyond tagging dry-run outcomes.
    """
    configuration: Dict[str, Any] = Field(..., description="Parsed semantic layer dump")
    schema_mapping: Dict[str, str] = Field(default_factory=dict)
    database_mapping: Dict[str, str] = Field(default_factory=dict)
    search_context: List[SearchContext] = Field(default_factory=default_search_context)
    strict_mode: bool = False
    dry_run_mode: bool = False

    @field_validator("configuration", mode="before")
    @classmethod
    def configuration_must_be_mapping(cls, v):
        if not isinstance(v, dict):
            raise ValueError("configuration must be a mapping of category -> objects")
        return v


class SubmitResponse(BaseModel):
    """Response of the export/import start calls."""
    model_config = ConfigDict(extra="allow")

    op_id: str = Field(..., min_length=1)


class StatusResponse(BaseModel):
    """
    Response of the status check calls.

    status is kept as plain text so that values this client does not know
    about reach the poller instead of failing validation here. Non-string
    JSON values are kept as their JSON text; a missing status is None.
    """
    model_config = ConfigDict(extra="allow")

    op_id: Optional[str] = None
    status: Optional[str] = None
    info: Any = None

    @field_validator("status", mode="before")
    @classmethod
    def status_as_text(cls, v):
        if v is None or isinstance(v, str):
            return v
        return json.dumps(v, default=str)


__all__ = [
    "SearchContext",
    "default_search_context",
    "ExportPayload",
    "ImportPayload",
    "SubmitResponse",
    "StatusResponse",
]
