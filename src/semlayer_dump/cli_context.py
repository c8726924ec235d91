"""
CLI Context for managing application dependencies.

Provides a clean way to manage CLI-level dependencies like settings and the
dump service client, avoiding global state and enabling proper dependency
injection.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .service.http_client import DumpServiceHTTP
from .settings import Settings, create_settings_from_env


@dataclass
class CLIContext:
    """
    Shared context for CLI commands.

    Manages application-level dependencies (settings, service client) that
    are initialized once and shared across a CLI command execution.
    """
    settings: Settings
    _service: Optional[DumpServiceHTTP] = None

    @classmethod
    def from_env(cls) -> CLIContext:
        """
        Create CLI context from environment variables and the config file.

        Returns:
            CLIContext with settings loaded from environment

        Raises:
            ValueError: If the service URL is not configured or settings are invalid
        """
        settings = create_settings_from_env()
        return cls(settings=settings)

    @property
    def service(self) -> DumpServiceHTTP:
        """
        Get or create the dump service client (lazy initialization).

        Returns:
            DumpServiceHTTP instance
        """
        if self._service is None:
            self._service = DumpServiceHTTP(self.settings)
        return self._service

    def close(self) -> None:
        """Close the service client if one was built."""
        if self._service is not None:
            self._service.close()
            self._service = None

    def __enter__(self) -> CLIContext:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
