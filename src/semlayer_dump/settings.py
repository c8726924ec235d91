"""
Settings and configuration for semlayer-dump.

Centralizes configuration values and provides validation with fail-fast behavior.
Loads settings from environment variables, falling back to a small YAML
config file for the service URL and API key.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import yaml

from .runtime_types import OperationKind, PollPolicy

__all__ = ["Settings", "create_settings_from_env", "str_to_bool", "DEFAULT_CONFIG_PATH"]

DEFAULT_CONFIG_PATH = Path("~/.semlayer/conf.yaml")


def str_to_bool(value: str) -> bool:
    """Command line / environment boolean: true, 1, yes, y, on (any case)."""
    return value.strip().lower() in ("true", "1", "yes", "y", "on")


@dataclass(frozen=True)
class Settings:
    """
    Configuration settings for semlayer-dump.

    Service Settings:
        api_url: Base URL of the dump service (required)
        api_key: API key sent as a Bearer token
        http_timeout_s: HTTP request timeout in seconds

    Poll Defaults (overridable per command):
        poll_interval_ms: Delay between status checks
        export_timeout_ms / import_timeout_ms: Overall deadline per operation
        export_max_retries / import_max_retries: not_exists budget
        export_not_found_backoff / import_not_found_backoff: Extra sleep after
            a not_exists status, as a multiple of poll_interval_ms
    """
    # Service settings
    api_url: str
    api_key: Optional[str] = None
    http_timeout_s: float = 30.0

    # Poll defaults
    poll_interval_ms: int = 1000
    export_timeout_ms: int = 300_000
    import_timeout_ms: int = 300_000
    export_max_retries: int = 3
    import_max_retries: int = 5
    export_not_found_backoff: float = 0.0
    import_not_found_backoff: float = 2.0

    def __post_init__(self):
        """Validate settings on construction."""
        if not self.api_url:
            raise ValueError("api_url is required")

        url_pattern = r"^https?://[a-zA-Z0-9.-]+(?::[0-9]+)?(?:/.*)?$"
        if not re.match(url_pattern, self.api_url):
            raise ValueError(f"Invalid api_url format: {self.api_url}. Expected http(s)://host[:port][/path]")

        if self.http_timeout_s <= 0:
            raise ValueError(f"http_timeout_s must be positive, got {self.http_timeout_s}")

        if self.poll_interval_ms < 0:
            raise ValueError(f"poll_interval_ms must be non-negative, got {self.poll_interval_ms}")

        for name in ("export_timeout_ms", "import_timeout_ms"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")

        for name in ("export_max_retries", "import_max_retries"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1, got {getattr(self, name)}")

        for name in ("export_not_found_backoff", "import_not_found_backoff"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative, got {getattr(self, name)}")

    def poll_policy(self, kind: OperationKind, *,
                    poll_interval_ms: Optional[int] = None,
                    timeout_ms: Optional[int] = None,
                    max_retries: Optional[int] = None,
                    verbose: bool = False) -> PollPolicy:
        """
        Poll policy for an operation kind, with optional per-call overrides.

        Args:
            kind: Export or import
            poll_interval_ms: Override of poll_interval_ms
            timeout_ms: Override of the kind's timeout
            max_retries: Override of the kind's not_exists budget
            verbose: Echo intermediate status snapshots

        Returns:
            Validated PollPolicy
        """
        if kind is OperationKind.IMPORT:
            default_timeout = self.import_timeout_ms
            default_retries = self.import_max_retries
            backoff = self.import_not_found_backoff
        else:
            default_timeout = self.export_timeout_ms
            default_retries = self.export_max_retries
            backoff = self.export_not_found_backoff

        return PollPolicy(
            poll_interval_ms=self.poll_interval_ms if poll_interval_ms is None else poll_interval_ms,
            timeout_ms=default_timeout if timeout_ms is None else timeout_ms,
            max_not_found_retries=default_retries if max_retries is None else max_retries,
            not_found_backoff_factor=backoff,
            verbose=verbose,
        )


def create_settings_from_env(config_path: Optional[Path] = None) -> Settings:
    """
    Load settings from environment variables and the optional config file.

    Environment Variables:
        Service:
        - SEMDUMP_API_URL (required unless 'url' is set in the config file)
        - SEMDUMP_API_KEY (optional, falls back to 'apiKey' in the config file)
        - SEMDUMP_HTTP_TIMEOUT (default: 30.0)
        - SEMDUMP_CONFIG (default: ~/.semlayer/conf.yaml)

        Polling:
        - SEMDUMP_POLL_INTERVAL_MS (default: 1000)
        - SEMDUMP_EXPORT_TIMEOUT_MS (default: 300000)
        - SEMDUMP_IMPORT_TIMEOUT_MS (default: 300000)
        - SEMDUMP_EXPORT_MAX_RETRIES (default: 3)
        - SEMDUMP_IMPORT_MAX_RETRIES (default: 5)
        - SEMDUMP_EXPORT_NOT_FOUND_BACKOFF (default: 0.0)
        - SEMDUMP_IMPORT_NOT_FOUND_BACKOFF (default: 2.0)

    Args:
        config_path: Config file to read instead of SEMDUMP_CONFIG/default

    Returns:
        Settings object with validated configuration

    Raises:
        ValueError: If configuration is invalid or required values missing

    Note:
        Creates a fresh Settings instance every time (no caching).
    """
    return _load_settings_impl(config_path)


def _read_config_file(config_path: Optional[Path]) -> dict:
    if config_path is None:
        config_path = Path(os.getenv("SEMDUMP_CONFIG", str(DEFAULT_CONFIG_PATH)))
    config_path = config_path.expanduser()
    if not config_path.is_file():
        return {}

    with open(config_path, "r") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid config file {config_path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Invalid config file {config_path}: expected a mapping")
    return data


def _load_settings_impl(config_path: Optional[Path]) -> Settings:
    """Internal implementation of settings loading."""
    def get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        return float(value) if value else default

    def get_int(key: str, default: int) -> int:
        value = os.getenv(key)
        return int(value) if value else default

    file_config = _read_config_file(config_path)

    api_url = os.getenv("SEMDUMP_API_URL") or file_config.get("url")
    if not api_url:
        raise ValueError("SEMDUMP_API_URL environment variable (or 'url' in the config file) is required")
    api_key = os.getenv("SEMDUMP_API_KEY") or file_config.get("apiKey")

    return Settings(
        api_url=api_url,
        api_key=api_key,
        http_timeout_s=get_float("SEMDUMP_HTTP_TIMEOUT", 30.0),
        poll_interval_ms=get_int("SEMDUMP_POLL_INTERVAL_MS", 1000),
        export_timeout_ms=get_int("SEMDUMP_EXPORT_TIMEOUT_MS", 300_000),
        import_timeout_ms=get_int("SEMDUMP_IMPORT_TIMEOUT_MS", 300_000),
        export_max_retries=get_int("SEMDUMP_EXPORT_MAX_RETRIES", 3),
        import_max_retries=get_int("SEMDUMP_IMPORT_MAX_RETRIES", 5),
        export_not_found_backoff=get_float("SEMDUMP_EXPORT_NOT_FOUND_BACKOFF", 0.0),
        import_not_found_backoff=get_float("SEMDUMP_IMPORT_NOT_FOUND_BACKOFF", 2.0),
    )
