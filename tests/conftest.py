"""Root pytest configuration for semlayer-dump tests."""
import pytest

from semlayer_dump.models import ExportPayload, ImportPayload
from semlayer_dump.runtime_types import OperationKind, OperationRequest, PollPolicy
from semlayer_dump.settings import Settings

from .fakes import FakeClock, RecordingProgress


# Set up test environment variables
@pytest.fixture(autouse=True)
def test_env(monkeypatch, tmp_path):
    """Automatically set up test environment variables."""
    monkeypatch.setenv("SEMDUMP_API_URL", "http://localhost:9859/api")
    monkeypatch.setenv("SEMDUMP_API_KEY", "test-key")
    monkeypatch.setenv("SEMDUMP_POLL_INTERVAL_MS", "0")
    monkeypatch.setenv("SEMDUMP_CONFIG", str(tmp_path / "no-such-conf.yaml"))
    for name in (
        "SEMDUMP_HTTP_TIMEOUT",
        "SEMDUMP_EXPORT_TIMEOUT_MS",
        "SEMDUMP_IMPORT_TIMEOUT_MS",
        "SEMDUMP_EXPORT_MAX_RETRIES",
        "SEMDUMP_IMPORT_MAX_RETRIES",
        "SEMDUMP_EXPORT_NOT_FOUND_BACKOFF",
        "SEMDUMP_IMPORT_NOT_FOUND_BACKOFF",
        "SEMDUMP_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


# Standardized test fixtures
@pytest.fixture
def settings():
    """Standard test settings."""
    return Settings(api_url="http://localhost:9859/api", api_key="test-key", poll_interval_ms=0)


@pytest.fixture
def clock():
    """Fake monotonic clock; pass clock.sleep as the sleep function."""
    return FakeClock()


@pytest.fixture
def progress():
    """Progress sink recording every event."""
    return RecordingProgress()


@pytest.fixture
def policy():
    """One-second polls, five-minute timeout, three not-found retries."""
    return PollPolicy(poll_interval_ms=1000, timeout_ms=300_000, max_not_found_retries=3)


@pytest.fixture
def export_request():
    """Export of everything on connection 'snowflake://demo'."""
    return OperationRequest(kind=OperationKind.EXPORT, target="snowflake://demo", payload=ExportPayload())


@pytest.fixture
def import_request():
    """Non-strict, non-dry-run import of a one-table dump."""
    payload = ImportPayload(configuration={"tables": [{"name": "orders", "schema": "sales"}]})
    return OperationRequest(kind=OperationKind.IMPORT, target="snowflake://demo", payload=payload)
