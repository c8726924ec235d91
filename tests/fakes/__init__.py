# Fake implementations for testing

from .fake_service import FakeClock, FakeDumpService, RecordingProgress, status

__all__ = ["FakeClock", "FakeDumpService", "RecordingProgress", "status"]
