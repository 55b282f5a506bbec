"""
Pytest configuration for the replication queue client.

Provides fixtures for:
- An in-memory RemoteQueueClient with scripted batch results
- A stop event that records cooldown waits instead of sleeping
- Settings with test-specific overrides
"""

from __future__ import annotations

import pytest

from repqueue.config import Settings
from repqueue.domain.models import TXN_LOG_TYPE, TXN_TYPE
from fakes import FakeQueueClient, RecordingEvent, records_with_statuses


@pytest.fixture
def fake_client() -> FakeQueueClient:
    return FakeQueueClient(
        queries={
            TXN_TYPE: records_with_statuses(["Completed", "Completed", "Pending"]),
            TXN_LOG_TYPE: records_with_statuses(["Completed", "Completed"], prefix="log"),
        }
    )


@pytest.fixture
def recording_event() -> RecordingEvent:
    return RecordingEvent()


@pytest.fixture
def test_settings() -> Settings:
    """
    Settings fixture with test-specific overrides.
    """
    return Settings(
        innovator_url="http://innovator.test/InnovatorServer",
        innovator_db="TestDB",
        replication_user="replicator",
        replication_password="secret",
        producer_user="producer",
        producer_password="secret",
        queue_interval_seconds=0,
        log_level="DEBUG",
    )
