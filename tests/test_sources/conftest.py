"""Shared fixtures for sources tests."""

from datetime import datetime, timezone

import pytest

from kchoo.sources.config import SourcesConfig


@pytest.fixture
def sources_config() -> SourcesConfig:
    return SourcesConfig(claim_batch_size=5)


@pytest.fixture
def sample_source_row() -> dict:
    """A dict mimicking an asyncpg Record for a joined source row."""
    return {
        "id": 42,
        "site": "twitter",
        "site_id": 1,
        "remote_identifier": "abc",
        "state": "standby",
        "earliest_processed_marker": "100",
        "latest_processed_marker": "m1",
        "last_refreshed_at": None,
        "claimed_at": None,
        "created_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
        "updated_at": datetime(2026, 1, 2, tzinfo=timezone.utc),
    }
