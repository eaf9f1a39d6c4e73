"""Shared fixtures for sources tests."""

from datetime import datetime, timezone
from uuid import UUID

import pytest

SOURCE_ID = UUID("6f1c2a7e-0000-4000-8000-000000000001")


@pytest.fixture
def sample_db_row() -> dict:
    """A dict mimicking an asyncpg Record for a source."""
    return {
        "id": SOURCE_ID,
        "platform_id": "youtube",
        "external_id": "UCabc",
        "handle": "@channel",
        "display_name": "Channel",
        "thumbnail_url": "https://yt/avatar.jpg",
        "uploads_locator": "UUabc",
        "last_fetched_at": datetime(2026, 3, 14, 11, 0, tzinfo=timezone.utc),
        "fetch_status": "ok",
        "created_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
        "updated_at": datetime(2026, 3, 14, 11, 0, tzinfo=timezone.utc),
    }
