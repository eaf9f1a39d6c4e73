"""Data models for the sources module."""

from dataclasses import dataclass
from datetime import datetime
from uuid import UUID

from src.ingestion.schemas import Platform, SourceRef

FETCH_STATUS_OK = "ok"


def error_tag(exc: BaseException) -> str:
    """Build the fetch_status value recorded for a failed fetch."""
    return f"error:{type(exc).__name__}"


@dataclass
class Source:
    """A content-producing account on one platform (channel, broadcaster, feed, station).

    (platform, external_id) uniquely identifies a source. ``last_fetched_at``
    is the ingestion watermark and is only ever moved by the orchestrator.
    """

    platform: Platform
    external_id: str
    id: UUID | None = None
    handle: str | None = None
    display_name: str | None = None
    thumbnail_url: str | None = None
    uploads_locator: str | None = None
    last_fetched_at: datetime | None = None
    fetch_status: str = FETCH_STATUS_OK
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def ref(self) -> SourceRef:
        return SourceRef(
            platform=self.platform,
            external_id=self.external_id,
            uploads_locator=self.uploads_locator,
            display_name=self.display_name,
        )
