"""
YouTube Data API v3 adapter.

Lists a channel's uploads playlist (newest first) until it passes the
fetch window, then hydrates the collected ids with ``videos.list`` in
batches of 50 for duration, statistics and live-broadcast state.

Every call is metered against the injected QuotaTracker. When the budget
runs short after the playlist pages are in, the detail calls are skipped
and the items are returned as playlist snippets only: they normalize to
plain videos without duration or metrics (degraded, not failed).
"""

import logging
from datetime import datetime
from typing import Any

from src.ingestion.base_adapter import PlatformAdapter
from src.ingestion.errors import AdapterError
from src.ingestion.http_client import HTTPClient
from src.ingestion.normalizer import parse_rfc3339
from src.ingestion.schemas import Platform, RawItem, SourceDetails, SourceRef
from src.quota.tracker import QuotaTracker, endpoint_cost

logger = logging.getLogger(__name__)

API_BASE = "https://www.googleapis.com/youtube/v3"
PAGE_SIZE = 50
DETAIL_BATCH_SIZE = 50


def uploads_playlist_id(source: SourceRef) -> str:
    """The stored locator, or the conventional UU-prefixed id for UC channels."""
    if source.uploads_locator:
        return source.uploads_locator
    if source.external_id.startswith("UC") and len(source.external_id) > 2:
        return "UU" + source.external_id[2:]
    raise AdapterError(
        f"No uploads playlist known for channel {source.external_id}",
        platform=Platform.YOUTUBE.value,
    )


def _best_thumbnail(thumbnails: dict[str, Any] | None) -> str | None:
    for size in ("high", "medium", "default"):
        url = ((thumbnails or {}).get(size) or {}).get("url")
        if url:
            return url
    return None


class YouTubeAdapter(PlatformAdapter):
    """
    Metered adapter for YouTube channels.

    Quota per fetch: one ``playlistItems.list`` per page plus one
    ``videos.list`` per 50 new items.
    """

    metered = True

    def __init__(
        self,
        http: HTTPClient,
        api_key: str,
        quota: QuotaTracker,
        rate_limit: int = 120,
        max_pages: int = 10,
    ):
        """
        Args:
            http: Open HTTPClient
            api_key: YouTube Data API key
            quota: Daily budget shared by every YouTube call in this process
            rate_limit: Requests per minute
            max_pages: Upper bound on playlist pages per fetch
        """
        super().__init__(http, rate_limit=rate_limit, quota=quota)
        if not api_key:
            raise ValueError("YouTube adapter requires an API key")
        self._api_key = api_key
        self._max_pages = max_pages

    @property
    def platform(self) -> Platform:
        return Platform.YOUTUBE

    def estimated_cost(self, source: SourceRef) -> int:
        return endpoint_cost("playlistItems.list") + endpoint_cost("videos.list")

    async def _get(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        resource = endpoint.split(".", 1)[0]
        return await self._metered_call(
            endpoint,
            self._http.get_json(f"{API_BASE}/{resource}", params={**params, "key": self._api_key}),
        )

    async def list_items_since(self, source: SourceRef, since: datetime) -> list[RawItem]:
        playlist_id = uploads_playlist_id(source)
        entries = await self._list_playlist(playlist_id, since)
        if not entries:
            return []

        video_ids = [e["contentDetails"]["videoId"] for e in entries]
        details = await self._video_details(video_ids, source)

        items = []
        for entry in entries:
            video_id = entry["contentDetails"]["videoId"]
            data = details.get(video_id) or self._from_playlist_entry(entry)
            items.append(RawItem(platform=Platform.YOUTUBE, kind="video", data=data))
        return items

    async def _list_playlist(self, playlist_id: str, since: datetime) -> list[dict[str, Any]]:
        """Playlist entries published at or after ``since``, newest first."""
        entries: list[dict[str, Any]] = []
        page_token: str | None = None

        for page in range(self._max_pages):
            if page > 0 and not self._quota.can_use(endpoint_cost("playlistItems.list")):
                logger.warning(
                    f"Quota short, stopping playlist {playlist_id} after {page} page(s)"
                )
                break

            params: dict[str, Any] = {
                "part": "snippet,contentDetails",
                "playlistId": playlist_id,
                "maxResults": PAGE_SIZE,
            }
            if page_token:
                params["pageToken"] = page_token
            payload = await self._get("playlistItems.list", params)

            reached_window_start = False
            for entry in payload.get("items", []):
                video_id = (entry.get("contentDetails") or {}).get("videoId")
                if not video_id:
                    continue
                published = self._entry_published(entry)
                if published is not None and published < since:
                    reached_window_start = True
                    continue
                entries.append(entry)

            page_token = payload.get("nextPageToken")
            if not page_token or reached_window_start:
                break

        return entries

    @staticmethod
    def _entry_published(entry: dict[str, Any]) -> datetime | None:
        value = (entry.get("contentDetails") or {}).get("videoPublishedAt") or (
            entry.get("snippet") or {}
        ).get("publishedAt")
        try:
            return parse_rfc3339(value)
        except ValueError:
            return None

    async def _video_details(
        self, video_ids: list[str], source: SourceRef
    ) -> dict[str, dict[str, Any]]:
        details: dict[str, dict[str, Any]] = {}
        for start in range(0, len(video_ids), DETAIL_BATCH_SIZE):
            batch = video_ids[start:start + DETAIL_BATCH_SIZE]
            if not self._quota.can_use(endpoint_cost("videos.list")):
                logger.warning(
                    f"Quota short, {len(video_ids) - start} video(s) of "
                    f"{source.external_id} stored without details"
                )
                break
            payload = await self._get(
                "videos.list",
                {
                    "part": "snippet,contentDetails,statistics,liveStreamingDetails",
                    "id": ",".join(batch),
                    "maxResults": DETAIL_BATCH_SIZE,
                },
            )
            for video in payload.get("items", []):
                details[video["id"]] = video
        return details

    @staticmethod
    def _from_playlist_entry(entry: dict[str, Any]) -> dict[str, Any]:
        """Shape a playlist entry like a videos.list resource without details."""
        snippet = entry.get("snippet") or {}
        content = entry.get("contentDetails") or {}
        return {
            "id": content.get("videoId"),
            "snippet": {
                "title": snippet.get("title"),
                "description": snippet.get("description"),
                "publishedAt": content.get("videoPublishedAt") or snippet.get("publishedAt"),
                "thumbnails": snippet.get("thumbnails"),
            },
        }

    async def fetch_source_details(self, source: SourceRef) -> SourceDetails | None:
        payload = await self._get(
            "channels.list",
            {"part": "snippet,contentDetails", "id": source.external_id},
        )
        items = payload.get("items") or []
        if not items:
            return None

        channel = items[0]
        snippet = channel.get("snippet") or {}
        related = (channel.get("contentDetails") or {}).get("relatedPlaylists") or {}
        return SourceDetails(
            external_id=source.external_id,
            display_name=snippet.get("title") or None,
            handle=snippet.get("customUrl") or None,
            thumbnail_url=_best_thumbnail(snippet.get("thumbnails")),
            uploads_locator=related.get("uploads") or None,
        )
