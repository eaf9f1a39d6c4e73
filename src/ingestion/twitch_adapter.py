"""
Twitch Helix adapter.

Authenticates with an app access token (client credentials grant),
refreshed on expiry or on a 401. A fetch returns the broadcaster's
current streams (kind ``stream``) followed by recent archive videos
(kind ``video``); the upsert engine reconciles the two.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any

from src.ingestion.base_adapter import PlatformAdapter
from src.ingestion.errors import AdapterError
from src.ingestion.http_client import HTTPClient, HTTPClientError
from src.ingestion.normalizer import parse_rfc3339
from src.ingestion.schemas import LiveRef, Platform, RawItem, SourceDetails, SourceRef

logger = logging.getLogger(__name__)

HELIX_BASE = "https://api.twitch.tv/helix"
TOKEN_URL = "https://id.twitch.tv/oauth2/token"

# Refresh this long before the advertised expiry
_TOKEN_EXPIRY_MARGIN = 60.0


class TwitchAdapter(PlatformAdapter):
    """Adapter for Twitch broadcasters, with liveness support."""

    supports_live_state = True

    def __init__(
        self,
        http: HTTPClient,
        client_id: str,
        client_secret: str,
        rate_limit: int = 600,
        page_size: int = 100,
        max_pages: int = 3,
    ):
        """
        Args:
            http: Open HTTPClient
            client_id: Twitch application client id
            client_secret: Twitch application secret
            rate_limit: Requests per minute (Helix allows 800)
            page_size: Videos per Helix page (max 100)
            max_pages: Upper bound on video pages per fetch
        """
        super().__init__(http, rate_limit=rate_limit)
        if not client_id or not client_secret:
            raise ValueError("Twitch adapter requires client id and secret")
        self._client_id = client_id
        self._client_secret = client_secret
        self._page_size = page_size
        self._max_pages = max_pages

        self._token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock = asyncio.Lock()

    @property
    def platform(self) -> Platform:
        return Platform.TWITCH

    async def _access_token(self, force_refresh: bool = False) -> str:
        async with self._token_lock:
            if (
                not force_refresh
                and self._token
                and time.monotonic() < self._token_expires_at - _TOKEN_EXPIRY_MARGIN
            ):
                return self._token

            payload = await self._call(
                self._http.post_form(
                    TOKEN_URL,
                    data={
                        "client_id": self._client_id,
                        "client_secret": self._client_secret,
                        "grant_type": "client_credentials",
                    },
                ),
                "twitch token",
            )
            token = payload.get("access_token")
            if not token:
                raise AdapterError("Token response had no access_token", platform=self.platform.value)
            self._token = token
            self._token_expires_at = time.monotonic() + float(payload.get("expires_in", 3600))
            logger.info("Twitch app access token refreshed")
            return token

    async def _helix(self, path: str, params: dict[str, Any]) -> dict[str, Any]:
        """GET a Helix endpoint, refreshing the token once on 401."""
        for attempt in range(2):
            token = await self._access_token(force_refresh=attempt > 0)
            headers = {"Client-ID": self._client_id, "Authorization": f"Bearer {token}"}
            await self._rate_limiter.acquire()
            try:
                return await self._http.get_json(f"{HELIX_BASE}/{path}", params=params, headers=headers)
            except HTTPClientError as e:
                if e.status_code == 401 and attempt == 0:
                    logger.info("Twitch token rejected, refreshing")
                    continue
                raise AdapterError(f"helix/{path}: {e}", platform=self.platform.value) from e
        raise AdapterError(f"helix/{path}: unauthorized", platform=self.platform.value)

    async def _streams(self, user_id: str) -> list[dict[str, Any]]:
        payload = await self._helix("streams", {"user_id": user_id})
        return payload.get("data") or []

    async def list_items_since(self, source: SourceRef, since: datetime) -> list[RawItem]:
        items: list[RawItem] = []

        # Streams are refetched every run, so a failure here only delays them
        try:
            streams = await self._streams(source.external_id)
        except AdapterError as e:
            logger.warning(f"Twitch streams lookup failed for {source.external_id}: {e}")
            streams = []
        items.extend(RawItem(platform=Platform.TWITCH, kind="stream", data=s) for s in streams)

        cursor: str | None = None
        for _ in range(self._max_pages):
            params: dict[str, Any] = {"user_id": source.external_id, "first": self._page_size}
            if cursor:
                params["after"] = cursor
            payload = await self._helix("videos", params)
            videos = payload.get("data") or []
            items.extend(RawItem(platform=Platform.TWITCH, kind="video", data=v) for v in videos)

            cursor = (payload.get("pagination") or {}).get("cursor")
            oldest = parse_rfc3339(videos[-1].get("created_at")) if videos else None
            if not cursor or oldest is None or oldest < since:
                break

        return items

    async def current_live_state(self, account: SourceRef) -> list[LiveRef]:
        streams = await self._streams(account.external_id)
        return [
            LiveRef(external_id=s["id"], started_at=parse_rfc3339(s.get("started_at")))
            for s in streams
            if s.get("id")
        ]

    async def fetch_source_details(self, source: SourceRef) -> SourceDetails | None:
        payload = await self._helix("users", {"id": source.external_id})
        users = payload.get("data") or []
        if not users:
            return None
        user = users[0]
        return SourceDetails(
            external_id=source.external_id,
            display_name=user.get("display_name") or None,
            handle=user.get("login") or None,
            thumbnail_url=user.get("profile_image_url") or None,
        )
