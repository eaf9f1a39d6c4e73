"""
Podcast RSS adapter.

Fetches a feed over HTTP, parses it with feedparser and flattens each
entry into the plain dict the normalizer expects. Episode pages fall
back to the show page, then to the audio enclosure; artwork falls back
to the show artwork.
"""

import calendar
import logging
from datetime import datetime, timezone
from typing import Any

import feedparser
from bs4 import BeautifulSoup

from src.ingestion.base_adapter import PlatformAdapter, clean_text
from src.ingestion.errors import AdapterError
from src.ingestion.http_client import HTTPClient
from src.ingestion.schemas import Platform, RawItem, SourceDetails, SourceRef

logger = logging.getLogger(__name__)


def feed_url_for(source: SourceRef) -> str:
    """The feed URL is the uploads locator, or the external id itself."""
    url = source.uploads_locator or source.external_id
    if not url.startswith(("http://", "https://")):
        raise AdapterError(f"No feed URL for podcast {source.external_id}", platform=Platform.PODCAST.value)
    return url


def html_to_text(value: str | None) -> str | None:
    """Show notes are usually HTML; keep the text with paragraph breaks."""
    if not value:
        return None
    soup = BeautifulSoup(value, "html.parser")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return clean_text(soup.get_text("\n"))


def _iso_from_struct(parsed: Any) -> str | None:
    """feedparser's *_parsed fields are UTC struct_time values."""
    if not parsed:
        return None
    return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc).isoformat()


def _image_href(node: Any) -> str | None:
    image = node.get("image") if node else None
    if isinstance(image, dict):
        return image.get("href") or image.get("url")
    return None


def _enclosure_href(entry: Any) -> str | None:
    for link in entry.get("links", []):
        if link.get("rel") == "enclosure" and link.get("href"):
            return link["href"]
    for enclosure in entry.get("enclosures", []):
        if enclosure.get("href"):
            return enclosure["href"]
    return None


class PodcastAdapter(PlatformAdapter):
    """Adapter for RSS/Atom podcast feeds."""

    def __init__(self, http: HTTPClient, rate_limit: int = 30):
        super().__init__(http, rate_limit=rate_limit)

    @property
    def platform(self) -> Platform:
        return Platform.PODCAST

    async def _parse(self, source: SourceRef) -> feedparser.FeedParserDict:
        url = feed_url_for(source)
        body = await self._call(self._http.get_text(url), f"feed {url}")
        feed = feedparser.parse(body)
        if feed.get("bozo") and not feed.get("entries"):
            raise AdapterError(
                f"Unreadable feed {url}: {feed.get('bozo_exception')}",
                platform=self.platform.value,
            )
        return feed

    async def list_items_since(self, source: SourceRef, since: datetime) -> list[RawItem]:
        feed = await self._parse(source)
        channel = feed.get("feed", {})
        show_link = channel.get("link")
        show_image = _image_href(channel)

        items = []
        for entry in feed.get("entries", []):
            enclosure = _enclosure_href(entry)
            published = _iso_from_struct(
                entry.get("published_parsed") or entry.get("updated_parsed")
            )
            data = {
                "guid": entry.get("id") or enclosure or entry.get("link"),
                "title": entry.get("title"),
                "description": html_to_text(entry.get("summary") or entry.get("description")),
                "link": entry.get("link") or show_link or enclosure,
                "published": published,
                "image": _image_href(entry) or show_image,
                "duration": entry.get("itunes_duration"),
            }
            items.append(RawItem(platform=Platform.PODCAST, kind="episode", data=data))

        logger.debug(f"Parsed {len(items)} entries from {feed_url_for(source)}")
        return items

    async def fetch_source_details(self, source: SourceRef) -> SourceDetails | None:
        feed = await self._parse(source)
        channel = feed.get("feed", {})
        return SourceDetails(
            external_id=source.external_id,
            display_name=clean_text(channel.get("title")),
            handle=channel.get("author") or None,
            thumbnail_url=_image_href(channel),
            uploads_locator=feed_url_for(source),
        )
