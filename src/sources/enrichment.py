"""
Source display-metadata enrichment.

Looks up channel details (name, handle, avatar, uploads locator)
through the platform adapter, fronted by the channel-details cache.
Metered platforms are pre-checked against the quota tracker; when the
budget is short the lookup is skipped and the result is flagged rather
than raised.
"""

from dataclasses import dataclass, replace

import structlog

from src.cache.channel_cache import ChannelDetailsCache
from src.cache.ttl_cache import CachePriority
from src.ingestion.base_adapter import PlatformAdapter
from src.ingestion.schemas import Platform, SourceDetails
from src.quota.tracker import endpoint_cost
from src.sources.repository import SourcesRepository
from src.sources.schemas import Source

logger = structlog.get_logger(__name__)

DETAILS_ENDPOINT = "channels.list"


@dataclass
class EnrichmentResult:
    details: SourceDetails | None = None
    cached: bool = False
    quota_limited: bool = False


class SourceEnricher:
    """Fills in a Source's display metadata from its platform."""

    def __init__(
        self,
        adapters: dict[Platform, PlatformAdapter],
        repository: SourcesRepository,
        cache: ChannelDetailsCache | None = None,
    ):
        self._adapters = adapters
        self._repository = repository
        self._cache = cache or ChannelDetailsCache()

    async def enrich(
        self,
        source: Source,
        priority: CachePriority = CachePriority.MEDIUM,
    ) -> EnrichmentResult:
        """
        Resolve and persist display metadata for ``source``.

        Args:
            source: Source to enrich
            priority: Cache tier for freshly fetched details

        Returns:
            EnrichmentResult; ``details`` is None when the platform has no
            adapter, the account was not found, or quota was short.

        Raises:
            AdapterError: the upstream lookup failed
            StorageError: the sources table is unavailable
        """
        cached = self._cache.get(source.platform, source.external_id)
        if cached is not None:
            await self._apply(source, cached)
            return EnrichmentResult(details=cached, cached=True)

        adapter = self._adapters.get(source.platform)
        if adapter is None:
            logger.debug("No adapter for enrichment", platform=source.platform.value)
            return EnrichmentResult()

        if adapter.quota is not None and not adapter.quota.can_use(endpoint_cost(DETAILS_ENDPOINT)):
            logger.warning(
                "Quota short, skipping source enrichment",
                platform=source.platform.value,
                source=source.external_id,
                remaining=adapter.quota.remaining(),
            )
            return EnrichmentResult(quota_limited=True)

        details = await adapter.fetch_source_details(source.ref)
        if details is None:
            return EnrichmentResult()

        self._cache.set(source.platform, details, priority)
        await self._apply(source, details)
        return EnrichmentResult(details=details)

    async def _apply(self, source: Source, details: SourceDetails) -> Source:
        updated = replace(
            source,
            display_name=details.display_name,
            handle=details.handle,
            thumbnail_url=details.thumbnail_url,
            uploads_locator=details.uploads_locator,
        )
        return await self._repository.upsert(updated)
