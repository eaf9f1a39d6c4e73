"""Channel-detail cache fronting source enrichment lookups."""

from src.cache.config import CacheConfig
from src.cache.ttl_cache import CachePriority, TTLCache, ttl_for
from src.ingestion.schemas import Platform, SourceDetails


def channel_key(platform: Platform, external_id: str) -> str:
    return f"channel:{platform.value}:{external_id}"


class ChannelDetailsCache:
    """SourceDetails by (platform, external id), with priority-tier TTLs."""

    def __init__(
        self,
        cache: TTLCache[SourceDetails] | None = None,
        config: CacheConfig | None = None,
    ) -> None:
        self._config = config or CacheConfig()
        self._cache: TTLCache[SourceDetails] = (
            cache if cache is not None
            else TTLCache(sweep_interval=self._config.sweep_interval_seconds)
        )

    @property
    def cache(self) -> TTLCache[SourceDetails]:
        return self._cache

    def get(self, platform: Platform, external_id: str) -> SourceDetails | None:
        return self._cache.get(channel_key(platform, external_id))

    def set(
        self,
        platform: Platform,
        details: SourceDetails,
        priority: CachePriority = CachePriority.MEDIUM,
    ) -> None:
        self._cache.set(
            channel_key(platform, details.external_id),
            details,
            ttl=ttl_for(priority, self._config),
        )

    def invalidate(self, platform: Platform, external_id: str) -> bool:
        return self._cache.delete(channel_key(platform, external_id))

    def start(self) -> None:
        self._cache.start()

    def close(self) -> None:
        self._cache.close()
