"""Cache: in-process TTL caches for external lookups."""

from src.cache.channel_cache import ChannelDetailsCache, channel_key
from src.cache.config import CacheConfig
from src.cache.ttl_cache import CachePriority, ReadWriteLock, TTLCache, ttl_for

__all__ = [
    "CacheConfig",
    "CachePriority",
    "ChannelDetailsCache",
    "ReadWriteLock",
    "TTLCache",
    "channel_key",
    "ttl_for",
]
