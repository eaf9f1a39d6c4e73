"""Configuration for in-process caches."""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class CacheConfig(BaseSettings):
    """TTL tiers and sweep cadence; override via ``CACHE_*`` variables."""

    model_config = SettingsConfigDict(
        env_prefix="CACHE_",
        case_sensitive=False,
        extra="ignore",
    )

    sweep_interval_seconds: float = Field(
        default=300.0,
        gt=0.0,
        description="How often the background sweeper evicts expired entries",
    )
    high_ttl_seconds: float = Field(default=3600.0, gt=0.0, description="TTL for high-priority entries")
    medium_ttl_seconds: float = Field(default=3 * 3600.0, gt=0.0, description="TTL for medium-priority entries")
    low_ttl_seconds: float = Field(default=6 * 3600.0, gt=0.0, description="TTL for low-priority entries")
