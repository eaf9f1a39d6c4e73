"""Configuration for timeline reads."""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TimelineConfig(BaseSettings):
    """Page size bounds; override via ``TIMELINE_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TIMELINE_",
        case_sensitive=False,
        extra="ignore",
    )

    default_limit: int = Field(default=50, ge=1, description="Page size when none is given")
    max_limit: int = Field(default=100, ge=1, description="Largest page a caller may request")

    @model_validator(mode="after")
    def _default_within_max(self) -> "TimelineConfig":
        if self.default_limit > self.max_limit:
            raise ValueError("default_limit must not exceed max_limit")
        return self
