"""Configuration for metered API budgets.

The daily limit itself comes from ``YOUTUBE_DAILY_QUOTA`` in the main
settings; these knobs control when the tracker warns and which calendar
day the ledger is keyed on.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class QuotaConfig(BaseSettings):
    """Warning thresholds and day boundary for the quota tracker."""

    model_config = SettingsConfigDict(
        env_prefix="QUOTA_",
        case_sensitive=False,
        extra="ignore",
    )

    warning_percent: float = Field(
        default=75.0,
        gt=0.0,
        le=100.0,
        description="Usage percent that triggers the first daily warning",
    )
    critical_percent: float = Field(
        default=90.0,
        gt=0.0,
        le=100.0,
        description="Usage percent that triggers the second daily warning",
    )
    reset_timezone: str = Field(
        default="UTC",
        description="IANA timezone whose midnight starts a new quota day",
    )
