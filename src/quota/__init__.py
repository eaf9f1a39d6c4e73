"""Quota: metered daily API budget tracking."""

from src.quota.config import QuotaConfig
from src.quota.repository import QuotaRepository
from src.quota.tracker import ENDPOINT_COSTS, QuotaTracker, endpoint_cost

__all__ = [
    "ENDPOINT_COSTS",
    "QuotaConfig",
    "QuotaRepository",
    "QuotaTracker",
    "endpoint_cost",
]
