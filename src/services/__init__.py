"""Services: batch entry points for ingestion, enrichment and live-state sweeps."""

from src.services.ingestion_service import (
    IngestionSetupError,
    enrich_sources,
    run_ingestion_batch,
)
from src.services.live_service import reconcile_live_state

__all__ = [
    "IngestionSetupError",
    "enrich_sources",
    "reconcile_live_state",
    "run_ingestion_batch",
]
