"""Sources: content-producing accounts and their ingestion watermarks."""

from src.sources.enrichment import EnrichmentResult, SourceEnricher
from src.sources.repository import SourcesRepository
from src.sources.schemas import FETCH_STATUS_OK, Source, error_tag

__all__ = [
    "EnrichmentResult",
    "FETCH_STATUS_OK",
    "Source",
    "SourceEnricher",
    "SourcesRepository",
    "error_tag",
]
