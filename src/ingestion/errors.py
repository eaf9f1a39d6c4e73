"""
Error taxonomy for ingestion.

- AdapterError: transient-external failure talking to a platform.
  Fails one source for this run; the source is retried next run.
- NormalizationError: one upstream item has an unexpected shape.
  Only that item is skipped.

Persistence failures are src.storage.database.StorageError and are
fatal to the batch. Quota exhaustion is not an exception at all.
"""


class IngestionError(Exception):
    """Base class for ingestion failures."""


class AdapterError(IngestionError):
    """A platform adapter could not complete a fetch."""

    def __init__(self, message: str, platform: str | None = None):
        super().__init__(message)
        self.platform = platform


class NormalizationError(IngestionError, ValueError):
    """A raw item could not be mapped onto the Event model."""
