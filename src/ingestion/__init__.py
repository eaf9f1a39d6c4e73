"""Data ingestion module - adapters, normalization, and batch orchestration."""

from src.ingestion.schemas import (
    EventType,
    LiveRef,
    Platform,
    RawItem,
    SourceDetails,
    SourceRef,
)

__all__ = [
    "EventType",
    "LiveRef",
    "Platform",
    "RawItem",
    "SourceDetails",
    "SourceRef",
]
