"""Exception hierarchy for the event aggregation pipeline.

A cache miss is not an error; ``QueryCache.get`` simply returns ``None``.
"""
from typing import Optional


class EventPipelineError(Exception):
    """Base class for all pipeline errors."""


class ValidationError(EventPipelineError, ValueError):
    """Malformed filters or options passed by a caller."""


class ProviderError(EventPipelineError):
    """A single upstream provider failed to fetch or normalize events."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"[{provider}] {message}")


class StorageError(EventPipelineError):
    """A persistent store operation failed."""

    def __init__(self, message: str, event_id: Optional[str] = None):
        self.event_id = event_id
        super().__init__(message)


class DedupInvariantError(EventPipelineError):
    """The dedup engine reached a state that would silently drop data."""


class AggregationError(EventPipelineError):
    """Neither the store nor any provider could serve the request."""
