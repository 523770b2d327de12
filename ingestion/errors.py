"""
Exceptions raised by the ingestion pipelines.

Recoverable problems (classification lookup, translation) never surface as
exceptions; everything defined here is fatal for the current run.
"""


class IngestionError(Exception):
    """Base class for fatal pipeline errors."""


class ConfigurationError(IngestionError):
    """A required setting is missing or invalid."""


class SourceError(IngestionError):
    """The listing service or roster document could not be read."""


class VectorizationError(IngestionError):
    """The embedding service failed or returned an unusable response."""


class StoreError(IngestionError):
    """An upsert or read-back against the store failed."""
