"""Error taxonomy for the enrichment pipeline."""

from __future__ import annotations


class EnrichmentError(RuntimeError):
    """Base class for every failure the pipeline raises on purpose."""


class ConfigError(EnrichmentError):
    """A required setting is missing or malformed."""


class QueryError(EnrichmentError):
    """Search-index query or pagination failed."""


class TransportError(EnrichmentError):
    """Network or decode failure reaching the catalog or a detail page."""


class NotFoundError(EnrichmentError):
    """The catalog has no usable entry for an identifier."""


class ParseError(EnrichmentError):
    """A numeric or date field could not be parsed."""


class UpsertError(EnrichmentError):
    """The book index rejected a document."""
