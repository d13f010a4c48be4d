"""Utility modules for artistgraph.

- **errors** -- exception hierarchy rooted at ArtistGraphError.
- **concurrency** -- semaphore-bounded fan-out used as the enrichment
  worker pool.
- **logging** -- structlog setup (console in development, JSON in
  production).
- **text_normalizer** -- canonical artist slugs and provider search
  ranking.
"""

from artistgraph.utils.concurrency import bounded_map, throttled_gather
from artistgraph.utils.errors import (
    ArtistGraphError,
    ConfigurationError,
    InvalidNameError,
    PipelineError,
    ProviderNotFoundError,
    ProviderTransportError,
    QuotaDeferredError,
    QuotaExceededError,
    StorageConflictError,
    StorageWriteError,
)
from artistgraph.utils.logging import configure_logging, get_logger
from artistgraph.utils.text_normalizer import (
    NormalizedName,
    clean_search_query,
    match_confidence,
    normalize_name,
)

__all__ = [
    "ArtistGraphError",
    "ConfigurationError",
    "InvalidNameError",
    "NormalizedName",
    "PipelineError",
    "ProviderNotFoundError",
    "ProviderTransportError",
    "QuotaDeferredError",
    "QuotaExceededError",
    "StorageConflictError",
    "StorageWriteError",
    "bounded_map",
    "clean_search_query",
    "configure_logging",
    "get_logger",
    "match_confidence",
    "normalize_name",
    "throttled_gather",
]
