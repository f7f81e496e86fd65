"""Media server client and types."""

from .client import MediaClient, prefetch_path, redact_headers
from .types import HealthStatus, PrefetchOutcome, TrackMetadata, TrackStream

__all__ = [
    "MediaClient",
    "prefetch_path",
    "redact_headers",
    # Types
    "HealthStatus",
    "PrefetchOutcome",
    "TrackMetadata",
    "TrackStream",
]
