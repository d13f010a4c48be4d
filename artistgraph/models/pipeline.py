"""Batch lifecycle models.

``BatchState`` is frozen; the orchestrator advances it through
``FETCHING -> PROCESSING -> WRITING -> SUMMARIZING`` with
``model_copy(update={...})``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from artistgraph.models.entities import Relationship, TrackSource

DEFAULT_PROVIDERS = ("discogs", "spotify")
SAMPLE_SIZE = 5


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


class BatchPhase(str, Enum):  # noqa: UP042
    FETCHING = "FETCHING"
    PROCESSING = "PROCESSING"
    WRITING = "WRITING"
    SUMMARIZING = "SUMMARIZING"


# Allowed forward moves; SUMMARIZING is terminal.
PHASE_TRANSITIONS: dict[BatchPhase, frozenset[BatchPhase]] = {
    BatchPhase.FETCHING: frozenset({BatchPhase.PROCESSING, BatchPhase.SUMMARIZING}),
    BatchPhase.PROCESSING: frozenset({BatchPhase.WRITING}),
    BatchPhase.WRITING: frozenset({BatchPhase.SUMMARIZING}),
    BatchPhase.SUMMARIZING: frozenset(),
}


class BatchSource(str, Enum):  # noqa: UP042
    LIVE = "live"
    ARCHIVE = "archive"
    BOTH = "both"

    def track_sources(self) -> list[TrackSource]:
        if self is BatchSource.LIVE:
            return [TrackSource.LIVE]
        if self is BatchSource.ARCHIVE:
            return [TrackSource.ARCHIVE]
        return [TrackSource.LIVE, TrackSource.ARCHIVE]


def _normalize_providers(value: Any) -> list[str]:
    seen: list[str] = []
    for name in value or []:
        key = str(name).strip().lower()
        if key and key not in seen:
            seen.append(key)
    return seen


class BatchRequest(BaseModel):
    """Input to a track batch.  An empty ``providers`` list means local parsing only."""

    model_config = ConfigDict(frozen=True)

    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)
    source: BatchSource = BatchSource.BOTH
    providers: list[str] = Field(default_factory=lambda: list(DEFAULT_PROVIDERS))

    @field_validator("providers", mode="before")
    @classmethod
    def _dedupe_providers(cls, value: Any) -> list[str]:
        return _normalize_providers(value)


class ArtistBatchRequest(BaseModel):
    """Input to an enrichment pass over stored artist profiles."""

    model_config = ConfigDict(frozen=True)

    limit: int = Field(default=25, ge=1, le=500)
    offset: int = Field(default=0, ge=0)
    providers: list[str] = Field(default_factory=lambda: list(DEFAULT_PROVIDERS))

    @field_validator("providers", mode="before")
    @classmethod
    def _dedupe_providers(cls, value: Any) -> list[str]:
        return _normalize_providers(value)


class DiscoverArtistRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    artist_name: str = Field(min_length=1)
    providers: list[str] = Field(default_factory=lambda: list(DEFAULT_PROVIDERS))
    max_relationships: int = Field(default=50, ge=1, le=500)
    include_producers: bool = True
    include_labels: bool = True

    @field_validator("providers", mode="before")
    @classmethod
    def _dedupe_providers(cls, value: Any) -> list[str]:
        return _normalize_providers(value)


class BatchCursor(BaseModel):
    """Where the next batch should start."""

    model_config = ConfigDict(frozen=True)

    offset: int = Field(ge=0)
    limit: int = Field(ge=1)
    source: BatchSource = BatchSource.BOTH


class BatchErrorRecord(BaseModel):
    """A per-item failure; recorded, never raised."""

    model_config = ConfigDict(frozen=True)

    phase: BatchPhase
    message: str
    item: str | None = None
    timestamp: datetime = Field(default_factory=_utcnow)

    def render(self) -> str:
        if self.item:
            return f"{self.item}: {self.message}"
        return self.message


class BatchState(BaseModel):
    """Snapshot of one batch run."""

    model_config = ConfigDict(frozen=True)

    batch_id: str
    request: BatchRequest | ArtistBatchRequest
    phase: BatchPhase = BatchPhase.FETCHING
    items_total: int = 0
    items_processed: int = 0
    cancelled: bool = False
    errors: list[BatchErrorRecord] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=_utcnow)
    completed_at: datetime | None = None


class WriteResult(BaseModel):
    """Outcome of one graph-writer call."""

    model_config = ConfigDict(frozen=True)

    written: int = 0
    rejected: int = 0
    errors: list[str] = Field(default_factory=list)
    relationships: list[Relationship] = Field(default_factory=list)


class RelationshipSample(BaseModel):
    """Name-resolved view of a written relationship for summaries."""

    model_config = ConfigDict(frozen=True)

    source: str
    target: str
    type: str
    strength: float


class BatchSummary(BaseModel):
    """Result of a track batch."""

    model_config = ConfigDict(frozen=True)

    tracks_processed: int = 0
    artists_found: int = 0
    relationships_discovered: int = 0
    relationships_saved: int = 0
    credits_created: int = 0
    labels_linked: int = 0
    invalid_names: int = 0
    quota_deferred: int = 0
    cancelled: bool = False
    next_batch: BatchCursor
    sample_relationships: list[RelationshipSample] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class ArtistBatchSummary(BaseModel):
    """Result of an artist enrichment pass."""

    model_config = ConfigDict(frozen=True)

    artists_processed: int = 0
    artists_enriched: int = 0
    relationships_discovered: int = 0
    relationships_saved: int = 0
    labels_linked: int = 0
    quota_deferred: int = 0
    cancelled: bool = False
    next_offset: int = 0
    sample_relationships: list[RelationshipSample] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)


class DiscoverArtistResult(BaseModel):
    """Result of a single-artist discovery."""

    model_config = ConfigDict(frozen=True)

    artist_id: str
    artist_name: str
    external_ids: dict[str, str] = Field(default_factory=dict)
    relationships_discovered: int = 0
    relationships_saved: int = 0
    labels_linked: int = 0
    relationships: list[RelationshipSample] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
