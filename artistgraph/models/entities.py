"""Core graph entities: artist profiles, relationships, credits, labels, tracks.

All models are frozen pydantic v2 models; updates go through
``model_copy(update={...})``.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

MIN_STRENGTH = 0.0
MAX_STRENGTH = 10.0


def _utcnow() -> datetime:
    return datetime.now(tz=timezone.utc)  # noqa: UP017


def new_artist_id() -> str:
    return str(uuid.uuid4())


class RelationshipType(str, Enum):  # noqa: UP042
    """Kinds of directed edge between two artists."""

    COLLABORATION = "collaboration"
    FEATURED = "featured"
    REMIX = "remix"
    PRODUCER = "producer"
    INFLUENCE = "influence"


# Influence edges come from taste graphs, not from counted co-appearances.
COUNTABLE_TYPES = frozenset(
    {
        RelationshipType.COLLABORATION,
        RelationshipType.FEATURED,
        RelationshipType.REMIX,
        RelationshipType.PRODUCER,
    }
)


class CreatedVia(str, Enum):  # noqa: UP042
    """How an artist profile first came into existence."""

    MANUAL = "manual"
    TRACK_PARSING = "track-parsing"
    ENRICHMENT = "enrichment"


class CreditType(str, Enum):  # noqa: UP042
    MAIN_ARTIST = "main_artist"
    FEATURED_ARTIST = "featured_artist"
    REMIXER = "remixer"
    PRODUCER = "producer"


class TrackSource(str, Enum):  # noqa: UP042
    """Where a track record lives: the live-radio log or the show archive."""

    LIVE = "live"
    ARCHIVE = "archive"


class ArtistProfile(BaseModel):
    """Canonical artist record; exactly one per slug.

    Profiles are only ever extended: external ids and genres are added,
    never overwritten or removed.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_artist_id)
    name: str
    slug: str
    # provider name -> provider artist id
    external_ids: dict[str, str] = Field(default_factory=dict)
    genres: list[str] = Field(default_factory=list)
    created_via: CreatedVia = CreatedVia.MANUAL
    created_at: datetime = Field(default_factory=_utcnow)


class Relationship(BaseModel):
    """A directed, typed edge between two artist profiles.

    Unique on ``(source_artist_id, target_artist_id, type)``.  Strength is
    clipped into ``[0, 10]`` on construction.  Machine-generated edges are
    never ``verified``; only a human review flips that flag.
    """

    model_config = ConfigDict(frozen=True)

    source_artist_id: str
    target_artist_id: str
    type: RelationshipType
    strength: float = Field(ge=MIN_STRENGTH, le=MAX_STRENGTH)
    collaboration_count: int = Field(default=1, ge=0)
    evidence_tracks: list[str] = Field(default_factory=list)
    evidence_releases: list[str] = Field(default_factory=list)
    # Provenance entries: {"source": provider or parse rule, ...raw fields}
    source_data: list[dict[str, Any]] = Field(default_factory=list)
    verified: bool = False

    @field_validator("strength", mode="before")
    @classmethod
    def _clip_strength(cls, value: Any) -> float:
        return min(MAX_STRENGTH, max(MIN_STRENGTH, float(value)))

    @property
    def is_self_loop(self) -> bool:
        return self.source_artist_id == self.target_artist_id

    @property
    def key(self) -> tuple[str, str, str]:
        return (self.source_artist_id, self.target_artist_id, self.type.value)


class TrackCredit(BaseModel):
    """Links a track row to an artist in a given role.

    Unique on ``(track_id, artist_id, credit_type)``.
    """

    model_config = ConfigDict(frozen=True)

    track_id: str
    track_table: str
    artist_id: str
    credit_type: CreditType
    source_api: str
    confidence: float = Field(ge=0.0, le=1.0)


class LabelRelationship(BaseModel):
    """An artist's association with a record label; upserts are additive."""

    model_config = ConfigDict(frozen=True)

    artist_id: str
    label_name: str
    label_external_id: str | None = None
    release_count: int = Field(default=1, ge=0)
    source_data: list[dict[str, Any]] = Field(default_factory=list)


class TrackRecord(BaseModel):
    """One row from the live log or the archive catalog.

    ``artist`` and ``title`` may be missing on malformed rows; the
    orchestrator records those as per-item errors.  ``defect`` is set by
    the store when a row could not be read as stored.
    """

    model_config = ConfigDict(frozen=True)

    track_id: str
    artist: str | None = None
    title: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    source: TrackSource = TrackSource.LIVE
    defect: str | None = None

    @property
    def table(self) -> str:
        return "live_tracks" if self.source is TrackSource.LIVE else "archive_tracks"


class CandidateEdge(BaseModel):
    """A relationship parsed out of raw strings, before name resolution.

    ``rule`` names the parse rule that fired and ``matched_text`` is the raw
    field it matched against; both are kept as provenance.
    """

    model_config = ConfigDict(frozen=True)

    type: RelationshipType
    strength: float
    source_name: str
    target_name: str
    rule: str
    matched_text: str
