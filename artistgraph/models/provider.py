"""Provider-neutral shapes returned by music-metadata clients."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ProviderArtist(BaseModel):
    """An artist as a provider knows it."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    provider: str
    # 0-100 where the provider exposes it (Spotify); ``None`` elsewhere.
    popularity: int | None = None
    genres: list[str] = Field(default_factory=list)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)


class NetworkOptions(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_items: int = Field(default=20, ge=1, le=200)
    include_producers: bool = True
    include_labels: bool = True


class Collaborator(BaseModel):
    """Someone who shared releases or tracks with the queried artist."""

    model_config = ConfigDict(frozen=True)

    artist_name: str
    artist_id: str | None = None
    collaboration_count: int = Field(default=1, ge=1)
    roles: list[str] = Field(default_factory=list)
    # Provider release / track ids that back this collaboration.
    evidence: list[str] = Field(default_factory=list)


class LabelCredit(BaseModel):
    model_config = ConfigDict(frozen=True)

    label_name: str
    label_id: str | None = None
    release_count: int = Field(default=1, ge=1)
    evidence: list[str] = Field(default_factory=list)


class CollaborationNetwork(BaseModel):
    """Collaborators and labels for one artist, keyed by provider id or name."""

    model_config = ConfigDict(frozen=True)

    collaborators: dict[str, Collaborator] = Field(default_factory=dict)
    labels: dict[str, LabelCredit] = Field(default_factory=dict)


class RelatedArtist(BaseModel):
    """A taste-graph neighbour (e.g. Spotify related artists)."""

    model_config = ConfigDict(frozen=True)

    name: str
    id: str
    genres: list[str] = Field(default_factory=list)
    popularity: int | None = None
