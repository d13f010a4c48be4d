"""Abstract base class for artist-profile persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod

from artistgraph.models.entities import ArtistProfile


class IArtistStore(ABC):
    """Contract for storing canonical artist profiles.

    The store enforces slug uniqueness; ``create`` surfaces a violation as
    :class:`~artistgraph.utils.errors.StorageConflictError` so callers can
    fall back to reading the row that won.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indexes if they do not exist."""

    @abstractmethod
    async def get_by_name(self, name: str) -> ArtistProfile | None:
        """Return the profile whose display name equals *name* exactly."""

    @abstractmethod
    async def get_by_slug(self, slug: str) -> ArtistProfile | None:
        """Return the profile for *slug*, or ``None``."""

    @abstractmethod
    async def get_by_id(self, artist_id: str) -> ArtistProfile | None:
        """Return the profile with primary key *artist_id*, or ``None``."""

    @abstractmethod
    async def get_many(self, artist_ids: list[str]) -> dict[str, ArtistProfile]:
        """Return profiles for *artist_ids* keyed by id; missing ids are absent."""

    @abstractmethod
    async def create(self, profile: ArtistProfile) -> ArtistProfile:
        """Insert *profile*.

        Raises
        ------
        StorageConflictError
            If a profile with the same slug already exists.
        StorageWriteError
            On any other write failure.
        """

    @abstractmethod
    async def add_external_ids(self, artist_id: str, external_ids: dict[str, str]) -> ArtistProfile | None:
        """Merge provider ids into the profile without overwriting existing keys."""

    @abstractmethod
    async def add_genres(self, artist_id: str, genres: list[str]) -> ArtistProfile | None:
        """Union *genres* into the profile's genre set."""

    @abstractmethod
    async def list_profiles(self, limit: int, offset: int) -> list[ArtistProfile]:
        """Return profiles newest first."""

    @abstractmethod
    async def count(self) -> int:
        """Return the number of stored profiles."""
