"""Abstract base class for the track sources the pipeline reads from."""

from __future__ import annotations

from abc import ABC, abstractmethod

from artistgraph.models.entities import TrackRecord, TrackSource


class ITrackStore(ABC):
    """Read access to the live-radio log and the show archive.

    Pages are ordered by ``created_at`` descending with ``track_id`` as a
    tiebreak, so consecutive ``offset`` windows over an unchanged store
    never overlap.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indexes if they do not exist."""

    @abstractmethod
    async def fetch_page(
        self,
        sources: list[TrackSource],
        limit: int,
        offset: int,
    ) -> list[TrackRecord]:
        """Return one page of tracks drawn from *sources*.

        Raises
        ------
        ConfigurationError
            If the backing store cannot be reached.
        """

    @abstractmethod
    async def add_tracks(self, tracks: list[TrackRecord]) -> int:
        """Insert tracks, ignoring ids that already exist; return rows added."""

    @abstractmethod
    async def count(self, sources: list[TrackSource]) -> int:
        """Return the number of tracks across *sources*."""
