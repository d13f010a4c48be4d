"""Abstract base class for relationship-graph persistence."""

from __future__ import annotations

from abc import ABC, abstractmethod

from artistgraph.models.entities import (
    LabelRelationship,
    Relationship,
    RelationshipType,
    TrackCredit,
)


class IRelationshipStore(ABC):
    """Contract for the relationship graph, track credits and label links.

    Every write is an upsert on the natural key and must be safe under
    concurrent writers without application-level locking.
    """

    @abstractmethod
    async def initialize(self) -> None:
        """Create tables and indexes if they do not exist."""

    @abstractmethod
    async def upsert_relationship(self, relationship: Relationship) -> Relationship:
        """Insert or merge an edge keyed by ``(source, target, type)``.

        On conflict the stored edge keeps the larger strength, the union of
        evidence, appended provenance and its ``verified`` flag.
        ``collaboration_count`` is summed for countable types and left
        unchanged for ``influence``.

        Returns
        -------
        Relationship
            The edge as stored after the merge.

        Raises
        ------
        StorageWriteError
            If the write fails.
        """

    @abstractmethod
    async def upsert_credit(self, credit: TrackCredit) -> bool:
        """Insert a credit; return ``False`` if it already existed."""

    @abstractmethod
    async def upsert_label(self, label: LabelRelationship) -> LabelRelationship:
        """Insert or add to an artist-label link keyed by ``(artist_id, label_name)``."""

    @abstractmethod
    async def list_relationships(
        self,
        artist_id: str | None = None,
        relationship_type: RelationshipType | None = None,
        min_strength: float = 0.0,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Relationship]:
        """Return edges touching *artist_id* (either end), strongest first."""

    @abstractmethod
    async def count_relationships(self) -> dict[str, int]:
        """Return edge counts keyed by relationship type, plus ``"total"``."""

    @abstractmethod
    async def count_credits(self) -> int:
        """Return the number of stored track credits."""
