"""Conflict-safe writes of relationships, credits and label links.

Each record is written independently: one failed upsert is recorded in the
result and the rest of the batch still lands.  Self-loops are rejected
before they reach the store.
"""

from __future__ import annotations

from artistgraph.interfaces.relationship_store import IRelationshipStore
from artistgraph.models.entities import (
    COUNTABLE_TYPES,
    LabelRelationship,
    Relationship,
    TrackCredit,
)
from artistgraph.models.pipeline import WriteResult
from artistgraph.utils.errors import StorageWriteError
from artistgraph.utils.logging import get_logger


def merge_pending(edges: list[Relationship]) -> list[Relationship]:
    """Collapse edges sharing a key before they are written.

    Applies the store's merge rules in memory (max strength, unioned
    evidence, summed counts except for influence) so a batch issues one
    upsert per key.  Input order of first appearance is preserved.
    """
    merged: dict[tuple[str, str, str], Relationship] = {}
    for edge in edges:
        existing = merged.get(edge.key)
        if existing is None:
            merged[edge.key] = edge
            continue
        count = existing.collaboration_count
        if edge.type in COUNTABLE_TYPES:
            count += edge.collaboration_count
        merged[edge.key] = existing.model_copy(
            update={
                "strength": max(existing.strength, edge.strength),
                "collaboration_count": count,
                "evidence_tracks": sorted(set(existing.evidence_tracks) | set(edge.evidence_tracks)),
                "evidence_releases": sorted(
                    set(existing.evidence_releases) | set(edge.evidence_releases)
                ),
                "source_data": existing.source_data
                + [d for d in edge.source_data if d not in existing.source_data],
            }
        )
    return list(merged.values())


class GraphWriter:
    """Writes discovered graph data through an :class:`IRelationshipStore`."""

    def __init__(self, relationship_store: IRelationshipStore) -> None:
        self._store = relationship_store
        self._logger = get_logger(__name__)

    async def upsert_edges(self, edges: list[Relationship]) -> WriteResult:
        """Write *edges*, merging with anything already stored.

        Returns
        -------
        WriteResult
            ``written`` counts successful upserts, ``rejected`` counts
            self-loops, ``errors`` holds one message per failed edge and
            ``relationships`` the stored state of each written edge.
        """
        accepted: list[Relationship] = []
        rejected = 0
        for edge in edges:
            if edge.is_self_loop:
                rejected += 1
                self._logger.debug(
                    "self_loop_rejected",
                    artist_id=edge.source_artist_id,
                    relationship_type=edge.type.value,
                )
                continue
            accepted.append(edge)

        written: list[Relationship] = []
        errors: list[str] = []
        for edge in merge_pending(accepted):
            try:
                written.append(await self._store.upsert_relationship(edge))
            except StorageWriteError as exc:
                errors.append(str(exc))
                self._logger.error(
                    "relationship_write_failed",
                    source=edge.source_artist_id,
                    target=edge.target_artist_id,
                    relationship_type=edge.type.value,
                    error=str(exc),
                )

        self._logger.info(
            "relationships_written",
            submitted=len(edges),
            written=len(written),
            rejected=rejected,
            failed=len(errors),
        )
        return WriteResult(
            written=len(written),
            rejected=rejected,
            errors=errors,
            relationships=written,
        )

    async def upsert_credits(self, credits: list[TrackCredit]) -> WriteResult:
        """Insert track credits; existing ``(track, artist, type)`` rows are left alone."""
        created = 0
        errors: list[str] = []
        for credit in credits:
            try:
                if await self._store.upsert_credit(credit):
                    created += 1
            except StorageWriteError as exc:
                errors.append(str(exc))
                self._logger.error("credit_write_failed", track_id=credit.track_id, error=str(exc))
        return WriteResult(written=created, errors=errors)

    async def upsert_labels(self, labels: list[LabelRelationship]) -> WriteResult:
        """Add artist-label links; release counts accumulate."""
        linked = 0
        errors: list[str] = []
        for label in labels:
            try:
                await self._store.upsert_label(label)
                linked += 1
            except StorageWriteError as exc:
                errors.append(str(exc))
                self._logger.error(
                    "label_write_failed",
                    artist_id=label.artist_id,
                    label=label.label_name,
                    error=str(exc),
                )
        return WriteResult(written=linked, errors=errors)
