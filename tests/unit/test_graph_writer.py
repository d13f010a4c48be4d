"""Unit tests for GraphWriter and in-batch edge merging."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from artistgraph.models.entities import (
    CreditType,
    LabelRelationship,
    Relationship,
    RelationshipType,
    TrackCredit,
)
from artistgraph.providers.storage.sqlite_relationship_store import SQLiteRelationshipStore
from artistgraph.services.graph_writer import GraphWriter, merge_pending
from artistgraph.utils.errors import StorageWriteError


def _edge(source: str, target: str, rel_type: RelationshipType = RelationshipType.COLLABORATION, **kwargs):
    defaults = {"strength": 5.0}
    defaults.update(kwargs)
    return Relationship(source_artist_id=source, target_artist_id=target, type=rel_type, **defaults)


# ======================================================================
# merge_pending
# ======================================================================


class TestMergePending:
    def test_same_key_collapses(self) -> None:
        merged = merge_pending(
            [
                _edge("a", "b", strength=3.0, evidence_tracks=["live:1"], source_data=[{"source": "x"}]),
                _edge("a", "b", strength=6.0, evidence_tracks=["live:2"], source_data=[{"source": "x"}]),
            ]
        )

        assert len(merged) == 1
        assert merged[0].strength == 6.0
        assert merged[0].collaboration_count == 2
        assert merged[0].evidence_tracks == ["live:1", "live:2"]
        assert merged[0].source_data == [{"source": "x"}]

    def test_influence_counts_not_summed(self) -> None:
        merged = merge_pending(
            [
                _edge("a", "b", RelationshipType.INFLUENCE, collaboration_count=0),
                _edge("a", "b", RelationshipType.INFLUENCE, collaboration_count=0, strength=8.0),
            ]
        )
        assert merged[0].collaboration_count == 0
        assert merged[0].strength == 8.0

    def test_distinct_keys_keep_first_appearance_order(self) -> None:
        merged = merge_pending(
            [
                _edge("a", "b"),
                _edge("b", "a"),
                _edge("a", "b", RelationshipType.REMIX),
                _edge("a", "b"),
            ]
        )
        assert [e.key for e in merged] == [
            ("a", "b", "collaboration"),
            ("b", "a", "collaboration"),
            ("a", "b", "remix"),
        ]


# ======================================================================
# Edge writes against SQLite
# ======================================================================


class TestUpsertEdges:
    @pytest.mark.asyncio
    async def test_self_loops_rejected(self, relationship_store: SQLiteRelationshipStore) -> None:
        writer = GraphWriter(relationship_store)

        result = await writer.upsert_edges([_edge("a", "a"), _edge("a", "b")])

        assert result.written == 1
        assert result.rejected == 1
        assert result.errors == []
        assert (await relationship_store.count_relationships())["total"] == 1

    @pytest.mark.asyncio
    async def test_repeated_batches_merge(self, relationship_store: SQLiteRelationshipStore) -> None:
        writer = GraphWriter(relationship_store)

        await writer.upsert_edges([_edge("a", "b", strength=7.0, evidence_tracks=["live:1"])])
        result = await writer.upsert_edges(
            [_edge("a", "b", strength=4.0, evidence_tracks=["live:1", "archive:9"])]
        )

        stored = result.relationships[0]
        assert stored.strength == 7.0
        assert stored.collaboration_count == 2
        assert set(stored.evidence_tracks) == {"live:1", "archive:9"}

    @pytest.mark.asyncio
    async def test_empty_batch(self, relationship_store: SQLiteRelationshipStore) -> None:
        result = await GraphWriter(relationship_store).upsert_edges([])
        assert result.written == 0
        assert result.relationships == []


# ======================================================================
# Failure isolation
# ======================================================================


class TestFailureIsolation:
    @pytest.mark.asyncio
    async def test_failed_edge_does_not_stop_batch(self) -> None:
        store = AsyncMock()

        async def upsert(edge: Relationship) -> Relationship:
            if edge.target_artist_id == "bad":
                raise StorageWriteError(message="disk full", provider_name="sqlite")
            return edge

        store.upsert_relationship.side_effect = upsert

        result = await GraphWriter(store).upsert_edges(
            [_edge("a", "b"), _edge("a", "bad"), _edge("a", "c")]
        )

        assert result.written == 2
        assert result.errors == ["[sqlite] disk full"]
        assert store.upsert_relationship.await_count == 3

    @pytest.mark.asyncio
    async def test_failed_credit_and_label_recorded(self) -> None:
        store = AsyncMock()
        store.upsert_credit.side_effect = [True, StorageWriteError(message="locked")]
        store.upsert_label.side_effect = StorageWriteError(message="locked")
        credit = TrackCredit(
            track_id="1",
            track_table="live_tracks",
            artist_id="a",
            credit_type=CreditType.MAIN_ARTIST,
            source_api="track-parsing",
            confidence=1.0,
        )
        writer = GraphWriter(store)

        credits = await writer.upsert_credits([credit, credit.model_copy(update={"artist_id": "b"})])
        labels = await writer.upsert_labels([LabelRelationship(artist_id="a", label_name="Tresor")])

        assert credits.written == 1
        assert credits.errors == ["locked"]
        assert labels.written == 0
        assert labels.errors == ["locked"]


# ======================================================================
# Credits and labels against SQLite
# ======================================================================


class TestCreditsAndLabels:
    @pytest.mark.asyncio
    async def test_credits_counted_only_when_new(self, relationship_store: SQLiteRelationshipStore) -> None:
        writer = GraphWriter(relationship_store)
        credit = TrackCredit(
            track_id="42",
            track_table="archive_tracks",
            artist_id="a",
            credit_type=CreditType.REMIXER,
            source_api="track-parsing",
            confidence=0.7,
        )

        first = await writer.upsert_credits([credit])
        second = await writer.upsert_credits([credit])

        assert first.written == 1
        assert second.written == 0

    @pytest.mark.asyncio
    async def test_labels_written(self, relationship_store: SQLiteRelationshipStore) -> None:
        writer = GraphWriter(relationship_store)
        result = await writer.upsert_labels(
            [
                LabelRelationship(artist_id="a", label_name="Tresor", release_count=2),
                LabelRelationship(artist_id="a", label_name="Axis", release_count=1),
            ]
        )
        assert result.written == 2
