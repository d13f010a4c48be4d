"""Unit tests for the pydantic models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from artistgraph.models.entities import (
    ArtistProfile,
    Relationship,
    RelationshipType,
    TrackRecord,
    TrackSource,
)
from artistgraph.models.pipeline import (
    PHASE_TRANSITIONS,
    BatchErrorRecord,
    BatchPhase,
    BatchRequest,
    BatchSource,
    DiscoverArtistRequest,
)
from artistgraph.models.quota import QuotaLimits


class TestRelationship:
    @pytest.mark.parametrize("raw,expected", [(-3, 0.0), (4.5, 4.5), (12, 10.0), ("7", 7.0)])
    def test_strength_clipped(self, raw, expected: float) -> None:
        edge = Relationship(
            source_artist_id="a", target_artist_id="b", type=RelationshipType.REMIX, strength=raw
        )
        assert edge.strength == expected

    def test_key_and_self_loop(self) -> None:
        edge = Relationship(
            source_artist_id="a", target_artist_id="a", type=RelationshipType.FEATURED, strength=6
        )
        assert edge.key == ("a", "a", "featured")
        assert edge.is_self_loop
        assert edge.verified is False
        assert edge.collaboration_count == 1

    def test_frozen(self) -> None:
        edge = Relationship(
            source_artist_id="a", target_artist_id="b", type=RelationshipType.REMIX, strength=5
        )
        with pytest.raises(ValidationError):
            edge.strength = 9.0


class TestEntities:
    def test_profile_defaults(self) -> None:
        first = ArtistProfile(name="Carl Craig", slug="carl-craig")
        second = ArtistProfile(name="Carl Craig", slug="carl-craig")
        assert first.id != second.id
        assert first.external_ids == {}
        assert first.created_at.tzinfo is not None

    def test_track_table(self) -> None:
        assert TrackRecord(track_id="1").table == "live_tracks"
        assert TrackRecord(track_id="1", source=TrackSource.ARCHIVE).table == "archive_tracks"


class TestBatchModels:
    def test_providers_normalized_and_deduped(self) -> None:
        request = BatchRequest(providers=[" Discogs", "spotify", "DISCOGS", ""])
        assert request.providers == ["discogs", "spotify"]

    def test_defaults(self) -> None:
        request = BatchRequest()
        assert request.limit == 100
        assert request.offset == 0
        assert request.source is BatchSource.BOTH
        assert request.providers == ["discogs", "spotify"]

    def test_empty_providers_allowed(self) -> None:
        assert BatchRequest(providers=[]).providers == []

    @pytest.mark.parametrize("field,value", [("limit", 0), ("limit", 1001), ("offset", -1)])
    def test_bounds(self, field: str, value: int) -> None:
        with pytest.raises(ValidationError):
            BatchRequest(**{field: value})

    def test_discover_request_requires_name(self) -> None:
        with pytest.raises(ValidationError):
            DiscoverArtistRequest(artist_name="")

    @pytest.mark.parametrize(
        "source,expected",
        [
            (BatchSource.LIVE, [TrackSource.LIVE]),
            (BatchSource.ARCHIVE, [TrackSource.ARCHIVE]),
            (BatchSource.BOTH, [TrackSource.LIVE, TrackSource.ARCHIVE]),
        ],
    )
    def test_track_sources(self, source: BatchSource, expected: list[TrackSource]) -> None:
        assert source.track_sources() == expected

    def test_phase_transitions_move_forward(self) -> None:
        assert PHASE_TRANSITIONS[BatchPhase.FETCHING] == {BatchPhase.PROCESSING, BatchPhase.SUMMARIZING}
        assert PHASE_TRANSITIONS[BatchPhase.PROCESSING] == {BatchPhase.WRITING}
        assert PHASE_TRANSITIONS[BatchPhase.SUMMARIZING] == frozenset()

    def test_error_record_render(self) -> None:
        with_item = BatchErrorRecord(phase=BatchPhase.PROCESSING, message="bad", item="track 7")
        without = BatchErrorRecord(phase=BatchPhase.WRITING, message="bad")
        assert with_item.render() == "track 7: bad"
        assert without.render() == "bad"


class TestQuotaLimits:
    def test_positive_ceilings_required(self) -> None:
        with pytest.raises(ValidationError):
            QuotaLimits(per_minute=0, daily=10)
