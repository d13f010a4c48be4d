"""Integration tests for BatchOrchestrator over real SQLite stores."""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone

import aiosqlite
import pytest

from artistgraph.models.entities import RelationshipType, TrackRecord, TrackSource
from artistgraph.models.pipeline import (
    ArtistBatchRequest,
    BatchRequest,
    BatchSource,
    DiscoverArtistRequest,
)
from artistgraph.models.provider import (
    CollaborationNetwork,
    Collaborator,
    LabelCredit,
    ProviderArtist,
    RelatedArtist,
)
from artistgraph.models.quota import QuotaLimits
from artistgraph.providers.storage.sqlite_artist_store import SQLiteArtistStore
from artistgraph.providers.storage.sqlite_quota_store import SQLiteQuotaStateStore
from artistgraph.providers.storage.sqlite_relationship_store import SQLiteRelationshipStore
from artistgraph.providers.storage.sqlite_track_store import SQLiteTrackStore
from artistgraph.services.quota_manager import QuotaManager
from artistgraph.utils.errors import ConfigurationError, InvalidNameError

_BASE_TIME = datetime(2024, 1, 1, tzinfo=timezone.utc)  # noqa: UP017


def _track(
    track_id: str,
    artist: str | None,
    title: str | None,
    minutes: int,
    source: TrackSource = TrackSource.LIVE,
) -> TrackRecord:
    return TrackRecord(
        track_id=track_id,
        artist=artist,
        title=title,
        created_at=_BASE_TIME + timedelta(minutes=minutes),
        source=source,
    )


def _parse_only(limit: int = 10, offset: int = 0, source: BatchSource = BatchSource.BOTH) -> BatchRequest:
    return BatchRequest(limit=limit, offset=offset, source=source, providers=[])


@pytest.fixture
def discogs(make_provider, quota_manager: QuotaManager):
    return make_provider(
        name="discogs",
        weight=1.5,
        quota_manager=quota_manager,
        artists={"Carl Craig": ProviderArtist(id="d1", name="Carl Craig", provider="discogs")},
        networks={
            "d1": CollaborationNetwork(
                collaborators={
                    "d2": Collaborator(
                        artist_name="Moodymann", artist_id="d2", collaboration_count=2, roles=["Remix"]
                    ),
                    "d3": Collaborator(
                        artist_name="Francesco Tristano", artist_id="d3", collaboration_count=8
                    ),
                },
                labels={"55": LabelCredit(label_name="Planet E", label_id="55", release_count=3)},
            )
        },
    )


@pytest.fixture
def spotify(make_provider, quota_manager: QuotaManager):
    return make_provider(
        name="spotify",
        weight=1.0,
        quota_manager=quota_manager,
        artists={
            "Carl Craig": ProviderArtist(id="s1", name="Carl Craig", provider="spotify", popularity=70)
        },
        related={"s1": [RelatedArtist(name="Derrick May", id="s2", popularity=50)]},
    )


# ======================================================================
# Parse-only track batches
# ======================================================================


class TestTrackBatchParsing:
    @pytest.mark.asyncio
    async def test_parse_only_batch(
        self,
        make_orchestrator,
        track_store: SQLiteTrackStore,
        relationship_store: SQLiteRelationshipStore,
        artist_store: SQLiteArtistStore,
    ) -> None:
        await track_store.add_tracks(
            [
                _track("1", "Artist A & Artist B", "Track", 3),
                _track("2", "Artist A", "Track (feat. Artist C)", 2),
                _track("3", "Artist A", "Track (DJ Remixer Remix)", 1, TrackSource.ARCHIVE),
            ]
        )

        summary = await make_orchestrator().run_track_batch(_parse_only())

        assert summary.tracks_processed == 3
        assert summary.relationships_discovered == 4
        assert summary.relationships_saved == 4
        assert summary.errors == []
        assert summary.cancelled is False
        assert summary.next_batch.offset == 10
        counts = await relationship_store.count_relationships()
        assert counts["collaboration"] == 2
        assert counts["featured"] == 1
        assert counts["remix"] == 1

        artist_a = await artist_store.get_by_slug("artist-a")
        [remix] = await relationship_store.list_relationships(
            artist_id=artist_a.id, relationship_type=RelationshipType.REMIX
        )
        assert remix.evidence_tracks == ["archive:3"]
        assert remix.source_data[0]["source"] == "track-parsing"
        assert remix.source_data[0]["track_table"] == "archive_tracks"
        assert remix.verified is False

    @pytest.mark.asyncio
    async def test_credits_created(
        self, make_orchestrator, track_store: SQLiteTrackStore, relationship_store: SQLiteRelationshipStore
    ) -> None:
        await track_store.add_tracks([_track("1", "Artist A", "Track (feat. Artist C)", 1)])

        summary = await make_orchestrator().run_track_batch(_parse_only())

        assert summary.credits_created == 2
        assert await relationship_store.count_credits() == 2

    @pytest.mark.asyncio
    async def test_rerun_is_idempotent_for_profiles_and_credits(
        self,
        make_orchestrator,
        track_store: SQLiteTrackStore,
        artist_store: SQLiteArtistStore,
        relationship_store: SQLiteRelationshipStore,
    ) -> None:
        await track_store.add_tracks([_track("1", "Artist A", "Track (feat. Artist C)", 1)])
        orchestrator = make_orchestrator()

        await orchestrator.run_track_batch(_parse_only())
        second = await orchestrator.run_track_batch(_parse_only())

        assert second.credits_created == 0
        assert await artist_store.count() == 2
        [edge] = await relationship_store.list_relationships()
        assert edge.collaboration_count == 2
        assert edge.evidence_tracks == ["live:1"]

    @pytest.mark.asyncio
    async def test_malformed_tracks_are_isolated(
        self, make_orchestrator, track_store: SQLiteTrackStore
    ) -> None:
        await track_store.add_tracks(
            [
                _track("1", "Artist A & Artist B", "Track", 4),
                _track("2", None, "No Artist", 3),
                _track("3", "!!", "Unusable", 2),
                _track("4", "Artist C", "Track (feat. Artist D)", 1),
            ]
        )

        summary = await make_orchestrator().run_track_batch(_parse_only())

        assert summary.tracks_processed == 4
        assert summary.relationships_saved == 3
        assert len(summary.errors) == 2
        assert summary.errors[0].startswith("track 2:")
        assert summary.errors[1].startswith("track 3:")
        assert summary.invalid_names == 2

    @pytest.mark.asyncio
    async def test_missing_title_is_an_error_not_an_invalid_name(
        self, make_orchestrator, track_store: SQLiteTrackStore
    ) -> None:
        await track_store.add_tracks([_track("1", "Artist A", None, 1)])

        summary = await make_orchestrator().run_track_batch(_parse_only())

        assert summary.invalid_names == 0
        assert summary.errors == ["track 1: Track has no title"]

    @pytest.mark.asyncio
    async def test_unreadable_timestamp_is_an_item_error(
        self, make_orchestrator, track_store: SQLiteTrackStore, db_path
    ) -> None:
        await track_store.add_tracks(
            [
                _track("1", "Artist A & Artist B", "Track", 2),
                _track("3", "Artist C", "Track (feat. Artist D)", 1),
            ]
        )
        async with aiosqlite.connect(db_path) as db:
            await db.execute(
                "INSERT INTO live_tracks (track_id, artist, title, created_at) VALUES (?, ?, ?, ?)",
                ("2", "Artist E", "Track (feat. Artist F)", "not-a-date"),
            )
            await db.commit()

        summary = await make_orchestrator().run_track_batch(_parse_only())

        assert summary.tracks_processed == 3
        assert summary.relationships_saved == 2
        assert len(summary.errors) == 1
        assert summary.errors[0].startswith("track 2:")
        assert summary.next_batch.offset == 10


    @pytest.mark.asyncio
    async def test_invalid_candidate_names_counted(
        self, make_orchestrator, track_store: SQLiteTrackStore
    ) -> None:
        await track_store.add_tracks([_track("1", "Artist A", "Track (feat. ?)", 1)])

        summary = await make_orchestrator().run_track_batch(_parse_only())

        assert summary.invalid_names == 1
        assert summary.relationships_saved == 0
        assert summary.errors == []

    @pytest.mark.asyncio
    async def test_empty_page(self, make_orchestrator) -> None:
        summary = await make_orchestrator().run_track_batch(_parse_only(offset=50))
        assert summary.tracks_processed == 0
        assert summary.next_batch.offset == 60


# ======================================================================
# Resumability and cancellation
# ======================================================================


class TestResumability:
    @pytest.mark.asyncio
    async def test_consecutive_batches_cover_disjoint_tracks(
        self, make_orchestrator, track_store: SQLiteTrackStore, relationship_store: SQLiteRelationshipStore
    ) -> None:
        sources = [TrackSource.LIVE, TrackSource.ARCHIVE]
        await track_store.add_tracks(
            [_track(str(i), f"Main {i}", f"Song (feat. Guest {i})", i, sources[i % 2]) for i in range(6)]
        )
        orchestrator = make_orchestrator()

        first = await orchestrator.run_track_batch(_parse_only(limit=4))
        second = await orchestrator.run_track_batch(
            _parse_only(limit=4, offset=first.next_batch.offset)
        )

        assert first.tracks_processed == 4
        assert second.tracks_processed == 2
        assert second.next_batch.offset == 8
        edges = await relationship_store.list_relationships(limit=100)
        assert len(edges) == 6
        assert all(e.collaboration_count == 1 for e in edges)

    @pytest.mark.asyncio
    async def test_single_source_batches(self, make_orchestrator, track_store: SQLiteTrackStore) -> None:
        await track_store.add_tracks(
            [
                _track("1", "Artist A", "Track (feat. Artist B)", 1),
                _track("2", "Artist C", "Track (feat. Artist D)", 2, TrackSource.ARCHIVE),
            ]
        )

        summary = await make_orchestrator().run_track_batch(_parse_only(source=BatchSource.ARCHIVE))

        assert summary.tracks_processed == 1
        assert summary.next_batch.source is BatchSource.ARCHIVE

    @pytest.mark.asyncio
    async def test_cancel_before_start(self, make_orchestrator, track_store: SQLiteTrackStore) -> None:
        await track_store.add_tracks([_track("1", "Artist A & Artist B", "Track", 1)])
        cancel = asyncio.Event()
        cancel.set()

        summary = await make_orchestrator().run_track_batch(_parse_only(offset=5), cancel_event=cancel)

        assert summary.cancelled is True
        assert summary.tracks_processed == 0
        assert summary.relationships_saved == 0
        assert summary.next_batch.offset == 5

    @pytest.mark.asyncio
    async def test_cancel_mid_batch_writes_processed_items(
        self,
        make_orchestrator,
        track_store: SQLiteTrackStore,
        relationship_store: SQLiteRelationshipStore,
        discogs,
    ) -> None:
        await track_store.add_tracks(
            [_track(str(i), f"Main {i}", f"Song (feat. Guest {i})", 10 - i) for i in range(5)]
        )
        cancel = asyncio.Event()
        orchestrator = make_orchestrator(providers={"discogs": discogs})
        original = orchestrator._process_track
        seen: list[str] = []

        async def process_and_cancel(track: TrackRecord):
            seen.append(track.track_id)
            if len(seen) == 2:
                cancel.set()
            return await original(track)

        orchestrator._process_track = process_and_cancel

        summary = await orchestrator.run_track_batch(
            BatchRequest(limit=5, providers=["discogs"]), cancel_event=cancel
        )

        assert summary.cancelled is True
        assert summary.tracks_processed == 2
        assert summary.relationships_saved == 2
        assert summary.next_batch.offset == 2
        assert discogs.calls == []
        assert (await relationship_store.count_relationships())["total"] == 2


# ======================================================================
# Provider enrichment
# ======================================================================


class TestTrackBatchEnrichment:
    @pytest.mark.asyncio
    async def test_providers_add_edges_and_labels(
        self,
        make_orchestrator,
        track_store: SQLiteTrackStore,
        artist_store: SQLiteArtistStore,
        relationship_store: SQLiteRelationshipStore,
        discogs,
        spotify,
    ) -> None:
        await track_store.add_tracks([_track("1", "Carl Craig", "At Les", 1)])
        orchestrator = make_orchestrator(providers={"discogs": discogs, "spotify": spotify})

        summary = await orchestrator.run_track_batch(
            BatchRequest(limit=10, providers=["discogs", "spotify"])
        )

        assert summary.errors == []
        assert summary.relationships_saved == 3
        assert summary.labels_linked == 1
        carl = await artist_store.get_by_slug("carl-craig")
        assert carl.external_ids == {"discogs": "d1", "spotify": "s1"}

        edges = {
            (e.type, e.strength) for e in await relationship_store.list_relationships(artist_id=carl.id)
        }
        assert edges == {
            (RelationshipType.COLLABORATION, 10.0),
            (RelationshipType.REMIX, 3.0),
            (RelationshipType.INFLUENCE, 8.0),
        }
        assert {s.source for s in summary.sample_relationships} == {"Carl Craig"}

    @pytest.mark.asyncio
    async def test_split_artists_enriched_individually(
        self, make_orchestrator, track_store: SQLiteTrackStore, discogs
    ) -> None:
        await track_store.add_tracks([_track("1", "Carl Craig & Moodymann", "Track", 1)])
        orchestrator = make_orchestrator(providers={"discogs": discogs})

        await orchestrator.run_track_batch(BatchRequest(limit=10, providers=["discogs"]))

        searched = sorted(key for op, key in discogs.calls if op == "search_artist")
        assert searched == ["Carl Craig", "Moodymann"]

    @pytest.mark.asyncio
    async def test_unknown_provider_rejected(self, make_orchestrator) -> None:
        with pytest.raises(ConfigurationError):
            await make_orchestrator().run_track_batch(BatchRequest(providers=["beatport"]))

    @pytest.mark.asyncio
    async def test_unconfigured_provider_rejected(self, make_orchestrator, make_provider) -> None:
        orchestrator = make_orchestrator(providers={"spotify": make_provider(name="spotify", available=False)})
        with pytest.raises(ConfigurationError):
            await orchestrator.run_track_batch(BatchRequest(providers=["spotify"]))

    @pytest.mark.asyncio
    async def test_fatal_provider_error_keeps_parsed_edges(
        self,
        make_orchestrator,
        make_provider,
        track_store: SQLiteTrackStore,
        relationship_store: SQLiteRelationshipStore,
    ) -> None:
        await track_store.add_tracks([_track("1", "Carl Craig", "At Les (feat. Moodymann)", 1)])
        spotify = make_provider(
            name="spotify",
            errors={
                "Carl Craig": ConfigurationError(
                    message="Spotify token request rejected (HTTP 401)", provider_name="spotify"
                )
            },
        )
        orchestrator = make_orchestrator(providers={"spotify": spotify})

        with pytest.raises(ConfigurationError):
            await orchestrator.run_track_batch(BatchRequest(limit=10, providers=["spotify"]))

        counts = await relationship_store.count_relationships()
        assert counts["featured"] == 1
        assert counts["total"] == 1
        assert await relationship_store.count_credits() == 2

    @pytest.mark.asyncio
    async def test_daily_quota_exhaustion_halts_provider(
        self, make_orchestrator, make_provider, track_store: SQLiteTrackStore, clock
    ) -> None:
        manager = QuotaManager(
            limits={"discogs": QuotaLimits(per_minute=100, daily=3)}, clock=clock, sleep=clock.sleep
        )
        provider = make_provider(
            name="discogs",
            quota_manager=manager,
            artists={
                f"Main {i}": ProviderArtist(id=f"d{i}", name=f"Main {i}", provider="discogs")
                for i in range(4)
            },
        )
        await track_store.add_tracks([_track(str(i), f"Main {i}", "Song", i) for i in range(4)])
        orchestrator = make_orchestrator(providers={"discogs": provider}, workers=1, manager=manager)

        summary = await orchestrator.run_track_batch(BatchRequest(limit=10, providers=["discogs"]))

        assert summary.tracks_processed == 4
        assert summary.errors == [
            "[discogs] Daily request quota exceeded; provider halted for this run"
        ]
        assert len(provider.calls) == 4
        assert manager.is_exhausted("discogs")

    @pytest.mark.asyncio
    async def test_quota_state_persisted(
        self,
        make_orchestrator,
        track_store: SQLiteTrackStore,
        quota_store: SQLiteQuotaStateStore,
        discogs,
    ) -> None:
        await track_store.add_tracks([_track("1", "Carl Craig", "At Les", 1)])

        await make_orchestrator(providers={"discogs": discogs}).run_track_batch(
            BatchRequest(limit=10, providers=["discogs"])
        )

        saved = {s.provider: s for s in await quota_store.load_states()}
        assert saved["discogs"].requests_used_today == 2


# ======================================================================
# Artist batches and single-artist discovery
# ======================================================================


class TestArtistBatch:
    @pytest.mark.asyncio
    async def test_enriches_stored_profiles(
        self, make_orchestrator, resolver, discogs
    ) -> None:
        await resolver.resolve("Carl Craig")
        await resolver.resolve("Nobody Known")
        orchestrator = make_orchestrator(providers={"discogs": discogs})

        summary = await orchestrator.run_artist_batch(
            ArtistBatchRequest(limit=10, providers=["discogs"])
        )

        assert summary.artists_processed == 2
        assert summary.artists_enriched == 1
        assert summary.relationships_saved == 2
        assert summary.labels_linked == 1
        assert summary.next_offset == 2

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, make_orchestrator, resolver, discogs) -> None:
        await resolver.resolve("Carl Craig")
        cancel = asyncio.Event()
        cancel.set()

        summary = await make_orchestrator(providers={"discogs": discogs}).run_artist_batch(
            ArtistBatchRequest(providers=["discogs"]), cancel_event=cancel
        )

        assert summary.cancelled is True
        assert summary.next_offset == 0
        assert discogs.calls == []


class TestDiscoverArtist:
    @pytest.mark.asyncio
    async def test_discovers_and_ranks(self, make_orchestrator, discogs, spotify) -> None:
        orchestrator = make_orchestrator(providers={"discogs": discogs, "spotify": spotify})

        result = await orchestrator.discover_artist(
            DiscoverArtistRequest(
                artist_name="Carl Craig", providers=["discogs", "spotify"], max_relationships=2
            )
        )

        assert result.artist_name == "Carl Craig"
        assert result.external_ids == {"discogs": "d1", "spotify": "s1"}
        assert result.relationships_discovered == 3
        assert result.relationships_saved == 2
        assert [r.strength for r in result.relationships] == [10.0, 8.0]
        assert result.labels_linked == 1

    @pytest.mark.asyncio
    async def test_invalid_name(self, make_orchestrator) -> None:
        with pytest.raises(InvalidNameError):
            await make_orchestrator().discover_artist(
                DiscoverArtistRequest(artist_name="!!", providers=[])
            )


# ======================================================================
# Status
# ======================================================================


class TestStatus:
    @pytest.mark.asyncio
    async def test_reports_counts(self, make_orchestrator, track_store: SQLiteTrackStore, discogs) -> None:
        await track_store.add_tracks(
            [
                _track("1", "Artist A & Artist B", "Track", 1),
                _track("2", "Artist C", "Track", 2, TrackSource.ARCHIVE),
            ]
        )
        orchestrator = make_orchestrator(providers={"discogs": discogs})
        await orchestrator.run_track_batch(_parse_only())

        status = await orchestrator.status()

        assert status["tracks"] == {"live": 1, "archive": 1, "total": 2}
        assert status["artists"] == 4
        assert status["relationships"]["collaboration"] == 2
        assert status["credits"] == 4
        assert status["providers"] == {"discogs": True}
