"""Shared pytest fixtures for the artistgraph test suite."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio

from artistgraph.config.settings import Settings
from artistgraph.interfaces.music_db_provider import IMusicMetadataProvider
from artistgraph.models.provider import (
    CollaborationNetwork,
    NetworkOptions,
    ProviderArtist,
    RelatedArtist,
)
from artistgraph.models.quota import QuotaLimits
from artistgraph.pipeline.orchestrator import BatchOrchestrator
from artistgraph.providers.storage.sqlite_artist_store import SQLiteArtistStore
from artistgraph.providers.storage.sqlite_quota_store import SQLiteQuotaStateStore
from artistgraph.providers.storage.sqlite_relationship_store import SQLiteRelationshipStore
from artistgraph.providers.storage.sqlite_track_store import SQLiteTrackStore
from artistgraph.services.artist_resolver import ArtistResolver
from artistgraph.services.enrichment_service import EnrichmentService
from artistgraph.services.graph_writer import GraphWriter
from artistgraph.services.quota_manager import QuotaManager
from artistgraph.services.relationship_extractor import RelationshipExtractor
from artistgraph.utils.errors import ProviderNotFoundError

# ---------------------------------------------------------------------------
# Time
# ---------------------------------------------------------------------------


class FakeClock:
    """Manually advanced UTC clock; ``sleep`` advances it instead of waiting."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 3, 1, 12, 0, 10, tzinfo=timezone.utc)  # noqa: UP017
        self.sleeps: list[float] = []

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class FakeProvider(IMusicMetadataProvider):
    """In-memory provider with canned search results, networks and neighbours.

    When a quota manager is supplied every call consumes a slot, exactly as
    the real clients do.
    """

    def __init__(
        self,
        name: str = "discogs",
        weight: float = 1.5,
        artists: dict[str, ProviderArtist] | None = None,
        networks: dict[str, CollaborationNetwork] | None = None,
        related: dict[str, list[RelatedArtist]] | None = None,
        available: bool = True,
        quota_manager: QuotaManager | None = None,
        errors: dict[str, Exception] | None = None,
    ) -> None:
        self._name = name
        self._weight = weight
        self.artists = artists or {}
        self.networks = networks or {}
        self.related = related
        self._available = available
        self._quota = quota_manager
        self.errors = errors or {}
        self.calls: list[tuple[str, str]] = []

    @property
    def collaboration_weight(self) -> float:
        return self._weight

    async def _record(self, operation: str, key: str) -> None:
        self.calls.append((operation, key))
        if self._quota is not None:
            await self._quota.acquire(self._name)
        error = self.errors.get(key)
        if error is not None:
            raise error

    async def search_artist(self, name: str) -> ProviderArtist:
        await self._record("search_artist", name)
        try:
            return self.artists[name]
        except KeyError:
            raise ProviderNotFoundError(
                message=f"No match for {name}", provider_name=self._name
            ) from None

    async def get_artist(self, provider_artist_id: str) -> ProviderArtist:
        await self._record("get_artist", provider_artist_id)
        for artist in self.artists.values():
            if artist.id == provider_artist_id:
                return artist
        raise ProviderNotFoundError(message=provider_artist_id, provider_name=self._name)

    async def get_collaboration_network(
        self, provider_artist_id: str, options: NetworkOptions
    ) -> CollaborationNetwork:
        await self._record("get_collaboration_network", provider_artist_id)
        return self.networks.get(provider_artist_id, CollaborationNetwork())

    async def get_related_artists(self, provider_artist_id: str) -> list[RelatedArtist]:
        await self._record("get_related_artists", provider_artist_id)
        return (self.related or {}).get(provider_artist_id, [])

    def supports_related_artists(self) -> bool:
        return self.related is not None

    def get_provider_name(self) -> str:
        return self._name

    def is_available(self) -> bool:
        return self._available


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        discogs_user_token="test-token",
        spotify_client_id="spotify-id",
        spotify_client_secret="spotify-secret",
        musicbrainz_app_name="artistgraph-test",
        musicbrainz_contact="test@example.com",
        database_path=str(tmp_path / "artistgraph.db"),
        config_path=str(tmp_path / "missing.yaml"),
    )


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "graph.db"


@pytest_asyncio.fixture
async def artist_store(db_path: Path) -> SQLiteArtistStore:
    store = SQLiteArtistStore(db_path=db_path)
    await store.initialize()
    return store


@pytest_asyncio.fixture
async def relationship_store(db_path: Path) -> SQLiteRelationshipStore:
    store = SQLiteRelationshipStore(db_path=db_path)
    await store.initialize()
    return store


@pytest_asyncio.fixture
async def track_store(db_path: Path) -> SQLiteTrackStore:
    store = SQLiteTrackStore(db_path=db_path)
    await store.initialize()
    return store


@pytest_asyncio.fixture
async def quota_store(db_path: Path) -> SQLiteQuotaStateStore:
    store = SQLiteQuotaStateStore(db_path=db_path)
    await store.initialize()
    return store


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture
def quota_manager(clock: FakeClock) -> QuotaManager:
    return QuotaManager(
        limits={
            "discogs": QuotaLimits(per_minute=100, daily=1000),
            "spotify": QuotaLimits(per_minute=100, daily=1000),
        },
        clock=clock,
        sleep=clock.sleep,
    )


@pytest.fixture
def resolver(artist_store: SQLiteArtistStore) -> ArtistResolver:
    return ArtistResolver(artist_store=artist_store)


def build_orchestrator(
    *,
    track_store: SQLiteTrackStore,
    artist_store: SQLiteArtistStore,
    relationship_store: SQLiteRelationshipStore,
    quota_manager: QuotaManager,
    providers: dict[str, IMusicMetadataProvider] | None = None,
    quota_store: SQLiteQuotaStateStore | None = None,
    workers: int = 2,
) -> BatchOrchestrator:
    """Wire a real orchestrator over SQLite stores and the given providers."""
    providers = providers or {}
    resolver = ArtistResolver(artist_store=artist_store)
    return BatchOrchestrator(
        track_store=track_store,
        artist_store=artist_store,
        relationship_store=relationship_store,
        extractor=RelationshipExtractor(),
        resolver=resolver,
        enrichment_service=EnrichmentService(providers=providers, resolver=resolver),
        graph_writer=GraphWriter(relationship_store=relationship_store),
        quota_manager=quota_manager,
        providers=providers,
        quota_store=quota_store,
        workers=workers,
    )


@pytest.fixture
def make_provider():
    """Factory for :class:`FakeProvider` instances."""
    return FakeProvider


@pytest.fixture
def make_orchestrator(
    track_store: SQLiteTrackStore,
    artist_store: SQLiteArtistStore,
    relationship_store: SQLiteRelationshipStore,
    quota_manager: QuotaManager,
    quota_store: SQLiteQuotaStateStore,
):
    """Factory building an orchestrator over this test's stores."""

    def _make(
        providers: dict[str, IMusicMetadataProvider] | None = None,
        workers: int = 2,
        manager: QuotaManager | None = None,
    ) -> BatchOrchestrator:
        return build_orchestrator(
            track_store=track_store,
            artist_store=artist_store,
            relationship_store=relationship_store,
            quota_manager=manager or quota_manager,
            providers=providers,
            quota_store=quota_store,
            workers=workers,
        )

    return _make
