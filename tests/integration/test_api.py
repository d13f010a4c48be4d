"""Integration tests for the FastAPI surface.

Components are built exactly as in production, over a temporary SQLite
database and an httpx client that never leaves the process.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import httpx
import pytest
from fastapi.testclient import TestClient

from artistgraph.config.settings import Settings
from artistgraph.main import build_components, create_app
from artistgraph.models.entities import TrackRecord, TrackSource
from artistgraph.models.provider import CollaborationNetwork, Collaborator, ProviderArtist

_CONFIG = {"quota": {"providers": {"discogs": {"per_minute": 5, "daily": 50}}}}


def _offline_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(503))
    )


async def _seed_tracks(components: dict, tracks: list[TrackRecord]) -> None:
    store = components["track_store"]
    await store.initialize()
    await store.add_tracks(tracks)


@pytest.fixture
def components(settings: Settings) -> dict:
    built = build_components(settings, _CONFIG, http_client=_offline_client())
    asyncio.run(
        _seed_tracks(
            built,
            [
                TrackRecord(
                    track_id="1",
                    artist="Artist A & Artist B",
                    title="Track",
                    created_at=datetime(2024, 1, 2, tzinfo=timezone.utc),  # noqa: UP017
                ),
                TrackRecord(
                    track_id="2",
                    artist="Artist A",
                    title="Track (feat. Artist C)",
                    created_at=datetime(2024, 1, 1, tzinfo=timezone.utc),  # noqa: UP017
                    source=TrackSource.ARCHIVE,
                ),
            ],
        )
    )
    return built


@pytest.fixture
def client(components: dict):
    with TestClient(create_app(components)) as test_client:
        yield test_client


# ======================================================================
# Health and quota
# ======================================================================


class TestHealthAndQuota:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["providers"] == {"discogs": True, "musicbrainz": True, "spotify": True}
        assert body["counts"]["tracks"] == {"live": 1, "archive": 1, "total": 2}
        assert body["counts"]["artists"] == 0

    def test_health_degraded_without_credentials(self, tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
        for var in ("DISCOGS_USER_TOKEN", "SPOTIFY_CLIENT_ID", "SPOTIFY_CLIENT_SECRET"):
            monkeypatch.delenv(var, raising=False)
        bare = Settings(
            _env_file=None,
            musicbrainz_app_name="",
            database_path=str(tmp_path / "bare.db"),
        )
        components = build_components(bare, {}, http_client=_offline_client())
        with TestClient(create_app(components)) as bare_client:
            body = bare_client.get("/api/v1/health").json()
        assert body["status"] == "degraded"
        assert not any(body["providers"].values())

    def test_quota(self, client: TestClient) -> None:
        response = client.get("/api/v1/quota")
        assert response.status_code == 200
        body = response.json()
        assert body["non_blocking"] is False
        [discogs] = [p for p in body["providers"] if p["provider"] == "discogs"]
        assert discogs["daily_ceiling"] == 50
        assert discogs["requests_used_today"] == 0


# ======================================================================
# Discovery endpoints
# ======================================================================


class TestDiscoverBatch:
    def test_parse_only_batch_then_list(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/relationships/discover-batch", json={"limit": 10, "providers": []}
        )

        assert response.status_code == 200
        summary = response.json()
        assert summary["tracks_processed"] == 2
        assert summary["relationships_saved"] == 3
        assert summary["next_batch"] == {"offset": 10, "limit": 10, "source": "both"}

        listing = client.get("/api/v1/relationships", params={"type": "collaboration"})
        assert listing.status_code == 200
        edges = listing.json()["relationships"]
        assert len(edges) == 2
        assert all(e["strength"] == 7.0 for e in edges)

        featured = client.get("/api/v1/relationships", params={"type": "featured"}).json()
        assert featured["relationships"][0]["evidence_tracks"] == ["archive:2"]

    def test_unknown_provider_is_bad_request(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/relationships/discover-batch", json={"providers": ["beatport"]}
        )
        assert response.status_code == 400
        assert "beatport" in response.json()["detail"]

    def test_invalid_limit_rejected(self, client: TestClient) -> None:
        response = client.post("/api/v1/relationships/discover-batch", json={"limit": 0})
        assert response.status_code == 422

    def test_relationship_query_bounds(self, client: TestClient) -> None:
        assert client.get("/api/v1/relationships", params={"limit": 0}).status_code == 422
        assert client.get("/api/v1/relationships", params={"type": "sampled"}).status_code == 422


class TestDiscoverArtist:
    def test_unusable_name(self, client: TestClient) -> None:
        response = client.post(
            "/api/v1/relationships/discover", json={"artist_name": "!!", "providers": []}
        )
        assert response.status_code == 422

    def test_discover_with_provider(self, components: dict, make_provider) -> None:
        components["providers"]["discogs"] = make_provider(
            name="discogs",
            weight=1.5,
            artists={"Carl Craig": ProviderArtist(id="d1", name="Carl Craig", provider="discogs")},
            networks={
                "d1": CollaborationNetwork(
                    collaborators={
                        "d2": Collaborator(
                            artist_name="Moodymann", artist_id="d2", collaboration_count=4
                        )
                    }
                )
            },
        )

        with TestClient(create_app(components)) as test_client:
            response = test_client.post(
                "/api/v1/relationships/discover",
                json={"artist_name": "Carl Craig", "providers": ["discogs"]},
            )

        assert response.status_code == 200
        result = response.json()
        assert result["external_ids"] == {"discogs": "d1"}
        assert result["relationships"] == [
            {"source": "Carl Craig", "target": "Moodymann", "type": "collaboration", "strength": 6.0}
        ]

    def test_discover_artists_page(self, components: dict, make_provider) -> None:
        components["providers"]["discogs"] = make_provider(name="discogs")

        with TestClient(create_app(components)) as test_client:
            test_client.post(
                "/api/v1/relationships/discover-batch", json={"limit": 10, "providers": []}
            )
            response = test_client.post(
                "/api/v1/relationships/discover-artists",
                json={"limit": 2, "providers": ["discogs"]},
            )

        assert response.status_code == 200
        summary = response.json()
        assert summary["artists_processed"] == 2
        assert summary["artists_enriched"] == 0
        assert summary["next_offset"] == 2
