"""artistgraph FastAPI application entry point.

Wires stores, provider clients, services and the batch orchestrator via
dependency injection.  Loads configuration from ``.env`` and
``config/config.yaml`` and configures structured logging.

``build_components`` / ``initialize_components`` / ``close_components``
are shared with the CLI so both surfaces run the same object graph.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from artistgraph import __version__
from artistgraph.api.middleware import ErrorHandlingMiddleware, RequestLoggingMiddleware
from artistgraph.api.routes import router as api_router
from artistgraph.config.loader import load_config
from artistgraph.config.settings import Settings
from artistgraph.interfaces.music_db_provider import IMusicMetadataProvider
from artistgraph.models.provider import NetworkOptions
from artistgraph.pipeline.orchestrator import BatchOrchestrator
from artistgraph.providers.music_db.discogs_provider import DiscogsProvider
from artistgraph.providers.music_db.musicbrainz_provider import MusicBrainzProvider
from artistgraph.providers.music_db.spotify_provider import SpotifyProvider
from artistgraph.providers.storage.sqlite_artist_store import SQLiteArtistStore
from artistgraph.providers.storage.sqlite_quota_store import SQLiteQuotaStateStore
from artistgraph.providers.storage.sqlite_relationship_store import SQLiteRelationshipStore
from artistgraph.providers.storage.sqlite_track_store import SQLiteTrackStore
from artistgraph.services.artist_resolver import ArtistResolver
from artistgraph.services.enrichment_service import EnrichmentService
from artistgraph.services.graph_writer import GraphWriter
from artistgraph.services.quota_manager import QuotaManager, limits_from_config
from artistgraph.services.relationship_extractor import RelationshipExtractor
from artistgraph.utils.logging import configure_logging, get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Component construction
# ---------------------------------------------------------------------------


def _network_options(app_config: dict) -> NetworkOptions:
    network = app_config.get("network") or {}
    return NetworkOptions(
        max_items=int(network.get("max_items", 20)),
        include_producers=bool(network.get("include_producers", True)),
        include_labels=bool(network.get("include_labels", True)),
    )


def _build_providers(
    app_settings: Settings,
    app_config: dict,
    http_client: httpx.AsyncClient,
    quota_manager: QuotaManager,
) -> dict[str, IMusicMetadataProvider]:
    """Construct every provider client; availability is checked per run."""
    provider_config = app_config.get("providers") or {}

    def _weight(name: str, default: float) -> float:
        return float((provider_config.get(name) or {}).get("collaboration_weight", default))

    request_options: dict[str, Any] = {
        "max_attempts": app_settings.provider_max_attempts,
        "backoff_seconds": app_settings.provider_backoff_seconds,
        "timeout_seconds": app_settings.provider_timeout_seconds,
    }
    related_limit = int((app_config.get("network") or {}).get("related_artists_limit", 10))

    return {
        "discogs": DiscogsProvider(
            settings=app_settings,
            quota_manager=quota_manager,
            collaboration_weight=_weight("discogs", 1.5),
            **request_options,
        ),
        "spotify": SpotifyProvider(
            http_client=http_client,
            settings=app_settings,
            quota_manager=quota_manager,
            collaboration_weight=_weight("spotify", 1.0),
            related_limit=related_limit,
            **request_options,
        ),
        "musicbrainz": MusicBrainzProvider(
            settings=app_settings,
            quota_manager=quota_manager,
            collaboration_weight=_weight("musicbrainz", 7.0),
            **request_options,
        ),
    }


def build_components(
    app_settings: Settings,
    app_config: dict | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Construct every store, provider and service instance.

    Returns a flat dict of named components to be stored on ``app.state``
    or used directly by the CLI.
    """
    app_config = app_config if app_config is not None else load_config(settings=app_settings)
    quota_config = app_config.get("quota") or {}

    http_client = http_client or httpx.AsyncClient(timeout=app_settings.provider_timeout_seconds)
    quota_manager = QuotaManager(
        limits=limits_from_config(app_config),
        non_blocking=bool(quota_config.get("non_blocking", app_settings.quota_non_blocking)),
        day_reset_hour_utc=int(
            quota_config.get("day_reset_hour_utc", app_settings.quota_day_reset_hour_utc)
        ),
    )

    db_path = app_settings.database_path
    track_store = SQLiteTrackStore(db_path=db_path)
    artist_store = SQLiteArtistStore(db_path=db_path)
    relationship_store = SQLiteRelationshipStore(db_path=db_path)
    quota_store = SQLiteQuotaStateStore(db_path=db_path)

    providers = _build_providers(app_settings, app_config, http_client, quota_manager)
    network_options = _network_options(app_config)

    separators = (app_config.get("extractor") or {}).get("collaboration_separators")
    extractor = RelationshipExtractor(collaboration_separators=separators)
    resolver = ArtistResolver(artist_store=artist_store)
    enrichment_service = EnrichmentService(
        providers=providers, resolver=resolver, default_options=network_options
    )
    graph_writer = GraphWriter(relationship_store=relationship_store)

    orchestrator = BatchOrchestrator(
        track_store=track_store,
        artist_store=artist_store,
        relationship_store=relationship_store,
        extractor=extractor,
        resolver=resolver,
        enrichment_service=enrichment_service,
        graph_writer=graph_writer,
        quota_manager=quota_manager,
        providers=providers,
        quota_store=quota_store,
        workers=app_settings.enrichment_workers,
        network_options=network_options,
    )

    return {
        "settings": app_settings,
        "config": app_config,
        "http_client": http_client,
        "quota_manager": quota_manager,
        "track_store": track_store,
        "artist_store": artist_store,
        "relationship_store": relationship_store,
        "quota_store": quota_store,
        "providers": providers,
        "orchestrator": orchestrator,
    }


async def initialize_components(components: dict[str, Any]) -> None:
    """Create database tables and reload persisted quota counters."""
    for key in ("track_store", "artist_store", "relationship_store", "quota_store"):
        await components[key].initialize()
    quota_manager: QuotaManager = components["quota_manager"]
    quota_manager.restore(await components["quota_store"].load_states())


async def close_components(components: dict[str, Any]) -> None:
    """Persist quota counters and release the shared HTTP client."""
    await components["quota_store"].save_states(components["quota_manager"].snapshot())
    http_client: httpx.AsyncClient = components["http_client"]
    await http_client.aclose()


# ---------------------------------------------------------------------------
# Application lifespan (startup / shutdown)
# ---------------------------------------------------------------------------


@asynccontextmanager
async def _lifespan(application: FastAPI):  # noqa: ANN201
    """Build and initialise components on startup, clean up on shutdown."""
    components = getattr(application.state, "components", None)
    if components is None:
        app_settings = Settings()
        components = build_components(app_settings, load_config(settings=app_settings))

    for key, value in components.items():
        setattr(application.state, key, value)
    await initialize_components(components)

    _logger.info(
        "app_startup",
        version=__version__,
        environment=components["settings"].app_env,
        providers=sorted(
            name for name, client in components["providers"].items() if client.is_available()
        ),
    )

    yield

    await close_components(components)
    _logger.info("app_shutdown", message="Quota state saved, HTTP client closed")


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(components: dict[str, Any] | None = None) -> FastAPI:
    """Build and configure the FastAPI application.

    Parameters
    ----------
    components:
        Pre-built components from :func:`build_components`.  When omitted
        the lifespan builds them from ``Settings()`` on startup.
    """
    application = FastAPI(
        title="artistgraph API",
        version=__version__,
        description=(
            "Discover artist relationships from track metadata and enrich "
            "them from Discogs, Spotify and MusicBrainz."
        ),
        lifespan=_lifespan,
    )
    if components is not None:
        application.state.components = components

    # -- Middleware (last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)

    application.include_router(api_router)
    return application


def main() -> None:
    """Run the API server with uvicorn."""
    app_settings = Settings()
    configure_logging(
        log_level=app_settings.log_level,
        json_output=(app_settings.app_env == "production"),
    )
    uvicorn.run(
        "artistgraph.main:create_app",
        factory=True,
        host=app_settings.app_host,
        port=app_settings.app_port,
        reload=(app_settings.app_env == "development"),
    )


if __name__ == "__main__":
    main()
