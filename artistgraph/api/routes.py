"""FastAPI routes for artistgraph.

Endpoint                                   Method  Description
/api/v1/relationships/discover-batch       POST    Run one track batch
/api/v1/relationships/discover-artists     POST    Enrich a page of stored artists
/api/v1/relationships/discover             POST    Discover one named artist
/api/v1/relationships                      GET     List stored relationships
/api/v1/quota                              GET     Provider quota counters
/api/v1/health                             GET     Health check and store counts

Dependencies are read from ``app.state`` (populated in
``artistgraph.main``) through ``Annotated[..., Depends(...)]`` aliases.
"""

from __future__ import annotations

from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, Request

from artistgraph import __version__
from artistgraph.api.schemas import (
    ErrorResponse,
    HealthResponse,
    QuotaStatusResponse,
    RelationshipListResponse,
)
from artistgraph.interfaces.relationship_store import IRelationshipStore
from artistgraph.models.entities import RelationshipType
from artistgraph.models.pipeline import (
    ArtistBatchRequest,
    ArtistBatchSummary,
    BatchRequest,
    BatchSummary,
    DiscoverArtistRequest,
    DiscoverArtistResult,
)
from artistgraph.pipeline.orchestrator import BatchOrchestrator
from artistgraph.services.quota_manager import QuotaManager
from artistgraph.utils.errors import ConfigurationError, InvalidNameError
from artistgraph.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)

router = APIRouter(prefix="/api/v1")


def _get_orchestrator(request: Request) -> BatchOrchestrator:
    return request.app.state.orchestrator


def _get_relationship_store(request: Request) -> IRelationshipStore:
    return request.app.state.relationship_store


def _get_quota_manager(request: Request) -> QuotaManager:
    return request.app.state.quota_manager


OrchestratorDep = Annotated[BatchOrchestrator, Depends(_get_orchestrator)]
RelationshipStoreDep = Annotated[IRelationshipStore, Depends(_get_relationship_store)]
QuotaManagerDep = Annotated[QuotaManager, Depends(_get_quota_manager)]


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


@router.post(
    "/relationships/discover-batch",
    response_model=BatchSummary,
    responses={400: {"model": ErrorResponse}},
    summary="Discover relationships from one page of tracks",
)
async def discover_batch(body: BatchRequest, orchestrator: OrchestratorDep) -> BatchSummary:
    try:
        return await orchestrator.run_track_batch(body)
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post(
    "/relationships/discover-artists",
    response_model=ArtistBatchSummary,
    responses={400: {"model": ErrorResponse}},
    summary="Enrich one page of stored artist profiles",
)
async def discover_artists(
    body: ArtistBatchRequest, orchestrator: OrchestratorDep
) -> ArtistBatchSummary:
    try:
        return await orchestrator.run_artist_batch(body)
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post(
    "/relationships/discover",
    response_model=DiscoverArtistResult,
    responses={400: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
    summary="Discover relationships for a single artist",
)
async def discover_artist(
    body: DiscoverArtistRequest, orchestrator: OrchestratorDep
) -> DiscoverArtistResult:
    try:
        return await orchestrator.discover_artist(body)
    except InvalidNameError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    except ConfigurationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


# ---------------------------------------------------------------------------
# Read-only views
# ---------------------------------------------------------------------------


@router.get(
    "/relationships",
    response_model=RelationshipListResponse,
    summary="List stored relationships, strongest first",
)
async def list_relationships(
    store: RelationshipStoreDep,
    artist_id: str | None = None,
    relationship_type: Annotated[RelationshipType | None, Query(alias="type")] = None,
    min_strength: Annotated[float, Query(ge=0.0, le=10.0)] = 0.0,
    limit: Annotated[int, Query(ge=1, le=500)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> RelationshipListResponse:
    relationships = await store.list_relationships(
        artist_id=artist_id,
        relationship_type=relationship_type,
        min_strength=min_strength,
        limit=limit,
        offset=offset,
    )
    return RelationshipListResponse(relationships=relationships, limit=limit, offset=offset)


@router.get("/quota", response_model=QuotaStatusResponse, summary="Provider quota counters")
async def quota_status(quota_manager: QuotaManagerDep) -> QuotaStatusResponse:
    return QuotaStatusResponse(
        non_blocking=quota_manager.non_blocking,
        providers=quota_manager.status(),
    )


@router.get("/health", response_model=HealthResponse, summary="Application health check")
async def health_check(orchestrator: OrchestratorDep) -> HealthResponse:
    """Return store counts and provider availability."""
    status = await orchestrator.status()
    providers: dict[str, bool] = dict(status["providers"])  # type: ignore[arg-type]
    counts = {key: status[key] for key in ("tracks", "artists", "relationships", "credits")}
    return HealthResponse(
        status="healthy" if any(providers.values()) else "degraded",
        version=__version__,
        providers=providers,
        counts=counts,
    )
