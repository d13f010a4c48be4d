"""Pydantic request/response schemas for the artistgraph API.

Batch and discovery endpoints reuse the request/summary models from
:mod:`artistgraph.models.pipeline` directly; the models here cover the
read-only endpoints and error bodies.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from artistgraph.models.entities import Relationship
from artistgraph.models.quota import QuotaState


class ErrorResponse(BaseModel):
    """Standard error response body."""

    error: str
    detail: str | None = None


class RelationshipListResponse(BaseModel):
    """A page of stored relationships, strongest first."""

    relationships: list[Relationship] = Field(default_factory=list)
    limit: int
    offset: int


class QuotaStatusResponse(BaseModel):
    """Current quota counters for every provider seen this process."""

    non_blocking: bool
    providers: list[QuotaState] = Field(default_factory=list)


class HealthResponse(BaseModel):
    """Application health check response."""

    status: str
    version: str
    providers: dict[str, bool]
    counts: dict[str, Any] = Field(default_factory=dict)
