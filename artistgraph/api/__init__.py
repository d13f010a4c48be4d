"""artistgraph API layer: routes, schemas, and middleware."""

from artistgraph.api.middleware import ErrorHandlingMiddleware, RequestLoggingMiddleware
from artistgraph.api.routes import router
from artistgraph.api.schemas import (
    ErrorResponse,
    HealthResponse,
    QuotaStatusResponse,
    RelationshipListResponse,
)

__all__ = [
    "ErrorHandlingMiddleware",
    "RequestLoggingMiddleware",
    "router",
    "ErrorResponse",
    "HealthResponse",
    "QuotaStatusResponse",
    "RelationshipListResponse",
]
