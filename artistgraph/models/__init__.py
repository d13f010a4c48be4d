"""artistgraph domain models.

    - entities.py  -- artist profiles, relationships, credits, labels, tracks
    - provider.py  -- provider-neutral client results
    - quota.py     -- per-provider quota limits and state
    - pipeline.py  -- batch requests, state machine, summaries
"""

from __future__ import annotations

from artistgraph.models.entities import (
    COUNTABLE_TYPES,
    ArtistProfile,
    CandidateEdge,
    CreatedVia,
    CreditType,
    LabelRelationship,
    Relationship,
    RelationshipType,
    TrackCredit,
    TrackRecord,
    TrackSource,
)
from artistgraph.models.pipeline import (
    ArtistBatchRequest,
    ArtistBatchSummary,
    BatchCursor,
    BatchErrorRecord,
    BatchPhase,
    BatchRequest,
    BatchSource,
    BatchState,
    BatchSummary,
    DiscoverArtistRequest,
    DiscoverArtistResult,
    RelationshipSample,
    WriteResult,
)
from artistgraph.models.provider import (
    CollaborationNetwork,
    Collaborator,
    LabelCredit,
    NetworkOptions,
    ProviderArtist,
    RelatedArtist,
)
from artistgraph.models.quota import QuotaCheck, QuotaLimits, QuotaState

__all__ = [
    # entities
    "COUNTABLE_TYPES",
    "ArtistProfile",
    "CandidateEdge",
    "CreatedVia",
    "CreditType",
    "LabelRelationship",
    "Relationship",
    "RelationshipType",
    "TrackCredit",
    "TrackRecord",
    "TrackSource",
    # pipeline
    "ArtistBatchRequest",
    "ArtistBatchSummary",
    "BatchCursor",
    "BatchErrorRecord",
    "BatchPhase",
    "BatchRequest",
    "BatchSource",
    "BatchState",
    "BatchSummary",
    "DiscoverArtistRequest",
    "DiscoverArtistResult",
    "RelationshipSample",
    "WriteResult",
    # provider
    "CollaborationNetwork",
    "Collaborator",
    "LabelCredit",
    "NetworkOptions",
    "ProviderArtist",
    "RelatedArtist",
    # quota
    "QuotaCheck",
    "QuotaLimits",
    "QuotaState",
]
