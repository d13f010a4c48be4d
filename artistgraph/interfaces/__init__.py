"""Interfaces for every external service and store.

    Interface                →  Concrete implementation
    ─────────────────────────────────────────────────────────────
    IMusicMetadataProvider   →  DiscogsProvider, SpotifyProvider,
                                MusicBrainzProvider
    IArtistStore             →  SQLiteArtistStore
    IRelationshipStore       →  SQLiteRelationshipStore
    ITrackStore              →  SQLiteTrackStore
    IQuotaStateStore         →  SQLiteQuotaStateStore
"""

from artistgraph.interfaces.artist_store import IArtistStore
from artistgraph.interfaces.music_db_provider import IMusicMetadataProvider
from artistgraph.interfaces.quota_store import IQuotaStateStore
from artistgraph.interfaces.relationship_store import IRelationshipStore
from artistgraph.interfaces.track_store import ITrackStore

__all__ = [
    "IArtistStore",
    "IMusicMetadataProvider",
    "IQuotaStateStore",
    "IRelationshipStore",
    "ITrackStore",
]
