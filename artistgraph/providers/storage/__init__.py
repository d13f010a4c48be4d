"""aiosqlite-backed stores sharing a single database file."""

from artistgraph.providers.storage.sqlite_artist_store import SQLiteArtistStore
from artistgraph.providers.storage.sqlite_quota_store import SQLiteQuotaStateStore
from artistgraph.providers.storage.sqlite_relationship_store import SQLiteRelationshipStore
from artistgraph.providers.storage.sqlite_track_store import SQLiteTrackStore

__all__ = [
    "SQLiteArtistStore",
    "SQLiteQuotaStateStore",
    "SQLiteRelationshipStore",
    "SQLiteTrackStore",
]
