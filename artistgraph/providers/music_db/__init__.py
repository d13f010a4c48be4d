"""Music-metadata provider clients."""

from artistgraph.providers.music_db.discogs_provider import DiscogsProvider
from artistgraph.providers.music_db.musicbrainz_provider import MusicBrainzProvider
from artistgraph.providers.music_db.spotify_provider import SpotifyProvider

__all__ = ["DiscogsProvider", "MusicBrainzProvider", "SpotifyProvider"]
