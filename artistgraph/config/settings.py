"""Application settings loaded from environment variables via pydantic-settings.

Field ``discogs_user_token`` maps to env var ``DISCOGS_USER_TOKEN`` and so
on.  Environment variables win over ``.env`` entries, which win over the
defaults below.  Empty credential strings mean "provider not configured".
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """artistgraph application settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === Discogs ===
    discogs_user_token: str = ""
    discogs_consumer_key: str = ""
    discogs_consumer_secret: str = ""

    # === Spotify (client-credentials flow) ===
    spotify_client_id: str = ""
    spotify_client_secret: str = ""

    # === MusicBrainz ===
    musicbrainz_app_name: str = "artistgraph"
    musicbrainz_app_version: str = "0.1.0"
    musicbrainz_contact: str = ""

    # === Storage ===
    database_path: str = "data/artistgraph.db"

    # === Enrichment ===
    enrichment_workers: int = 4
    provider_max_attempts: int = 3
    provider_backoff_seconds: float = 1.0
    provider_timeout_seconds: float = 20.0

    # === Quotas ===
    quota_non_blocking: bool = False
    quota_day_reset_hour_utc: int = 0

    # === App Config ===
    config_path: str = "config/config.yaml"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_env: str = "development"
    log_level: str = "INFO"

    def get_configured_providers(self) -> list[str]:
        """Return the provider names whose credentials are present."""
        providers: list[str] = []
        if self.discogs_user_token or (self.discogs_consumer_key and self.discogs_consumer_secret):
            providers.append("discogs")
        if self.spotify_client_id and self.spotify_client_secret:
            providers.append("spotify")
        # MusicBrainz needs only a user agent.
        if self.musicbrainz_app_name:
            providers.append("musicbrainz")
        return providers
