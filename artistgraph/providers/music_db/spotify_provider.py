"""Spotify Web API provider over an injected ``httpx.AsyncClient``.

Authenticates with the client-credentials flow and caches the access token
until shortly before it expires.  Collaborators are the other credited
artists on tracks from the artist's albums and singles, plus names parsed
from "(feat. ...)" in track titles.  Related artists supply influence
edges.
"""

from __future__ import annotations

import time
from typing import Any

import httpx

from artistgraph.config.settings import Settings
from artistgraph.models.provider import (
    CollaborationNetwork,
    NetworkOptions,
    ProviderArtist,
    RelatedArtist,
)
from artistgraph.providers.music_db.base import (
    BaseMetadataProvider,
    NetworkBuilder,
    RetryableRequestError,
)
from artistgraph.services.quota_manager import QuotaManager
from artistgraph.services.relationship_extractor import extract_featured_names
from artistgraph.utils.errors import (
    ConfigurationError,
    ProviderNotFoundError,
    ProviderTransportError,
)
from artistgraph.utils.text_normalizer import clean_search_query

_API_BASE = "https://api.spotify.com/v1"
_TOKEN_URL = "https://accounts.spotify.com/api/token"
_TOKEN_EXPIRY_MARGIN = 60.0
_SEARCH_LIMIT = 5
_ALBUM_PAGE_LIMIT = 50
_DEFAULT_RELATED_LIMIT = 10


class SpotifyProvider(BaseMetadataProvider):
    """Music-metadata client backed by the Spotify Web API."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        settings: Settings,
        quota_manager: QuotaManager,
        collaboration_weight: float = 1.0,
        related_limit: int = _DEFAULT_RELATED_LIMIT,
        **request_options: Any,
    ) -> None:
        super().__init__(quota_manager, collaboration_weight=collaboration_weight, **request_options)
        self._http = http_client
        self._settings = settings
        self._related_limit = related_limit
        self._token: str | None = None
        self._token_expires_at: float = 0.0

    # -- Auth ------------------------------------------------------------------

    async def _get_token(self) -> str:
        if self._token and time.monotonic() < self._token_expires_at:
            return self._token
        if not self.is_available():
            raise ConfigurationError(
                message="Spotify client id/secret are not configured",
                provider_name=self.get_provider_name(),
            )

        response = await self._http.post(
            _TOKEN_URL,
            data={"grant_type": "client_credentials"},
            auth=(self._settings.spotify_client_id, self._settings.spotify_client_secret),
            timeout=self._timeout,
        )
        if response.status_code >= 500 or response.status_code == 429:
            raise RetryableRequestError(f"token endpoint returned HTTP {response.status_code}")
        if response.status_code != 200:
            raise ConfigurationError(
                message=f"Spotify token request rejected (HTTP {response.status_code})",
                provider_name=self.get_provider_name(),
            )

        payload = response.json()
        self._token = payload["access_token"]
        expires_in = float(payload.get("expires_in", 3600))
        self._token_expires_at = time.monotonic() + max(expires_in - _TOKEN_EXPIRY_MARGIN, 0.0)
        self._logger.debug("spotify_token_refreshed", expires_in=expires_in)
        return self._token

    # -- HTTP ------------------------------------------------------------------

    async def _get(self, path: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        async def _call() -> dict[str, Any]:
            token = await self._get_token()
            response = await self._http.get(
                f"{_API_BASE}{path}",
                params=params,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self._timeout,
            )
            status = response.status_code
            if status == 200:
                return response.json()
            if status == 404:
                raise ProviderNotFoundError(
                    message=f"Spotify resource not found: {path}",
                    provider_name=self.get_provider_name(),
                )
            if status == 401:
                self._token = None
                raise RetryableRequestError("access token rejected", status_code=status)
            if status == 429:
                retry_after = float(response.headers.get("Retry-After", "1") or 1)
                raise RetryableRequestError("rate limited", retry_after=retry_after, status_code=status)
            if status >= 500:
                raise RetryableRequestError(f"HTTP {status}", status_code=status)
            raise ProviderTransportError(
                message=f"Spotify request {path} rejected (HTTP {status})",
                provider_name=self.get_provider_name(),
                status_code=status,
            )

        return await self._request(path, _call)

    @staticmethod
    def _to_provider_artist(data: dict[str, Any]) -> ProviderArtist:
        return ProviderArtist(
            id=data["id"],
            name=data.get("name", ""),
            provider="spotify",
            popularity=data.get("popularity"),
            genres=list(data.get("genres", []) or []),
        )

    # -- IMusicMetadataProvider implementation ---------------------------------

    async def search_artist(self, name: str) -> ProviderArtist:
        query = clean_search_query(name)
        payload = await self._get(
            "/search", params={"q": query, "type": "artist", "limit": _SEARCH_LIMIT}
        )
        items = (payload.get("artists") or {}).get("items", []) or []
        candidates = [self._to_provider_artist(item) for item in items if item.get("id")]
        best = self._best_match(query, candidates)
        self._logger.info(
            "spotify_search_complete",
            artist=name,
            result_count=len(candidates),
            match=best.name,
            confidence=round(best.confidence, 3),
        )
        return best

    async def get_artist(self, provider_artist_id: str) -> ProviderArtist:
        payload = await self._get(f"/artists/{provider_artist_id}")
        return self._to_provider_artist(payload)

    async def get_collaboration_network(
        self,
        provider_artist_id: str,
        options: NetworkOptions,
    ) -> CollaborationNetwork:
        albums_payload = await self._get(
            f"/artists/{provider_artist_id}/albums",
            params={
                "include_groups": "album,single,appears_on",
                "limit": min(options.max_items, _ALBUM_PAGE_LIMIT),
            },
        )
        albums = (albums_payload.get("items", []) or [])[: options.max_items]

        builder = NetworkBuilder(self_id=provider_artist_id)
        self_name = ""
        for summary in albums:
            album_id = summary.get("id")
            if not album_id:
                continue
            try:
                album = await self._get(f"/albums/{album_id}")
            except ProviderNotFoundError:
                continue
            evidence_album = f"spotify:album:{album_id}"

            for track in (album.get("tracks") or {}).get("items", []) or []:
                artists = track.get("artists", []) or []
                credited = {a.get("id") for a in artists}
                if provider_artist_id not in credited:
                    continue
                if not self_name:
                    self_name = next(
                        (a.get("name", "") for a in artists if a.get("id") == provider_artist_id), ""
                    )
                evidence = f"spotify:track:{track.get('id')}"
                credited_names = {a.get("name", "").lower() for a in artists}
                for artist in artists:
                    builder.add_collaborator(artist.get("name", ""), artist.get("id"), "main_artist", evidence)
                for featured in extract_featured_names(track.get("name", "")):
                    if featured.lower() not in credited_names and featured.lower() != self_name.lower():
                        builder.add_collaborator(featured, None, "featured_artist", evidence)

            if options.include_labels and album.get("label"):
                builder.add_label(album["label"], None, evidence_album)

        network = builder.build()
        self._logger.info(
            "spotify_network_complete",
            artist_id=provider_artist_id,
            albums_inspected=len(albums),
            collaborators=len(network.collaborators),
            labels=len(network.labels),
        )
        return network

    async def get_related_artists(self, provider_artist_id: str) -> list[RelatedArtist]:
        payload = await self._get(f"/artists/{provider_artist_id}/related-artists")
        related = [
            RelatedArtist(
                name=item.get("name", ""),
                id=item["id"],
                genres=list(item.get("genres", []) or []),
                popularity=item.get("popularity"),
            )
            for item in payload.get("artists", []) or []
            if item.get("id") and item.get("name")
        ]
        return related[: self._related_limit]

    def supports_related_artists(self) -> bool:
        return True

    def get_provider_name(self) -> str:
        return "spotify"

    def is_available(self) -> bool:
        """Return ``True`` if client id and secret are configured."""
        return bool(self._settings.spotify_client_id and self._settings.spotify_client_secret)
