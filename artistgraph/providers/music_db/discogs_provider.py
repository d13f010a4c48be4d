"""Discogs provider using python3-discogs-client.

The client library is synchronous, so every call runs in a worker thread
via ``asyncio.to_thread``.  Each sync helper issues one HTTP request so one
quota slot maps to one request.

Collaboration networks come from release credits: co-main artists become
collaborators, and ``extraartists`` (release- and track-level) contribute
producer, remix and featuring credits.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any

import discogs_client
from discogs_client.exceptions import HTTPError as DiscogsHTTPError
from discogs_client.models import MixedPaginatedList

from artistgraph.config.settings import Settings
from artistgraph.models.provider import (
    CollaborationNetwork,
    NetworkOptions,
    ProviderArtist,
)
from artistgraph.providers.music_db.base import (
    BaseMetadataProvider,
    NetworkBuilder,
    RetryableRequestError,
)
from artistgraph.services.quota_manager import QuotaManager
from artistgraph.utils.errors import (
    ArtistGraphError,
    ProviderNotFoundError,
    ProviderTransportError,
)
from artistgraph.utils.text_normalizer import clean_search_query

_API_URL = "https://api.discogs.com"
_USER_AGENT = "artistgraph/0.1.0"
_MAX_SEARCH_RESULTS = 10

# "Artist (2)" disambiguation suffix and "Artist*" name-variation marker.
_DISAMBIGUATION = re.compile(r"\s*\(\d+\)\s*$")

_PRODUCER_ROLES = ("producer", "produced by", "co-producer")
_REMIX_ROLES = ("remix",)
_FEATURING_ROLES = ("featuring", "feat")

_NO_LABEL = "not on label"


def clean_discogs_name(name: str) -> str:
    return _DISAMBIGUATION.sub("", (name or "").strip()).rstrip("*").strip()


def classify_credit_role(role: str, include_producers: bool) -> str | None:
    """Map a Discogs credit role to a collaborator role, or ``None`` to skip it."""
    lowered = (role or "").lower()
    if any(r in lowered for r in _REMIX_ROLES):
        return "remix"
    if any(r in lowered for r in _FEATURING_ROLES):
        return "featuring"
    if any(r in lowered for r in _PRODUCER_ROLES):
        return "producer" if include_producers else None
    return None


class DiscogsProvider(BaseMetadataProvider):
    """Music-metadata client backed by the Discogs REST API."""

    def __init__(
        self,
        settings: Settings,
        quota_manager: QuotaManager,
        collaboration_weight: float = 1.5,
        **request_options: Any,
    ) -> None:
        super().__init__(quota_manager, collaboration_weight=collaboration_weight, **request_options)
        self._settings = settings
        self._client: discogs_client.Client | None = None

    # -- Private helpers -------------------------------------------------------

    def _get_client(self) -> discogs_client.Client:
        """Lazily build the Discogs client, preferring a personal user token."""
        if self._client is None:
            if self._settings.discogs_user_token:
                self._client = discogs_client.Client(
                    _USER_AGENT, user_token=self._settings.discogs_user_token
                )
            else:
                self._client = discogs_client.Client(
                    _USER_AGENT,
                    consumer_key=self._settings.discogs_consumer_key,
                    consumer_secret=self._settings.discogs_consumer_secret,
                )
        return self._client

    def _translate_error(self, exc: Exception) -> ArtistGraphError | RetryableRequestError:
        if isinstance(exc, DiscogsHTTPError):
            status = getattr(exc, "status_code", None)
            if status == 404:
                return ProviderNotFoundError(
                    message=f"Discogs resource not found: {exc}",
                    provider_name=self.get_provider_name(),
                )
            if status == 429 or (status is not None and status >= 500):
                return RetryableRequestError(f"HTTP {status}: {exc}", status_code=status)
            return ProviderTransportError(
                message=f"Discogs request rejected (HTTP {status}): {exc}",
                provider_name=self.get_provider_name(),
                status_code=status,
            )
        return super()._translate_error(exc)

    # -- Sync helpers (executed via asyncio.to_thread) -------------------------

    def _search_sync(self, name: str) -> list[dict[str, Any]]:
        client = self._get_client()
        page = client.search(name, type="artist").page(1)
        return [
            {"id": item.id, "title": item.data.get("title", "")}
            for item in page[:_MAX_SEARCH_RESULTS]
        ]

    def _get_artist_sync(self, artist_id: int) -> dict[str, Any]:
        artist = self._get_client().artist(artist_id)
        artist.refresh()
        return dict(artist.data)

    def _get_artist_releases_sync(self, artist_id: int, max_items: int) -> list[dict[str, Any]]:
        # Built from the URL directly; Artist.releases would first fetch the artist.
        releases = MixedPaginatedList(
            self._get_client(), f"{_API_URL}/artists/{artist_id}/releases", "releases"
        )
        releases.per_page = min(max(max_items, 1), 100)
        page = releases.page(1)
        return [dict(item.data) for item in page[:max_items]]

    def _get_release_sync(self, release_id: int) -> dict[str, Any]:
        release = self._get_client().release(release_id)
        release.refresh()
        return dict(release.data)

    # -- IMusicMetadataProvider implementation ---------------------------------

    async def search_artist(self, name: str) -> ProviderArtist:
        query = clean_search_query(name)
        raw = await self._request("search_artist", lambda: asyncio.to_thread(self._search_sync, query))
        candidates = [
            ProviderArtist(
                id=str(item["id"]),
                name=clean_discogs_name(item.get("title", "")),
                provider=self.get_provider_name(),
            )
            for item in raw
            if item.get("id")
        ]
        best = self._best_match(query, candidates)
        self._logger.info(
            "discogs_search_complete",
            artist=name,
            result_count=len(candidates),
            match=best.name,
            confidence=round(best.confidence, 3),
        )
        return best

    async def get_artist(self, provider_artist_id: str) -> ProviderArtist:
        data = await self._request(
            "get_artist", lambda: asyncio.to_thread(self._get_artist_sync, int(provider_artist_id))
        )
        return ProviderArtist(
            id=str(data.get("id", provider_artist_id)),
            name=clean_discogs_name(data.get("name", "")),
            provider=self.get_provider_name(),
        )

    async def get_collaboration_network(
        self,
        provider_artist_id: str,
        options: NetworkOptions,
    ) -> CollaborationNetwork:
        artist_id = int(provider_artist_id)
        releases = await self._request(
            "get_artist_releases",
            lambda: asyncio.to_thread(self._get_artist_releases_sync, artist_id, options.max_items),
        )

        builder = NetworkBuilder(self_id=str(artist_id))
        inspected = 0
        for summary in releases[: options.max_items]:
            release_id = summary.get("main_release") if summary.get("type") == "master" else summary.get("id")
            if not release_id:
                continue
            try:
                detail = await self._request(
                    "get_release",
                    lambda rid=int(release_id): asyncio.to_thread(self._get_release_sync, rid),
                )
            except ProviderNotFoundError:
                self._logger.debug("discogs_release_missing", release_id=release_id)
                continue
            inspected += 1
            self._collect_release(builder, detail, options)

        network = builder.build()
        self._logger.info(
            "discogs_network_complete",
            artist_id=provider_artist_id,
            releases_inspected=inspected,
            collaborators=len(network.collaborators),
            labels=len(network.labels),
        )
        return network

    def _collect_release(
        self,
        builder: NetworkBuilder,
        release: dict[str, Any],
        options: NetworkOptions,
    ) -> None:
        evidence = f"discogs:release:{release.get('id')}"

        for credit in release.get("artists", []) or []:
            builder.add_collaborator(
                clean_discogs_name(credit.get("name", "")), credit.get("id"), "main_artist", evidence
            )

        extra_credits = list(release.get("extraartists", []) or [])
        for track in release.get("tracklist", []) or []:
            extra_credits.extend(track.get("extraartists", []) or [])
            for credit in track.get("artists", []) or []:
                builder.add_collaborator(
                    clean_discogs_name(credit.get("name", "")), credit.get("id"), "main_artist", evidence
                )

        for credit in extra_credits:
            role = classify_credit_role(credit.get("role", ""), options.include_producers)
            if role is None:
                continue
            builder.add_collaborator(
                clean_discogs_name(credit.get("name", "")), credit.get("id"), role, evidence
            )

        if options.include_labels:
            for label in release.get("labels", []) or []:
                name = (label.get("name") or "").strip()
                if name and name.lower() != _NO_LABEL:
                    builder.add_label(clean_discogs_name(name), label.get("id"), evidence)

    def get_provider_name(self) -> str:
        return "discogs"

    def is_available(self) -> bool:
        """Return ``True`` if a user token or consumer key pair is configured."""
        return bool(
            self._settings.discogs_user_token
            or (self._settings.discogs_consumer_key and self._settings.discogs_consumer_secret)
        )
