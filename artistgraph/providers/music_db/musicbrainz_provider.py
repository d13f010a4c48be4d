"""MusicBrainz provider using musicbrainzngs.

MusicBrainz stores curated artist-to-artist relations ("collaboration",
"member of band", "remixer", "producer", ...).  Each relation counts as
one collaboration; the configured weight sets how much that is worth.
musicbrainzngs is synchronous, so calls run in worker threads.
"""

from __future__ import annotations

import asyncio
from typing import Any

import musicbrainzngs

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

_SEARCH_LIMIT = 5

# MusicBrainz relation type -> collaborator role.  Unlisted types
# ("is person", "married", "sibling", ...) are not collaborations.
_RELATION_ROLES: dict[str, str] = {
    "collaboration": "collaboration",
    "member of band": "member",
    "supporting musician": "collaboration",
    "vocal supporting musician": "featured_artist",
    "instrumental supporting musician": "collaboration",
    "remixer": "remix",
}
_PRODUCER_RELATIONS = frozenset({"producer", "co-producer"})


def _http_status(exc: musicbrainzngs.WebServiceError) -> int | None:
    cause = getattr(exc, "cause", None)
    return getattr(cause, "code", None)


class MusicBrainzProvider(BaseMetadataProvider):
    """Music-metadata client backed by the MusicBrainz web service."""

    def __init__(
        self,
        settings: Settings,
        quota_manager: QuotaManager,
        collaboration_weight: float = 7.0,
        **request_options: Any,
    ) -> None:
        super().__init__(quota_manager, collaboration_weight=collaboration_weight, **request_options)
        self._settings = settings
        if self.is_available():
            musicbrainzngs.set_useragent(
                settings.musicbrainz_app_name,
                settings.musicbrainz_app_version,
                settings.musicbrainz_contact or None,
            )

    def _translate_error(self, exc: Exception) -> ArtistGraphError | RetryableRequestError:
        if isinstance(exc, musicbrainzngs.NetworkError):
            return RetryableRequestError(f"network error: {exc}")
        if isinstance(exc, musicbrainzngs.ResponseError):
            status = _http_status(exc)
            if status in (400, 404):
                return ProviderNotFoundError(
                    message=f"MusicBrainz resource not found: {exc}",
                    provider_name=self.get_provider_name(),
                )
            if status is not None and status >= 500:
                return RetryableRequestError(f"HTTP {status}", status_code=status)
        if isinstance(exc, musicbrainzngs.WebServiceError):
            return ProviderTransportError(
                message=f"MusicBrainz request failed: {exc}",
                provider_name=self.get_provider_name(),
            )
        return super()._translate_error(exc)

    # -- IMusicMetadataProvider implementation ---------------------------------

    async def search_artist(self, name: str) -> ProviderArtist:
        query = clean_search_query(name)
        response = await self._request(
            "search_artists",
            lambda: asyncio.to_thread(musicbrainzngs.search_artists, artist=query, limit=_SEARCH_LIMIT),
        )
        candidates = [
            ProviderArtist(
                id=item["id"],
                name=item.get("name", ""),
                provider=self.get_provider_name(),
                genres=[t["name"] for t in item.get("tag-list", []) if t.get("name")],
            )
            for item in response.get("artist-list", []) or []
            if item.get("id")
        ]
        best = self._best_match(query, candidates)
        self._logger.info(
            "musicbrainz_search_complete",
            artist=name,
            result_count=len(candidates),
            match=best.name,
        )
        return best

    async def get_artist(self, provider_artist_id: str) -> ProviderArtist:
        response = await self._request(
            "get_artist",
            lambda: asyncio.to_thread(
                musicbrainzngs.get_artist_by_id, provider_artist_id, includes=["tags"]
            ),
        )
        artist = response.get("artist", {}) or {}
        return ProviderArtist(
            id=artist.get("id", provider_artist_id),
            name=artist.get("name", ""),
            provider=self.get_provider_name(),
            genres=[t["name"] for t in artist.get("tag-list", []) if t.get("name")],
        )

    async def get_collaboration_network(
        self,
        provider_artist_id: str,
        options: NetworkOptions,
    ) -> CollaborationNetwork:
        includes = ["artist-rels"]
        if options.include_labels:
            includes.append("label-rels")
        response = await self._request(
            "get_artist_relations",
            lambda: asyncio.to_thread(
                musicbrainzngs.get_artist_by_id, provider_artist_id, includes=includes
            ),
        )
        artist: dict[str, Any] = response.get("artist", {}) or {}

        builder = NetworkBuilder(self_id=provider_artist_id, self_name=artist.get("name", ""))
        relations = (artist.get("artist-relation-list", []) or [])[: options.max_items]
        for relation in relations:
            rel_type = (relation.get("type") or "").lower()
            if rel_type in _PRODUCER_RELATIONS:
                if not options.include_producers:
                    continue
                role = "producer"
            else:
                role = _RELATION_ROLES.get(rel_type)
                if role is None:
                    continue
            target = relation.get("artist", {}) or {}
            builder.add_collaborator(
                target.get("name", ""),
                target.get("id"),
                role,
                f"musicbrainz:relation:{rel_type}:{target.get('id')}",
            )

        if options.include_labels:
            for relation in artist.get("label-relation-list", []) or []:
                label = relation.get("label", {}) or {}
                builder.add_label(
                    label.get("name", ""),
                    label.get("id"),
                    f"musicbrainz:label:{label.get('id')}",
                )

        network = builder.build()
        self._logger.info(
            "musicbrainz_network_complete",
            artist_id=provider_artist_id,
            relations=len(relations),
            collaborators=len(network.collaborators),
        )
        return network

    def get_provider_name(self) -> str:
        return "musicbrainz"

    def is_available(self) -> bool:
        """Return ``True`` when a user-agent app name is configured; no credentials are needed."""
        return bool(self._settings.musicbrainz_app_name)
