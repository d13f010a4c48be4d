"""Drives one artist profile through the requested provider clients.

For each provider the service identifies the artist (reusing a stored
provider id where it has one), fetches its collaboration network and,
where supported, its related artists, then converts everything into
:class:`Relationship` and :class:`LabelRelationship` records.

Failures stay inside the provider that raised them:

* ``ProviderNotFoundError``: logged and skipped.
* ``QuotaExceededError``: provider reported as exhausted for the run.
* ``QuotaDeferredError``: counted as a deferred call.
* ``ProviderTransportError`` / ``StorageWriteError``: recorded as an error.
* ``ConfigurationError``: propagates.
* Anything else: recorded as an error and logged with its traceback.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from artistgraph.interfaces.music_db_provider import IMusicMetadataProvider
from artistgraph.models.entities import (
    ArtistProfile,
    CreatedVia,
    LabelRelationship,
    Relationship,
    RelationshipType,
)
from artistgraph.models.provider import (
    CollaborationNetwork,
    NetworkOptions,
    ProviderArtist,
)
from artistgraph.services.artist_resolver import ArtistResolver
from artistgraph.utils.errors import (
    ConfigurationError,
    InvalidNameError,
    ProviderNotFoundError,
    ProviderTransportError,
    QuotaDeferredError,
    QuotaExceededError,
    StorageWriteError,
)
from artistgraph.utils.logging import get_logger

MAX_STRENGTH = 10.0
# Popularity gap assumed when either side has no popularity score.
_UNKNOWN_POPULARITY_GAP = 50


def collaboration_strength(count: int, weight: float) -> float:
    """``min(count * weight, 10)``."""
    return min(count * weight, MAX_STRENGTH)


def influence_strength(popularity_a: int | None, popularity_b: int | None) -> float:
    """``max(1, 10 - |popA - popB| / 10)``."""
    if popularity_a is None or popularity_b is None:
        gap = _UNKNOWN_POPULARITY_GAP
    else:
        gap = abs(popularity_a - popularity_b)
    return max(1.0, MAX_STRENGTH - gap / 10)


def relationship_type_for_roles(roles: list[str]) -> RelationshipType:
    """Pick the edge type a collaborator's roles imply.

    remix beats producer beats featured; anything else is a collaboration.
    """
    joined = " ".join(roles).lower()
    if "remix" in joined:
        return RelationshipType.REMIX
    if "produc" in joined:
        return RelationshipType.PRODUCER
    if "feat" in joined:
        return RelationshipType.FEATURED
    return RelationshipType.COLLABORATION


@dataclass
class EnrichmentResult:
    """Everything one artist's enrichment produced."""

    profile: ArtistProfile
    relationships: list[Relationship] = field(default_factory=list)
    labels: list[LabelRelationship] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    exhausted_providers: set[str] = field(default_factory=set)
    deferred_calls: int = 0
    invalid_names: int = 0
    providers_succeeded: list[str] = field(default_factory=list)


class EnrichmentService:
    """Collects provider-sourced relationships for artist profiles."""

    def __init__(
        self,
        providers: dict[str, IMusicMetadataProvider],
        resolver: ArtistResolver,
        default_options: NetworkOptions | None = None,
    ) -> None:
        self._providers = providers
        self._resolver = resolver
        self._default_options = default_options or NetworkOptions()
        self._logger = get_logger(__name__)

    @property
    def provider_names(self) -> list[str]:
        return sorted(self._providers)

    async def enrich(
        self,
        profile: ArtistProfile,
        provider_names: list[str],
        options: NetworkOptions | None = None,
        skip_providers: set[str] | None = None,
    ) -> EnrichmentResult:
        """Run every requested provider for *profile*.

        Parameters
        ----------
        profile:
            The artist to enrich.
        provider_names:
            Provider keys to consult, in order.
        options:
            Network options; the service defaults when omitted.
        skip_providers:
            Providers already known to be exhausted this run.
        """
        options = options or self._default_options
        skip = skip_providers or set()
        result = EnrichmentResult(profile=profile)

        for name in provider_names:
            client = self._providers.get(name)
            if client is None or name in skip:
                continue
            try:
                await self._enrich_from(client, result, options)
                result.providers_succeeded.append(name)
            except ProviderNotFoundError:
                self._logger.info("provider_artist_not_found", provider=name, artist=profile.name)
            except QuotaExceededError:
                result.exhausted_providers.add(name)
            except QuotaDeferredError:
                result.deferred_calls += 1
                self._logger.info("enrichment_deferred", provider=name, artist=profile.name)
            except (ProviderTransportError, StorageWriteError) as exc:
                result.errors.append(f"{profile.name}: {exc}")
                self._logger.warning(
                    "enrichment_provider_failed",
                    provider=name,
                    artist=profile.name,
                    error=str(exc),
                )
            except ConfigurationError:
                raise
            except Exception as exc:
                # Malformed provider payloads stay isolated to this provider.
                result.errors.append(f"{profile.name}: [{name}] {type(exc).__name__}: {exc}")
                self._logger.error(
                    "enrichment_provider_crashed",
                    provider=name,
                    artist=profile.name,
                    error=str(exc),
                    exc_info=True,
                )

        return result

    async def _identify(self, client: IMusicMetadataProvider, profile: ArtistProfile) -> ProviderArtist:
        name = client.get_provider_name()
        known_id = profile.external_ids.get(name)
        if known_id is None:
            return await client.search_artist(profile.name)
        if client.supports_related_artists():
            # Influence strength needs the artist's popularity.
            return await client.get_artist(known_id)
        return ProviderArtist(id=known_id, name=profile.name, provider=name)

    async def _enrich_from(
        self,
        client: IMusicMetadataProvider,
        result: EnrichmentResult,
        options: NetworkOptions,
    ) -> None:
        provider = client.get_provider_name()
        provider_artist = await self._identify(client, result.profile)
        result.profile = await self._resolver.attach_provider_data(
            result.profile, provider, provider_artist.id, provider_artist.genres
        )

        network = await client.get_collaboration_network(provider_artist.id, options)
        await self._collect_network(client, result, network)

        if client.supports_related_artists():
            related = await client.get_related_artists(provider_artist.id)
            for neighbour in related:
                try:
                    target = await self._resolver.resolve_with_external_id(
                        neighbour.name, provider, neighbour.id, neighbour.genres
                    )
                except InvalidNameError:
                    result.invalid_names += 1
                    continue
                result.relationships.append(
                    Relationship(
                        source_artist_id=result.profile.id,
                        target_artist_id=target.id,
                        type=RelationshipType.INFLUENCE,
                        strength=influence_strength(provider_artist.popularity, neighbour.popularity),
                        collaboration_count=0,
                        source_data=[
                            {
                                "source": provider,
                                "kind": "related_artists",
                                "provider_artist_id": neighbour.id,
                                "popularity": neighbour.popularity,
                            }
                        ],
                    )
                )

        self._logger.info(
            "artist_enriched",
            provider=provider,
            artist=result.profile.name,
            collaborators=len(network.collaborators),
            labels=len(network.labels),
            relationships=len(result.relationships),
        )

    async def _collect_network(
        self,
        client: IMusicMetadataProvider,
        result: EnrichmentResult,
        network: CollaborationNetwork,
    ) -> None:
        provider = client.get_provider_name()
        for collaborator in network.collaborators.values():
            try:
                target = await self._resolver.resolve_with_external_id(
                    collaborator.artist_name,
                    provider,
                    collaborator.artist_id,
                    created_via=CreatedVia.ENRICHMENT,
                )
            except InvalidNameError:
                result.invalid_names += 1
                continue
            result.relationships.append(
                Relationship(
                    source_artist_id=result.profile.id,
                    target_artist_id=target.id,
                    type=relationship_type_for_roles(collaborator.roles),
                    strength=collaboration_strength(
                        collaborator.collaboration_count, client.collaboration_weight
                    ),
                    collaboration_count=collaborator.collaboration_count,
                    evidence_releases=list(collaborator.evidence),
                    source_data=[
                        {
                            "source": provider,
                            "roles": list(collaborator.roles),
                            "provider_artist_id": collaborator.artist_id,
                        }
                    ],
                )
            )

        for label in network.labels.values():
            result.labels.append(
                LabelRelationship(
                    artist_id=result.profile.id,
                    label_name=label.label_name,
                    label_external_id=f"{provider}:{label.label_id}" if label.label_id else None,
                    release_count=label.release_count,
                    source_data=[{"source": provider, "evidence": list(label.evidence)}],
                )
            )
