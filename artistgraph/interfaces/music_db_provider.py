"""Abstract base class for music-metadata provider clients.

Concrete clients (Discogs, Spotify, MusicBrainz) translate their API into
the provider-neutral models in :mod:`artistgraph.models.provider`.  Every
outbound request must pass through the shared quota manager and is retried
with exponential backoff on transport failures.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from artistgraph.models.provider import (
    CollaborationNetwork,
    NetworkOptions,
    ProviderArtist,
    RelatedArtist,
)


class IMusicMetadataProvider(ABC):
    """Contract for a music-metadata provider.

    Implementations are stateless apart from credentials, caches and the
    injected quota manager, so one instance may serve concurrent workers.
    """

    @property
    @abstractmethod
    def collaboration_weight(self) -> float:
        """Multiplier turning a co-appearance count into edge strength."""

    @abstractmethod
    async def search_artist(self, name: str) -> ProviderArtist:
        """Find the best-matching artist for *name*.

        Parameters
        ----------
        name:
            Display name as stored on the artist profile.

        Returns
        -------
        ProviderArtist
            The highest-confidence match.

        Raises
        ------
        ProviderNotFoundError
            If the provider has no plausible match.
        ProviderTransportError
            If the request keeps failing after retries.
        QuotaExceededError
            If the provider's daily ceiling has been reached.
        """

    @abstractmethod
    async def get_artist(self, provider_artist_id: str) -> ProviderArtist:
        """Fetch a single artist by the provider's own id."""

    @abstractmethod
    async def get_collaboration_network(
        self,
        provider_artist_id: str,
        options: NetworkOptions,
    ) -> CollaborationNetwork:
        """Collect collaborators (and optionally labels) for an artist.

        Parameters
        ----------
        provider_artist_id:
            The provider's id for the queried artist.
        options:
            ``max_items`` caps the releases / albums inspected;
            ``include_producers`` and ``include_labels`` widen the scan.

        Returns
        -------
        CollaborationNetwork
            Collaborators keyed by provider id (or name when the provider
            has no id) and labels keyed likewise.  The queried artist never
            appears among its own collaborators.
        """

    async def get_related_artists(self, provider_artist_id: str) -> list[RelatedArtist]:
        """Return taste-graph neighbours.  Providers without one return ``[]``."""
        return []

    def supports_related_artists(self) -> bool:
        return False

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return the short provider key used in quotas and external ids."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` when the client has the credentials it needs."""
