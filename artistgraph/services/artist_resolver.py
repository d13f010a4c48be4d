"""Find-or-create resolution of free-text artist names to canonical profiles.

Resolution is exact equality on the normalized slug.  Concurrent resolvers
of the same new name race on the slug's unique index; the loser gets a
:class:`StorageConflictError` and reads the winner's row.
"""

from __future__ import annotations

from cachetools import LRUCache

from artistgraph.interfaces.artist_store import IArtistStore
from artistgraph.models.entities import ArtistProfile, CreatedVia
from artistgraph.utils.errors import StorageConflictError, StorageWriteError
from artistgraph.utils.logging import get_logger
from artistgraph.utils.text_normalizer import clean_display_name, normalize_name

_DEFAULT_MEMO_SIZE = 4096


class ArtistResolver:
    """Resolves names to :class:`ArtistProfile` records, creating them on demand.

    A bounded LRU memo keyed by slug avoids repeated store lookups for
    names that recur across a batch.
    """

    def __init__(self, artist_store: IArtistStore, memo_size: int = _DEFAULT_MEMO_SIZE) -> None:
        self._store = artist_store
        self._memo: LRUCache[str, ArtistProfile] = LRUCache(maxsize=memo_size)
        self._logger = get_logger(__name__)

    async def resolve(
        self,
        name: str,
        created_via: CreatedVia = CreatedVia.TRACK_PARSING,
    ) -> ArtistProfile:
        """Return the profile for *name*, creating it if needed.

        Raises
        ------
        InvalidNameError
            If *name* does not normalize to a usable slug.
        StorageWriteError
            If the profile can neither be created nor read back.
        """
        display_name = clean_display_name(name or "")
        normalized = normalize_name(display_name)

        cached = self._memo.get(normalized.slug)
        if cached is not None:
            return cached

        profile = await self._store.get_by_name(display_name)
        if profile is None:
            profile = await self._store.get_by_slug(normalized.slug)
        if profile is None:
            profile = await self._create(display_name, normalized.slug, created_via)

        self._memo[normalized.slug] = profile
        return profile

    async def _create(self, display_name: str, slug: str, created_via: CreatedVia) -> ArtistProfile:
        candidate = ArtistProfile(name=display_name, slug=slug, created_via=created_via)
        try:
            created = await self._store.create(candidate)
        except StorageConflictError:
            existing = await self._store.get_by_slug(slug)
            if existing is None:
                raise StorageWriteError(
                    message=f"Artist '{display_name}' conflicted on insert but cannot be read back",
                ) from None
            self._logger.debug("artist_resolve_conflict_recovered", slug=slug, artist_id=existing.id)
            return existing

        self._logger.info(
            "artist_profile_created",
            artist=display_name,
            slug=slug,
            artist_id=created.id,
            created_via=created_via.value,
        )
        return created

    async def resolve_with_external_id(
        self,
        name: str,
        provider: str,
        provider_artist_id: str | None,
        genres: list[str] | None = None,
        created_via: CreatedVia = CreatedVia.ENRICHMENT,
    ) -> ArtistProfile:
        """Resolve *name*, then record the provider id and genres on the profile.

        An id the profile already holds for *provider* is kept.
        """
        profile = await self.resolve(name, created_via=created_via)
        return await self.attach_provider_data(profile, provider, provider_artist_id, genres)

    async def attach_provider_data(
        self,
        profile: ArtistProfile,
        provider: str,
        provider_artist_id: str | None,
        genres: list[str] | None = None,
    ) -> ArtistProfile:
        updated = profile
        if provider_artist_id and provider not in profile.external_ids:
            updated = await self._store.add_external_ids(profile.id, {provider: provider_artist_id}) or updated
        known = set(updated.genres)
        new_genres = [g for g in genres or [] if g.strip().lower() not in known]
        if new_genres:
            updated = await self._store.add_genres(profile.id, new_genres) or updated
        if updated is not profile:
            self._memo[updated.slug] = updated
        return updated

    def forget(self, slug: str) -> None:
        self._memo.pop(slug, None)
