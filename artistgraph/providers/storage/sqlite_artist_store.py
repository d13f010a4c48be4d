"""SQLite-backed artist profile store.

Slug uniqueness is enforced by the schema; a losing concurrent insert
surfaces as :class:`StorageConflictError`.  External ids and genres are
merged in SQL so existing values are never overwritten.
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import structlog

from artistgraph.interfaces.artist_store import IArtistStore
from artistgraph.models.entities import ArtistProfile, CreatedVia
from artistgraph.providers.storage.sqlite_base import (
    DEFAULT_DB_PATH,
    SQLiteStoreBase,
    dumps,
    from_iso,
    loads,
    to_iso,
)
from artistgraph.utils.errors import StorageConflictError, StorageWriteError

logger = structlog.get_logger(logger_name=__name__)

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS artist_profiles (
    id           TEXT PRIMARY KEY,
    name         TEXT NOT NULL,
    slug         TEXT NOT NULL UNIQUE,
    external_ids TEXT NOT NULL DEFAULT '{}',
    genres       TEXT NOT NULL DEFAULT '[]',
    created_via  TEXT NOT NULL,
    created_at   TEXT NOT NULL
);
"""

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_artist_profiles_name ON artist_profiles(name);",
    "CREATE INDEX IF NOT EXISTS idx_artist_profiles_created ON artist_profiles(created_at);",
]

_COLUMNS = "id, name, slug, external_ids, genres, created_via, created_at"

_INSERT_SQL = f"""\
INSERT INTO artist_profiles ({_COLUMNS})
VALUES (?, ?, ?, ?, ?, ?, ?);
"""

# json_patch(new, existing): keys already on the profile win.
_ADD_EXTERNAL_IDS_SQL = """\
UPDATE artist_profiles
SET external_ids = json_patch(?, external_ids)
WHERE id = ?;
"""

_ADD_GENRES_SQL = """\
UPDATE artist_profiles
SET genres = (
    SELECT json_group_array(value) FROM (
        SELECT value FROM json_each(artist_profiles.genres)
        UNION
        SELECT value FROM json_each(?)
    )
)
WHERE id = ?;
"""


def _row_to_profile(row: aiosqlite.Row) -> ArtistProfile:
    return ArtistProfile(
        id=row["id"],
        name=row["name"],
        slug=row["slug"],
        external_ids=loads(row["external_ids"], {}),
        genres=loads(row["genres"], []),
        created_via=CreatedVia(row["created_via"]),
        created_at=from_iso(row["created_at"]),
    )


class SQLiteArtistStore(SQLiteStoreBase, IArtistStore):
    """Artist profiles in the ``artist_profiles`` table."""

    def __init__(self, db_path: str | Path = DEFAULT_DB_PATH) -> None:
        super().__init__(db_path)

    async def initialize(self) -> None:
        await self._execute_script([_CREATE_TABLE_SQL, *_CREATE_INDICES_SQL])
        logger.info("artist_store_initialized", path=str(self._db_path))

    async def _fetch_one(self, where: str, value: str) -> ArtistProfile | None:
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM artist_profiles WHERE {where} = ? LIMIT 1",
                (value,),
            )
            row = await cursor.fetchone()
        return _row_to_profile(row) if row else None

    async def get_by_name(self, name: str) -> ArtistProfile | None:
        return await self._fetch_one("name", name)

    async def get_by_slug(self, slug: str) -> ArtistProfile | None:
        return await self._fetch_one("slug", slug)

    async def get_by_id(self, artist_id: str) -> ArtistProfile | None:
        return await self._fetch_one("id", artist_id)

    async def get_many(self, artist_ids: list[str]) -> dict[str, ArtistProfile]:
        unique_ids = list(dict.fromkeys(artist_ids))
        if not unique_ids:
            return {}
        placeholders = ", ".join("?" for _ in unique_ids)
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM artist_profiles WHERE id IN ({placeholders})",
                unique_ids,
            )
            rows = await cursor.fetchall()
        return {row["id"]: _row_to_profile(row) for row in rows}

    async def create(self, profile: ArtistProfile) -> ArtistProfile:
        params = (
            profile.id,
            profile.name,
            profile.slug,
            dumps(profile.external_ids),
            dumps(sorted(set(profile.genres))),
            profile.created_via.value,
            to_iso(profile.created_at),
        )
        try:
            async with self._connect() as db:
                await db.execute(_INSERT_SQL, params)
                await db.commit()
        except aiosqlite.IntegrityError as exc:
            raise StorageConflictError(
                message=f"Artist slug '{profile.slug}' already exists",
                provider_name=self._provider_name,
            ) from exc
        except aiosqlite.Error as exc:
            raise StorageWriteError(
                message=f"Failed to insert artist '{profile.name}': {exc}",
                provider_name=self._provider_name,
            ) from exc

        logger.debug("artist_profile_created", artist_id=profile.id, slug=profile.slug)
        return profile

    async def _update(self, sql: str, params: tuple, artist_id: str) -> ArtistProfile | None:
        try:
            async with self._connect() as db:
                await db.execute(sql, params)
                await db.commit()
        except aiosqlite.Error as exc:
            raise StorageWriteError(
                message=f"Failed to update artist {artist_id}: {exc}",
                provider_name=self._provider_name,
            ) from exc
        return await self.get_by_id(artist_id)

    async def add_external_ids(self, artist_id: str, external_ids: dict[str, str]) -> ArtistProfile | None:
        cleaned = {k: str(v) for k, v in external_ids.items() if v}
        if not cleaned:
            return await self.get_by_id(artist_id)
        return await self._update(_ADD_EXTERNAL_IDS_SQL, (dumps(cleaned), artist_id), artist_id)

    async def add_genres(self, artist_id: str, genres: list[str]) -> ArtistProfile | None:
        cleaned = sorted({g.strip().lower() for g in genres if g and g.strip()})
        if not cleaned:
            return await self.get_by_id(artist_id)
        return await self._update(_ADD_GENRES_SQL, (dumps(cleaned), artist_id), artist_id)

    async def list_profiles(self, limit: int, offset: int) -> list[ArtistProfile]:
        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_COLUMNS} FROM artist_profiles "
                "ORDER BY created_at DESC, id LIMIT ? OFFSET ?",
                (limit, offset),
            )
            rows = await cursor.fetchall()
        return [_row_to_profile(r) for r in rows]

    async def count(self) -> int:
        async with self._connect() as db:
            cursor = await db.execute("SELECT COUNT(*) FROM artist_profiles")
            row = await cursor.fetchone()
        return int(row[0]) if row else 0
