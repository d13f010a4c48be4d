"""SQLite-backed track sources: the live-radio log and the show archive.

When both sources are selected the two tables are merged into one stream
ordered by recency, so ``offset`` / ``limit`` windows stay disjoint across
consecutive batches.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
import structlog

from artistgraph.interfaces.track_store import ITrackStore
from artistgraph.models.entities import TrackRecord, TrackSource
from artistgraph.providers.storage.sqlite_base import (
    DEFAULT_DB_PATH,
    SQLiteStoreBase,
    from_iso,
    to_iso,
)
from artistgraph.utils.errors import ConfigurationError, StorageWriteError

logger = structlog.get_logger(logger_name=__name__)

_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)  # noqa: UP017

_TABLES: dict[TrackSource, str] = {
    TrackSource.LIVE: "live_tracks",
    TrackSource.ARCHIVE: "archive_tracks",
}


def _to_record(row: aiosqlite.Row) -> TrackRecord:
    """Build a track from a row; unreadable rows come back flagged with ``defect``."""
    source = TrackSource(row["source"])
    try:
        return TrackRecord(
            track_id=str(row["track_id"]),
            artist=row["artist"],
            title=row["title"],
            created_at=from_iso(row["created_at"]),
            source=source,
        )
    except (AttributeError, TypeError, ValueError) as exc:
        logger.warning(
            "track_row_unreadable",
            track_id=row["track_id"],
            source=source.value,
            error=str(exc),
        )
        return TrackRecord(
            track_id=str(row["track_id"]),
            created_at=_EPOCH,
            source=source,
            defect=f"Unreadable track row: {exc}",
        )


def _create_table_sql(table: str) -> str:
    return (
        f"CREATE TABLE IF NOT EXISTS {table} ("
        "track_id TEXT PRIMARY KEY, "
        "artist TEXT, "
        "title TEXT, "
        "created_at TEXT NOT NULL)"
    )


def _select_sql(source: TrackSource) -> str:
    return (
        f"SELECT track_id, artist, title, created_at, '{source.value}' AS source "
        f"FROM {_TABLES[source]}"
    )


class SQLiteTrackStore(SQLiteStoreBase, ITrackStore):
    """Reads track pages from ``live_tracks`` and ``archive_tracks``."""

    def __init__(self, db_path: str | Path = DEFAULT_DB_PATH) -> None:
        super().__init__(db_path)

    async def initialize(self) -> None:
        statements: list[str] = []
        for table in _TABLES.values():
            statements.append(_create_table_sql(table))
            statements.append(
                f"CREATE INDEX IF NOT EXISTS idx_{table}_created ON {table}(created_at);"
            )
        await self._execute_script(statements)
        logger.info("track_store_initialized", path=str(self._db_path))

    async def fetch_page(
        self,
        sources: list[TrackSource],
        limit: int,
        offset: int,
    ) -> list[TrackRecord]:
        selected = [s for s in TrackSource if s in set(sources)]
        if not selected:
            return []

        union = " UNION ALL ".join(_select_sql(s) for s in selected)
        sql = (
            f"SELECT * FROM ({union}) "
            "ORDER BY created_at DESC, source, track_id "
            "LIMIT ? OFFSET ?"
        )
        try:
            async with self._connect() as db:
                cursor = await db.execute(sql, (limit, offset))
                rows = await cursor.fetchall()
        except aiosqlite.Error as exc:
            raise ConfigurationError(
                message=f"Track store unavailable: {exc}",
                provider_name=self._provider_name,
            ) from exc

        return [_to_record(row) for row in rows]

    async def add_tracks(self, tracks: list[TrackRecord]) -> int:
        added = 0
        try:
            async with self._connect() as db:
                for track in tracks:
                    cursor = await db.execute(
                        f"INSERT OR IGNORE INTO {_TABLES[track.source]} "
                        "(track_id, artist, title, created_at) VALUES (?, ?, ?, ?)",
                        (track.track_id, track.artist, track.title, to_iso(track.created_at)),
                    )
                    added += max(cursor.rowcount, 0)
                await db.commit()
        except aiosqlite.Error as exc:
            raise StorageWriteError(
                message=f"Failed to add tracks: {exc}",
                provider_name=self._provider_name,
            ) from exc

        logger.info("tracks_added", requested=len(tracks), added=added)
        return added

    async def count(self, sources: list[TrackSource]) -> int:
        total = 0
        async with self._connect() as db:
            for source in TrackSource:
                if source not in sources:
                    continue
                cursor = await db.execute(f"SELECT COUNT(*) FROM {_TABLES[source]}")
                row = await cursor.fetchone()
                total += int(row[0]) if row else 0
        return total
