"""SQLite-backed relationship graph, track credits and label links.

Merging happens inside ``INSERT ... ON CONFLICT DO UPDATE`` so concurrent
writers never need an application lock:

* strength keeps the larger value,
* evidence lists are set-unioned (``json_each`` + ``UNION``),
* provenance entries are appended without duplicates,
* ``collaboration_count`` is summed except for ``influence`` edges,
* ``verified`` is never touched by a machine write.
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import structlog

from artistgraph.interfaces.relationship_store import IRelationshipStore
from artistgraph.models.entities import (
    LabelRelationship,
    Relationship,
    RelationshipType,
    TrackCredit,
)
from artistgraph.providers.storage.sqlite_base import (
    DEFAULT_DB_PATH,
    NOW_SQL,
    SQLiteStoreBase,
    dumps,
    loads,
)
from artistgraph.utils.errors import StorageWriteError

logger = structlog.get_logger(logger_name=__name__)

_CREATE_TABLES_SQL = [
    f"""\
CREATE TABLE IF NOT EXISTS artist_relationships (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    source_artist_id    TEXT    NOT NULL,
    target_artist_id    TEXT    NOT NULL,
    relationship_type   TEXT    NOT NULL,
    strength            REAL    NOT NULL CHECK (strength BETWEEN 0 AND 10),
    collaboration_count INTEGER NOT NULL DEFAULT 0,
    evidence_tracks     TEXT    NOT NULL DEFAULT '[]',
    evidence_releases   TEXT    NOT NULL DEFAULT '[]',
    source_data         TEXT    NOT NULL DEFAULT '[]',
    verified            INTEGER NOT NULL DEFAULT 0,
    created_at          TEXT    NOT NULL DEFAULT ({NOW_SQL}),
    updated_at          TEXT    NOT NULL DEFAULT ({NOW_SQL}),
    UNIQUE(source_artist_id, target_artist_id, relationship_type),
    CHECK (source_artist_id <> target_artist_id)
);
""",
    f"""\
CREATE TABLE IF NOT EXISTS track_credits (
    id          INTEGER PRIMARY KEY AUTOINCREMENT,
    track_id    TEXT    NOT NULL,
    track_table TEXT    NOT NULL,
    artist_id   TEXT    NOT NULL,
    credit_type TEXT    NOT NULL,
    source_api  TEXT    NOT NULL,
    confidence  REAL    NOT NULL CHECK (confidence BETWEEN 0 AND 1),
    created_at  TEXT    NOT NULL DEFAULT ({NOW_SQL}),
    UNIQUE(track_id, artist_id, credit_type)
);
""",
    f"""\
CREATE TABLE IF NOT EXISTS label_relationships (
    id                INTEGER PRIMARY KEY AUTOINCREMENT,
    artist_id         TEXT    NOT NULL,
    label_name        TEXT    NOT NULL,
    label_external_id TEXT,
    release_count     INTEGER NOT NULL DEFAULT 0,
    source_data       TEXT    NOT NULL DEFAULT '[]',
    created_at        TEXT    NOT NULL DEFAULT ({NOW_SQL}),
    updated_at        TEXT    NOT NULL DEFAULT ({NOW_SQL}),
    UNIQUE(artist_id, label_name)
);
""",
]

_CREATE_INDICES_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_rel_source ON artist_relationships(source_artist_id);",
    "CREATE INDEX IF NOT EXISTS idx_rel_target ON artist_relationships(target_artist_id);",
    "CREATE INDEX IF NOT EXISTS idx_rel_type ON artist_relationships(relationship_type);",
    "CREATE INDEX IF NOT EXISTS idx_rel_strength ON artist_relationships(strength);",
    "CREATE INDEX IF NOT EXISTS idx_credits_artist ON track_credits(artist_id);",
    "CREATE INDEX IF NOT EXISTS idx_labels_artist ON label_relationships(artist_id);",
]


def _union_sql(column: str, table: str = "artist_relationships", as_json: bool = False) -> str:
    value = "json(value)" if as_json else "value"
    return (
        f"(SELECT json_group_array({value}) FROM ("
        f"SELECT value FROM json_each({table}.{column}) "
        f"UNION SELECT value FROM json_each(excluded.{column})))"
    )


_UPSERT_RELATIONSHIP_SQL = f"""\
INSERT INTO artist_relationships (
    source_artist_id, target_artist_id, relationship_type, strength,
    collaboration_count, evidence_tracks, evidence_releases, source_data, verified
)
VALUES (?, ?, ?, ?, ?, json(?), json(?), json(?), 0)
ON CONFLICT(source_artist_id, target_artist_id, relationship_type)
DO UPDATE SET
    strength = MAX(artist_relationships.strength, excluded.strength),
    collaboration_count = CASE
        WHEN excluded.relationship_type = 'influence'
            THEN artist_relationships.collaboration_count
        ELSE artist_relationships.collaboration_count + excluded.collaboration_count
    END,
    evidence_tracks = {_union_sql("evidence_tracks")},
    evidence_releases = {_union_sql("evidence_releases")},
    source_data = {_union_sql("source_data", as_json=True)},
    updated_at = {NOW_SQL};
"""

_REL_COLUMNS = (
    "source_artist_id, target_artist_id, relationship_type, strength, "
    "collaboration_count, evidence_tracks, evidence_releases, source_data, verified"
)

_SELECT_RELATIONSHIP_SQL = f"""\
SELECT {_REL_COLUMNS}
FROM artist_relationships
WHERE source_artist_id = ? AND target_artist_id = ? AND relationship_type = ?;
"""

_INSERT_CREDIT_SQL = """\
INSERT INTO track_credits (track_id, track_table, artist_id, credit_type, source_api, confidence)
VALUES (?, ?, ?, ?, ?, ?)
ON CONFLICT(track_id, artist_id, credit_type) DO NOTHING;
"""

_UPSERT_LABEL_SQL = f"""\
INSERT INTO label_relationships (artist_id, label_name, label_external_id, release_count, source_data)
VALUES (?, ?, ?, ?, json(?))
ON CONFLICT(artist_id, label_name)
DO UPDATE SET
    release_count = label_relationships.release_count + excluded.release_count,
    label_external_id = COALESCE(label_relationships.label_external_id, excluded.label_external_id),
    source_data = {_union_sql("source_data", table="label_relationships", as_json=True)},
    updated_at = {NOW_SQL};
"""

_SELECT_LABEL_SQL = """\
SELECT artist_id, label_name, label_external_id, release_count, source_data
FROM label_relationships
WHERE artist_id = ? AND label_name = ?;
"""


def _row_to_relationship(row: aiosqlite.Row) -> Relationship:
    return Relationship(
        source_artist_id=row["source_artist_id"],
        target_artist_id=row["target_artist_id"],
        type=RelationshipType(row["relationship_type"]),
        strength=row["strength"],
        collaboration_count=row["collaboration_count"],
        evidence_tracks=loads(row["evidence_tracks"], []),
        evidence_releases=loads(row["evidence_releases"], []),
        source_data=loads(row["source_data"], []),
        verified=bool(row["verified"]),
    )


class SQLiteRelationshipStore(SQLiteStoreBase, IRelationshipStore):
    """Relationship edges, track credits and label links in SQLite."""

    def __init__(self, db_path: str | Path = DEFAULT_DB_PATH) -> None:
        super().__init__(db_path)

    async def initialize(self) -> None:
        await self._execute_script([*_CREATE_TABLES_SQL, *_CREATE_INDICES_SQL])
        logger.info("relationship_store_initialized", path=str(self._db_path))

    async def upsert_relationship(self, relationship: Relationship) -> Relationship:
        key = (
            relationship.source_artist_id,
            relationship.target_artist_id,
            relationship.type.value,
        )
        params = (
            *key,
            relationship.strength,
            relationship.collaboration_count,
            dumps(sorted(set(relationship.evidence_tracks))),
            dumps(sorted(set(relationship.evidence_releases))),
            dumps(relationship.source_data),
        )
        try:
            async with self._connect() as db:
                await db.execute(_UPSERT_RELATIONSHIP_SQL, params)
                await db.commit()
                cursor = await db.execute(_SELECT_RELATIONSHIP_SQL, key)
                row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StorageWriteError(
                message=f"Failed to upsert relationship {key}: {exc}",
                provider_name=self._provider_name,
            ) from exc

        if row is None:
            raise StorageWriteError(
                message=f"Relationship {key} missing after upsert",
                provider_name=self._provider_name,
            )
        return _row_to_relationship(row)

    async def upsert_credit(self, credit: TrackCredit) -> bool:
        params = (
            credit.track_id,
            credit.track_table,
            credit.artist_id,
            credit.credit_type.value,
            credit.source_api,
            credit.confidence,
        )
        try:
            async with self._connect() as db:
                cursor = await db.execute(_INSERT_CREDIT_SQL, params)
                await db.commit()
                inserted = cursor.rowcount == 1
        except aiosqlite.Error as exc:
            raise StorageWriteError(
                message=f"Failed to insert credit for track {credit.track_id}: {exc}",
                provider_name=self._provider_name,
            ) from exc
        return inserted

    async def upsert_label(self, label: LabelRelationship) -> LabelRelationship:
        params = (
            label.artist_id,
            label.label_name,
            label.label_external_id,
            label.release_count,
            dumps(label.source_data),
        )
        try:
            async with self._connect() as db:
                await db.execute(_UPSERT_LABEL_SQL, params)
                await db.commit()
                cursor = await db.execute(_SELECT_LABEL_SQL, (label.artist_id, label.label_name))
                row = await cursor.fetchone()
        except aiosqlite.Error as exc:
            raise StorageWriteError(
                message=f"Failed to upsert label '{label.label_name}': {exc}",
                provider_name=self._provider_name,
            ) from exc

        if row is None:
            raise StorageWriteError(
                message=f"Label link '{label.label_name}' missing after upsert",
                provider_name=self._provider_name,
            )
        return LabelRelationship(
            artist_id=row["artist_id"],
            label_name=row["label_name"],
            label_external_id=row["label_external_id"],
            release_count=row["release_count"],
            source_data=loads(row["source_data"], []),
        )

    async def list_relationships(
        self,
        artist_id: str | None = None,
        relationship_type: RelationshipType | None = None,
        min_strength: float = 0.0,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Relationship]:
        clauses = ["strength >= ?"]
        params: list[object] = [min_strength]
        if artist_id:
            clauses.append("(source_artist_id = ? OR target_artist_id = ?)")
            params.extend([artist_id, artist_id])
        if relationship_type is not None:
            clauses.append("relationship_type = ?")
            params.append(relationship_type.value)
        params.extend([limit, offset])

        async with self._connect() as db:
            cursor = await db.execute(
                f"SELECT {_REL_COLUMNS} FROM artist_relationships "
                f"WHERE {' AND '.join(clauses)} "
                "ORDER BY strength DESC, collaboration_count DESC, id "
                "LIMIT ? OFFSET ?",
                params,
            )
            rows = await cursor.fetchall()
        return [_row_to_relationship(r) for r in rows]

    async def count_relationships(self) -> dict[str, int]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT relationship_type, COUNT(*) AS n FROM artist_relationships "
                "GROUP BY relationship_type"
            )
            rows = await cursor.fetchall()
        counts = {rel_type.value: 0 for rel_type in RelationshipType}
        for row in rows:
            counts[row["relationship_type"]] = row["n"]
        counts["total"] = sum(counts.values())
        return counts

    async def count_credits(self) -> int:
        async with self._connect() as db:
            cursor = await db.execute("SELECT COUNT(*) FROM track_credits")
            row = await cursor.fetchone()
        return int(row[0]) if row else 0
