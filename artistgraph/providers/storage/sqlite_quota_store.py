"""SQLite persistence for per-provider quota counters."""

from __future__ import annotations

from pathlib import Path

import aiosqlite
import structlog

from artistgraph.interfaces.quota_store import IQuotaStateStore
from artistgraph.models.quota import QuotaState
from artistgraph.providers.storage.sqlite_base import (
    DEFAULT_DB_PATH,
    SQLiteStoreBase,
    from_iso,
    to_iso,
)
from artistgraph.utils.errors import StorageWriteError

logger = structlog.get_logger(logger_name=__name__)

_CREATE_TABLE_SQL = """\
CREATE TABLE IF NOT EXISTS provider_quota_state (
    provider                  TEXT PRIMARY KEY,
    requests_used_today       INTEGER NOT NULL,
    requests_used_this_minute INTEGER NOT NULL,
    daily_ceiling             INTEGER NOT NULL,
    per_minute_ceiling        INTEGER NOT NULL,
    window_reset_at           TEXT    NOT NULL,
    day_reset_at              TEXT    NOT NULL,
    exhausted                 INTEGER NOT NULL DEFAULT 0
);
"""

_UPSERT_SQL = """\
INSERT INTO provider_quota_state (
    provider, requests_used_today, requests_used_this_minute,
    daily_ceiling, per_minute_ceiling, window_reset_at, day_reset_at, exhausted
)
VALUES (?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT(provider) DO UPDATE SET
    requests_used_today       = excluded.requests_used_today,
    requests_used_this_minute = excluded.requests_used_this_minute,
    daily_ceiling             = excluded.daily_ceiling,
    per_minute_ceiling        = excluded.per_minute_ceiling,
    window_reset_at           = excluded.window_reset_at,
    day_reset_at              = excluded.day_reset_at,
    exhausted                 = excluded.exhausted;
"""


class SQLiteQuotaStateStore(SQLiteStoreBase, IQuotaStateStore):
    """Quota counters in ``provider_quota_state``, one row per provider."""

    def __init__(self, db_path: str | Path = DEFAULT_DB_PATH) -> None:
        super().__init__(db_path)

    async def initialize(self) -> None:
        await self._execute_script([_CREATE_TABLE_SQL])

    async def save_states(self, states: list[QuotaState]) -> None:
        rows = [
            (
                s.provider,
                s.requests_used_today,
                s.requests_used_this_minute,
                s.daily_ceiling,
                s.per_minute_ceiling,
                to_iso(s.window_reset_at),
                to_iso(s.day_reset_at),
                int(s.exhausted),
            )
            for s in states
        ]
        try:
            async with self._connect() as db:
                await db.executemany(_UPSERT_SQL, rows)
                await db.commit()
        except aiosqlite.Error as exc:
            raise StorageWriteError(
                message=f"Failed to save quota state: {exc}",
                provider_name=self._provider_name,
            ) from exc
        logger.debug("quota_state_saved", providers=[s.provider for s in states])

    async def load_states(self) -> list[QuotaState]:
        async with self._connect() as db:
            cursor = await db.execute(
                "SELECT provider, requests_used_today, requests_used_this_minute, "
                "daily_ceiling, per_minute_ceiling, window_reset_at, day_reset_at, exhausted "
                "FROM provider_quota_state"
            )
            rows = await cursor.fetchall()
        return [
            QuotaState(
                provider=row["provider"],
                requests_used_today=row["requests_used_today"],
                requests_used_this_minute=row["requests_used_this_minute"],
                daily_ceiling=row["daily_ceiling"],
                per_minute_ceiling=row["per_minute_ceiling"],
                window_reset_at=from_iso(row["window_reset_at"]),
                day_reset_at=from_iso(row["day_reset_at"]),
                exhausted=bool(row["exhausted"]),
            )
            for row in rows
        ]
