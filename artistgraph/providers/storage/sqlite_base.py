"""Shared plumbing for the aiosqlite-backed stores.

All stores point at the same database file.  Each call opens its own
connection; SQLite's busy timeout serializes concurrent writers.
"""

from __future__ import annotations

import json
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator

import aiosqlite

DEFAULT_DB_PATH = Path("data/artistgraph.db")
_BUSY_TIMEOUT_SECONDS = 30.0

NOW_SQL = "strftime('%Y-%m-%dT%H:%M:%fZ', 'now')"


def dumps(value: Any) -> str:
    return json.dumps(value, default=str, sort_keys=True)


def loads(raw: str | None, default: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return default


def to_iso(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)  # noqa: UP017
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")  # noqa: UP017


def from_iso(raw: str | None) -> datetime:
    if not raw:
        return datetime.now(tz=timezone.utc)  # noqa: UP017
    parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)  # noqa: UP017
    return parsed


class SQLiteStoreBase:
    """Holds the database path and hands out configured connections."""

    _provider_name = "sqlite"

    def __init__(self, db_path: str | Path = DEFAULT_DB_PATH) -> None:
        self._db_path = Path(db_path)

    @property
    def db_path(self) -> Path:
        return self._db_path

    @asynccontextmanager
    async def _connect(self) -> AsyncIterator[aiosqlite.Connection]:
        async with aiosqlite.connect(str(self._db_path), timeout=_BUSY_TIMEOUT_SECONDS) as db:
            db.row_factory = aiosqlite.Row
            yield db

    async def _execute_script(self, statements: list[str]) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        async with self._connect() as db:
            for sql in statements:
                await db.execute(sql)
            await db.commit()
