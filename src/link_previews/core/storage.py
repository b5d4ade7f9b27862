from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

import aiosqlite

logger = logging.getLogger(__name__)


SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;

CREATE TABLE IF NOT EXISTS kv (
  key TEXT PRIMARY KEY,
  value TEXT NOT NULL
);
"""

PLUGIN_DATA_KEY = "plugin_data"


class PersistentStore(Protocol):
    """Externally owned blob storage shared by several writers."""

    async def load(self) -> dict[str, Any]: ...

    async def save(self, data: dict[str, Any]) -> None: ...


@dataclass(frozen=True)
class Database:
    path: Path

    def initialize_sync(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.path)
        try:
            conn.executescript(SCHEMA_SQL)
            conn.commit()
        finally:
            conn.close()

    async def _connect(self) -> aiosqlite.Connection:
        """Open a connection with the WAL pragmas applied.

        Callers close the returned connection in a ``finally`` block rather than
        using ``async with``, since the connection is already started.
        """

        conn = await aiosqlite.connect(self.path)
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    async def kv_get(self, key: str) -> str | None:
        conn = await self._connect()
        try:
            async with conn.execute("SELECT value FROM kv WHERE key=?", (key,)) as cur:
                row = await cur.fetchone()
                return str(row[0]) if row else None
        finally:
            await conn.close()

    async def kv_set(self, key: str, value: str) -> None:
        conn = await self._connect()
        try:
            await conn.execute(
                "INSERT INTO kv(key,value) VALUES(?,?) ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                (key, value),
            )
            await conn.commit()
        finally:
            await conn.close()


@dataclass(frozen=True)
class KvBlobStore:
    """A JSON object stored under one kv row, loaded and saved whole."""

    db: Database
    key: str = PLUGIN_DATA_KEY

    async def load(self) -> dict[str, Any]:
        raw = await self.db.kv_get(self.key)
        if not raw:
            return {}
        try:
            data = json.loads(raw)
        except ValueError:
            logger.warning("Discarding unreadable blob under kv key %r", self.key)
            return {}
        return data if isinstance(data, dict) else {}

    async def save(self, data: dict[str, Any]) -> None:
        await self.db.kv_set(self.key, json.dumps(data))
