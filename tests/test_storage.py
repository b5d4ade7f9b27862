from __future__ import annotations

from pathlib import Path

import pytest

from link_previews.core.storage import Database, KvBlobStore


@pytest.mark.asyncio
async def test_kv_round_trip(tmp_db_path: Path) -> None:
    db = Database(tmp_db_path)
    db.initialize_sync()
    assert await db.kv_get("missing") is None
    await db.kv_set("k", "v1")
    await db.kv_set("k", "v2")
    assert await db.kv_get("k") == "v2"


@pytest.mark.asyncio
async def test_blob_store_loads_empty_and_saves_whole_object(tmp_db_path: Path) -> None:
    db = Database(tmp_db_path)
    db.initialize_sync()
    store = KvBlobStore(db)
    assert await store.load() == {}
    await store.save({"settings": {"a": 1}, "favicon-cache": {}})
    assert await store.load() == {"settings": {"a": 1}, "favicon-cache": {}}


@pytest.mark.asyncio
async def test_blob_store_discards_unreadable_json(tmp_db_path: Path) -> None:
    db = Database(tmp_db_path)
    db.initialize_sync()
    await db.kv_set("plugin_data", "{broken")
    assert await KvBlobStore(db).load() == {}
