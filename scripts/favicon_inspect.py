from __future__ import annotations

import json
import sqlite3
import time

from link_previews.core.config import AppConfig
from link_previews.core.favicon_cache import EXPIRATION_MS, FAVICON_CACHE_KEY
from link_previews.core.storage import PLUGIN_DATA_KEY


def main() -> None:
    cfg = AppConfig.load()
    print("db:", cfg.paths.db_path)

    conn = sqlite3.connect(cfg.paths.db_path)
    try:
        cur = conn.cursor()
        cur.execute("SELECT key, LENGTH(value) FROM kv ORDER BY key")
        print("kv rows:")
        for r in cur.fetchall():
            print(" ", r)

        cur.execute("SELECT value FROM kv WHERE key=?", (PLUGIN_DATA_KEY,))
        row = cur.fetchone()
    finally:
        conn.close()

    data = json.loads(row[0]) if row else {}
    entries = data.get(FAVICON_CACHE_KEY) or {}
    now = int(time.time() * 1000)
    expired = [o for o, e in entries.items() if now - int(e.get("timestamp", 0)) >= EXPIRATION_MS]
    print("favicon entries:", len(entries))
    print("expired:", len(expired))
    print("other keys:", sorted(k for k in data if k != FAVICON_CACHE_KEY))

    newest = sorted(entries.items(), key=lambda kv: kv[1].get("timestamp", 0), reverse=True)
    print("recent favicons:")
    for origin, entry in newest[:10]:
        print(" ", origin, entry.get("url"))


if __name__ == "__main__":
    main()
