from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest


@pytest.fixture()
def tmp_db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.sqlite3"


class MemoryStore:
    """In-memory stand-in for the shared plugin-data blob."""

    def __init__(self, data: dict[str, Any] | None = None, *, fail_saves: bool = False) -> None:
        self.data: dict[str, Any] = dict(data or {})
        self.saves = 0
        self.fail_saves = fail_saves

    async def load(self) -> dict[str, Any]:
        return dict(self.data)

    async def save(self, data: dict[str, Any]) -> None:
        if self.fail_saves:
            raise OSError("disk full")
        self.saves += 1
        self.data = dict(data)


@pytest.fixture()
def memory_store() -> MemoryStore:
    return MemoryStore()


class FakeClock:
    def __init__(self, now_ms: int = 1_700_000_000_000) -> None:
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance_days(self, days: float) -> None:
        self.now_ms += int(days * 24 * 60 * 60 * 1000)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()
