"""Pytest configuration shared across the suite."""

from __future__ import annotations

from typing import Any, Dict, Optional

import pytest


@pytest.fixture
def anyio_backend() -> str:
    """Force AnyIO-powered tests to run against asyncio backend only."""
    return "asyncio"


class MemoryRecordStore:
    """Dict-backed stand-in for the SQLite/DynamoDB record stores."""

    def __init__(self) -> None:
        self.items: dict[tuple[str, str], Dict[str, Any]] = {}

    def put_item(self, item: Dict[str, Any]) -> None:
        self.items[(item["pk"], item["sk"])] = dict(item)

    def get_item(self, *, partition_key: str, sort_key: str) -> Optional[Dict[str, Any]]:
        item = self.items.get((partition_key, sort_key))
        return dict(item) if item else None

    def delete_item(self, *, partition_key: str, sort_key: str) -> None:
        self.items.pop((partition_key, sort_key), None)

    def list_items_with_prefix(
        self, *, partition_key: str, sort_key_prefix: str
    ) -> list[Dict[str, Any]]:
        return [
            dict(item)
            for (pk, sk), item in sorted(self.items.items())
            if pk == partition_key and sk.startswith(sort_key_prefix)
        ]


@pytest.fixture
def memory_store() -> MemoryRecordStore:
    return MemoryRecordStore()
