from __future__ import annotations

import pytest

from ticketing.db.memory_store import MemoryRecordStore


@pytest.fixture
def store() -> MemoryRecordStore:
    return MemoryRecordStore()
