from __future__ import annotations

from collections.abc import Callable
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from tests.api.internal_api_fixtures import INTERNAL_TOKEN
from ticketing.api import deps
from ticketing.api.routes import internal_helpers
from ticketing.db.memory_store import MemoryRecordStore
from ticketing.main import create_app


@pytest.fixture
def internal_settings(monkeypatch) -> SimpleNamespace:
    settings = SimpleNamespace(
        internal_api_token=INTERNAL_TOKEN,
        internal_api_allowlist="127.0.0.1/32",
        internal_api_trusted_proxies="",
        identifier_max_attempts=5,
    )
    monkeypatch.setattr(internal_helpers, "get_settings", lambda: settings)
    monkeypatch.setattr(deps, "get_settings", lambda: settings)
    return settings


@pytest.fixture
def api_store() -> MemoryRecordStore:
    return MemoryRecordStore()


@pytest.fixture
def make_client(internal_settings, api_store) -> Callable[..., TestClient]:
    def factory(client_host: str = "127.0.0.1") -> TestClient:
        app = create_app()
        app.dependency_overrides[deps.get_store] = lambda: api_store
        return TestClient(app, client=(client_host, 5100))

    return factory
