"""Shared fixtures: a fixed clock, a freshly seeded store and an API client."""

from datetime import datetime, timezone

import pytest

from wealthdesk.data.store import DataStore, KVStore

NOW = datetime(2025, 1, 15, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def store():
    return DataStore(KVStore(), seed=42, now=NOW)


@pytest.fixture
def api(store):
    from fastapi.testclient import TestClient
    from wealthdesk.app import server

    server.init_state(store, llm=None)
    yield TestClient(server.app)
    server.STATE.update({"store": None, "llm": None, "ready": False})
