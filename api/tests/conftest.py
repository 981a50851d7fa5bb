from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from core import kv

_ENV_VARS = (
    "ART_SIZES",
    "ART_DEFAULT_SIZE",
    "PAGE_DEFAULT_LIMIT",
    "PAGE_MAX_LIMIT",
    "KV_BACKEND",
    "STORE_TIMEOUT_S",
)


class FailingBackend(kv.MemoryBackend):
    """Memory backend whose every call fails like a dropped connection."""

    async def get(self, key):
        raise ConnectionError("connection reset")

    async def put(self, key, value):
        raise ConnectionError("connection reset")

    async def delete(self, key):
        raise ConnectionError("connection reset")

    async def scan(self, start, end, *, after, limit, reverse):
        raise ConnectionError("connection reset")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def memory_store():
    store = kv.OrderedStore(kv.MemoryBackend())
    kv.set_store(store)
    yield store
    kv.set_store(None)


@pytest.fixture
def failing_store():
    store = kv.OrderedStore(FailingBackend())
    kv.set_store(store)
    yield store
    kv.set_store(None)


@pytest.fixture
def client(memory_store):
    from main import app

    return TestClient(app)


@pytest.fixture
def stored_keys(memory_store):
    """Every key currently in the memory store, ascending."""

    def _keys() -> list[kv.Key]:
        entries, _ = asyncio.run(memory_store.scan((), limit=10_000))
        return [entry.key for entry in entries]

    return _keys
