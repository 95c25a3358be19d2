import os

import pytest
from fastapi.testclient import TestClient

# Never reach for a real cache server from the test suite
os.environ.setdefault("STORE_BACKEND", "memory")

from todo_api.kvstore import InMemoryKeyValueStore  # noqa: E402
from todo_api.main import app  # noqa: E402
from todo_api.repositories import TodoIndexStore, get_repository  # noqa: E402


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def repo(store):
    return TodoIndexStore(store)


@pytest.fixture
def client(repo):
    app.dependency_overrides[get_repository] = lambda: repo
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
