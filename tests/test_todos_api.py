import json
import logging

from fastapi.testclient import TestClient

from todo_api.errors import StorageError
from todo_api.kvstore import KeyValueStore
from todo_api.main import app
from todo_api.repositories import (
    INDEX_KEY,
    TodoIndexStore,
    _shared_repository,
    get_repository,
    record_key,
    reset_repository,
)


def assert_todo_shape(todo: dict):
    assert set(todo) == {"id", "title", "completed"}
    assert isinstance(todo["id"], str)
    assert isinstance(todo["title"], str)
    assert isinstance(todo["completed"], bool)


class BrokenStore(KeyValueStore):
    def get(self, key):
        raise StorageError("connection refused")

    def set(self, key, value, durable=True):
        raise StorageError("connection refused")

    def delete(self, key, durable=True):
        raise StorageError("connection refused")


class TestHealth:
    def test_health_check(self, client):
        res = client.get("/")
        assert res.status_code == 200
        data = res.json()
        assert data["message"] == "Healthy"
        assert data["backend"] == "memory"

    def test_docs_served(self, client):
        assert client.get("/api-docs").status_code == 200
        assert "/todos" in client.get("/openapi.json").json()["paths"]


class TestTodosCRUD:
    def test_full_lifecycle(self, client):
        res = client.post("/todos", json={"title": "buy milk"})
        assert res.status_code == 201
        todo = res.json()
        assert_todo_shape(todo)
        assert todo["title"] == "buy milk"
        assert todo["completed"] is False
        assert todo["id"].isdigit()
        tid = todo["id"]

        res_list = client.get("/todos")
        assert res_list.status_code == 200
        assert res_list.json() == [todo]

        res_put = client.put(f"/todos/{tid}", json={"completed": True})
        assert res_put.status_code == 200
        assert res_put.json() == {"id": tid, "title": "buy milk", "completed": True}

        res_del = client.delete(f"/todos/{tid}")
        assert res_del.status_code == 204
        assert res_del.text == ""

        res_get = client.get(f"/todos/{tid}")
        assert res_get.status_code == 404
        assert res_get.json()["detail"] == "Todo not found"

    def test_create_with_completed(self, client):
        res = client.post("/todos", json={"title": "Read book", "completed": True})
        assert res.status_code == 201
        tid = res.json()["id"]

        fetched = client.get(f"/todos/{tid}").json()
        assert fetched == {"id": tid, "title": "Read book", "completed": True}

    def test_list_keeps_creation_order(self, client):
        titles = [f"Task {i}" for i in range(5)]
        created = [client.post("/todos", json={"title": t}).json() for t in titles]
        listed = client.get("/todos").json()
        assert [t["id"] for t in listed] == [t["id"] for t in created]
        assert len({t["id"] for t in created}) == 5

    def test_list_empty(self, client):
        res = client.get("/todos")
        assert res.status_code == 200
        assert res.json() == []

    def test_update_title_only_keeps_completed(self, client):
        tid = client.post("/todos", json={"title": "Initial", "completed": True}).json()["id"]
        res = client.put(f"/todos/{tid}", json={"title": "Renamed"})
        assert res.status_code == 200
        assert res.json() == {"id": tid, "title": "Renamed", "completed": True}

    def test_not_found_everywhere(self, client):
        assert client.get("/todos/999999").status_code == 404
        assert client.put("/todos/999999", json={"title": "Nope"}).status_code == 404
        res_del = client.delete("/todos/999999")
        assert res_del.status_code == 404
        assert res_del.json()["detail"] == "Todo not found"

    def test_id_that_cannot_be_a_key_is_not_found(self, client):
        assert client.get("/todos/has%20space").status_code == 404

    def test_delete_prunes_index(self, client, store):
        keep = client.post("/todos", json={"title": "keep"}).json()["id"]
        drop = client.post("/todos", json={"title": "drop"}).json()["id"]
        assert client.delete(f"/todos/{drop}").status_code == 204
        assert json.loads(store.get(INDEX_KEY)) == [keep]
        assert client.delete(f"/todos/{drop}").status_code == 404


class TestValidationErrors:
    def test_create_missing_title(self, client):
        res = client.post("/todos", json={"completed": True})
        assert res.status_code == 400
        body = res.json()
        assert body["error"] == "ValidationError"
        assert body["message"] == "Request validation failed"
        assert isinstance(body["detail"], list)

    def test_create_blank_title(self, client):
        res = client.post("/todos", json={"title": "   "})
        assert res.status_code == 400
        assert res.json()["error"] == "ValidationError"

    def test_update_bad_completed_type(self, client):
        tid = client.post("/todos", json={"title": "x"}).json()["id"]
        res = client.put(f"/todos/{tid}", json={"completed": "maybe"})
        assert res.status_code == 400


class TestStoreFailures:
    def setup_method(self):
        broken = TodoIndexStore(BrokenStore())
        app.dependency_overrides[get_repository] = lambda: broken

    def teardown_method(self):
        app.dependency_overrides.clear()

    def test_every_operation_maps_to_500(self):
        client = TestClient(app)
        res = client.post("/todos", json={"title": "x"})
        assert res.status_code == 500
        assert res.json()["detail"] == "Error creating todo"
        assert client.get("/todos").json()["detail"] == "Error fetching todos"
        assert client.get("/todos/1").status_code == 500
        assert client.put("/todos/1", json={"title": "y"}).status_code == 500
        assert client.delete("/todos/1").status_code == 500


class TestMalformedRecords:
    def test_list_skips_record_without_todo_shape(self, client, store):
        kept = client.post("/todos", json={"title": "kept"}).json()
        store.set(record_key("bad"), json.dumps({"title": "no id"}))
        store.set(INDEX_KEY, json.dumps([kept["id"], "bad"]))
        res = client.get("/todos")
        assert res.status_code == 200
        assert res.json() == [kept]

    def test_wrongly_typed_record_is_not_found(self, client, store):
        store.set(record_key("7"), json.dumps({"id": 7, "title": "x", "completed": False}))
        assert client.get("/todos/7").status_code == 404
        assert client.put("/todos/7", json={"completed": True}).status_code == 404
        assert client.delete("/todos/7").status_code == 404


class TestStartup:
    def test_startup_writes_empty_index(self, client, store):
        with client:
            assert store.get(INDEX_KEY) == "[]"
            assert client.get("/todos").json() == []

    def test_startup_keeps_existing_index(self, client, store):
        created = client.post("/todos", json={"title": "keep me"}).json()
        before = store.get(INDEX_KEY)
        with client:
            assert store.get(INDEX_KEY) == before
            assert client.get("/todos").json() == [created]

    def test_failed_bootstrap_still_serves(self, caplog):
        broken = TodoIndexStore(BrokenStore())
        app.dependency_overrides[get_repository] = lambda: broken
        try:
            with caplog.at_level(logging.ERROR, logger="todo_api.main"):
                with TestClient(app) as client:
                    res = client.get("/")
                    assert res.status_code == 200
                    assert res.json()["message"] == "Healthy"
                    assert client.get("/todos").status_code == 500
            assert "Could not initialize todo index" in caplog.text
        finally:
            app.dependency_overrides.clear()

    def test_shared_repository_bootstrapped_and_released(self, monkeypatch):
        monkeypatch.setenv("STORE_BACKEND", "memory")
        reset_repository()
        with TestClient(app) as client:
            shared = get_repository()
            assert shared.ensure_index() is False
            assert client.get("/").json()["backend"] == "memory"
            assert client.get("/todos").json() == []
        assert _shared_repository.cache_info().currsize == 0
