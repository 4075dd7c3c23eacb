from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

TASK_KEYS = {
    "id",
    "title",
    "description",
    "status",
    "priority",
    "due_date",
    "created_at",
    "updated_at",
}


def create_task(client, **overrides):
    payload = {
        "title": "Task",
        "description": None,
        "status": "pending",
        "priority": 1,
        "due_date": None,
    }
    payload.update(overrides)
    r = client.post("/tasks", json=payload)
    assert r.status_code == 201, r.text
    return r.json()


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_fetch_all_tasks(client):
    for title in ("Task A", "Task B", "Task C"):
        create_task(client, title=title)

    r = client.get("/tasks")

    assert r.status_code == 200
    tasks = r.json()
    assert len(tasks) == 3
    assert all(set(t) == TASK_KEYS for t in tasks)
    assert [t["title"] for t in tasks] == ["Task C", "Task B", "Task A"]


def test_create_task(client, task_data):
    r = client.post("/tasks", json=task_data)

    assert r.status_code == 201
    body = r.json()
    assert set(body) == TASK_KEYS
    for key, value in task_data.items():
        assert body[key] == value


def test_create_ignores_store_managed_fields(client, task_data):
    r = client.post(
        "/tasks",
        json={**task_data, "id": 77, "created_at": "2000-01-01T00:00:00Z", "deleted_at": "2000-01-01"},
    )

    assert r.status_code == 201
    body = r.json()
    assert body["id"] != 77
    assert not body["created_at"].startswith("2000")
    assert client.get(f"/tasks/{body['id']}").status_code == 200


def test_validates_required_fields_when_creating(client, publisher):
    r = client.post("/tasks", json={})

    assert r.status_code == 422
    body = r.json()
    assert set(body["errors"]) == {"title", "status", "priority"}
    assert body["errors"]["title"] == ["The task title is required."]
    assert body["message"] == "The task title is required. (and 2 more errors)"
    assert publisher.calls == []


def test_validates_field_types_when_creating(client):
    r = client.post(
        "/tasks",
        json={
            "title": 123,
            "status": "invalid_status",
            "priority": "high",
            "due_date": "invalid_date",
        },
    )

    assert r.status_code == 422
    errors = r.json()["errors"]
    assert {"status", "priority", "due_date"} <= set(errors)
    assert errors["status"] == ["The selected status is invalid."]
    assert errors["due_date"] == ["The due date must be a valid date."]


def test_fetch_single_task(client, task_data):
    created = client.post("/tasks", json=task_data).json()

    r = client.get(f"/tasks/{created['id']}")

    assert r.status_code == 200
    assert r.json() == created
    assert r.json()["due_date"] == "2024-05-06"


def test_fetch_task_with_null_due_date(client):
    created = create_task(client, due_date=None)

    r = client.get(f"/tasks/{created['id']}")

    assert r.status_code == 200
    assert r.json()["due_date"] is None


def test_returns_404_when_task_not_found(client):
    r = client.get("/tasks/999")

    assert r.status_code == 404
    assert r.json() == {"detail": "Task not found"}


def test_update_task(client):
    created = create_task(client)
    update = {
        "title": "Updated Task Title",
        "description": "Updated task description",
        "status": "in_progress",
        "priority": 4,
        "due_date": "2024-05-13",
    }

    r = client.put(f"/tasks/{created['id']}", json=update)

    assert r.status_code == 200
    body = r.json()
    for key, value in update.items():
        assert body[key] == value
    assert body["created_at"] == created["created_at"]
    assert body["updated_at"] != created["updated_at"]
    assert client.get(f"/tasks/{created['id']}").json() == body


def test_validates_fields_when_updating(client):
    created = create_task(client, title="Keep me")

    r = client.put(
        f"/tasks/{created['id']}",
        json={"title": "", "status": "invalid_status", "priority": 10, "due_date": "invalid_date"},
    )

    assert r.status_code == 422
    assert set(r.json()["errors"]) == {"title", "status", "priority", "due_date"}
    assert client.get(f"/tasks/{created['id']}").json()["title"] == "Keep me"


def test_update_missing_task_returns_404(client, task_data):
    r = client.put("/tasks/999", json=task_data)
    assert r.status_code == 404


def test_delete_task(client, store):
    created = create_task(client)

    r = client.delete(f"/tasks/{created['id']}")

    assert r.status_code == 204
    assert r.content == b""
    assert client.get(f"/tasks/{created['id']}").status_code == 404
    assert client.get("/tasks").json() == []
    assert store.find_with_trashed(created["id"]).is_deleted


def test_delete_missing_task_returns_404(client):
    r = client.delete("/tasks/999")
    assert r.status_code == 404


def test_storage_failure_is_a_server_error(client, store, monkeypatch):
    import sqlite3

    def broken():
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr(store, "list_all", broken)

    r = client.get("/tasks")

    assert r.status_code == 500
    assert r.json() == {"detail": "Server Error"}


def test_app_builds_service_from_settings(tmp_path, monkeypatch):
    import main
    from config import Settings

    monkeypatch.setattr(main, "setup_logging", lambda **kwargs: None)
    settings = Settings(db_path=tmp_path / "app.sqlite3", broadcast_driver="null")

    with TestClient(main.create_app(settings=settings)) as client:
        created = create_task(client, title="From lifespan")
        assert client.get(f"/tasks/{created['id']}").status_code == 200

    assert (tmp_path / "app.sqlite3").exists()


HUGE_ID = 99999999999999999999


def test_id_beyond_storage_range_is_not_found(client, task_data, publisher):
    assert client.get(f"/tasks/{HUGE_ID}").status_code == 404
    assert client.put(f"/tasks/{HUGE_ID}", json=task_data).status_code == 404
    r = client.delete(f"/tasks/{HUGE_ID}")

    assert r.status_code == 404
    assert r.json() == {"detail": "Task not found"}
    assert publisher.calls == []


def test_list_body_gets_payload_error(client):
    r = client.post("/tasks", json=["title"])

    assert r.status_code == 422
    assert r.json() == {
        "message": "The request body must be a JSON object.",
        "errors": {"payload": ["The request body must be a JSON object."]},
    }


def test_empty_body_gets_payload_error(client):
    created = create_task(client)

    r = client.put(f"/tasks/{created['id']}")

    assert r.status_code == 422
    assert r.json()["errors"] == {"payload": ["The request body must be a JSON object."]}


def test_malformed_json_gets_payload_error(client):
    r = client.post("/tasks", content=b"{not json", headers={"Content-Type": "application/json"})

    assert r.status_code == 422
    assert set(r.json()["errors"]) == {"payload"}


def test_non_integer_path_id_keeps_default_error(client):
    r = client.get("/tasks/abc")

    assert r.status_code == 422
    assert "detail" in r.json()


def test_publisher_not_built_when_store_fails(tmp_path, monkeypatch):
    import main
    from config import Settings

    built = []
    monkeypatch.setattr(main, "setup_logging", lambda **kwargs: None)
    monkeypatch.setattr(main, "build_publisher", lambda cfg: built.append(cfg))

    def broken_store(path):
        raise OSError("read-only filesystem")

    monkeypatch.setattr(main, "TaskStore", broken_store)
    settings = Settings(db_path=tmp_path / "app.sqlite3", broadcast_driver="null")

    with pytest.raises(OSError):
        with TestClient(main.create_app(settings=settings)):
            pass
    assert built == []
