"""
Tests for the workspace HTTP routes (tasks, notes, expenses, activity).
"""

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from routers.workspace import router
from services.store import get_store


@pytest.fixture()
def client(store):
    app = FastAPI()
    app.include_router(router)

    async def _store():
        return store

    app.dependency_overrides[get_store] = _store
    with TestClient(app) as c:
        yield c


class TestTasks:
    def test_create_list_update(self, client):
        created = client.post("/api/tasks", params={"session_identity": "u1"}, json={"title": "Call supplier"})
        assert created.status_code == 201
        task = created.json()
        assert task["priority"] == "medium"
        assert task["completed"] is False

        listed = client.get("/api/tasks", params={"session_identity": "u1"}).json()
        assert [t["title"] for t in listed] == ["Call supplier"]

        updated = client.patch(f"/api/tasks/{task['id']}", params={"session_identity": "u1"}, json={"completed": True})
        assert updated.status_code == 200
        assert updated.json()["completed"] is True

    def test_tasks_scoped_by_session(self, client):
        client.post("/api/tasks", params={"session_identity": "u1"}, json={"title": "Mine"})
        assert client.get("/api/tasks", params={"session_identity": "u2"}).json() == []

    def test_update_errors(self, client):
        assert client.patch("/api/tasks/1", params={"session_identity": "u1"}, json={}).status_code == 400
        assert client.patch("/api/tasks/99", params={"session_identity": "u1"}, json={"completed": True}).status_code == 404

    def test_session_identity_required(self, client):
        assert client.get("/api/tasks").status_code == 422

    def test_invalid_priority(self, client):
        response = client.post("/api/tasks", params={"session_identity": "u1"}, json={"title": "x", "priority": "urgent"})
        assert response.status_code == 422


def test_notes(client):
    assert client.post("/api/notes", params={"session_identity": "u1"}, json={"content": "Order more filters"}).status_code == 201
    notes = client.get("/api/notes", params={"session_identity": "u1"}).json()
    assert notes[0]["content"] == "Order more filters"


class TestExpenses:
    def test_summary(self, client):
        for category, amount in (("fuel", 100), ("rent", 500), ("fuel", 50.5)):
            response = client.post(
                "/api/expenses", params={"session_identity": "u1"}, json={"category": category, "amount": amount}
            )
            assert response.status_code == 201

        summary = client.get("/api/expenses/summary", params={"session_identity": "u1"}).json()
        assert summary["total"] == 650.5
        assert summary["by_category"] == [
            {"category": "rent", "total": 500.0},
            {"category": "fuel", "total": 150.5},
        ]

    def test_amount_must_be_positive(self, client):
        response = client.post("/api/expenses", params={"session_identity": "u1"}, json={"category": "fuel", "amount": 0})
        assert response.status_code == 422


def test_activity_newest_first(client, registry, store, run):
    for description in ("first", "second", "third"):
        run(registry.execute("log_activity", {"description": description, "session_identity": "u1"}, store=store))

    entries = client.get("/api/activity", params={"session_identity": "u1", "limit": 2}).json()
    assert [e["description"] for e in entries] == ["third", "second"]
