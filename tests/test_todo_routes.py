"""
tests/test_todo_routes.py -- Integration tests for /api/todo/*.

Full stack: routing -> bearer auth -> TaskService -> TaskStore -> camelCase
envelope. Each test registers its own user(s) so counts are not disturbed by
tasks other tests in the module created.

Coverage:
  - 401 on every route without a token
  - alice end-to-end: create -> toggle -> stats
  - Create: 201 + Location, enum labels on the wire, invalid enum 400
  - Cross-owner access is a 404, never a 403
  - List filters: invalid category 400, invalid priority ignored, sort
  - search / category / stats routes are not shadowed by /todo/{id}
  - Toggle with id <= 0 is a 400; delete twice is a 404
  - Storage failures and unexpected errors become 500 envelopes without
    internal detail
"""

from __future__ import annotations

from datetime import datetime
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from api.main import app


def _create(client: TestClient, headers: dict, **overrides) -> dict:
    body = {"title": "Pay bills", "category": "work", "priority": "high"}
    body.update(overrides)
    resp = client.post("/api/todo", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


class TestTodoAuthFailure:
    @pytest.mark.parametrize(
        "method, path",
        [
            ("GET", "/api/todo"),
            ("GET", "/api/todo/search?query=x"),
            ("GET", "/api/todo/category/work"),
            ("GET", "/api/todo/stats"),
            ("GET", "/api/todo/1"),
            ("PUT", "/api/todo/1"),
            ("DELETE", "/api/todo/1"),
            ("PATCH", "/api/todo/1/toggle"),
        ],
    )
    def test_requires_token(self, api_client: TestClient, method: str, path: str) -> None:
        body = {"title": "x", "category": "work", "priority": "low"} if method == "PUT" else None
        resp = api_client.request(method, path, json=body)
        assert resp.status_code == 401
        assert resp.json()["success"] is False

    def test_create_requires_token(self, api_client: TestClient) -> None:
        resp = api_client.post("/api/todo", json={"title": "x", "category": "work", "priority": "low"})
        assert resp.status_code == 401


class TestAliceEndToEnd:
    def test_create_toggle_stats(self, api_client: TestClient, register_and_login) -> None:
        headers = register_and_login("alice")

        task = _create(api_client, headers, title="Pay bills", category="work", priority="high")
        assert task["isCompleted"] is False
        assert task["completedAt"] is None
        assert task["category"] == "Work"
        assert task["priority"] == "High"

        resp = api_client.patch(f"/api/todo/{task['id']}/toggle", headers=headers)
        assert resp.status_code == 200, resp.text
        assert resp.json()["message"] == "Task status updated."
        toggled = resp.json()["data"]
        assert toggled["isCompleted"] is True
        assert toggled["completedAt"] is not None

        resp = api_client.get("/api/todo/stats", headers=headers)
        assert resp.status_code == 200, resp.text
        assert resp.json()["data"] == {
            "total": 1,
            "work": 1,
            "personal": 0,
            "completed": 1,
            "highPriority": 1,
            "mediumPriority": 0,
            "lowPriority": 0,
        }


class TestCreateAndRead:
    def test_create_returns_location(self, api_client: TestClient, register_and_login) -> None:
        headers = register_and_login("creator")
        resp = api_client.post(
            "/api/todo",
            json={"title": "Write report", "description": "Q3", "category": "Work", "priority": "Medium"},
            headers=headers,
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["message"] == "Task created successfully."
        task_id = body["data"]["id"]
        assert resp.headers["location"] == f"/api/todo/{task_id}"

        fetched = api_client.get(f"/api/todo/{task_id}", headers=headers)
        assert fetched.status_code == 200
        assert fetched.json()["message"] == "Task retrieved successfully."
        assert fetched.json()["data"]["description"] == "Q3"
        assert "ownerId" not in fetched.json()["data"]

    def test_create_honours_created_on(self, api_client: TestClient, register_and_login) -> None:
        headers = register_and_login("backdater")
        task = _create(api_client, headers, createdOn="2024-01-01T09:00:00Z")
        assert datetime.fromisoformat(task["createdOn"].replace("Z", "+00:00")).year == 2024

    def test_create_invalid_priority(self, api_client: TestClient, register_and_login) -> None:
        headers = register_and_login("badprio")
        resp = api_client.post(
            "/api/todo", json={"title": "x", "category": "work", "priority": "urgent"}, headers=headers
        )
        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid priority 'urgent'. Allowed values: Low, Medium, High."

    def test_create_empty_title(self, api_client: TestClient, register_and_login) -> None:
        headers = register_and_login("notitle")
        resp = api_client.post("/api/todo", json={"title": "", "category": "work", "priority": "low"}, headers=headers)
        assert resp.status_code == 400
        assert resp.json()["success"] is False

    def test_get_missing_task(self, api_client: TestClient, register_and_login) -> None:
        headers = register_and_login("seeker")
        resp = api_client.get("/api/todo/999999", headers=headers)
        assert resp.status_code == 404
        assert resp.json() == {"success": False, "message": "Task not found.", "data": None}

    def test_non_numeric_id_is_400(self, api_client: TestClient, register_and_login) -> None:
        headers = register_and_login("typo")
        resp = api_client.get("/api/todo/abc", headers=headers)
        assert resp.status_code == 400


class TestOwnershipIsolation:
    def test_other_owner_gets_404_everywhere(self, api_client: TestClient, register_and_login) -> None:
        owner = register_and_login("owner1")
        intruder = register_and_login("intruder1")
        task = _create(api_client, owner)
        task_id = task["id"]
        update_body = {"title": "Hijacked", "category": "work", "priority": "low"}

        assert api_client.get(f"/api/todo/{task_id}", headers=intruder).status_code == 404
        assert api_client.put(f"/api/todo/{task_id}", json=update_body, headers=intruder).status_code == 404
        assert api_client.patch(f"/api/todo/{task_id}/toggle", headers=intruder).status_code == 404
        assert api_client.delete(f"/api/todo/{task_id}", headers=intruder).status_code == 404
        assert api_client.get("/api/todo", headers=intruder).json()["data"] == []

        unchanged = api_client.get(f"/api/todo/{task_id}", headers=owner).json()["data"]
        assert unchanged["title"] == "Pay bills"
        assert unchanged["isCompleted"] is False


@pytest.fixture(scope="class")
def lister(api_client: TestClient, register_and_login) -> dict:
    """Bearer headers for a user owning three tasks, shared by TestListFilters."""
    headers = register_and_login("lister")
    _create(api_client, headers, title="Pay bills", category="work", priority="high")
    _create(api_client, headers, title="Gym", category="personal", priority="low", description="leg day")
    _create(api_client, headers, title="Call mom", category="personal", priority="high")
    return headers


class TestListFilters:
    def test_list_all(self, api_client: TestClient, lister: dict) -> None:
        resp = api_client.get("/api/todo", headers=lister)
        assert resp.status_code == 200
        assert resp.json()["message"] == "Todos loaded successfully."
        assert len(resp.json()["data"]) == 3

    def test_invalid_category_is_400(self, api_client: TestClient, lister: dict) -> None:
        resp = api_client.get("/api/todo", params={"category": "hobby"}, headers=lister)
        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid category 'hobby'. Allowed values: Work, Personal."

    def test_invalid_priority_is_ignored(self, api_client: TestClient, lister: dict) -> None:
        resp = api_client.get("/api/todo", params={"priority": "urgent"}, headers=lister)
        assert resp.status_code == 200
        assert len(resp.json()["data"]) == 3

    def test_combined_filters(self, api_client: TestClient, lister: dict) -> None:
        params = {"category": "personal", "priority": "high"}
        titles = [t["title"] for t in api_client.get("/api/todo", params=params, headers=lister).json()["data"]]
        assert titles == ["Call mom"]

    def test_category_all(self, api_client: TestClient, lister: dict) -> None:
        resp = api_client.get("/api/todo", params={"category": "All"}, headers=lister)
        assert len(resp.json()["data"]) == 3

    def test_sort_title_asc(self, api_client: TestClient, lister: dict) -> None:
        resp = api_client.get("/api/todo", params={"sort": "title_asc"}, headers=lister)
        assert [t["title"] for t in resp.json()["data"]] == ["Call mom", "Gym", "Pay bills"]

    def test_sort_priority_desc_tiebreaks_by_id(self, api_client: TestClient, lister: dict) -> None:
        resp = api_client.get("/api/todo", params={"sort": "priority_desc"}, headers=lister)
        assert [t["title"] for t in resp.json()["data"]] == ["Pay bills", "Call mom", "Gym"]

    def test_search_route(self, api_client: TestClient, lister: dict) -> None:
        resp = api_client.get("/api/todo/search", params={"query": "LEG"}, headers=lister)
        assert resp.status_code == 200
        assert resp.json()["message"] == "Search completed successfully."
        assert [t["title"] for t in resp.json()["data"]] == ["Gym"]

    def test_blank_search_returns_all(self, api_client: TestClient, lister: dict) -> None:
        resp = api_client.get("/api/todo/search", params={"query": " "}, headers=lister)
        assert len(resp.json()["data"]) == 3

    def test_category_route(self, api_client: TestClient, lister: dict) -> None:
        resp = api_client.get("/api/todo/category/Personal", headers=lister)
        assert resp.status_code == 200
        assert resp.json()["message"] == "Tasks in 'Personal' loaded."
        assert sorted(t["title"] for t in resp.json()["data"]) == ["Call mom", "Gym"]

    def test_category_route_rejects_unknown(self, api_client: TestClient, lister: dict) -> None:
        resp = api_client.get("/api/todo/category/hobby", headers=lister)
        assert resp.status_code == 400

    def test_stats_route_not_shadowed(self, api_client: TestClient, lister: dict) -> None:
        resp = api_client.get("/api/todo/stats", headers=lister)
        assert resp.status_code == 200
        data = resp.json()["data"]
        assert data["total"] == 3
        assert data["work"] + data["personal"] == data["total"]


class TestUpdateToggleDelete:
    def test_update_overwrites_and_keeps_created_on(self, api_client: TestClient, register_and_login) -> None:
        headers = register_and_login("updater")
        task = _create(api_client, headers)
        body = {
            "title": "Pay all bills",
            "category": "personal",
            "priority": "low",
            "isCompleted": True,
            "completedAt": None,
        }
        resp = api_client.put(f"/api/todo/{task['id']}", json=body, headers=headers)
        assert resp.status_code == 200, resp.text
        assert resp.json()["message"] == "Task updated successfully."
        updated = resp.json()["data"]
        assert updated["title"] == "Pay all bills"
        assert updated["category"] == "Personal"
        assert updated["priority"] == "Low"
        # Completion fields are stored exactly as sent.
        assert updated["isCompleted"] is True
        assert updated["completedAt"] is None
        assert updated["createdOn"] == task["createdOn"]

    def test_toggle_invalid_id(self, api_client: TestClient, register_and_login) -> None:
        headers = register_and_login("zeroid")
        resp = api_client.patch("/api/todo/0/toggle", headers=headers)
        assert resp.status_code == 400
        assert resp.json()["message"] == "Invalid task ID."

    def test_delete_twice(self, api_client: TestClient, register_and_login) -> None:
        headers = register_and_login("deleter")
        task = _create(api_client, headers)
        first = api_client.delete(f"/api/todo/{task['id']}", headers=headers)
        assert first.status_code == 200
        assert first.json() == {"success": True, "message": "Task deleted successfully.", "data": None}
        second = api_client.delete(f"/api/todo/{task['id']}", headers=headers)
        assert second.status_code == 404
        assert second.json()["message"] == "Task not found."


class TestServerErrors:
    def test_storage_failure_is_500_with_friendly_message(
        self, api_client: TestClient, register_and_login, monkeypatch
    ) -> None:
        headers = register_and_login("diskfull")
        broken = MagicMock()
        broken.query.side_effect = OperationalError("SELECT 1", {}, Exception("disk I/O error"))
        monkeypatch.setattr(app.state.task_service, "_tasks", broken)

        resp = api_client.get("/api/todo", headers=headers)
        assert resp.status_code == 500
        assert resp.json() == {
            "success": False,
            "message": "Something went wrong while loading your tasks. Please try again.",
            "data": None,
        }
        assert "disk I/O" not in resp.text
        assert "SELECT" not in resp.text

    def test_unexpected_exception_is_generic_500(
        self, api_client: TestClient, register_and_login, monkeypatch
    ) -> None:
        headers = register_and_login("crasher")
        broken = MagicMock()
        broken.query.side_effect = RuntimeError("internal detail xyz")
        monkeypatch.setattr(app.state.task_service, "_tasks", broken)

        # Shares app.state with api_client; no lifespan of its own.
        client = TestClient(app, raise_server_exceptions=False)
        resp = client.get("/api/todo", headers=headers)
        assert resp.status_code == 500
        assert resp.json() == {"success": False, "message": "An unexpected error occurred.", "data": None}
        assert "internal detail" not in resp.text
        assert "RuntimeError" not in resp.text
