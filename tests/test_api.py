from __future__ import annotations

import uuid
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from vaultlog.api.app import create_app
from vaultlog.domain.enums import TaskStatus
from vaultlog.domain.workflow import DEFAULT_WORKFLOW_RULES, WorkflowRuleSet
from vaultlog.infra.repository import UserRepository


def _noop() -> None:
    return None


@pytest.fixture
def api(database) -> TestClient:
    return TestClient(create_app(check_database=_noop))


@pytest.fixture
def headers(user) -> dict[str, str]:
    return {"X-User-Id": user.id}


def _create_task(api: TestClient, headers: dict, client_record, **body) -> dict:
    payload = {"client_id": client_record.id, "title": "Reset VPN", "category": "network"}
    payload.update(body)
    response = api.post("/api/tasks", json=payload, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_health(api: TestClient) -> None:
    assert api.get("/api/health").json() == {"status": "ok"}


def test_requests_without_actor_are_rejected(api: TestClient) -> None:
    assert api.get("/api/workflow").status_code == 401
    assert api.get("/api/workflow", headers={"X-User-Id": str(uuid.uuid4())}).status_code == 401


def test_workflow_rules_endpoint(api: TestClient, headers: dict) -> None:
    response = api.get("/api/workflow", headers=headers)

    assert response.status_code == 200
    assert response.json() == DEFAULT_WORKFLOW_RULES.to_dict()
    assert response.json()["allowedTransitions"]["ARCHIVED"] == []


def test_create_and_move_task(api: TestClient, headers: dict, client_record) -> None:
    task = _create_task(api, headers, client_record, priority="URGENT")
    assert task["status"] == "NEW"

    response = api.patch(f"/api/tasks/{task['id']}", json={"status": "IN_PROGRESS"}, headers=headers)
    assert response.status_code == 200
    assert response.json()["status"] == "IN_PROGRESS"

    detail = api.get(f"/api/tasks/{task['id']}", headers=headers).json()
    assert [a["activity_type"] for a in detail["activity"]] == ["TASK_CREATED", "STATUS_CHANGED"]
    sla = detail["activity"][1]["metadata"]["sla"]
    assert sla["type"] == "time_to_start"
    assert sla["targetHours"] == 4
    assert sla["breached"] is False


def test_completed_at_round_trip(api: TestClient, headers: dict, client_record) -> None:
    task = _create_task(api, headers, client_record)

    completed = api.patch(f"/api/tasks/{task['id']}", json={"status": "COMPLETED"}, headers=headers)
    assert completed.json()["completed_at"] is not None

    reopened = api.patch(f"/api/tasks/{task['id']}", json={"status": "IN_PROGRESS"}, headers=headers)
    assert reopened.json()["completed_at"] is None


def test_invalid_transition_response(api: TestClient, headers: dict, client_record) -> None:
    task = _create_task(api, headers, client_record)
    api.patch(f"/api/tasks/{task['id']}", json={"status": "COMPLETED"}, headers=headers)

    response = api.patch(f"/api/tasks/{task['id']}", json={"status": "BLOCKED"}, headers=headers)

    assert response.status_code == 400
    body = response.json()
    assert body["code"] == "INVALID_TRANSITION"
    assert body["current"] == "COMPLETED"
    assert body["allowedTransitions"] == ["IN_PROGRESS", "ARCHIVED"]


def test_wip_limit_response(database, user, client_record) -> None:
    rules = WorkflowRuleSet(
        allowed_transitions=DEFAULT_WORKFLOW_RULES.allowed_transitions,
        wip_limits={TaskStatus.IN_PROGRESS: 1},
        default_sla=DEFAULT_WORKFLOW_RULES.default_sla,
        sla_by_priority=DEFAULT_WORKFLOW_RULES.sla_by_priority,
    )
    api = TestClient(create_app(rules=rules, check_database=_noop))
    headers = {"X-User-Id": user.id}
    first = _create_task(api, headers, client_record)
    second = _create_task(api, headers, client_record)
    api.patch(f"/api/tasks/{first['id']}", json={"status": "IN_PROGRESS"}, headers=headers)

    response = api.patch(f"/api/tasks/{second['id']}", json={"status": "IN_PROGRESS"}, headers=headers)

    assert response.status_code == 409
    assert response.json() == {
        "error": "WIP limit reached for status",
        "code": "WIP_LIMIT_EXCEEDED",
        "status": "IN_PROGRESS",
        "limit": 1,
        "current": 1,
    }
    second_detail = api.get(f"/api/tasks/{second['id']}", headers=headers).json()
    assert second_detail["status"] == "NEW"
    assert [a["activity_type"] for a in second_detail["activity"]] == ["TASK_CREATED"]


def test_same_status_request_is_accepted(api: TestClient, headers: dict, client_record) -> None:
    task = _create_task(api, headers, client_record)

    response = api.patch(f"/api/tasks/{task['id']}", json={"status": "NEW"}, headers=headers)

    assert response.status_code == 200
    activity = api.get(f"/api/tasks/{task['id']}/activity", headers=headers).json()
    assert [a["activity_type"] for a in activity] == ["TASK_CREATED"]


def test_reassignment_and_unassignment(api: TestClient, headers: dict, user, client_record) -> None:
    task = _create_task(api, headers, client_record)

    assigned = api.patch(f"/api/tasks/{task['id']}", json={"assigned_to_id": user.id}, headers=headers)
    assert assigned.json()["assigned_to_id"] == user.id

    cleared = api.patch(f"/api/tasks/{task['id']}", json={"assigned_to_id": None}, headers=headers)
    assert cleared.json()["assigned_to_id"] is None

    activity = api.get(f"/api/tasks/{task['id']}/activity", headers=headers).json()
    assert [a["activity_type"] for a in activity].count("TASK_ASSIGNED") == 2


def test_empty_patch_is_rejected(api: TestClient, headers: dict, client_record) -> None:
    task = _create_task(api, headers, client_record)

    response = api.patch(f"/api/tasks/{task['id']}", json={}, headers=headers)

    assert response.status_code == 400
    assert response.json()["error"] == "No fields to update"


def test_unknown_and_malformed_task_ids(api: TestClient, headers: dict) -> None:
    missing = api.patch(f"/api/tasks/{uuid.uuid4()}", json={"status": "IN_PROGRESS"}, headers=headers)
    assert missing.status_code == 404
    assert missing.json()["code"] == "NOT_FOUND"

    assert api.get("/api/tasks/not-a-uuid", headers=headers).status_code == 400


def test_unknown_status_value_is_rejected(api: TestClient, headers: dict, client_record) -> None:
    task = _create_task(api, headers, client_record)

    response = api.patch(f"/api/tasks/{task['id']}", json={"status": "DONE"}, headers=headers)

    assert response.status_code == 422


def test_create_task_for_unknown_client(api: TestClient, headers: dict) -> None:
    response = api.post(
        "/api/tasks",
        json={"client_id": str(uuid.uuid4()), "title": "x", "category": "y"},
        headers=headers,
    )

    assert response.status_code == 404


def test_list_tasks_by_status(api: TestClient, headers: dict, client_record) -> None:
    first = _create_task(api, headers, client_record, title="First")
    _create_task(api, headers, client_record, title="Second")
    api.patch(f"/api/tasks/{first['id']}", json={"status": "BLOCKED"}, headers=headers)

    response = api.get("/api/tasks", params={"status": "BLOCKED"}, headers=headers)

    assert [t["title"] for t in response.json()] == ["First"]
    stats = api.get("/api/tasks/stats", headers=headers).json()
    assert stats["blocked"] == 1
    assert stats["new"] == 1


def test_log_time(api: TestClient, headers: dict, client_record) -> None:
    task = _create_task(api, headers, client_record)

    response = api.post(
        "/api/time-logs", json={"task_id": task["id"], "duration": 1.5}, headers=headers
    )
    assert response.status_code == 201
    assert Decimal(str(response.json()["duration"])) == Decimal("1.5")

    rejected = api.post(
        "/api/time-logs", json={"task_id": task["id"], "duration": 0}, headers=headers
    )
    assert rejected.status_code == 422

    detail = api.get(f"/api/tasks/{task['id']}", headers=headers).json()
    assert len(detail["time_logs"]) == 1
    assert detail["activity"][-1]["description"] == "Logged 1.5 hours"




def test_clients_and_users(api: TestClient, headers: dict, admin) -> None:
    created = api.post("/api/clients", json={"name": "Globex"}, headers=headers)
    assert created.status_code == 201
    assert created.json()["status"] == "ACTIVE"
    assert [c["name"] for c in api.get("/api/clients", headers=headers).json()] == ["Globex"]

    admin_headers = {"X-User-Id": admin.id}
    staff = api.post(
        "/api/users", json={"email": "tech@vaultlog.test", "name": "Tech"}, headers=admin_headers
    )
    assert staff.status_code == 201
    assert staff.json()["role"] == "STAFF"

    duplicate = api.post(
        "/api/users", json={"email": "tech@vaultlog.test", "name": "Tech"}, headers=admin_headers
    )
    assert duplicate.status_code == 400


def test_inactive_user_is_rejected(api: TestClient) -> None:
    inactive = UserRepository().create_user(
        {"email": "gone@vaultlog.test", "name": "Gone", "role": "ADMIN", "active": False}
    )

    response = api.get("/api/tasks", headers={"X-User-Id": inactive.id})

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}


def test_staff_cannot_manage_tasks(api: TestClient, headers: dict, staff, client_record) -> None:
    staff_headers = {"X-User-Id": staff.id}
    task = _create_task(api, headers, client_record)

    created = api.post(
        "/api/tasks",
        json={"client_id": client_record.id, "title": "x", "category": "y"},
        headers=staff_headers,
    )
    moved = api.patch(f"/api/tasks/{task['id']}", json={"status": "IN_PROGRESS"}, headers=staff_headers)

    assert created.status_code == 403
    assert created.json() == {"error": "Forbidden"}
    assert moved.status_code == 403
    assert api.get("/api/tasks/stats", headers=staff_headers).status_code == 403
    assert api.get(f"/api/tasks/{task['id']}", headers=headers).json()["status"] == "NEW"


def test_only_admins_manage_users(api: TestClient, headers: dict, staff) -> None:
    body = {"email": "root@vaultlog.test", "name": "Root", "role": "ADMIN"}

    assert api.post("/api/users", json=body, headers={"X-User-Id": staff.id}).status_code == 403
    assert api.post("/api/users", json=body, headers=headers).status_code == 403
    assert api.get("/api/users", headers=headers).status_code == 403
    client = api.post("/api/clients", json={"name": "Initech"}, headers={"X-User-Id": staff.id})
    assert client.status_code == 403


def test_staff_see_only_assigned_tasks(api: TestClient, headers: dict, staff, client_record) -> None:
    staff_headers = {"X-User-Id": staff.id}
    mine = _create_task(api, headers, client_record, title="Mine", assigned_to_id=staff.id)
    other = _create_task(api, headers, client_record, title="Other")

    listed = api.get("/api/tasks", headers=staff_headers).json()

    assert [t["title"] for t in listed] == ["Mine"]
    assert api.get(f"/api/tasks/{mine['id']}", headers=staff_headers).status_code == 200
    assert api.get(f"/api/tasks/{other['id']}", headers=staff_headers).status_code == 403
    assert api.get(f"/api/tasks/{other['id']}/activity", headers=staff_headers).status_code == 403
    foreign = api.get("/api/tasks", params={"assigned_to": str(uuid.uuid4())}, headers=staff_headers)
    assert foreign.status_code == 403


def test_staff_log_time_on_assigned_tasks_only(
    api: TestClient, headers: dict, staff, client_record
) -> None:
    staff_headers = {"X-User-Id": staff.id}
    mine = _create_task(api, headers, client_record, assigned_to_id=staff.id)
    other = _create_task(api, headers, client_record)

    logged = api.post(
        "/api/time-logs", json={"task_id": mine["id"], "duration": 2}, headers=staff_headers
    )
    refused = api.post(
        "/api/time-logs", json={"task_id": other["id"], "duration": 2}, headers=staff_headers
    )

    assert logged.status_code == 201
    assert logged.json()["staff_id"] == staff.id
    assert refused.status_code == 403
    assert api.get(f"/api/tasks/{other['id']}", headers=headers).json()["time_logs"] == []
