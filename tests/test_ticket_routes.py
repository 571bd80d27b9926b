import pytest
from fastapi.testclient import TestClient

from servicedesk.main import create_app

USER = {"Authorization": "Bearer user-token"}
TECHNICIAN = {"Authorization": "Bearer technician-token"}
SUPERVISOR = {"Authorization": "Bearer supervisor-token"}
ADMIN = {"Authorization": "Bearer admin-token"}

NEW_TICKET = {
    "title": "Monitor não liga",
    "description": "tela preta após queda de energia",
    "category": "hardware",
    "priority": "high",
}


@pytest.fixture
def client():
    with TestClient(create_app()) as test_client:
        yield test_client


def _create(client: TestClient, headers=USER, **overrides) -> dict:
    response = client.post("/tickets", json={**NEW_TICKET, **overrides}, headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


def test_ping_is_public(client):
    response = client.get("/ping")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_create_ticket_returns_created_record(client):
    body = _create(client)

    assert body["status"] == "open"
    assert body["requires_approval"] is False
    assert body["created_by"] == "user-1"
    assert body["created_by_department"] == "Sales"
    assert body["sla"] == {"response_hours": 8, "resolution_hours": 24}
    assert body["version"] == 1


def test_create_requires_authentication(client):
    response = client.post("/tickets", json=NEW_TICKET)

    assert response.status_code == 401
    assert response.json()["detail"]["error"] == "unauthenticated"


def test_engine_validation_maps_to_422(client):
    response = client.post("/tickets", json={**NEW_TICKET, "title": "ab"}, headers=USER)

    assert response.status_code == 422
    assert response.json()["detail"]["error"] == "validation_error"


def test_unknown_category_is_rejected_by_request_model(client):
    response = client.post("/tickets", json={**NEW_TICKET, "category": "furniture"}, headers=USER)
    assert response.status_code == 422


def test_list_filters_and_search(client):
    printer = _create(client, title="Printer jam", description="Paper stuck in tray two", priority="low")
    _create(client, title="VPN drops", description="Disconnects every ten minutes", category="network")

    listed = client.get("/tickets", headers=USER).json()
    network = client.get("/tickets", params={"category": "network"}, headers=USER).json()
    searched = client.get("/tickets", params={"q": "printer"}, headers=USER).json()
    searched_filtered = client.get("/tickets", params={"q": "printer", "priority": "high"}, headers=USER).json()

    assert [ticket["title"] for ticket in listed] == ["VPN drops", "Printer jam"]
    assert [ticket["title"] for ticket in network] == ["VPN drops"]
    assert [ticket["id"] for ticket in searched] == [printer["id"]]
    assert searched_filtered == []


def test_hidden_and_missing_tickets(client):
    pending = _create(client, priority="urgent")

    assert client.get(f"/tickets/{pending['id']}", headers=TECHNICIAN).status_code == 403
    assert client.get("/tickets/does-not-exist", headers=SUPERVISOR).status_code == 404


def test_approval_flow(client):
    pending = _create(client, priority="urgent")
    assert pending["status"] == "pending_approval"

    denied = client.post(f"/tickets/{pending['id']}/approve", headers=TECHNICIAN)
    approved = client.post(f"/tickets/{pending['id']}/approve", headers=SUPERVISOR)
    again = client.post(f"/tickets/{pending['id']}/approve", headers=SUPERVISOR)

    assert denied.status_code == 403
    assert approved.status_code == 200
    assert approved.json()["status"] == "open"
    assert approved.json()["approved_by"] == "supervisor-1"
    assert again.status_code == 409
    assert again.json()["detail"]["error"] == "invalid_state"


def test_reject_flow(client):
    pending = _create(client, priority="urgent")

    response = client.post(f"/tickets/{pending['id']}/reject", json={"reason": "duplicado"}, headers=ADMIN)

    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert response.json()["rejection_reason"] == "duplicado"


def test_update_and_transition_errors(client):
    ticket = _create(client)

    edited = client.patch(f"/tickets/{ticket['id']}", json={"title": "Monitor still dark"}, headers=USER)
    stale = client.patch(
        f"/tickets/{ticket['id']}", json={"title": "Another edit", "expected_version": 1}, headers=USER
    )
    invalid = client.patch(f"/tickets/{ticket['id']}", json={"status": "closed"}, headers=SUPERVISOR)
    empty = client.patch(f"/tickets/{ticket['id']}", json={}, headers=USER)

    assert edited.status_code == 200
    assert edited.json()["version"] == 2
    assert stale.status_code == 409
    assert stale.json()["detail"]["error"] == "conflict"
    assert invalid.status_code == 409
    assert invalid.json()["detail"]["error"] == "invalid_transition"
    assert empty.status_code == 422


def test_assignment_and_resolution(client):
    ticket = _create(client)

    assigned = client.post(
        f"/tickets/{ticket['id']}/assign",
        json={"technician_id": "technician-1", "technician_name": "Support Technician"},
        headers=SUPERVISOR,
    )
    resolved = client.patch(
        f"/tickets/{ticket['id']}", json={"status": "resolved", "resolution": "Swapped PSU"}, headers=TECHNICIAN
    )
    closed = client.patch(
        f"/tickets/{ticket['id']}", json={"status": "closed", "satisfaction_rating": 5}, headers=USER
    )

    assert assigned.status_code == 200
    assert assigned.json()["status"] == "in_progress"
    assert assigned.json()["assigned_to_name"] == "Support Technician"
    assert resolved.json()["resolved_by"] == "technician-1"
    assert closed.status_code == 200
    assert closed.json()["satisfaction_rating"] == 5


def test_take_ownership(client):
    ticket = _create(client)

    by_user = client.post(f"/tickets/{ticket['id']}/take-ownership", headers=USER)
    by_technician = client.post(f"/tickets/{ticket['id']}/take-ownership", headers=TECHNICIAN)

    assert by_user.status_code == 403
    assert by_technician.status_code == 200
    assert by_technician.json()["assigned_to"] == "technician-1"


def test_comments_and_history(client):
    ticket = _create(client)

    public = client.post(f"/tickets/{ticket['id']}/comments", json={"content": "Any news?"}, headers=USER)
    internal = client.post(
        f"/tickets/{ticket['id']}/comments",
        json={"content": "Check the PSU", "is_internal": True},
        headers=TECHNICIAN,
    )

    assert public.status_code == 201
    assert internal.json()["is_internal"] is True
    assert len(client.get(f"/tickets/{ticket['id']}/comments", headers=USER).json()) == 1
    assert len(client.get(f"/tickets/{ticket['id']}/comments", headers=TECHNICIAN).json()) == 2

    history = client.get(f"/tickets/{ticket['id']}/history", headers=USER).json()
    assert [entry["action"] for entry in history] == ["created", "commented", "commented"]
    assert history[0]["new_status"] == "open"


def test_stats_require_reports_capability(client):
    _create(client, priority="urgent")
    _create(client)

    denied = client.get("/tickets/stats", headers=USER)
    allowed = client.get("/tickets/stats", headers=SUPERVISOR)

    assert denied.status_code == 403
    body = allowed.json()
    assert body["total"] == 2
    assert body["by_status"]["pending_approval"] == 1
    assert body["urgent_active"] == 1


def test_delete_ticket(client):
    ticket = _create(client)

    assert client.delete(f"/tickets/{ticket['id']}", headers=TECHNICIAN).status_code == 403
    assert client.delete(f"/tickets/{ticket['id']}", headers=USER).status_code == 204
    assert client.get(f"/tickets/{ticket['id']}", headers=USER).status_code == 404


def test_service_unavailable_without_lifespan():
    client = TestClient(create_app())

    response = client.get("/tickets", headers=USER)

    assert response.status_code == 503
