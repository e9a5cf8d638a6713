"""Tests for the workflow activation REST API."""

from __future__ import annotations

import requests


def test_activate_and_deactivate_round_trip(client, engine, member_headers, workflow_factory):
    workflow_id = workflow_factory()

    response = client.post(
        "/api/workflows/activate",
        json={"workflowId": workflow_id, "action": "activate"},
        headers=member_headers,
    )
    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "active"
    assert body["remoteWorkflowId"] in engine.workflows
    assert body["workflow"]["status"] == "active"
    assert [step["position"] for step in body["workflow"]["steps"]] == [0, 1, 2, 3]

    response = client.post(
        "/api/workflows/activate",
        json={"workflowId": workflow_id, "action": "deactivate"},
        headers=member_headers,
    )
    assert response.status_code == 200
    assert response.get_json()["status"] == "paused"

    detail = client.get(f"/api/workflows/{workflow_id}", headers=member_headers)
    assert detail.get_json()["status"] == "paused"


def test_activation_requires_member_role(client, readonly_headers, workflow_factory):
    workflow_id = workflow_factory()

    response = client.post(
        "/api/workflows/activate",
        json={"workflowId": workflow_id, "action": "activate"},
        headers=readonly_headers,
    )
    assert response.status_code == 403

    anonymous = client.post(
        "/api/workflows/activate", json={"workflowId": workflow_id, "action": "activate"}
    )
    assert anonymous.status_code == 401


def test_invalid_action_is_a_bad_request(client, member_headers, workflow_factory):
    workflow_id = workflow_factory()

    response = client.post(
        "/api/workflows/activate",
        json={"workflowId": workflow_id, "action": "explode"},
        headers=member_headers,
    )
    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid payload"


def test_unreachable_engine_maps_to_service_unavailable(
    client, engine, member_headers, workflow_factory
):
    workflow_id = workflow_factory()
    engine.fail("POST", "/workflows", requests.ConnectionError("refused"))

    response = client.post(
        "/api/workflows/activate",
        json={"workflowId": workflow_id, "action": "activate"},
        headers=member_headers,
    )
    assert response.status_code == 503
    assert response.get_json()["error"] == "Failed to reach the remote execution engine"


def test_workflows_are_scoped_to_the_token_organization(
    client, auth_header_factory, workflow_factory
):
    own = workflow_factory(name="Mine")
    foreign = workflow_factory(organization_id="org-b", name="Theirs")
    headers = auth_header_factory(role="readonly")

    listed = client.get("/api/workflows", headers=headers).get_json()
    assert [wf["id"] for wf in listed] == [own]

    assert client.get(f"/api/workflows/{foreign}", headers=headers).status_code == 404

    member = auth_header_factory(role="member")
    response = client.post(
        "/api/workflows/activate",
        json={"workflowId": foreign, "action": "activate"},
        headers=member,
    )
    assert response.status_code == 404
