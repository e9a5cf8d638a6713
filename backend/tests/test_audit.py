"""Tests for the audit trail."""

from __future__ import annotations

import json
from datetime import timedelta

import pytest

from backend.flowgate import audit
from backend.flowgate.errors import ValidationError
from backend.flowgate.extensions import db
from backend.flowgate.models.audit import AuditLogEntry
from backend.flowgate.utils.clock import utcnow


def _record(workflow_id: int, event_type: str = "node_complete", **fields) -> AuditLogEntry:
    entry = audit.record(audit.AuditEvent(event_type=event_type, workflow_id=workflow_id, **fields))
    db.session.commit()
    return entry


def test_payload_is_hashed_not_stored(app, workflow_factory):
    workflow_id = workflow_factory()
    secret_payload = {"ssn": "123-45-6789", "amount": 10}

    entry = _record(workflow_id, payload=secret_payload)

    assert entry.payload_hash == audit.hash_payload({"amount": 10, "ssn": "123-45-6789"})
    assert len(entry.payload_hash) == 64
    serialized = json.dumps(audit.serialize_entry(entry))
    assert "123-45-6789" not in serialized
    assert entry.organization_id == "org-a"


def test_record_without_organization_is_rejected(app):
    with pytest.raises(ValidationError):
        audit.record(audit.AuditEvent(event_type="node_start"))


def test_unknown_event_type_is_rejected(app, workflow_factory):
    with pytest.raises(ValidationError):
        audit.record(audit.AuditEvent(event_type="coffee_break", workflow_id=workflow_factory()))


def test_retention_bounds(app, workflow_factory):
    workflow_id = workflow_factory()

    entry = _record(workflow_id, retention_days=7)
    assert entry.retention_until - entry.created_at == timedelta(days=7)

    with pytest.raises(ValidationError):
        audit.record(audit.AuditEvent(event_type="node_start", workflow_id=workflow_id,
                                      retention_days=0))


def test_query_filters_and_paginates(app, workflow_factory):
    workflow_id = workflow_factory()
    other_workflow = workflow_factory(name="Other")
    for index in range(5):
        _record(workflow_id, node_index=index)
    _record(workflow_id, event_type="node_error", error_message="bad")
    _record(other_workflow)

    page = audit.query(
        "org-a", audit.AuditFilters(workflow_id=workflow_id, event_type="node_complete"),
        page=2, page_size=2,
    )

    assert page.total == 5
    assert page.total_pages == 3
    assert [entry.node_index for entry in page.entries] == [2, 1]


def test_page_size_is_capped(app, workflow_factory):
    _record(workflow_factory())
    assert audit.query("org-a", page_size=1000).page_size == 100


def test_summary_rolls_up_by_day(app, workflow_factory):
    workflow_id = workflow_factory()
    _record(workflow_id, actor_type="ai")
    _record(workflow_id, event_type="node_error", actor_type="ai")
    _record(workflow_id, event_type="review_response", actor_type="human")

    rows = audit.summary("org-a")

    assert len(rows) == 1
    row = rows[0]
    assert row["workflowId"] == workflow_id
    assert row["totalEvents"] == 3
    assert row["aiEvents"] == 2
    assert row["humanEvents"] == 1
    assert row["failures"] == 1
    assert row["reviewEvents"] == 1
    assert row["auditDate"] == utcnow().date().isoformat()


def test_purge_removes_only_expired_rows(app, workflow_factory):
    workflow_id = workflow_factory()
    foreign_workflow = workflow_factory(organization_id="org-b")
    _record(workflow_id, retention_days=1)
    _record(workflow_id, retention_days=30)
    _record(foreign_workflow, retention_days=1)

    deleted = audit.purge_expired("org-a", now=utcnow() + timedelta(days=2))

    assert deleted == 1
    assert db.session.query(AuditLogEntry).count() == 2


def test_audit_endpoints(client, auth_header_factory, workflow_factory):
    workflow_id = workflow_factory()
    readonly = auth_header_factory(role="readonly")
    member = auth_header_factory(role="member")
    admin = auth_header_factory(role="admin")
    foreign_admin = auth_header_factory(role="admin", organization_id="org-b")

    created = client.post(
        "/api/audit",
        json={
            "eventType": "node_complete",
            "workflowId": workflow_id,
            "executionId": "e-1",
            "nodeName": "Draft reply",
            "inputData": {"email": "someone@example.com"},
            "actorType": "ai",
            "durationMs": 120,
        },
        headers=member,
    )
    assert created.status_code == 201

    listed = client.get(f"/api/audit?workflowId={workflow_id}", headers=readonly).get_json()
    assert listed["pagination"]["total"] == 1
    assert listed["logs"][0]["nodeName"] == "Draft reply"
    assert "someone@example.com" not in json.dumps(listed)

    assert client.get("/api/audit", headers=foreign_admin).get_json()["pagination"]["total"] == 0

    summary = client.get("/api/audit?summary=true", headers=readonly).get_json()
    assert summary["summary"][0]["aiEvents"] == 1

    download = client.get("/api/audit/download", headers=readonly)
    assert download.mimetype == "application/x-ndjson"
    lines = download.get_data(as_text=True).splitlines()
    assert json.loads(lines[0])["eventType"] == "node_complete"

    assert client.delete("/api/audit", headers=member).status_code == 403
    purge = client.delete("/api/audit", headers=admin)
    assert purge.status_code == 200
    assert purge.get_json() == {"deleted": 0}

    bad_filter = client.get("/api/audit?eventType=nope", headers=readonly)
    assert bad_filter.status_code == 400


def test_engine_can_record_with_signature(client, signed_post, workflow_factory):
    workflow_id = workflow_factory()

    response = signed_post(
        "/api/audit", {"eventType": "node_start", "workflowId": workflow_id, "nodeIndex": 1}
    )
    assert response.status_code == 201

    unsigned = client.post("/api/audit", json={"eventType": "node_start", "workflowId": workflow_id})
    assert unsigned.status_code == 401


def test_member_cannot_record_for_another_organization(client, member_headers, workflow_factory):
    foreign = workflow_factory(organization_id="org-b")

    response = client.post(
        "/api/audit", json={"eventType": "node_start", "workflowId": foreign}, headers=member_headers
    )
    assert response.status_code == 404
