"""Tests for the signed callbacks posted by the remote engine."""

from __future__ import annotations

from backend.flowgate.extensions import db
from backend.flowgate.models.audit import AuditLogEntry
from backend.flowgate.models.execution import Execution
from backend.flowgate.models.review import ReviewRequest


def _review_payload(workflow_id: int, **overrides) -> dict:
    payload = {
        "workflowId": str(workflow_id),
        "executionId": "981",
        "resumeUrl": "http://engine.test/webhook-waiting/981",
        "stepId": "3",
        "stepIndex": "2",
        "stepLabel": "Approve reply",
        "workerName": "Writer",
        "reviewType": "approval",
        "data": '{"draft": "Dear customer"}',
    }
    payload.update(overrides)
    return payload


def test_review_request_requires_valid_signature(client, signed_post, workflow_factory):
    payload = _review_payload(workflow_factory())

    assert client.post("/api/webhooks/review-request", json=payload).status_code == 401
    assert signed_post("/api/webhooks/review-request", payload, secret="wrong").status_code == 401
    assert db.session.query(ReviewRequest).count() == 0


def test_review_request_opens_gate_from_engine_strings(signed_post, workflow_factory):
    response = signed_post("/api/webhooks/review-request", _review_payload(workflow_factory()))

    assert response.status_code == 201
    body = response.get_json()
    assert body["created"] is True
    assert body["status"] == "pending"

    review = db.session.get(ReviewRequest, body["reviewId"])
    assert review.step_index == 2
    assert review.payload == {"draft": "Dear customer"}
    assert review.resume_url == "http://engine.test/webhook-waiting/981"
    assert db.session.get(Execution, "981").status == "waiting_review"


def test_duplicate_review_request_is_idempotent(signed_post, workflow_factory):
    payload = _review_payload(workflow_factory())

    first = signed_post("/api/webhooks/review-request", payload)
    second = signed_post("/api/webhooks/review-request", payload)

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.get_json()["reviewId"] == first.get_json()["reviewId"]
    assert db.session.query(ReviewRequest).count() == 1


def test_unprefixed_signature_is_accepted(signed_post, workflow_factory):
    import json

    from conftest import sign

    payload = _review_payload(workflow_factory())
    signature = sign(json.dumps(payload).encode("utf-8")).removeprefix("sha256=")

    response = signed_post("/api/webhooks/review-request", payload, signature=signature)
    assert response.status_code == 201


def test_invalid_review_payload_is_rejected(signed_post, workflow_factory):
    payload = _review_payload(workflow_factory(), reviewType="vibes")

    response = signed_post("/api/webhooks/review-request", payload)

    assert response.status_code == 400
    assert response.get_json()["error"] == "invalid payload"


def test_progress_then_completion(signed_post, workflow_factory):
    workflow_id = workflow_factory()

    started = signed_post(
        "/api/webhooks/execution-update",
        {"workflowId": workflow_id, "executionId": "e-1", "currentStepIndex": 0},
    )
    assert started.get_json() == {"executionId": "e-1", "applied": True, "status": "running"}

    moved = signed_post(
        "/api/webhooks/execution-update",
        {"workflowId": workflow_id, "executionId": "e-1", "currentStepIndex": 1},
    )
    assert moved.get_json()["applied"] is True
    db.session.expire_all()
    assert db.session.get(Execution, "e-1").current_step_index == 1

    done = signed_post(
        "/api/webhooks/execution-complete",
        {"workflowId": workflow_id, "executionId": "e-1", "result": '{"ok": true}'},
    )
    assert done.get_json() == {"executionId": "e-1", "applied": True, "status": "completed"}

    events = [e.event_type for e in db.session.query(AuditLogEntry).order_by(AuditLogEntry.id)]
    assert events == ["execution_start", "node_start", "execution_complete"]


def test_completion_of_finished_execution_is_a_no_op(signed_post, workflow_factory):
    workflow_id = workflow_factory()
    signed_post(
        "/api/webhooks/execution-complete",
        {"workflowId": workflow_id, "executionId": "e-2", "status": "failed", "error": "boom"},
    )

    again = signed_post(
        "/api/webhooks/execution-complete",
        {"workflowId": workflow_id, "executionId": "e-2", "status": "completed"},
    )

    assert again.get_json() == {"executionId": "e-2", "applied": False, "status": "failed"}
    db.session.expire_all()
    execution = db.session.get(Execution, "e-2")
    assert execution.status == "failed"
    assert execution.error == "boom"

    late_progress = signed_post(
        "/api/webhooks/execution-update",
        {"workflowId": workflow_id, "executionId": "e-2", "currentStepIndex": 3},
    )
    assert late_progress.get_json()["applied"] is False


def test_callback_for_unknown_workflow_is_not_found(signed_post):
    response = signed_post(
        "/api/webhooks/execution-complete", {"workflowId": 12345, "executionId": "e-3"}
    )
    assert response.status_code == 404
