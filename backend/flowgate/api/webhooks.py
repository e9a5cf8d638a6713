"""Signed callbacks posted by the remote execution engine."""

from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, jsonify, request

from ..engine.callbacks import (
    ExecutionCompleteCallback,
    ExecutionUpdateCallback,
    ReviewRequestCallback,
    parse_callback,
)
from ..executions import complete_execution, report_progress
from ..reviews import open_review
from ..utils.auth import require_webhook_signature
from ..utils.clock import isoformat

bp = Blueprint("webhooks", __name__)


def _payload():
    return request.get_json(silent=True, force=True)


@bp.post("/webhooks/review-request")
@require_webhook_signature
def review_request() -> tuple[object, int]:
    command = parse_callback(ReviewRequestCallback, _payload())
    review, created = open_review(command)
    return (
        jsonify(
            {
                "reviewId": review.id,
                "status": review.status,
                "created": created,
                "timeoutAt": isoformat(review.timeout_at),
            }
        ),
        HTTPStatus.CREATED if created else HTTPStatus.OK,
    )


@bp.post("/webhooks/execution-update")
@require_webhook_signature
def execution_update() -> tuple[object, int]:
    outcome = report_progress(parse_callback(ExecutionUpdateCallback, _payload()))
    return (
        jsonify(
            {"executionId": outcome.execution_id, "applied": outcome.applied, "status": outcome.status}
        ),
        HTTPStatus.OK,
    )


@bp.post("/webhooks/execution-complete")
@require_webhook_signature
def execution_complete() -> tuple[object, int]:
    outcome = complete_execution(parse_callback(ExecutionCompleteCallback, _payload()))
    return (
        jsonify(
            {"executionId": outcome.execution_id, "applied": outcome.applied, "status": outcome.status}
        ),
        HTTPStatus.OK,
    )
