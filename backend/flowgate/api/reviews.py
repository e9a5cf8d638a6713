"""REST endpoints for deciding and discussing review gates."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any

from flask import Blueprint, g, jsonify, request

from .. import reviews
from ..errors import ValidationError
from ..models.review import REVIEW_STATUSES, ReviewChatMessage, ReviewRequest
from ..utils.auth import current_organization, require_token
from ..utils.clock import isoformat
from .schemas import ChatRequest, DecisionRequest, parse_body

bp = Blueprint("reviews", __name__)


def _serialize_message(message: ReviewChatMessage) -> dict[str, Any]:
    return {
        "sender": message.sender,
        "text": message.text,
        "timestamp": isoformat(message.created_at),
    }


def _serialize_review(review: ReviewRequest, *, with_chat: bool = False) -> dict[str, Any]:
    payload = {
        "id": review.id,
        "executionId": review.execution_id,
        "stepIndex": review.step_index,
        "stepLabel": review.step_label,
        "reviewType": review.review_type,
        "status": review.status,
        "workerName": review.worker_name,
        "data": review.payload,
        "feedback": review.feedback,
        "reviewerId": review.reviewer_id,
        "reviewedAt": isoformat(review.reviewed_at),
        "timeoutAt": isoformat(review.timeout_at),
        "createdAt": isoformat(review.created_at),
    }
    if with_chat:
        payload["chatHistory"] = [_serialize_message(m) for m in review.messages]
    return payload


@bp.post("/reviews/decision")
@require_token(role="member")
def decide_review() -> tuple[object, int]:
    body = parse_body(DecisionRequest)
    token = g.api_token
    reviewer = reviews.Reviewer(reviewer_id=str(token.id), name=token.name)

    if body.decision == "approve":
        outcome = reviews.approve(body.review_id, token.organization_id, reviewer, body.feedback)
    else:
        outcome = reviews.reject(body.review_id, token.organization_id, reviewer, body.feedback)

    return (
        jsonify(
            {
                "reviewId": outcome.review_id,
                "applied": outcome.applied,
                "status": outcome.status,
                "dispatched": outcome.dispatched,
            }
        ),
        HTTPStatus.OK,
    )


@bp.post("/reviews/chat")
@require_token(role="member")
def post_chat_message() -> tuple[object, int]:
    body = parse_body(ChatRequest)
    message = reviews.append_chat_message(
        body.review_id, current_organization(), body.sender, body.text
    )
    return jsonify(_serialize_message(message)), HTTPStatus.CREATED


@bp.get("/reviews")
@require_token()
def list_reviews() -> tuple[object, int]:
    status = request.args.get("status")
    if status and status not in REVIEW_STATUSES:
        raise ValidationError("invalid status")
    items = reviews.list_reviews(
        current_organization(), status=status, execution_id=request.args.get("executionId")
    )
    return jsonify([_serialize_review(review) for review in items]), HTTPStatus.OK


@bp.get("/reviews/<int:review_id>")
@require_token()
def get_review(review_id: int) -> tuple[object, int]:
    review = reviews.get_review(review_id, current_organization())
    return jsonify(_serialize_review(review, with_chat=True)), HTTPStatus.OK
