"""Deliver review decisions to paused remote executions."""

from __future__ import annotations

from flask import current_app

from ..engine.documents import ResumeDecision
from ..errors import RemoteEngineError
from ..extensions import remote_engine
from ..models.review import ReviewRequest
from ..utils.clock import isoformat, utcnow

DECISIONS = {"approved": "continue", "rejected": "abort"}


def build_decision(review: ReviewRequest) -> ResumeDecision:
    decision = DECISIONS.get(review.status)
    if decision is None:
        raise ValueError(f"review {review.id} has no decision to deliver ({review.status})")
    return ResumeDecision(
        decision=decision,
        approved=decision == "continue",
        review_id=review.id,
        feedback=review.feedback,
        reviewer_id=review.reviewer_id,
        reviewed_at=isoformat(review.reviewed_at or utcnow()),
    )


def dispatch(review: ReviewRequest) -> bool:
    """Post the decision once; a failure is logged and reported, never retried.

    Called only after the decision is committed, so a lost delivery leaves the
    execution in place for the sweeper.
    """

    decision = build_decision(review)
    try:
        remote_engine.client.resume_execution(
            review.execution_id,
            decision,
            resume_url=review.resume_url,
            step_index=review.step_index,
        )
    except RemoteEngineError:
        current_app.logger.exception(
            "Failed to resume execution %s for review %s", review.execution_id, review.id
        )
        return False

    current_app.logger.info(
        "Resumed execution %s with %s for review %s",
        review.execution_id,
        decision.decision,
        review.id,
    )
    return True
