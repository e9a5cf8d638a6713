"""Review gate: open, decide and discuss human checkpoints.

Every transition out of ``pending`` is a conditional update keyed on the
current status, so concurrent deciders and the sweeper can race safely: the
first writer wins and later writers observe a no-op.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from flask import current_app
from sqlalchemy import exists, select, update

from ..audit import AuditEvent, record
from ..engine.callbacks import ReviewRequestCallback
from ..errors import NotFoundError, StateConflictError, ValidationError
from ..extensions import db
from ..models.execution import ACTIVE_EXECUTION_STATUSES, Execution
from ..models.review import CHAT_SENDERS, ReviewChatMessage, ReviewRequest
from ..models.workflow import Workflow
from ..utils.clock import utcnow
from .dispatch import dispatch

MAX_FEEDBACK_LENGTH = 10_000
MAX_MESSAGE_LENGTH = 4_000


@dataclass(frozen=True, slots=True)
class DecisionOutcome:
    review_id: int
    applied: bool
    status: str
    dispatched: bool = False


@dataclass(frozen=True, slots=True)
class Reviewer:
    reviewer_id: str
    name: str | None = None


def _scoped_reviews(organization_id: str):
    return (
        select(ReviewRequest)
        .join(Execution, ReviewRequest.execution_id == Execution.id)
        .join(Workflow, Execution.workflow_id == Workflow.id)
        .where(Workflow.organization_id == organization_id)
    )


def get_review(review_id: int, organization_id: str) -> ReviewRequest:
    review = db.session.scalars(
        _scoped_reviews(organization_id).where(ReviewRequest.id == review_id)
    ).first()
    if review is None:
        raise NotFoundError("Review not found")
    return review


def list_reviews(
    organization_id: str, status: str | None = None, execution_id: str | None = None
) -> list[ReviewRequest]:
    statement = _scoped_reviews(organization_id)
    if status:
        statement = statement.where(ReviewRequest.status == status)
    if execution_id:
        statement = statement.where(ReviewRequest.execution_id == execution_id)
    statement = statement.order_by(ReviewRequest.created_at.desc(), ReviewRequest.id.desc())
    return list(db.session.scalars(statement).all())


def _pending_review_exists(execution_id):
    return exists().where(
        ReviewRequest.execution_id == execution_id, ReviewRequest.status == "pending"
    )


def open_review(command: ReviewRequestCallback) -> tuple[ReviewRequest, bool]:
    """Park an execution behind a new pending review.

    Returns ``(review, created)``. A repeated request for the same execution
    step returns the review that is already pending.
    """

    workflow = db.session.get(Workflow, command.workflow_id)
    if workflow is None:
        raise NotFoundError("Workflow not found")

    execution = db.session.get(Execution, command.execution_id)
    if execution is None:
        execution = Execution(id=command.execution_id, workflow_id=workflow.id, status="running")
        db.session.add(execution)
        db.session.flush()
    elif execution.workflow_id != workflow.id:
        raise NotFoundError("Execution not found")
    elif execution.is_terminal():
        raise StateConflictError(
            "Execution has already finished", details={"status": execution.status}
        )

    existing = db.session.scalars(
        select(ReviewRequest).where(
            ReviewRequest.execution_id == execution.id,
            ReviewRequest.step_index == command.step_index,
            ReviewRequest.status == "pending",
        )
    ).first()
    if existing is not None:
        db.session.commit()
        return existing, False

    now = utcnow()
    hours = command.timeout_hours or current_app.config["REVIEW_TIMEOUT_HOURS"]
    review = ReviewRequest(
        execution_id=execution.id,
        step_index=command.step_index,
        step_label=command.step_label,
        review_type=command.review_type,
        status="pending",
        worker_name=command.worker_name,
        payload=command.data,
        resume_url=command.resume_url,
        timeout_at=now + timedelta(hours=float(hours)),
        created_at=now,
    )
    db.session.add(review)

    parked = db.session.execute(
        update(Execution)
        .where(
            Execution.id == execution.id,
            Execution.status.in_(ACTIVE_EXECUTION_STATUSES),
        )
        .values(status="waiting_review", current_step_index=command.step_index, updated_at=now)
    )
    if parked.rowcount == 0:
        db.session.rollback()
        raise StateConflictError("Execution has already finished")

    record(
        AuditEvent(
            event_type="review_request",
            actor_type="system",
            actor_name=command.worker_name,
            workflow_id=workflow.id,
            execution_id=execution.id,
            node_name=command.step_label,
            node_index=command.step_index,
            payload=command.data,
            details={"reviewType": command.review_type},
        ),
        organization_id=workflow.organization_id,
    )
    db.session.commit()
    current_app.logger.info(
        "Execution %s waiting on review %s (step %s)",
        execution.id,
        review.id,
        command.step_index,
    )
    return review, True


def _current_status(review_id: int) -> str:
    return db.session.scalar(select(ReviewRequest.status).where(ReviewRequest.id == review_id))


def _decide(
    review: ReviewRequest,
    organization_id: str,
    new_status: str,
    reviewer: Reviewer,
    feedback: str | None,
) -> DecisionOutcome:
    now = utcnow()
    review_id = review.id
    latched = db.session.execute(
        update(ReviewRequest)
        .where(ReviewRequest.id == review_id, ReviewRequest.status == "pending")
        .values(
            status=new_status,
            feedback=feedback,
            reviewer_id=reviewer.reviewer_id,
            reviewed_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    if latched.rowcount == 0:
        db.session.rollback()
        status = _current_status(review_id)
        current_app.logger.info("Review %s already %s; decision ignored", review_id, status)
        return DecisionOutcome(review_id, applied=False, status=status)

    if new_status == "approved":
        db.session.execute(
            update(Execution)
            .where(
                Execution.id == review.execution_id,
                Execution.status == "waiting_review",
                ~_pending_review_exists(Execution.id),
            )
            .values(status="running", updated_at=now)
            .execution_options(synchronize_session=False)
        )
    else:
        db.session.execute(
            update(Execution)
            .where(
                Execution.id == review.execution_id,
                Execution.status.in_(ACTIVE_EXECUTION_STATUSES),
            )
            .values(
                status="failed",
                error=f"Review rejected: {feedback}",
                completed_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )

    record(
        AuditEvent(
            event_type="review_response",
            actor_type="human",
            actor_id=reviewer.reviewer_id,
            actor_name=reviewer.name,
            workflow_id=review.execution.workflow_id,
            execution_id=review.execution_id,
            node_name=review.step_label,
            node_index=review.step_index,
            payload={"decision": new_status, "feedback": feedback},
            details={"reviewId": review.id, "decision": new_status},
        ),
        organization_id=organization_id,
    )
    db.session.commit()

    dispatched = dispatch(review)
    return DecisionOutcome(review_id, applied=True, status=new_status, dispatched=dispatched)


def _clean_feedback(feedback: str | None) -> str | None:
    if feedback is None:
        return None
    feedback = feedback.strip()
    if len(feedback) > MAX_FEEDBACK_LENGTH:
        raise ValidationError(f"feedback must be at most {MAX_FEEDBACK_LENGTH} characters")
    return feedback or None


def approve(
    review_id: int, organization_id: str, reviewer: Reviewer, feedback: str | None = None
) -> DecisionOutcome:
    feedback = _clean_feedback(feedback)
    review = get_review(review_id, organization_id)
    return _decide(review, organization_id, "approved", reviewer, feedback)


def reject(
    review_id: int, organization_id: str, reviewer: Reviewer, feedback: str | None
) -> DecisionOutcome:
    feedback = _clean_feedback(feedback)
    if not feedback:
        raise ValidationError("feedback is required when rejecting a review")
    review = get_review(review_id, organization_id)
    return _decide(review, organization_id, "rejected", reviewer, feedback)


def append_chat_message(
    review_id: int, organization_id: str, sender: str, text: str
) -> ReviewChatMessage:
    """Append to a pending review's conversation; decided reviews are read-only."""

    if sender not in CHAT_SENDERS:
        raise ValidationError(f"sender must be one of {', '.join(CHAT_SENDERS)}")
    text = (text or "").strip()
    if not text:
        raise ValidationError("text is required")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"text must be at most {MAX_MESSAGE_LENGTH} characters")

    review = db.session.scalars(
        _scoped_reviews(organization_id)
        .where(ReviewRequest.id == review_id)
        .with_for_update(of=ReviewRequest)
        .execution_options(populate_existing=True)
    ).first()
    if review is None:
        raise NotFoundError("Review not found")
    if review.status != "pending":
        status = review.status
        db.session.rollback()
        raise StateConflictError(
            "Review is no longer accepting messages", details={"status": status}
        )

    message = ReviewChatMessage(review_id=review.id, sender=sender, text=text, created_at=utcnow())
    db.session.add(message)
    db.session.commit()
    return message
