"""Review gate model definitions."""

from __future__ import annotations

from ..extensions import db
from ..utils.clock import utcnow

REVIEW_STATUSES = ("pending", "approved", "rejected", "expired")
REVIEW_TYPES = ("approval", "input_needed", "edit_review", "decision")
CHAT_SENDERS = ("user", "agent")


class ReviewRequest(db.Model):
    """A human-in-the-loop checkpoint raised by a paused execution.

    ``status`` is a one-shot latch: it leaves ``pending`` exactly once and is
    only ever changed by conditional updates keyed on ``status == 'pending'``.
    """

    __tablename__ = "review_requests"

    id = db.Column(db.Integer, primary_key=True)
    execution_id = db.Column(
        db.String(64), db.ForeignKey("executions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    step_index = db.Column(db.Integer, nullable=False, default=0)
    step_label = db.Column(db.String(255), nullable=True)
    review_type = db.Column(db.Enum(*REVIEW_TYPES, name="review_type"), nullable=False)
    status = db.Column(
        db.Enum(*REVIEW_STATUSES, name="review_status"),
        nullable=False,
        default="pending",
        index=True,
    )
    worker_name = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.JSON, nullable=True)
    resume_url = db.Column(db.String(2048), nullable=True)
    timeout_at = db.Column(db.DateTime, nullable=False, index=True)
    feedback = db.Column(db.Text, nullable=True)
    reviewer_id = db.Column(db.String(255), nullable=True)
    reviewed_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    execution = db.relationship("Execution", back_populates="reviews")
    messages = db.relationship(
        "ReviewChatMessage",
        back_populates="review",
        order_by="ReviewChatMessage.id",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:  # pragma: no cover - repr not critical for tests
        return f"<ReviewRequest {self.id} {self.status}>"


class ReviewChatMessage(db.Model):
    """Append-only chat message attached to a review."""

    __tablename__ = "review_chat_messages"

    id = db.Column(db.Integer, primary_key=True)
    review_id = db.Column(
        db.Integer, db.ForeignKey("review_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    sender = db.Column(db.Enum(*CHAT_SENDERS, name="chat_sender"), nullable=False)
    text = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    review = db.relationship("ReviewRequest", back_populates="messages")
