"""Execution model definition."""

from __future__ import annotations

from ..extensions import db
from ..utils.clock import utcnow

EXECUTION_STATUSES = ("running", "waiting_review", "completed", "failed")
ACTIVE_EXECUTION_STATUSES = ("running", "waiting_review")


class Execution(db.Model):
    """A run of a workflow inside the remote engine, keyed by the engine's execution id."""

    __tablename__ = "executions"

    id = db.Column(db.String(64), primary_key=True)
    workflow_id = db.Column(
        db.Integer, db.ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False, index=True
    )
    status = db.Column(
        db.Enum(*EXECUTION_STATUSES, name="execution_status"),
        nullable=False,
        default="running",
        index=True,
    )
    current_step_index = db.Column(db.Integer, nullable=True)
    error = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    completed_at = db.Column(db.DateTime, nullable=True)

    workflow = db.relationship("Workflow")
    reviews = db.relationship("ReviewRequest", back_populates="execution")

    def is_terminal(self) -> bool:
        return self.status not in ACTIVE_EXECUTION_STATUSES

    def __repr__(self) -> str:  # pragma: no cover - repr not critical for tests
        return f"<Execution {self.id} {self.status}>"
