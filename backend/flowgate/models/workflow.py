"""Workflow and step model definitions."""

from __future__ import annotations

from ..extensions import db
from ..utils.clock import utcnow

WORKFLOW_STATUSES = ("draft", "active", "paused", "archived")
STEP_TYPES = ("trigger", "action", "decision", "end", "subworkflow")


class Workflow(db.Model):
    """A business process owned by an organization and mirrored in the remote engine."""

    __tablename__ = "workflows"

    id = db.Column(db.Integer, primary_key=True)
    organization_id = db.Column(db.String(64), nullable=False, index=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(
        db.Enum(*WORKFLOW_STATUSES, name="workflow_status"), nullable=False, default="draft"
    )
    remote_workflow_id = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

    steps = db.relationship(
        "WorkflowStep",
        back_populates="workflow",
        order_by="WorkflowStep.position",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:  # pragma: no cover - repr not critical for tests
        return f"<Workflow {self.name!r} {self.status}>"


class WorkflowStep(db.Model):
    """One ordered step of a workflow."""

    __tablename__ = "workflow_steps"

    id = db.Column(db.Integer, primary_key=True)
    workflow_id = db.Column(
        db.Integer, db.ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False
    )
    label = db.Column(db.String(255), nullable=False, default="")
    type = db.Column(db.Enum(*STEP_TYPES, name="workflow_step_type"), nullable=False)
    position = db.Column(db.Integer, nullable=False)
    assigned_to_type = db.Column(db.Enum("ai", "human", name="step_assignee_type"), nullable=True)
    assigned_to_name = db.Column(db.String(255), nullable=True)
    requirements = db.Column(db.JSON, nullable=True)

    workflow = db.relationship("Workflow", back_populates="steps")

    __table_args__ = (db.UniqueConstraint("workflow_id", "position", name="uq_step_position"),)
