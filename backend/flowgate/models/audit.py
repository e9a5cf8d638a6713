"""Audit log model definition."""

from __future__ import annotations

from ..extensions import db
from ..utils.clock import utcnow

AUDIT_EVENT_TYPES = (
    "execution_start",
    "node_start",
    "node_complete",
    "node_error",
    "review_request",
    "review_response",
    "execution_complete",
    "execution_failed",
    "workflow_activated",
    "workflow_deactivated",
    "cleanup_summary",
)
ACTOR_TYPES = ("ai", "human", "system")


class AuditLogEntry(db.Model):
    """Immutable audit record. Rows are inserted once and only removed by the retention purge."""

    __tablename__ = "execution_audit_logs"

    id = db.Column(db.Integer, primary_key=True)
    # Null only for system-wide entries such as sweep summaries.
    organization_id = db.Column(db.String(64), nullable=True, index=True)
    workflow_id = db.Column(db.Integer, nullable=True, index=True)
    execution_id = db.Column(db.String(64), nullable=True, index=True)
    event_type = db.Column(db.Enum(*AUDIT_EVENT_TYPES, name="audit_event_type"), nullable=False)
    actor_type = db.Column(db.Enum(*ACTOR_TYPES, name="audit_actor_type"), nullable=False)
    actor_id = db.Column(db.String(255), nullable=True)
    actor_name = db.Column(db.String(255), nullable=True)
    node_name = db.Column(db.String(255), nullable=True)
    node_type = db.Column(db.String(255), nullable=True)
    node_index = db.Column(db.Integer, nullable=True)
    payload_hash = db.Column(db.String(64), nullable=True)
    output_summary = db.Column(db.Text, nullable=True)
    error_message = db.Column(db.Text, nullable=True)
    duration_ms = db.Column(db.Integer, nullable=True)
    details = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False, index=True)
    retention_until = db.Column(db.DateTime, nullable=False, index=True)

    def __repr__(self) -> str:  # pragma: no cover - repr not critical for tests
        return f"<AuditLogEntry {self.id} {self.event_type}>"
