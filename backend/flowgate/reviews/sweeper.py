"""Reclaim reviews and executions that nobody will ever finish.

The sweep is a handful of bulk conditional updates. It is safe to run
concurrently with itself and with reviewers: each statement only touches
rows still in the state it expects.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from flask import current_app
from sqlalchemy import exists, func, select, update

from ..audit import AuditEvent, purge_system_expired, record
from ..extensions import db
from ..models.execution import Execution
from ..models.review import REVIEW_STATUSES, ReviewRequest
from ..models.workflow import Workflow
from ..utils.clock import utcnow

EXPIRED_FEEDBACK = "Automatically expired due to timeout"
REVIEW_TIMED_OUT = "Review request timed out"
EXECUTION_STUCK = "Execution timed out - stuck in waiting state"


@dataclass(frozen=True, slots=True)
class SweepResult:
    expired_reviews: int
    timed_out_executions: int
    stale_executions: int

    @property
    def changed(self) -> bool:
        return bool(self.expired_reviews or self.timed_out_executions or self.stale_executions)

    def to_dict(self) -> dict[str, int]:
        return {
            "expiredReviewCount": self.expired_reviews,
            "timedOutExecutionCount": self.timed_out_executions,
            "staleExecutionCount": self.stale_executions,
        }


def _review_exists(status: str):
    return exists().where(
        ReviewRequest.execution_id == Execution.id, ReviewRequest.status == status
    )


def _fail_waiting(error: str, now: datetime, *conditions) -> int:
    result = db.session.execute(
        update(Execution)
        .where(Execution.status == "waiting_review", *conditions)
        .values(status="failed", error=error, completed_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def sweep(now: datetime | None = None) -> SweepResult:
    now = now or utcnow()
    stale_before = now - timedelta(hours=current_app.config["STALE_EXECUTION_HOURS"])

    expired = db.session.execute(
        update(ReviewRequest)
        .where(ReviewRequest.status == "pending", ReviewRequest.timeout_at < now)
        .values(status="expired", reviewed_at=now, feedback=EXPIRED_FEEDBACK)
        .execution_options(synchronize_session=False)
    ).rowcount or 0
    # An abandoned gate fails its execution even when a later gate is still open.
    timed_out = _fail_waiting(REVIEW_TIMED_OUT, now, _review_exists("expired"))
    stale = _fail_waiting(
        EXECUTION_STUCK, now, Execution.created_at < stale_before, ~_review_exists("pending")
    )

    result = SweepResult(expired, timed_out, stale)
    if result.changed:
        record(
            AuditEvent(
                event_type="cleanup_summary",
                actor_type="system",
                actor_name="sweeper",
                details=result.to_dict(),
            )
        )
    purged = purge_system_expired(now)
    db.session.commit()
    # Objects loaded before the bulk updates are stale now.
    db.session.expire_all()

    if result.changed:
        current_app.logger.info(
            "Sweep expired %d reviews, timed out %d executions, reaped %d stale executions",
            expired,
            timed_out,
            stale,
        )
    if purged:
        current_app.logger.info("Sweep purged %d expired system audit entries", purged)
    return result


def status_counts(organization_id: str, now: datetime | None = None) -> dict[str, Any]:
    """Review counts by status for one organization.

    ``expiringSoon`` counts pending reviews due within the window, including
    overdue ones the next sweep will expire.
    """

    now = now or utcnow()
    scoped = (
        select(ReviewRequest.status, func.count(ReviewRequest.id))
        .join(Execution, ReviewRequest.execution_id == Execution.id)
        .join(Workflow, Execution.workflow_id == Workflow.id)
        .where(Workflow.organization_id == organization_id)
    )
    counts = dict.fromkeys(REVIEW_STATUSES, 0)
    for status, count in db.session.execute(scoped.group_by(ReviewRequest.status)):
        counts[status] = count

    window = now + timedelta(hours=current_app.config["EXPIRING_SOON_HOURS"])
    expiring = db.session.scalar(
        select(func.count(ReviewRequest.id))
        .join(Execution, ReviewRequest.execution_id == Execution.id)
        .join(Workflow, Execution.workflow_id == Workflow.id)
        .where(
            Workflow.organization_id == organization_id,
            ReviewRequest.status == "pending",
            ReviewRequest.timeout_at < window,
        )
    )
    return {"reviewStatusCounts": counts, "expiringSoon": expiring or 0, "checkedAt": now}
