"""Append-only audit trail with payload hashing and retention expiry."""

from __future__ import annotations

import hashlib
import json
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from flask import current_app
from sqlalchemy import case, delete, func, select

from ..errors import ValidationError
from ..extensions import db
from ..models.audit import ACTOR_TYPES, AUDIT_EVENT_TYPES, AuditLogEntry
from ..models.workflow import Workflow
from ..utils.clock import utcnow

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 50
SUMMARY_LIMIT = 30
MAX_RETENTION_DAYS = 3650
MAX_EXPORT_ROWS = 1000


@dataclass(slots=True)
class AuditEvent:
    """An event to append to the audit trail.

    ``payload`` is hashed and then discarded; it is never stored.
    """

    event_type: str
    actor_type: str = "system"
    actor_id: str | None = None
    actor_name: str | None = None
    workflow_id: int | None = None
    execution_id: str | None = None
    node_name: str | None = None
    node_type: str | None = None
    node_index: int | None = None
    payload: Any = None
    output_summary: str | None = None
    error_message: str | None = None
    duration_ms: int | None = None
    details: dict[str, Any] | None = None
    retention_days: int | None = None


@dataclass(slots=True)
class AuditFilters:
    workflow_id: int | None = None
    execution_id: str | None = None
    event_type: str | None = None
    actor_type: str | None = None
    start: datetime | None = None
    end: datetime | None = None


@dataclass(slots=True)
class AuditPage:
    entries: list[AuditLogEntry]
    page: int
    page_size: int
    total: int
    total_pages: int = field(init=False)

    def __post_init__(self) -> None:
        self.total_pages = math.ceil(self.total / self.page_size) if self.total else 0


def hash_payload(payload: Any) -> str | None:
    """Return a SHA-256 digest of the canonical JSON form of ``payload``."""

    if payload is None:
        return None
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _resolve_organization(event: AuditEvent, organization_id: str | None) -> str | None:
    if organization_id:
        return organization_id
    if event.workflow_id is not None:
        workflow = db.session.get(Workflow, event.workflow_id)
        if workflow is not None:
            return workflow.organization_id
    if event.event_type == "cleanup_summary":
        return None
    raise ValidationError("Could not determine organization")


def _retention_days(event: AuditEvent) -> int:
    days = event.retention_days
    if days is None:
        days = int(current_app.config.get("AUDIT_RETENTION_DAYS", 90))
    if not 1 <= days <= MAX_RETENTION_DAYS:
        raise ValidationError(f"retentionDays must be between 1 and {MAX_RETENTION_DAYS}")
    return days


def record(event: AuditEvent, organization_id: str | None = None) -> AuditLogEntry:
    """Add one audit row to the current session.

    The caller commits, so the entry lands in the same transaction as the
    state change it describes.
    """

    if event.event_type not in AUDIT_EVENT_TYPES:
        raise ValidationError(f"unknown eventType {event.event_type!r}")
    if event.actor_type not in ACTOR_TYPES:
        raise ValidationError(f"unknown actorType {event.actor_type!r}")

    now = utcnow()
    entry = AuditLogEntry(
        organization_id=_resolve_organization(event, organization_id),
        workflow_id=event.workflow_id,
        execution_id=event.execution_id,
        event_type=event.event_type,
        actor_type=event.actor_type,
        actor_id=event.actor_id,
        actor_name=event.actor_name,
        node_name=event.node_name,
        node_type=event.node_type,
        node_index=event.node_index,
        payload_hash=hash_payload(event.payload),
        output_summary=event.output_summary,
        error_message=event.error_message,
        duration_ms=event.duration_ms,
        details=event.details,
        created_at=now,
        retention_until=now + timedelta(days=_retention_days(event)),
    )
    db.session.add(entry)
    return entry


def _apply_filters(statement, organization_id: str, filters: AuditFilters):
    statement = statement.where(AuditLogEntry.organization_id == organization_id)
    if filters.workflow_id is not None:
        statement = statement.where(AuditLogEntry.workflow_id == filters.workflow_id)
    if filters.execution_id:
        statement = statement.where(AuditLogEntry.execution_id == filters.execution_id)
    if filters.event_type:
        statement = statement.where(AuditLogEntry.event_type == filters.event_type)
    if filters.actor_type:
        statement = statement.where(AuditLogEntry.actor_type == filters.actor_type)
    if filters.start is not None:
        statement = statement.where(AuditLogEntry.created_at >= filters.start)
    if filters.end is not None:
        statement = statement.where(AuditLogEntry.created_at <= filters.end)
    return statement


def query(
    organization_id: str,
    filters: AuditFilters | None = None,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> AuditPage:
    """Return one page of the organization's audit rows, newest first."""

    filters = filters or AuditFilters()
    page = max(1, page)
    page_size = max(1, min(page_size, MAX_PAGE_SIZE))

    base = _apply_filters(select(AuditLogEntry), organization_id, filters)
    total = db.session.scalar(select(func.count()).select_from(base.subquery())) or 0
    entries = db.session.scalars(
        base.order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    ).all()
    return AuditPage(entries=list(entries), page=page, page_size=page_size, total=total)


def export(
    organization_id: str, filters: AuditFilters | None = None, limit: int = MAX_EXPORT_ROWS
) -> list[AuditLogEntry]:
    """Return up to ``limit`` of the newest matching rows, oldest first."""

    limit = max(1, min(limit, MAX_EXPORT_ROWS))
    statement = _apply_filters(select(AuditLogEntry), organization_id, filters or AuditFilters())
    entries = db.session.scalars(
        statement.order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.id.desc()).limit(limit)
    ).all()
    return list(reversed(entries))


def _count_where(condition):
    return func.sum(case((condition, 1), else_=0))


def _date_string(value: Any) -> str:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)


def summary(organization_id: str, filters: AuditFilters | None = None) -> list[dict[str, Any]]:
    """Per-day compliance rollup for the organization, newest day first."""

    filters = filters or AuditFilters()
    audit_date = func.date(AuditLogEntry.created_at).label("audit_date")
    statement = select(
        audit_date,
        AuditLogEntry.workflow_id,
        func.count(AuditLogEntry.id).label("total_events"),
        _count_where(AuditLogEntry.actor_type == "ai").label("ai_events"),
        _count_where(AuditLogEntry.actor_type == "human").label("human_events"),
        _count_where(AuditLogEntry.actor_type == "system").label("system_events"),
        _count_where(AuditLogEntry.event_type.in_(("node_error", "execution_failed"))).label(
            "failures"
        ),
        _count_where(AuditLogEntry.event_type.in_(("review_request", "review_response"))).label(
            "review_events"
        ),
    )
    statement = _apply_filters(statement, organization_id, filters)
    statement = (
        statement.group_by(audit_date, AuditLogEntry.workflow_id)
        .order_by(audit_date.desc(), AuditLogEntry.workflow_id)
        .limit(SUMMARY_LIMIT)
    )

    return [
        {
            "auditDate": _date_string(row.audit_date),
            "workflowId": row.workflow_id,
            "totalEvents": int(row.total_events or 0),
            "aiEvents": int(row.ai_events or 0),
            "humanEvents": int(row.human_events or 0),
            "systemEvents": int(row.system_events or 0),
            "failures": int(row.failures or 0),
            "reviewEvents": int(row.review_events or 0),
        }
        for row in db.session.execute(statement)
    ]


def purge_expired(organization_id: str, now: datetime | None = None) -> int:
    """Delete the organization's rows whose retention window has passed."""

    now = now or utcnow()
    result = db.session.execute(
        delete(AuditLogEntry)
        .where(AuditLogEntry.organization_id == organization_id)
        .where(AuditLogEntry.retention_until < now)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount or 0


def purge_system_expired(now: datetime | None = None) -> int:
    """Delete expired rows that belong to no organization, such as sweep summaries.

    The caller commits.
    """

    now = now or utcnow()
    result = db.session.execute(
        delete(AuditLogEntry)
        .where(AuditLogEntry.organization_id.is_(None))
        .where(AuditLogEntry.retention_until < now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


def serialize_entry(entry: AuditLogEntry) -> dict[str, Any]:
    return {
        "id": entry.id,
        "workflowId": entry.workflow_id,
        "executionId": entry.execution_id,
        "eventType": entry.event_type,
        "actorType": entry.actor_type,
        "actorId": entry.actor_id,
        "actorName": entry.actor_name,
        "nodeName": entry.node_name,
        "nodeType": entry.node_type,
        "nodeIndex": entry.node_index,
        "payloadHash": entry.payload_hash,
        "outputSummary": entry.output_summary,
        "errorMessage": entry.error_message,
        "durationMs": entry.duration_ms,
        "details": entry.details,
        "createdAt": entry.created_at.isoformat() + "Z",
        "retentionUntil": entry.retention_until.isoformat() + "Z",
    }
