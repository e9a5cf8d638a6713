"""API endpoints exposing the execution audit trail."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from http import HTTPStatus

from flask import Blueprint, Response, g, jsonify, request

from .. import audit
from ..engine.callbacks import AuditEventCallback, parse_callback
from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models.audit import ACTOR_TYPES, AUDIT_EVENT_TYPES
from ..models.workflow import Workflow
from ..utils.auth import current_organization, require_token, require_token_or_signature

bp = Blueprint("audit", __name__)


def _parse_date(name: str) -> datetime | None:
    value = request.args.get(name)
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationError(f"{name} must be an ISO-8601 date") from exc
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(UTC).replace(tzinfo=None)
    return parsed


def _filters() -> audit.AuditFilters:
    event_type = request.args.get("eventType")
    if event_type and event_type not in AUDIT_EVENT_TYPES:
        raise ValidationError("invalid eventType")
    actor_type = request.args.get("actorType")
    if actor_type and actor_type not in ACTOR_TYPES:
        raise ValidationError("invalid actorType")
    return audit.AuditFilters(
        workflow_id=request.args.get("workflowId", type=int),
        execution_id=request.args.get("executionId"),
        event_type=event_type,
        actor_type=actor_type,
        start=_parse_date("startDate"),
        end=_parse_date("endDate"),
    )


@bp.get("/audit")
@require_token()
def get_audit_log() -> tuple[object, int]:
    filters = _filters()
    organization_id = current_organization()

    if request.args.get("summary", "").lower() in {"1", "true", "yes"}:
        return jsonify({"summary": audit.summary(organization_id, filters)}), HTTPStatus.OK

    page = audit.query(
        organization_id,
        filters,
        page=request.args.get("page", type=int) or 1,
        page_size=request.args.get("pageSize", type=int) or audit.logger.DEFAULT_PAGE_SIZE,
    )
    return (
        jsonify(
            {
                "logs": [audit.serialize_entry(entry) for entry in page.entries],
                "pagination": {
                    "page": page.page,
                    "pageSize": page.page_size,
                    "total": page.total,
                    "totalPages": page.total_pages,
                },
            }
        ),
        HTTPStatus.OK,
    )


@bp.get("/audit/download")
@require_token()
def download_audit_log() -> Response:
    entries = audit.export(
        current_organization(),
        _filters(),
        limit=request.args.get("limit", type=int) or audit.logger.MAX_EXPORT_ROWS,
    )
    payload = "\n".join(json.dumps(audit.serialize_entry(entry)) for entry in entries)
    response = Response(payload, mimetype="application/x-ndjson")
    response.headers["Content-Disposition"] = "attachment; filename=audit-log.ndjson"
    return response


@bp.post("/audit")
@require_token_or_signature(role="member")
def record_audit_event() -> tuple[object, int]:
    body = parse_callback(AuditEventCallback, request.get_json(silent=True, force=True))
    token = g.api_token

    organization_id = None
    if body.workflow_id is not None:
        workflow = db.session.get(Workflow, body.workflow_id)
        foreign = token is not None and workflow is not None and (
            workflow.organization_id != token.organization_id
        )
        if workflow is None or foreign:
            raise NotFoundError("Workflow not found")
        organization_id = workflow.organization_id
    elif token is not None:
        organization_id = token.organization_id

    entry = audit.record(
        audit.AuditEvent(
            event_type=body.event_type,
            actor_type=body.actor_type,
            actor_id=body.actor_id,
            actor_name=body.actor_name,
            workflow_id=body.workflow_id,
            execution_id=body.execution_id,
            node_name=body.node_name,
            node_type=body.node_type,
            node_index=body.node_index,
            payload=body.input_data,
            output_summary=body.output_summary,
            error_message=body.error_message,
            duration_ms=body.duration_ms,
            details=body.metadata,
            retention_days=body.retention_days,
        ),
        organization_id=organization_id,
    )
    db.session.commit()
    return jsonify({"success": True, "id": entry.id}), HTTPStatus.CREATED


@bp.delete("/audit")
@require_token(role="admin")
def purge_audit_log() -> tuple[object, int]:
    deleted = audit.purge_expired(current_organization())
    return jsonify({"deleted": deleted}), HTTPStatus.OK
