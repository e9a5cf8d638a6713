"""REST API endpoints for activating workflows and reading their state."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any

from flask import Blueprint, current_app, g, jsonify
from sqlalchemy import select

from ..extensions import db, limiter
from ..models.workflow import Workflow, WorkflowStep
from ..utils.auth import current_organization, require_token
from ..utils.clock import isoformat
from ..workflow import sync
from .schemas import ActivationRequest, parse_body

bp = Blueprint("workflows", __name__)


def _activation_limit() -> str:
    return current_app.config["ACTIVATION_RATE_LIMIT"]


def _serialize_step(step: WorkflowStep) -> dict[str, Any]:
    return {
        "id": step.id,
        "label": step.label,
        "type": step.type,
        "position": step.position,
        "assignedToType": step.assigned_to_type,
        "assignedToName": step.assigned_to_name,
        "requirements": step.requirements,
    }


def _serialize_workflow(workflow: Workflow, *, with_steps: bool = True) -> dict[str, Any]:
    """Return a JSON serialisable representation of a workflow."""

    payload = {
        "id": workflow.id,
        "name": workflow.name,
        "description": workflow.description,
        "status": workflow.status,
        "remoteWorkflowId": workflow.remote_workflow_id,
        "createdAt": isoformat(workflow.created_at),
        "updatedAt": isoformat(workflow.updated_at),
    }
    if with_steps:
        payload["steps"] = [_serialize_step(step) for step in workflow.steps]
    return payload


@bp.post("/workflows/activate")
@require_token(role="member")
@limiter.limit(_activation_limit)
def activate_workflow() -> tuple[object, int]:
    body = parse_body(ActivationRequest)
    token = g.api_token
    actor = sync.Actor(actor_type="human", actor_id=str(token.id), actor_name=token.name)

    if body.action == "activate":
        result = sync.activate(body.workflow_id, token.organization_id, actor)
    else:
        result = sync.deactivate(body.workflow_id, token.organization_id, actor)

    return (
        jsonify(
            {
                "status": result.status,
                "remoteWorkflowId": result.remote_workflow_id,
                "workflow": _serialize_workflow(result.workflow),
            }
        ),
        HTTPStatus.OK,
    )


@bp.get("/workflows")
@require_token()
def list_workflows() -> tuple[object, int]:
    workflows = db.session.scalars(
        select(Workflow)
        .where(Workflow.organization_id == current_organization())
        .order_by(Workflow.created_at.desc(), Workflow.id.desc())
    ).all()
    return jsonify([_serialize_workflow(wf, with_steps=False) for wf in workflows]), HTTPStatus.OK


@bp.get("/workflows/<int:workflow_id>")
@require_token()
def get_workflow(workflow_id: int) -> tuple[object, int]:
    workflow = sync.load_workflow(workflow_id, current_organization())
    return jsonify(_serialize_workflow(workflow)), HTTPStatus.OK
