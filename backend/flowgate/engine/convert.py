"""Conversion of an internal workflow into the remote engine's node graph.

The conversion is pure: the same steps always yield the same document, which
is what makes re-activation idempotent.
"""

from __future__ import annotations

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError
from .callbacks import error_details
from .documents import RemoteConnection, RemoteNode, RemoteWorkflowDocument

MANUAL_TRIGGER = "n8n-nodes-base.manualTrigger"
HTTP_REQUEST = "n8n-nodes-base.httpRequest"
NO_OP = "n8n-nodes-base.noOp"

_DEFAULT_NAMES = {
    "trigger": "Start",
    "ai_action": "AI Action",
    "human_review": "Human Review",
    "decision": "Decision",
    "end": "Complete",
    "generic": "Step",
}

_JSON_INPUT = "={{ JSON.stringify($json) }}"


class StepBlueprint(BaseModel):
    """Allow-list and deny-list of actions an AI worker may take."""

    model_config = ConfigDict(populate_by_name=True)

    green_list: list[str] = Field(default_factory=list, alias="greenList")
    red_list: list[str] = Field(default_factory=list, alias="redList")

    def canonical_json(self) -> str:
        return json.dumps(self.model_dump(by_alias=True), sort_keys=True)


@dataclass(frozen=True, slots=True)
class StepSnapshot:
    id: int
    label: str
    type: str
    position: int
    assigned_to_type: str | None = None
    assigned_to_name: str | None = None
    requirements: Mapping[str, Any] | None = None

    def blueprint(self) -> StepBlueprint:
        raw = (self.requirements or {}).get("blueprint") or {}
        try:
            return StepBlueprint.model_validate(raw)
        except PydanticValidationError as exc:
            raise ValidationError(
                f"step {self.id} has an invalid requirements blueprint",
                details=error_details(exc),
            ) from exc


@dataclass(frozen=True, slots=True)
class WorkflowSnapshot:
    """Immutable copy of a workflow and its ordered steps."""

    id: int
    name: str
    steps: tuple[StepSnapshot, ...]

    @classmethod
    def from_model(cls, workflow: Any) -> WorkflowSnapshot:
        steps = sorted(workflow.steps, key=lambda step: (step.position, step.id))
        return cls(
            id=workflow.id,
            name=workflow.name,
            steps=tuple(
                StepSnapshot(
                    id=step.id,
                    label=step.label or "",
                    type=step.type,
                    position=step.position,
                    assigned_to_type=step.assigned_to_type,
                    assigned_to_name=step.assigned_to_name,
                    requirements=step.requirements,
                )
                for step in steps
            ),
        )


def _node_kind(step: StepSnapshot) -> str:
    if step.type == "trigger":
        return "trigger"
    if step.type == "action":
        return "human_review" if step.assigned_to_type == "human" else "ai_action"
    if step.type in {"decision", "end"}:
        return step.type
    return "generic"


def _position(index: int) -> tuple[int, int]:
    x = 100 + (index % 3) * 300
    y = 100 + (index // 3) * 200
    return x, y


def _unique_names(steps: Iterable[StepSnapshot]) -> list[str]:
    seen: dict[str, int] = {}
    names: list[str] = []
    for step in steps:
        base = step.label.strip() or _DEFAULT_NAMES[_node_kind(step)]
        count = seen.get(base, 0) + 1
        seen[base] = count
        names.append(base if count == 1 else f"{base} ({count})")
    return names


def _http_post(url: str, parameters: list[tuple[str, str]]) -> dict[str, Any]:
    return {
        "method": "POST",
        "url": url,
        "sendBody": True,
        "bodyParameters": {
            "parameters": [{"name": name, "value": value} for name, value in parameters],
        },
        "options": {"response": {"response": {"responseFormat": "json"}}},
    }


def _review_parameters(
    workflow_id: int, step: StepSnapshot, index: int, review_type: str
) -> list[tuple[str, str]]:
    return [
        ("workflowId", str(workflow_id)),
        ("executionId", "={{ $execution.id }}"),
        ("resumeUrl", "={{ $execution.resumeUrl }}"),
        ("stepId", str(step.id)),
        ("stepIndex", str(index)),
        ("stepLabel", step.label),
        ("workerName", step.assigned_to_name or ""),
        ("reviewType", review_type),
        ("data", _JSON_INPUT),
    ]


def _build_node(
    step: StepSnapshot, index: int, name: str, workflow_id: int, platform_url: str
) -> RemoteNode:
    kind = _node_kind(step)
    node_id = f"node_{index}"
    position = _position(index)

    if kind == "trigger":
        return RemoteNode(id=node_id, name=name, type=MANUAL_TRIGGER, position=position)

    if kind == "ai_action":
        parameters = _http_post(
            f"{platform_url}/api/webhooks/ai-action",
            [
                ("workflowId", str(workflow_id)),
                ("executionId", "={{ $execution.id }}"),
                ("stepId", str(step.id)),
                ("stepLabel", step.label),
                ("agentName", step.assigned_to_name or ""),
                ("blueprint", step.blueprint().canonical_json()),
                ("input", _JSON_INPUT),
            ],
        )
    elif kind in {"human_review", "decision"}:
        review_type = "approval" if kind == "human_review" else "decision"
        parameters = _http_post(
            f"{platform_url}/api/webhooks/review-request",
            _review_parameters(workflow_id, step, index, review_type),
        )
    elif kind == "end":
        parameters = _http_post(
            f"{platform_url}/api/webhooks/execution-complete",
            [
                ("workflowId", str(workflow_id)),
                ("executionId", "={{ $execution.id }}"),
                ("status", "completed"),
                ("result", _JSON_INPUT),
            ],
        )
    else:
        return RemoteNode(id=node_id, name=name, type=NO_OP, position=position)

    return RemoteNode(
        id=node_id,
        name=name,
        type=HTTP_REQUEST,
        position=position,
        parameters=parameters,
        typeVersion=4.2,
    )


def convert_workflow(snapshot: WorkflowSnapshot, platform_url: str) -> RemoteWorkflowDocument:
    """Translate ``snapshot`` into the remote engine's workflow document."""

    if not snapshot.steps:
        raise ValidationError("Workflow has no steps to activate")

    platform_url = platform_url.rstrip("/")
    names = _unique_names(snapshot.steps)
    nodes = [
        _build_node(step, index, names[index], snapshot.id, platform_url)
        for index, step in enumerate(snapshot.steps)
    ]

    connections: dict[str, dict[str, list[list[RemoteConnection]]]] = {}
    for previous, current in zip(nodes, nodes[1:]):
        connections[previous.name] = {"main": [[RemoteConnection(node=current.name)]]}

    return RemoteWorkflowDocument(name=snapshot.name, nodes=nodes, connections=connections)
