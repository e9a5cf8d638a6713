"""Payloads the remote engine posts back to us.

Each callback type gets its own model; the handlers only ever see validated
instances.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, TypeVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError

TModel = TypeVar("TModel", bound=BaseModel)

MAX_REVIEW_TIMEOUT_HOURS = 24 * 30


class _Callback(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")


def _decode_json_text(value: Any) -> Any:
    """Engine expressions such as ``JSON.stringify($json)`` arrive as strings."""

    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


JsonText = Annotated[Any, BeforeValidator(_decode_json_text)]


def error_details(exc: PydanticValidationError) -> list[dict[str, Any]]:
    """Reduce pydantic errors to JSON-safe location/message pairs."""

    return [
        {"loc": [str(part) for part in error["loc"]], "msg": error["msg"], "type": error["type"]}
        for error in exc.errors()
    ]


class ReviewRequestCallback(_Callback):
    workflow_id: int = Field(alias="workflowId")
    execution_id: str = Field(alias="executionId", min_length=1, max_length=64)
    step_index: int = Field(default=0, alias="stepIndex", ge=0)
    step_label: str | None = Field(default=None, alias="stepLabel", max_length=255)
    review_type: Literal["approval", "input_needed", "edit_review", "decision"] = Field(
        alias="reviewType"
    )
    worker_name: str | None = Field(default=None, alias="workerName", max_length=255)
    data: JsonText = None
    resume_url: str | None = Field(default=None, alias="resumeUrl", max_length=2048)
    timeout_hours: float | None = Field(
        default=None, alias="timeoutHours", gt=0, le=MAX_REVIEW_TIMEOUT_HOURS
    )

    @field_validator("resume_url", "worker_name", "step_label", mode="after")
    @classmethod
    def _blank_to_none(cls, value: str | None) -> str | None:
        return value or None


class ExecutionUpdateCallback(_Callback):
    workflow_id: int = Field(alias="workflowId")
    execution_id: str = Field(alias="executionId", min_length=1, max_length=64)
    current_step_index: int | None = Field(default=None, alias="currentStepIndex", ge=0)
    current_step_name: str | None = Field(default=None, alias="currentStepName", max_length=255)


class ExecutionCompleteCallback(_Callback):
    workflow_id: int = Field(alias="workflowId")
    execution_id: str = Field(alias="executionId", min_length=1, max_length=64)
    status: Literal["completed", "failed"] = "completed"
    result: JsonText = None
    error: str | None = None


class AuditEventCallback(_Callback):
    event_type: Literal[
        "execution_start",
        "node_start",
        "node_complete",
        "node_error",
        "review_request",
        "review_response",
        "execution_complete",
        "execution_failed",
    ] = Field(alias="eventType")
    workflow_id: int | None = Field(default=None, alias="workflowId")
    execution_id: str | None = Field(default=None, alias="executionId", max_length=64)
    node_name: str | None = Field(default=None, alias="nodeName", max_length=255)
    node_type: str | None = Field(default=None, alias="nodeType", max_length=255)
    node_index: int | None = Field(default=None, alias="nodeIndex", ge=0)
    input_data: Any = Field(default=None, alias="inputData")
    output_summary: str | None = Field(default=None, alias="outputSummary")
    error_message: str | None = Field(default=None, alias="errorMessage")
    duration_ms: int | None = Field(default=None, alias="durationMs", ge=0)
    actor_type: Literal["ai", "human", "system"] = Field(default="system", alias="actorType")
    actor_id: str | None = Field(default=None, alias="actorId", max_length=255)
    actor_name: str | None = Field(default=None, alias="actorName", max_length=255)
    metadata: dict[str, Any] | None = None
    retention_days: int | None = Field(default=None, alias="retentionDays", ge=1, le=3650)


def parse_callback(model: type[TModel], payload: Any) -> TModel:
    """Validate ``payload`` against ``model`` or raise a 400-class error."""

    if not isinstance(payload, dict):
        raise ValidationError("payload must be an object")
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(
            "invalid payload", details=error_details(exc)
        ) from exc
