"""Validated shapes for documents exchanged with the remote execution engine.

Everything that crosses the boundary to or from the engine passes through
these models; loose JSON never travels further into the core.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class RemoteConnection(BaseModel):
    node: str
    type: str = "main"
    index: int = 0


# source node name -> output type -> output slot -> targets
RemoteConnections = dict[str, dict[str, list[list[RemoteConnection]]]]


class RemoteNode(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    name: str = Field(min_length=1)
    type: str = Field(min_length=1)
    position: tuple[int, int]
    parameters: dict[str, Any] = Field(default_factory=dict)
    type_version: float = Field(default=1, alias="typeVersion")


class RemoteWorkflowSettings(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    execution_order: str = Field(default="v1", alias="executionOrder")
    save_manual_executions: bool = Field(default=True, alias="saveManualExecutions")


class RemoteWorkflowDocument(BaseModel):
    """The body sent on create/update."""

    name: str = Field(min_length=1)
    nodes: list[RemoteNode] = Field(min_length=1)
    connections: RemoteConnections = Field(default_factory=dict)
    settings: RemoteWorkflowSettings = Field(default_factory=RemoteWorkflowSettings)

    @field_validator("connections")
    @classmethod
    def _connections_reference_nodes(
        cls, value: RemoteConnections, info: ValidationInfo
    ) -> RemoteConnections:
        nodes = info.data.get("nodes") or []
        names = {node.name for node in nodes}
        for source, outputs in value.items():
            if source not in names:
                raise ValueError(f"connection source {source!r} is not a node")
            for slots in outputs.values():
                for targets in slots:
                    for target in targets:
                        if target.node not in names:
                            raise ValueError(f"connection target {target.node!r} is not a node")
        return value

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class RemoteWorkflow(BaseModel):
    """A workflow as reported back by the remote engine."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(min_length=1)
    name: str | None = None
    active: bool | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        if isinstance(value, int):
            return str(value)
        return value


class ResumeDecision(BaseModel):
    """Body posted to a paused execution's resume endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    decision: Literal["continue", "abort"]
    approved: bool
    review_id: int = Field(alias="reviewId")
    feedback: str | None = None
    reviewer_id: str | None = Field(default=None, alias="reviewerId")
    reviewed_at: str = Field(alias="reviewedAt")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)
