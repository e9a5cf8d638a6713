"""Request bodies accepted from the editing UI."""

from __future__ import annotations

from typing import Literal, TypeVar

from flask import request
from pydantic import BaseModel, ConfigDict, Field

from ..engine.callbacks import parse_callback

TModel = TypeVar("TModel", bound=BaseModel)


class _Body(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True, extra="ignore")


class ActivationRequest(_Body):
    workflow_id: int = Field(alias="workflowId")
    action: Literal["activate", "deactivate"]


class DecisionRequest(_Body):
    review_id: int = Field(alias="reviewId")
    decision: Literal["approve", "reject"]
    feedback: str | None = None


class ChatRequest(_Body):
    review_id: int = Field(alias="reviewId")
    sender: Literal["user", "agent"]
    text: str = Field(min_length=1)


class TokenRequest(_Body):
    name: str = Field(min_length=1, max_length=120)
    role: Literal["readonly", "member", "admin"] = "readonly"


def parse_body(model: type[TModel]) -> TModel:
    """Validate the JSON request body against ``model``."""

    return parse_callback(model, request.get_json(silent=True, force=True))
