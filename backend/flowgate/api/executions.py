"""Read access to executions."""

from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, jsonify

from ..executions import get_execution, serialize_execution
from ..utils.auth import current_organization, require_token

bp = Blueprint("executions", __name__)


@bp.get("/executions/<string:execution_id>")
@require_token()
def show_execution(execution_id: str) -> tuple[object, int]:
    execution = get_execution(execution_id, current_organization())
    return jsonify(serialize_execution(execution)), HTTPStatus.OK
