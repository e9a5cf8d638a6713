"""Scheduled reclamation of abandoned reviews and executions."""

from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, jsonify

from ..reviews import status_counts, sweep
from ..utils.auth import current_organization, require_token, require_webhook_signature
from ..utils.clock import isoformat

bp = Blueprint("cleanup", __name__)


@bp.post("/cleanup")
@require_webhook_signature
def run_cleanup() -> tuple[object, int]:
    result = sweep()
    return jsonify({"success": True, **result.to_dict()}), HTTPStatus.OK


@bp.get("/cleanup")
@require_token()
def cleanup_status() -> tuple[object, int]:
    counts = status_counts(current_organization())
    return (
        jsonify(
            {
                "reviewStatusCounts": counts["reviewStatusCounts"],
                "expiringSoon24h": counts["expiringSoon"],
                "lastChecked": isoformat(counts["checkedAt"]),
            }
        ),
        HTTPStatus.OK,
    )
