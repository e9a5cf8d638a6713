"""REST endpoints for API token management."""

from __future__ import annotations

from http import HTTPStatus

from flask import Blueprint, jsonify
from sqlalchemy import select

from ..errors import NotFoundError
from ..extensions import db
from ..models.auth import ApiToken
from ..utils.auth import current_organization, generate_token, hash_token, require_token
from ..utils.clock import isoformat, utcnow
from .schemas import TokenRequest, parse_body

bp = Blueprint("auth", __name__)


def _serialize(token: ApiToken) -> dict[str, object | None]:
    return {
        "id": token.id,
        "name": token.name,
        "role": token.role,
        "organizationId": token.organization_id,
        "createdAt": isoformat(token.created_at),
        "revokedAt": isoformat(token.revoked_at),
    }


@bp.post("/auth/tokens")
@require_token(role="admin")
def create_token() -> tuple[object, int]:
    body = parse_body(TokenRequest)

    plaintext = generate_token()
    token = ApiToken(
        organization_id=current_organization(),
        name=body.name,
        role=body.role,
        token_hash=hash_token(plaintext),
    )
    db.session.add(token)
    db.session.commit()

    response_payload = _serialize(token)
    response_payload["token"] = plaintext
    return jsonify(response_payload), HTTPStatus.CREATED


@bp.get("/auth/tokens")
@require_token(role="admin")
def list_tokens() -> tuple[object, int]:
    tokens = db.session.scalars(
        select(ApiToken)
        .where(ApiToken.organization_id == current_organization())
        .order_by(ApiToken.created_at.desc(), ApiToken.id.desc())
    ).all()
    return jsonify([_serialize(token) for token in tokens]), HTTPStatus.OK


@bp.delete("/auth/tokens/<int:token_id>")
@require_token(role="admin")
def revoke_token(token_id: int) -> tuple[object, int]:
    token = db.session.get(ApiToken, token_id)
    if token is None or token.organization_id != current_organization():
        raise NotFoundError("Token not found")
    if token.revoked_at is None:
        token.revoked_at = utcnow()
        db.session.commit()
    return "", HTTPStatus.NO_CONTENT
