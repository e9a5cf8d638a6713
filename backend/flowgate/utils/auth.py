"""Helper utilities for API token and webhook signature authentication."""

from __future__ import annotations

import functools
import hashlib
import hmac
import secrets
from collections.abc import Callable
from http import HTTPStatus
from typing import Any, TypeVar, cast

from flask import current_app, g, jsonify, request
from sqlalchemy import select

from ..extensions import db
from ..models.auth import ApiToken

TCallable = TypeVar("TCallable", bound=Callable[..., Any])

_ROLE_LEVEL = {"readonly": 0, "member": 1, "admin": 2}
SIGNATURE_HEADER = "X-Webhook-Signature"
_SIGNATURE_PREFIX = "sha256="


def hash_token(token: str) -> str:
    """Return a SHA-256 hash for the given token."""

    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def generate_token() -> str:
    """Generate a secure random token string."""

    return secrets.token_urlsafe(32)


def sign_payload(secret: str, body: bytes) -> str:
    """Return the hex HMAC-SHA256 signature the engine sends for ``body``."""

    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(secret: str, body: bytes, header_value: str | None) -> bool:
    if not header_value:
        return False
    candidate = header_value.strip()
    if candidate.lower().startswith(_SIGNATURE_PREFIX):
        candidate = candidate[len(_SIGNATURE_PREFIX):]
    return hmac.compare_digest(sign_payload(secret, body), candidate.lower())


def _extract_bearer_token() -> str | None:
    authorization = request.headers.get("Authorization")
    if not authorization:
        return None
    scheme, _, value = authorization.partition(" ")
    if scheme.lower() != "bearer" or not value:
        return None
    return value.strip()


def _find_token(token_hash: str) -> ApiToken | None:
    return db.session.scalars(select(ApiToken).where(ApiToken.token_hash == token_hash)).first()


def _unauthorized(message: str, scheme: str = "Bearer"):
    response = jsonify({"error": message})
    response.status_code = HTTPStatus.UNAUTHORIZED
    response.headers["WWW-Authenticate"] = scheme
    return response


def _forbidden(message: str):
    return jsonify({"error": message}), HTTPStatus.FORBIDDEN


def role_allows(token_role: str, required_role: str) -> bool:
    token_level = _ROLE_LEVEL.get(token_role, -1)
    required_level = _ROLE_LEVEL.get(required_role, len(_ROLE_LEVEL))
    return token_level >= required_level


def current_organization() -> str:
    """Organization of the token that authenticated the current request."""

    return g.api_token.organization_id


def _authenticate(role: str):
    """Resolve the bearer token into ``g.api_token`` or return an error response."""

    token_value = _extract_bearer_token()
    if not token_value:
        return _unauthorized("missing bearer token")

    token_hash = hash_token(token_value)
    api_token = _find_token(token_hash)
    if api_token is None or not hmac.compare_digest(token_hash, api_token.token_hash):
        return _unauthorized("invalid token")

    if not api_token.is_active():
        return _unauthorized("token revoked")

    if not role_allows(api_token.role, role):
        return _forbidden("insufficient role")

    g.api_token = api_token
    return None


def _check_signature():
    secret = current_app.config.get("WEBHOOK_SECRET")
    if not secret:
        if current_app.config.get("WEBHOOK_ALLOW_UNSIGNED"):
            return None
        current_app.logger.warning("Rejected webhook: WEBHOOK_SECRET is not configured")
        return _unauthorized("webhook signature required", scheme="Signature")

    body = request.get_data(cache=True)
    if not verify_signature(secret, body, request.headers.get(SIGNATURE_HEADER)):
        current_app.logger.warning("Rejected webhook %s: bad signature", request.path)
        return _unauthorized("invalid webhook signature", scheme="Signature")
    return None


def require_token(role: str = "readonly") -> Callable[[TCallable], TCallable]:
    """Decorator enforcing API token authentication with the given role."""

    def decorator(func: TCallable) -> TCallable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any):
            failure = _authenticate(role)
            if failure is not None:
                return failure
            return func(*args, **kwargs)

        return cast(TCallable, wrapper)

    return decorator


def require_webhook_signature(func: TCallable) -> TCallable:
    """Decorator accepting only requests signed with ``WEBHOOK_SECRET``."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any):
        failure = _check_signature()
        if failure is not None:
            return failure
        g.api_token = None
        return func(*args, **kwargs)

    return cast(TCallable, wrapper)


def require_token_or_signature(role: str = "member") -> Callable[[TCallable], TCallable]:
    """Accept a bearer token when one is sent, otherwise a webhook signature.

    ``g.api_token`` is ``None`` for signed engine requests.
    """

    def decorator(func: TCallable) -> TCallable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any):
            if request.headers.get("Authorization"):
                failure = _authenticate(role)
            else:
                failure = _check_signature()
                g.api_token = None
            if failure is not None:
                return failure
            return func(*args, **kwargs)

        return cast(TCallable, wrapper)

    return decorator
