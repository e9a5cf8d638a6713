"""Extensions used by the Flask application."""

import hashlib

from flask import g, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_sqlalchemy import SQLAlchemy

from .engine.client import RemoteEngine


def _limiter_key_func() -> str:
    token = getattr(g, "api_token", None)
    if token is not None:
        return f"token:{token.id}"
    # Route limits run before the view decorators have resolved the token.
    scheme, _, value = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() == "bearer" and value.strip():
        return "bearer:" + hashlib.sha256(value.strip().encode("utf-8")).hexdigest()
    return get_remote_address()


db = SQLAlchemy()
cors = CORS()
limiter = Limiter(key_func=_limiter_key_func, default_limits=[])
remote_engine = RemoteEngine()

__all__ = ["db", "cors", "limiter", "remote_engine"]
