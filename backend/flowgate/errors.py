"""Error taxonomy shared by the core services and the HTTP layer."""

from __future__ import annotations

from http import HTTPStatus
from typing import Any


class FlowgateError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = HTTPStatus.INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload


class ValidationError(FlowgateError):
    """Missing or invalid input. Never retried automatically."""

    status_code = HTTPStatus.BAD_REQUEST


class NotFoundError(FlowgateError):
    """Entity absent, or owned by another organization."""

    status_code = HTTPStatus.NOT_FOUND


class StateConflictError(FlowgateError):
    status_code = HTTPStatus.CONFLICT


class RemoteEngineError(FlowgateError):
    """The remote execution engine rejected or failed a request."""

    status_code = HTTPStatus.BAD_GATEWAY


class RemoteNotFoundError(RemoteEngineError):
    """The remote object no longer exists."""


class RemoteEngineUnavailable(RemoteEngineError):
    """The remote engine could not be reached, or a sync step against it failed."""

    status_code = HTTPStatus.SERVICE_UNAVAILABLE


class PersistenceError(FlowgateError):
    """A local write failed after the remote side was already mutated."""

    status_code = HTTPStatus.INTERNAL_SERVER_ERROR


__all__ = [
    "FlowgateError",
    "NotFoundError",
    "PersistenceError",
    "RemoteEngineError",
    "RemoteEngineUnavailable",
    "RemoteNotFoundError",
    "StateConflictError",
    "ValidationError",
]
