"""HTTP client for the remote workflow execution engine (n8n public API)."""

from __future__ import annotations

from typing import Any

import requests
from flask import Flask, current_app
from pydantic import ValidationError as PydanticValidationError

from ..errors import RemoteEngineError, RemoteEngineUnavailable, RemoteNotFoundError
from .callbacks import error_details
from .documents import RemoteWorkflow, RemoteWorkflowDocument, ResumeDecision


class RemoteEngineClient:
    """Thin wrapper around the engine's REST API.

    Every call carries an explicit timeout. Failures are classified so
    callers can tell an unreachable engine from a vanished remote object.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._session = session or requests.Session()

    @property
    def public_base_url(self) -> str:
        """Engine root without the API suffix, used for webhook-style URLs."""

        if self.base_url.endswith("/api/v1"):
            return self.base_url[: -len("/api/v1")]
        return self.base_url

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "X-N8N-API-KEY": self.api_key}

    def _send(self, method: str, url: str, body: dict[str, Any] | None = None) -> Any:
        try:
            response = self._session.request(
                method,
                url,
                json=body,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise RemoteEngineUnavailable(
                f"remote engine timed out after {self.timeout} seconds"
            ) from exc
        except requests.RequestException as exc:
            raise RemoteEngineUnavailable(f"remote engine unreachable: {exc}") from exc

        if response.status_code == 404:
            raise RemoteNotFoundError(
                f"remote engine returned 404 for {method} {url}", details=response.text
            )
        if not response.ok:
            raise RemoteEngineError(
                f"remote engine error: {response.status_code}", details=response.text
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteEngineError("remote engine returned invalid JSON") from exc

    def _request(self, method: str, path: str, body: dict[str, Any] | None = None) -> Any:
        return self._send(method, f"{self.base_url}{path}", body)

    @staticmethod
    def _parse_workflow(payload: Any) -> RemoteWorkflow:
        try:
            return RemoteWorkflow.model_validate(payload)
        except PydanticValidationError as exc:
            raise RemoteEngineError(
                "remote engine returned a malformed workflow", details=error_details(exc)
            ) from exc

    def create_workflow(self, document: RemoteWorkflowDocument) -> RemoteWorkflow:
        payload = self._request("POST", "/workflows", document.to_payload())
        return self._parse_workflow(payload)

    def get_workflow(self, workflow_id: str) -> RemoteWorkflow:
        return self._parse_workflow(self._request("GET", f"/workflows/{workflow_id}"))

    def update_workflow(self, workflow_id: str, document: RemoteWorkflowDocument) -> RemoteWorkflow:
        payload = self._request("PUT", f"/workflows/{workflow_id}", document.to_payload())
        return self._parse_workflow(payload)

    def delete_workflow(self, workflow_id: str) -> None:
        self._request("DELETE", f"/workflows/{workflow_id}")

    def activate_workflow(self, workflow_id: str) -> RemoteWorkflow:
        return self._parse_workflow(self._request("POST", f"/workflows/{workflow_id}/activate"))

    def deactivate_workflow(self, workflow_id: str) -> RemoteWorkflow:
        return self._parse_workflow(self._request("POST", f"/workflows/{workflow_id}/deactivate"))

    def waiting_url(self, execution_id: str, step_index: int) -> str:
        return f"{self.public_base_url}/webhook-waiting/{execution_id}/review-{step_index}"

    def resume_execution(
        self,
        execution_id: str,
        decision: ResumeDecision,
        resume_url: str | None = None,
        step_index: int = 0,
    ) -> None:
        """Post a review decision to the paused execution."""

        url = resume_url or self.waiting_url(execution_id, step_index)
        self._send("POST", url, decision.to_payload())


class RemoteEngine:
    """Flask extension that owns the application's remote engine client."""

    extension_name = "remote_engine"

    def __init__(self, app: Flask | None = None) -> None:
        if app is not None:
            self.init_app(app)

    def init_app(self, app: Flask) -> None:
        app.extensions[self.extension_name] = RemoteEngineClient(
            base_url=app.config["REMOTE_ENGINE_URL"],
            api_key=app.config.get("REMOTE_ENGINE_API_KEY", ""),
            timeout=float(app.config.get("REMOTE_ENGINE_TIMEOUT", 10)),
        )

    @property
    def client(self) -> RemoteEngineClient:
        return current_app.extensions[self.extension_name]
