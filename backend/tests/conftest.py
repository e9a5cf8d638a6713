from __future__ import annotations

import json
import pathlib
import secrets
import sys
from collections.abc import Callable
from typing import Any

import pytest
from sqlalchemy.pool import StaticPool

ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def _load_dependencies():
    from flowgate import Config, create_app
    from backend.flowgate.extensions import db

    return Config, create_app, db


ConfigBase, create_app, db = _load_dependencies()

WEBHOOK_SECRET = "test-webhook-secret"
ENGINE_URL = "http://engine.test/api/v1"
PLATFORM_URL = "http://platform.test"

DEFAULT_STEPS = (
    {"label": "Start", "type": "trigger"},
    {
        "label": "Draft reply",
        "type": "action",
        "assigned_to_type": "ai",
        "assigned_to_name": "Writer",
    },
    {
        "label": "Approve reply",
        "type": "action",
        "assigned_to_type": "human",
        "assigned_to_name": "Support lead",
    },
    {"label": "Complete", "type": "end"},
)


class TestConfig(ConfigBase):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite+pysqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {
        "poolclass": StaticPool,
        "connect_args": {"check_same_thread": False},
    }
    CORS_ALLOWED_ORIGINS = "http://localhost"
    DB_INIT_MAX_RETRIES = 1
    REMOTE_ENGINE_URL = ENGINE_URL
    REMOTE_ENGINE_API_KEY = "engine-key"
    PLATFORM_URL = PLATFORM_URL
    WEBHOOK_SECRET = WEBHOOK_SECRET
    WEBHOOK_ALLOW_UNSIGNED = False
    ACTIVATION_RATE_LIMIT = "1000 per minute"
    RATELIMIT_ENABLED = True


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None) -> None:
        self.status_code = status_code
        self.content = b"" if payload is None else json.dumps(payload).encode("utf-8")
        self.text = self.content.decode("utf-8")

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    def json(self) -> Any:
        return json.loads(self.content)


class FakeEngineSession:
    """In-memory stand-in for the engine's REST API, used through the real client."""

    def __init__(self) -> None:
        self.workflows: dict[str, dict[str, Any]] = {}
        self.calls: list[dict[str, Any]] = []
        self._failures: list[tuple[str, str, Any]] = []
        self._next_id = 100

    def fail(self, method: str, fragment: str, error: Any) -> None:
        """Make matching requests raise ``error`` (an exception) or answer with it (a status)."""

        self._failures.append((method, fragment, error))

    def calls_to(self, method: str, fragment: str = "") -> list[dict[str, Any]]:
        return [c for c in self.calls if c["method"] == method and fragment in c["url"]]

    @property
    def resumes(self) -> list[dict[str, Any]]:
        return [c for c in self.calls if not c["url"].startswith(ENGINE_URL)]

    def request(self, method, url, json=None, headers=None, timeout=None):
        self.calls.append(
            {"method": method, "url": url, "json": json, "headers": headers, "timeout": timeout}
        )
        for fail_method, fragment, error in self._failures:
            if fail_method == method and fragment in url:
                if isinstance(error, BaseException):
                    raise error
                return FakeResponse(error, {"message": "injected failure"})

        if not url.startswith(ENGINE_URL):
            return FakeResponse(200, {"resumed": True})

        parts = url[len(ENGINE_URL):].strip("/").split("/")
        if parts == ["workflows"] and method == "POST":
            workflow_id = str(self._next_id)
            self._next_id += 1
            self.workflows[workflow_id] = {"id": workflow_id, "active": False, **json}
            return FakeResponse(200, self.workflows[workflow_id])

        workflow = self.workflows.get(parts[1]) if len(parts) > 1 else None
        if workflow is None:
            return FakeResponse(404, {"message": "Not Found"})
        if len(parts) == 2 and method == "PUT":
            workflow.update(json)
            return FakeResponse(200, workflow)
        if len(parts) == 2 and method == "GET":
            return FakeResponse(200, workflow)
        if len(parts) == 2 and method == "DELETE":
            del self.workflows[parts[1]]
            return FakeResponse(200, workflow)
        if len(parts) == 3 and parts[2] in {"activate", "deactivate"}:
            workflow["active"] = parts[2] == "activate"
            return FakeResponse(200, workflow)
        return FakeResponse(405, {"message": "unsupported"})


@pytest.fixture(scope="module")
def app():
    app = create_app(TestConfig)
    ctx = app.app_context()
    ctx.push()
    yield app
    db.session.remove()
    ctx.pop()


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture(autouse=True)
def engine(app):
    from backend.flowgate.engine.client import RemoteEngineClient

    original = app.extensions["remote_engine"]
    session = FakeEngineSession()
    app.extensions["remote_engine"] = RemoteEngineClient(
        ENGINE_URL, api_key="engine-key", timeout=5, session=session
    )
    yield session
    app.extensions["remote_engine"] = original


@pytest.fixture(autouse=True)
def cleanup_database(app):
    from backend.flowgate.models import (
        ApiToken,
        AuditLogEntry,
        Execution,
        ReviewChatMessage,
        ReviewRequest,
        Workflow,
        WorkflowStep,
    )

    yield

    db.session.rollback()
    for model in (
        ReviewChatMessage,
        ReviewRequest,
        Execution,
        AuditLogEntry,
        WorkflowStep,
        Workflow,
        ApiToken,
    ):
        db.session.query(model).delete()
    db.session.commit()
    db.session.remove()


@pytest.fixture()
def auth_header_factory(app):
    from backend.flowgate.models.auth import ApiToken
    from backend.flowgate.utils.auth import hash_token

    def factory(
        role: str = "admin", organization_id: str = "org-a", name: str | None = None
    ) -> dict[str, str]:
        token_value = secrets.token_urlsafe(16)
        token = ApiToken(
            organization_id=organization_id,
            name=name or f"Test {role.title()} Token",
            role=role,
            token_hash=hash_token(token_value),
        )
        db.session.add(token)
        db.session.commit()
        return {"Authorization": f"Bearer {token_value}"}

    return factory


@pytest.fixture()
def admin_headers(auth_header_factory: Callable[..., dict[str, str]]):
    return auth_header_factory(role="admin")


@pytest.fixture()
def member_headers(auth_header_factory: Callable[..., dict[str, str]]):
    return auth_header_factory(role="member")


@pytest.fixture()
def readonly_headers(auth_header_factory: Callable[..., dict[str, str]]):
    return auth_header_factory(role="readonly")


@pytest.fixture()
def workflow_factory(app):
    from backend.flowgate.models.workflow import Workflow, WorkflowStep

    def factory(
        organization_id: str = "org-a",
        name: str = "Support reply",
        steps=DEFAULT_STEPS,
        remote_workflow_id: str | None = None,
        status: str = "draft",
    ) -> int:
        workflow = Workflow(
            organization_id=organization_id,
            name=name,
            status=status,
            remote_workflow_id=remote_workflow_id,
        )
        workflow.steps = [WorkflowStep(position=i, **step) for i, step in enumerate(steps)]
        db.session.add(workflow)
        db.session.commit()
        return workflow.id

    return factory


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    from backend.flowgate.utils.auth import sign_payload

    return f"sha256={sign_payload(secret, body)}"


@pytest.fixture()
def signed_post(client):
    def post(path: str, payload: Any, secret: str = WEBHOOK_SECRET, signature: str | None = None):
        body = json.dumps(payload).encode("utf-8")
        headers = {"X-Webhook-Signature": signature if signature is not None else sign(body, secret)}
        return client.post(path, data=body, headers=headers, content_type="application/json")

    return post


@pytest.fixture()
def review_factory(app, workflow_factory):
    """Open a review through the gate, creating a workflow when none is given."""

    from backend.flowgate.engine.callbacks import ReviewRequestCallback
    from backend.flowgate.reviews import open_review

    def factory(
        workflow_id: int | None = None,
        execution_id: str = "exec-1",
        step_index: int = 2,
        **extra: Any,
    ):
        if workflow_id is None:
            workflow_id = workflow_factory()
        command = ReviewRequestCallback.model_validate(
            {
                "workflowId": workflow_id,
                "executionId": execution_id,
                "stepIndex": step_index,
                "stepLabel": "Approve reply",
                "reviewType": "approval",
                "workerName": "Writer",
                "data": {"draft": "Hello"},
                **extra,
            }
        )
        review, _ = open_review(command)
        return review

    return factory

