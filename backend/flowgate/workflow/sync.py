"""Reconcile local workflows with their mirror inside the remote engine."""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from ..audit import AuditEvent, record
from ..engine.client import RemoteEngineClient
from ..engine.convert import WorkflowSnapshot, convert_workflow
from ..engine.documents import RemoteWorkflowDocument
from ..errors import (
    NotFoundError,
    PersistenceError,
    RemoteEngineError,
    RemoteEngineUnavailable,
    RemoteNotFoundError,
    ValidationError,
)
from ..extensions import db, remote_engine
from ..models.workflow import Workflow


@dataclass(frozen=True, slots=True)
class Actor:
    """Who asked for a change, as recorded in the audit trail."""

    actor_type: str = "human"
    actor_id: str | None = None
    actor_name: str | None = None


@dataclass(frozen=True, slots=True)
class SyncResult:
    workflow: Workflow
    status: str
    remote_workflow_id: str | None
    created: bool = False


def load_workflow(workflow_id: int, organization_id: str) -> Workflow:
    """Load a workflow and its steps in one read, scoped to the organization."""

    workflow = db.session.scalars(
        select(Workflow)
        .options(selectinload(Workflow.steps))
        .where(Workflow.id == workflow_id, Workflow.organization_id == organization_id)
    ).first()
    if workflow is None:
        raise NotFoundError("Workflow not found")
    return workflow


def _upsert_remote(
    client: RemoteEngineClient, remote_id: str | None, document: RemoteWorkflowDocument
) -> tuple[str, bool]:
    """Update the mirrored workflow, creating it when it is missing remotely."""

    if remote_id:
        try:
            client.update_workflow(remote_id, document)
            current_app.logger.info("Updated remote workflow %s", remote_id)
            return remote_id, False
        except RemoteNotFoundError:
            current_app.logger.warning(
                "Remote workflow %s no longer exists; creating a new one", remote_id
            )

    created = client.create_workflow(document)
    current_app.logger.info("Created remote workflow %s", created.id)
    return created.id, True


def activate(workflow_id: int, organization_id: str, actor: Actor | None = None) -> SyncResult:
    """Push the workflow to the remote engine, activate it there, then mark it active."""

    actor = actor or Actor()
    workflow = load_workflow(workflow_id, organization_id)
    snapshot = WorkflowSnapshot.from_model(workflow)
    if not snapshot.steps:
        raise ValidationError("Workflow has no steps to activate")

    document = convert_workflow(snapshot, current_app.config["PLATFORM_URL"])
    known_remote_id = workflow.remote_workflow_id
    # Nothing local may stay open across the network calls below.
    db.session.commit()

    client = remote_engine.client
    try:
        remote_id, created = _upsert_remote(client, known_remote_id, document)
        client.activate_workflow(remote_id)
    except RemoteEngineError as exc:
        current_app.logger.warning("Activation of workflow %s failed: %s", workflow_id, exc)
        raise RemoteEngineUnavailable(
            "Failed to reach the remote execution engine", details=exc.message
        ) from exc

    try:
        workflow.status = "active"
        workflow.remote_workflow_id = remote_id
        record(
            AuditEvent(
                event_type="workflow_activated",
                actor_type=actor.actor_type,
                actor_id=actor.actor_id,
                actor_name=actor.actor_name,
                workflow_id=workflow.id,
                payload=document.to_payload(),
                details={"remoteWorkflowId": remote_id, "createdRemote": created},
            ),
            organization_id=organization_id,
        )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception(
            "Remote workflow %s is active but workflow %s could not be updated",
            remote_id,
            workflow_id,
        )
        raise PersistenceError(
            "Failed to update workflow status",
            details={"remoteWorkflowId": remote_id},
        ) from exc

    return SyncResult(workflow, workflow.status, remote_id, created)


def deactivate(workflow_id: int, organization_id: str, actor: Actor | None = None) -> SyncResult:
    """Pause the workflow locally, deactivating the remote mirror on a best-effort basis."""

    actor = actor or Actor()
    workflow = load_workflow(workflow_id, organization_id)
    if not workflow.steps:
        raise ValidationError("Workflow has no steps to deactivate")
    remote_id = workflow.remote_workflow_id

    try:
        workflow.status = "paused"
        record(
            AuditEvent(
                event_type="workflow_deactivated",
                actor_type=actor.actor_type,
                actor_id=actor.actor_id,
                actor_name=actor.actor_name,
                workflow_id=workflow.id,
                details={"remoteWorkflowId": remote_id},
            ),
            organization_id=organization_id,
        )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.exception("Workflow %s could not be paused", workflow_id)
        raise PersistenceError("Failed to update workflow status") from exc

    if remote_id:
        try:
            remote_engine.client.deactivate_workflow(remote_id)
            current_app.logger.info("Deactivated remote workflow %s", remote_id)
        except RemoteEngineError as exc:
            # Already inactive or deleted remotely; the local pause stands.
            current_app.logger.warning(
                "Failed to deactivate remote workflow %s: %s", remote_id, exc
            )

    return SyncResult(workflow, "paused", remote_id)
