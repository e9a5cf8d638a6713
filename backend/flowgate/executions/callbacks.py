"""Progress and completion reports from the remote engine."""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import select, update

from ..audit import AuditEvent, record
from ..engine.callbacks import ExecutionCompleteCallback, ExecutionUpdateCallback
from ..errors import NotFoundError
from ..extensions import db
from ..models.execution import ACTIVE_EXECUTION_STATUSES, Execution
from ..models.workflow import Workflow
from ..utils.clock import isoformat, utcnow


@dataclass(frozen=True, slots=True)
class CallbackOutcome:
    execution_id: str
    applied: bool
    status: str
    created: bool = False


def _workflow(workflow_id: int) -> Workflow:
    workflow = db.session.get(Workflow, workflow_id)
    if workflow is None:
        raise NotFoundError("Workflow not found")
    return workflow


def _execution(execution_id: str, workflow: Workflow) -> Execution | None:
    execution = db.session.get(Execution, execution_id)
    if execution is not None and execution.workflow_id != workflow.id:
        raise NotFoundError("Execution not found")
    return execution


def get_execution(execution_id: str, organization_id: str) -> Execution:
    execution = db.session.scalars(
        select(Execution)
        .join(Workflow, Execution.workflow_id == Workflow.id)
        .where(Execution.id == execution_id, Workflow.organization_id == organization_id)
    ).first()
    if execution is None:
        raise NotFoundError("Execution not found")
    return execution


def report_progress(command: ExecutionUpdateCallback) -> CallbackOutcome:
    workflow = _workflow(command.workflow_id)
    execution = _execution(command.execution_id, workflow)
    now = utcnow()

    if execution is None:
        execution = Execution(
            id=command.execution_id,
            workflow_id=workflow.id,
            status="running",
            current_step_index=command.current_step_index,
            created_at=now,
            updated_at=now,
        )
        db.session.add(execution)
        record(
            AuditEvent(
                event_type="execution_start",
                workflow_id=workflow.id,
                execution_id=command.execution_id,
                node_name=command.current_step_name,
                node_index=command.current_step_index,
            ),
            organization_id=workflow.organization_id,
        )
        db.session.commit()
        current_app.logger.info("Execution %s started", command.execution_id)
        return CallbackOutcome(command.execution_id, True, "running", created=True)

    moved = db.session.execute(
        update(Execution)
        .where(
            Execution.id == command.execution_id,
            Execution.status.in_(ACTIVE_EXECUTION_STATUSES),
        )
        .values(current_step_index=command.current_step_index, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if moved.rowcount == 0:
        db.session.rollback()
        return CallbackOutcome(command.execution_id, False, execution.status)

    record(
        AuditEvent(
            event_type="node_start",
            workflow_id=workflow.id,
            execution_id=command.execution_id,
            node_name=command.current_step_name,
            node_index=command.current_step_index,
        ),
        organization_id=workflow.organization_id,
    )
    db.session.commit()
    db.session.refresh(execution)
    return CallbackOutcome(command.execution_id, True, execution.status)


def complete_execution(command: ExecutionCompleteCallback) -> CallbackOutcome:
    """Finish an execution once; reports for finished executions are ignored."""

    workflow = _workflow(command.workflow_id)
    execution = _execution(command.execution_id, workflow)
    now = utcnow()
    created = False
    if execution is None:
        execution = Execution(
            id=command.execution_id, workflow_id=workflow.id, status="running", created_at=now
        )
        db.session.add(execution)
        db.session.flush()
        created = True

    error = command.error if command.status == "failed" else None
    if command.status == "failed" and not error:
        error = "Execution failed"
    finished = db.session.execute(
        update(Execution)
        .where(
            Execution.id == command.execution_id,
            Execution.status.in_(ACTIVE_EXECUTION_STATUSES),
        )
        .values(status=command.status, error=error, completed_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if finished.rowcount == 0:
        db.session.rollback()
        status = db.session.scalar(
            select(Execution.status).where(Execution.id == command.execution_id)
        )
        current_app.logger.info(
            "Execution %s already %s; completion ignored", command.execution_id, status
        )
        return CallbackOutcome(command.execution_id, False, status)

    record(
        AuditEvent(
            event_type="execution_complete" if command.status == "completed" else "execution_failed",
            workflow_id=workflow.id,
            execution_id=command.execution_id,
            payload=command.result,
            error_message=error,
        ),
        organization_id=workflow.organization_id,
    )
    db.session.commit()
    current_app.logger.info("Execution %s %s", command.execution_id, command.status)
    return CallbackOutcome(command.execution_id, True, command.status, created=created)


def serialize_execution(execution: Execution) -> dict:
    return {
        "id": execution.id,
        "workflowId": execution.workflow_id,
        "status": execution.status,
        "currentStepIndex": execution.current_step_index,
        "error": execution.error,
        "createdAt": isoformat(execution.created_at),
        "updatedAt": isoformat(execution.updated_at),
        "completedAt": isoformat(execution.completed_at),
    }
