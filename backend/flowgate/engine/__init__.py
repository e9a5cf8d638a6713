"""Remote execution engine integration."""

from .client import RemoteEngine, RemoteEngineClient
from .convert import StepSnapshot, WorkflowSnapshot, convert_workflow
from .documents import RemoteWorkflow, RemoteWorkflowDocument, ResumeDecision

__all__ = [
    "RemoteEngine",
    "RemoteEngineClient",
    "RemoteWorkflow",
    "RemoteWorkflowDocument",
    "ResumeDecision",
    "StepSnapshot",
    "WorkflowSnapshot",
    "convert_workflow",
]
