"""Database models for the Flowgate backend."""

from .audit import AuditLogEntry
from .auth import ApiToken
from .execution import Execution
from .review import ReviewChatMessage, ReviewRequest
from .workflow import Workflow, WorkflowStep

__all__ = [
    "ApiToken",
    "AuditLogEntry",
    "Execution",
    "ReviewChatMessage",
    "ReviewRequest",
    "Workflow",
    "WorkflowStep",
]
