"""Execution lifecycle reported by the remote engine."""

from .callbacks import (
    CallbackOutcome,
    complete_execution,
    get_execution,
    report_progress,
    serialize_execution,
)

__all__ = [
    "CallbackOutcome",
    "complete_execution",
    "get_execution",
    "report_progress",
    "serialize_execution",
]
