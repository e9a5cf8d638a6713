"""Human review gates for paused executions."""

from .dispatch import dispatch
from .gate import (
    DecisionOutcome,
    Reviewer,
    append_chat_message,
    approve,
    get_review,
    list_reviews,
    open_review,
    reject,
)
from .sweeper import SweepResult, status_counts, sweep

__all__ = [
    "DecisionOutcome",
    "Reviewer",
    "SweepResult",
    "append_chat_message",
    "approve",
    "dispatch",
    "get_review",
    "list_reviews",
    "open_review",
    "reject",
    "status_counts",
    "sweep",
]
