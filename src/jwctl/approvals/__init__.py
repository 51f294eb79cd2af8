from __future__ import annotations

from jwctl.approvals.base import (
    AbortReason,
    ApprovalGateway,
    OutcomeStatus,
    WorkflowOutcome,
    WorkflowState,
)
from jwctl.approvals.committer import DecisionCommitter
from jwctl.approvals.resolver import ApprovalResolver
from jwctl.approvals.retry import RetryPolicy
from jwctl.approvals.selector import (
    CandidateCursor,
    EventSource,
    InputEvent,
    InteractiveSelector,
    SelectionView,
)
from jwctl.approvals.workflow import ApprovalWorkflow

__all__ = [
    "AbortReason",
    "ApprovalGateway",
    "ApprovalResolver",
    "ApprovalWorkflow",
    "CandidateCursor",
    "DecisionCommitter",
    "EventSource",
    "InputEvent",
    "InteractiveSelector",
    "OutcomeStatus",
    "RetryPolicy",
    "SelectionView",
    "WorkflowOutcome",
    "WorkflowState",
]
