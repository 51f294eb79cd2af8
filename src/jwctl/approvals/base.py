from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol

from jwctl.models import (
    CommitOutcome,
    OperatorDecision,
    PendingRequest,
    UpstreamCandidate,
)


class ApprovalGateway(Protocol):
    """The two gateway calls the approval workflow depends on."""

    async def fetch_pending(self, approval_token: str) -> PendingRequest: ...

    async def commit(
        self, approval_token: str, decision: OperatorDecision
    ) -> CommitOutcome: ...


class WorkflowState(str, Enum):
    RESOLVING = "resolving"
    PRESENTING = "presenting"
    COMMITTING = "committing"
    DONE = "done"
    ABORTED = "aborted"


class OutcomeStatus(str, Enum):
    """Terminal result of an approval workflow."""

    COMMITTED = "committed"
    CONFLICT = "conflict"
    UNKNOWN = "unknown"
    ABORTED = "aborted"


class AbortReason(str, Enum):
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    COMMUNICATION_ERROR = "communication_error"
    NOT_AUTHENTICATED = "not_authenticated"
    PROTOCOL_ERROR = "protocol_error"
    USER_CANCELLED = "user_cancelled"
    TIMED_OUT = "timed_out"
    STALE_REQUEST = "stale_request"


_ABORT_MESSAGES = {
    AbortReason.NOT_FOUND: "approval token not found",
    AbortReason.EXPIRED: "request expired",
    AbortReason.COMMUNICATION_ERROR: "could not reach server",
    AbortReason.NOT_AUTHENTICATED: (
        "not authenticated; run 'jwctl token set' to re-authenticate"
    ),
    AbortReason.PROTOCOL_ERROR: "unexpected response from server",
    AbortReason.USER_CANCELLED: "cancelled",
    AbortReason.TIMED_OUT: "timed out waiting for a decision",
    AbortReason.STALE_REQUEST: "request changed while it was being approved",
}


@dataclass(slots=True, frozen=True)
class WorkflowOutcome:
    """What the approval workflow reports to its caller."""

    status: OutcomeStatus
    reason: AbortReason | None = None
    candidate: UpstreamCandidate | None = None
    request: PendingRequest | None = None
    detail: str | None = None

    @classmethod
    def aborted(
        cls, reason: AbortReason, *, detail: str | None = None
    ) -> WorkflowOutcome:
        return cls(status=OutcomeStatus.ABORTED, reason=reason, detail=detail)

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.COMMITTED

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    @property
    def message(self) -> str:
        match self.status:
            case OutcomeStatus.COMMITTED:
                if self.candidate is not None:
                    return f"Committed: {self.candidate.display_name}"
                provider = self.request.provider_name if self.request else None
                if provider:
                    return f"Committed: {provider} login approved"
                return "Committed: login approved"
            case OutcomeStatus.CONFLICT:
                return "Conflict: already resolved by someone else or expired"
            case OutcomeStatus.UNKNOWN:
                return (
                    "Unknown: lost contact with the server after sending the "
                    "decision; the request may have been approved"
                )
            case OutcomeStatus.ABORTED:
                assert self.reason is not None
                return f"Aborted: {_ABORT_MESSAGES[self.reason]}"


__all__ = [
    "AbortReason",
    "ApprovalGateway",
    "OutcomeStatus",
    "WorkflowOutcome",
    "WorkflowState",
]
