from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from jwctl.errors import ProtocolError


CandidateId = str | int


class RequestKind(str, Enum):
    """What a pending approval token authorizes."""

    DATABASE_CONNECTION = "database_connection"
    SSO_LOGIN = "sso_login"


class RequestStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"
    EXPIRED = "expired"


class CommitOutcome(str, Enum):
    """Result of a commit the gateway answered definitively."""

    COMMITTED = "committed"
    CONFLICT = "conflict"


class DecisionKind(str, Enum):
    APPROVE = "approve"
    CONFIRM = "confirm"
    CANCEL = "cancel"


class CancelReason(str, Enum):
    USER_CANCELLED = "user_cancelled"
    TIMED_OUT = "timed_out"


@dataclass(slots=True, frozen=True)
class UpstreamCandidate:
    """One upstream database the operator may route a connection to."""

    id: CandidateId
    display_name: str
    database_type: str | None = None

    @classmethod
    def from_json(cls, payload: Any) -> UpstreamCandidate:
        if not isinstance(payload, Mapping):
            raise ProtocolError("Candidate is not an object")
        candidate_id = payload.get("id")
        if not isinstance(candidate_id, (str, int)) or isinstance(candidate_id, bool):
            raise ProtocolError("Candidate 'id' is missing or not a string/integer")
        name = payload.get("name", payload.get("display_name"))
        if name is None:
            name = str(candidate_id)
        database_type = payload.get("type", payload.get("database_type"))
        return cls(
            id=candidate_id,
            display_name=str(name),
            database_type=str(database_type) if database_type is not None else None,
        )


@dataclass(slots=True, frozen=True)
class PendingRequest:
    """Snapshot of an approval token's state as reported by the gateway."""

    kind: RequestKind
    status: RequestStatus
    candidates: tuple[UpstreamCandidate, ...] = ()
    provider_name: str | None = None
    authorization_url: str | None = None

    @property
    def is_pending(self) -> bool:
        return self.status is RequestStatus.PENDING

    @property
    def has_options(self) -> bool:
        """Whether there is anything left for the operator to decide."""
        if self.kind is RequestKind.DATABASE_CONNECTION:
            return bool(self.candidates)
        return bool(self.authorization_url)

    def candidate(self, candidate_id: CandidateId) -> UpstreamCandidate | None:
        for candidate in self.candidates:
            if candidate.id == candidate_id:
                return candidate
        return None

    @classmethod
    def from_json(cls, payload: Any) -> PendingRequest:
        """Build a snapshot from the gateway's JSON body."""
        if not isinstance(payload, Mapping):
            raise ProtocolError("Pending request is not an object")

        try:
            kind = RequestKind(payload.get("kind"))
        except ValueError as exc:
            raise ProtocolError(f"Unknown request kind: {payload.get('kind')!r}") from exc
        try:
            status = RequestStatus(payload.get("status"))
        except ValueError as exc:
            raise ProtocolError(
                f"Unknown request status: {payload.get('status')!r}"
            ) from exc

        if kind is RequestKind.SSO_LOGIN:
            url = payload.get("authorization_url")
            provider = payload.get("provider", payload.get("provider_name"))
            return cls(
                kind=kind,
                status=status,
                provider_name=str(provider) if provider else None,
                authorization_url=str(url) if url else None,
            )

        raw_candidates = payload.get("candidates") or []
        if not isinstance(raw_candidates, list):
            raise ProtocolError("'candidates' is not a list")
        candidates = tuple(UpstreamCandidate.from_json(item) for item in raw_candidates)
        return cls(kind=kind, status=status, candidates=candidates)


@dataclass(slots=True, frozen=True)
class OperatorDecision:
    """What the operator chose for a pending request."""

    kind: DecisionKind
    candidate_id: CandidateId | None = None
    cancel_reason: CancelReason | None = None

    @classmethod
    def approve(cls, candidate_id: CandidateId) -> OperatorDecision:
        return cls(kind=DecisionKind.APPROVE, candidate_id=candidate_id)

    @classmethod
    def confirm(cls) -> OperatorDecision:
        return cls(kind=DecisionKind.CONFIRM)

    @classmethod
    def cancel(
        cls, reason: CancelReason = CancelReason.USER_CANCELLED
    ) -> OperatorDecision:
        return cls(kind=DecisionKind.CANCEL, cancel_reason=reason)

    @property
    def is_cancel(self) -> bool:
        return self.kind is DecisionKind.CANCEL

    def to_json(self) -> dict[str, Any]:
        if self.is_cancel:
            raise ValueError("Cancellations are never sent to the gateway")
        body: dict[str, Any] = {"decision": self.kind.value}
        if self.kind is DecisionKind.APPROVE:
            body["candidate_id"] = self.candidate_id
        return body


__all__ = [
    "CancelReason",
    "CandidateId",
    "CommitOutcome",
    "DecisionKind",
    "OperatorDecision",
    "PendingRequest",
    "RequestKind",
    "RequestStatus",
    "UpstreamCandidate",
]
