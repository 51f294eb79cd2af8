"""State machine driving one out-of-band approval from token to outcome."""

from __future__ import annotations

import logging
from typing import Protocol

import anyio

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
from jwctl.errors import (
    CommunicationError,
    GatewayError,
    NoCandidatesError,
    NotAuthenticatedError,
    NotFoundError,
    OutcomeUnknownError,
    ProtocolError,
    RejectedError,
    RequestExpiredError,
    RequestResolvedError,
)
from jwctl.models import (
    CancelReason,
    CommitOutcome,
    OperatorDecision,
    PendingRequest,
    UpstreamCandidate,
)


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 60.0
DEFAULT_STAGE_TIMEOUT = 15.0

_RESOLVE_ERRORS: dict[type[Exception], AbortReason] = {
    NoCandidatesError: AbortReason.EXPIRED,
    RequestExpiredError: AbortReason.EXPIRED,
    NotFoundError: AbortReason.NOT_FOUND,
    NotAuthenticatedError: AbortReason.NOT_AUTHENTICATED,
    CommunicationError: AbortReason.COMMUNICATION_ERROR,
    ProtocolError: AbortReason.PROTOCOL_ERROR,
    RejectedError: AbortReason.PROTOCOL_ERROR,
    GatewayError: AbortReason.PROTOCOL_ERROR,
}


class Selector(Protocol):
    async def select(
        self, request: PendingRequest, input_deadline: float
    ) -> OperatorDecision: ...


class ApprovalWorkflow:
    """Resolve, present and commit a single approval token.

    ``timeout`` bounds the whole interaction, operator time included. Network
    stages always get at least ``stage_timeout`` seconds so a late decision
    can still be committed.
    """

    def __init__(
        self,
        gateway: ApprovalGateway,
        selector: Selector,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        stage_timeout: float = DEFAULT_STAGE_TIMEOUT,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        policy = retry_policy or RetryPolicy()
        self._resolver = ApprovalResolver(gateway, policy)
        self._committer = DecisionCommitter(gateway, policy)
        self._selector = selector
        self._timeout = timeout
        self._stage_timeout = stage_timeout

    async def run(self, approval_token: str) -> WorkflowOutcome:
        deadline = anyio.current_time() + self._timeout
        state = WorkflowState.RESOLVING
        refreshed = False
        request: PendingRequest | None = None
        decision: OperatorDecision | None = None

        while True:
            logger.debug("Approval workflow state: %s", state.value)
            match state:
                case WorkflowState.RESOLVING:
                    try:
                        request = await self._resolver.resolve(
                            approval_token, self._stage_deadline(deadline)
                        )
                    except RequestResolvedError as exc:
                        logger.info("Approval was already resolved elsewhere")
                        return WorkflowOutcome(
                            status=OutcomeStatus.CONFLICT, detail=str(exc)
                        )
                    except NoCandidatesError as exc:
                        if refreshed:
                            return self._abort(AbortReason.STALE_REQUEST, exc)
                        return self._abort(AbortReason.EXPIRED, exc)
                    except tuple(_RESOLVE_ERRORS) as exc:
                        return self._abort(_resolve_reason(exc), exc)
                    state = WorkflowState.PRESENTING

                case WorkflowState.PRESENTING:
                    assert request is not None
                    decision = await self._selector.select(request, deadline)
                    if decision.is_cancel:
                        if decision.cancel_reason is CancelReason.TIMED_OUT:
                            return self._abort(AbortReason.TIMED_OUT)
                        return self._abort(AbortReason.USER_CANCELLED)
                    state = WorkflowState.COMMITTING

                case WorkflowState.COMMITTING:
                    assert request is not None and decision is not None
                    try:
                        result = await self._committer.commit(
                            approval_token, decision, self._stage_deadline(deadline)
                        )
                    except RejectedError as exc:
                        if refreshed:
                            return self._abort(AbortReason.STALE_REQUEST, exc)
                        logger.info(
                            "Gateway rejected the decision; refreshing the request"
                        )
                        refreshed = True
                        request = decision = None
                        state = WorkflowState.RESOLVING
                        continue
                    except OutcomeUnknownError as exc:
                        logger.warning("Commit outcome unknown: %s", exc)
                        return WorkflowOutcome(
                            status=OutcomeStatus.UNKNOWN,
                            candidate=_selected(request, decision),
                            request=request,
                            detail=str(exc),
                        )
                    except NotFoundError as exc:
                        return self._abort(AbortReason.NOT_FOUND, exc)
                    except NotAuthenticatedError as exc:
                        return self._abort(AbortReason.NOT_AUTHENTICATED, exc)
                    except CommunicationError as exc:
                        return self._abort(AbortReason.COMMUNICATION_ERROR, exc)
                    except GatewayError as exc:
                        return self._abort(AbortReason.PROTOCOL_ERROR, exc)

                    if result is CommitOutcome.CONFLICT:
                        logger.info("Approval was already resolved elsewhere")
                        return WorkflowOutcome(
                            status=OutcomeStatus.CONFLICT, request=request
                        )
                    logger.info("Approval committed")
                    return WorkflowOutcome(
                        status=OutcomeStatus.COMMITTED,
                        candidate=_selected(request, decision),
                        request=request,
                    )

                case _:
                    raise RuntimeError(f"Unexpected workflow state {state}")

    def _stage_deadline(self, deadline: float) -> float:
        return max(deadline, anyio.current_time() + self._stage_timeout)

    @staticmethod
    def _abort(
        reason: AbortReason, exc: Exception | None = None
    ) -> WorkflowOutcome:
        if exc is not None:
            logger.debug("Approval aborted (%s): %s", reason.value, exc)
        else:
            logger.debug("Approval aborted (%s)", reason.value)
        return WorkflowOutcome.aborted(
            reason, detail=str(exc) if exc is not None else None
        )


def _resolve_reason(exc: Exception) -> AbortReason:
    for error_type, reason in _RESOLVE_ERRORS.items():
        if isinstance(exc, error_type):
            return reason
    raise exc


def _selected(
    request: PendingRequest, decision: OperatorDecision
) -> UpstreamCandidate | None:
    if decision.candidate_id is None:
        return None
    return request.candidate(decision.candidate_id)


__all__ = ["ApprovalWorkflow", "DEFAULT_STAGE_TIMEOUT", "DEFAULT_TIMEOUT"]
