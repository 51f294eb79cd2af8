from __future__ import annotations

import logging

from jwctl.approvals.base import ApprovalGateway
from jwctl.approvals.retry import RetryPolicy
from jwctl.errors import CommunicationError, OutcomeUnknownError, TransientError
from jwctl.models import CommitOutcome, OperatorDecision


logger = logging.getLogger(__name__)


class DecisionCommitter:
    """Send an operator decision to the gateway exactly as far as needed.

    Only transient failures are retried. A conflict on any attempt is final.
    """

    def __init__(
        self, gateway: ApprovalGateway, retry_policy: RetryPolicy | None = None
    ) -> None:
        self._gateway = gateway
        self._retry = retry_policy or RetryPolicy()

    async def commit(
        self, approval_token: str, decision: OperatorDecision, deadline: float
    ) -> CommitOutcome:
        """Commit ``decision``.

        Raises:
            RejectedError: the gateway refused the decision as invalid.
            NotAuthenticatedError: the operator's token was rejected.
            NotFoundError: the gateway does not know the token.
            OutcomeUnknownError: an attempt may have reached the gateway and
                no later attempt produced a definitive answer, or a conflict
                followed such an attempt.
            CommunicationError: no attempt reached the gateway.
        """
        if decision.is_cancel:
            raise ValueError("Cancellations are local and never committed")

        maybe_applied = False

        async def attempt() -> CommitOutcome:
            nonlocal maybe_applied
            try:
                return await self._gateway.commit(approval_token, decision)
            except TransientError as exc:
                maybe_applied = maybe_applied or exc.ambiguous
                raise

        try:
            outcome = await self._retry.call(
                attempt, deadline=deadline, description="Committing decision"
            )
        except TransientError as exc:
            if maybe_applied or exc.ambiguous:
                raise OutcomeUnknownError(
                    f"Commit outcome unknown: {exc}", url=exc.url
                ) from exc
            raise CommunicationError(
                f"Could not commit decision: {exc}",
                status_code=exc.status_code,
                url=exc.url,
            ) from exc

        if outcome is CommitOutcome.CONFLICT and maybe_applied:
            # The conflict may be our own earlier attempt landing.
            logger.warning(
                "Gateway reported a conflict after an earlier commit attempt may "
                "have been applied"
            )
            raise OutcomeUnknownError(
                "Conflict after an interrupted commit attempt"
            )
        return outcome


__all__ = ["DecisionCommitter"]
