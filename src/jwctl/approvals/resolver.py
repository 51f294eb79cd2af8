from __future__ import annotations

import logging

from jwctl.approvals.base import ApprovalGateway
from jwctl.approvals.retry import RetryPolicy
from jwctl.errors import (
    CommunicationError,
    NoCandidatesError,
    RequestExpiredError,
    RequestResolvedError,
    TransientError,
)
from jwctl.models import PendingRequest, RequestStatus


logger = logging.getLogger(__name__)


class ApprovalResolver:
    """Look up what an approval token is currently asking for."""

    def __init__(
        self, gateway: ApprovalGateway, retry_policy: RetryPolicy | None = None
    ) -> None:
        self._gateway = gateway
        self._retry = retry_policy or RetryPolicy()

    async def resolve(self, approval_token: str, deadline: float) -> PendingRequest:
        """Fetch a fresh snapshot of the pending request.

        Raises:
            RequestResolvedError: the request was already decided.
            RequestExpiredError: the request is no longer pending.
            NoCandidatesError: the request is pending but offers nothing to
                approve.
            NotFoundError: the gateway does not know the token.
            CommunicationError: transient failures outlasted the retry budget.
        """
        try:
            request = await self._retry.call(
                lambda: self._gateway.fetch_pending(approval_token),
                deadline=deadline,
                description="Fetching pending approval",
            )
        except TransientError as exc:
            raise CommunicationError(
                f"Could not fetch pending approval: {exc}",
                status_code=exc.status_code,
                url=exc.url,
            ) from exc

        if request.status is RequestStatus.RESOLVED:
            logger.info("Approval request was already resolved")
            raise RequestResolvedError("Approval request is already resolved")
        if not request.is_pending:
            logger.info("Approval request is %s", request.status.value)
            raise RequestExpiredError(f"Approval request is {request.status.value}")
        if not request.has_options:
            logger.info("Approval request has nothing left to approve")
            raise NoCandidatesError("Approval request has no candidates")

        logger.debug(
            "Resolved %s request with %d candidate(s)",
            request.kind.value,
            len(request.candidates),
        )
        return request


__all__ = ["ApprovalResolver"]
