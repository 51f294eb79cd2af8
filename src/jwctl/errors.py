"""Error taxonomy for gateway and approval failures.

The gateway client translates transport and status-code failures into these
types so the approval workflow can decide what to retry and how to report
each outcome without knowing about ``httpx``.

Native errors stay available on ``__cause__`` via ``raise ... from exc``.
"""

from __future__ import annotations


class GatewayError(Exception):
    """Base for all errors raised while talking to the gateway.

    Attributes:
        status_code: HTTP status code of the response, if one was received.
        url: Request URL, if known.
        body: Response body text, if one was received.
        retryable: Whether the failure is transient.
    """

    retryable = False

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        url: str | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.url = url
        self.body = body

    def __repr__(self) -> str:
        parts = [repr(self.message)]
        if self.status_code is not None:
            parts.append(f"status_code={self.status_code!r}")
        if self.url is not None:
            parts.append(f"url={self.url!r}")
        return f"{type(self).__name__}({', '.join(parts)})"


class TransientError(GatewayError):
    """Connection reset, timeout, 5xx or 429.

    ``ambiguous`` is set when the request may have reached the gateway before
    the failure, so a commit may already have been applied.
    """

    retryable = True

    def __init__(
        self,
        message: str,
        *,
        ambiguous: bool = False,
        status_code: int | None = None,
        url: str | None = None,
        body: str | None = None,
    ) -> None:
        super().__init__(message, status_code=status_code, url=url, body=body)
        self.ambiguous = ambiguous


class NotAuthenticatedError(GatewayError):
    """The operator's bearer token is missing or was rejected (401/403)."""


class NotFoundError(GatewayError):
    """The approval token is unknown to the gateway (404)."""


class RejectedError(GatewayError):
    """Non-retryable 4xx: bad token, malformed or stale decision."""


class ProtocolError(GatewayError):
    """The gateway answered with a body that could not be understood."""


class RequestExpiredError(GatewayError):
    """The pending request is no longer pending."""


class NoCandidatesError(RequestExpiredError):
    """The pending request has nothing left to approve."""


class RequestResolvedError(GatewayError):
    """The request was already decided, usually by another operator."""


class CommunicationError(GatewayError):
    """Transient failures persisted past the retry budget or deadline."""


class OutcomeUnknownError(GatewayError):
    """A commit may or may not have been applied by the gateway."""


__all__ = [
    "CommunicationError",
    "GatewayError",
    "NoCandidatesError",
    "NotAuthenticatedError",
    "NotFoundError",
    "OutcomeUnknownError",
    "ProtocolError",
    "RejectedError",
    "RequestExpiredError",
    "RequestResolvedError",
    "TransientError",
]
