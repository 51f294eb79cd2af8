from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any, TypeAlias
from urllib.parse import quote

import httpx

from jwctl.errors import (
    GatewayError,
    NotAuthenticatedError,
    NotFoundError,
    ProtocolError,
    RejectedError,
    RequestExpiredError,
    TransientError,
)
from jwctl.models import (
    CommitOutcome,
    OperatorDecision,
    PendingRequest,
)


logger = logging.getLogger(__name__)

JSONPrimitive = str | int | float | bool | None
JSONType: TypeAlias = JSONPrimitive | dict[str, Any] | list[Any]

APPROVALS_API = "/api/v1/approvals"
TOKEN_API = "/api/v1/token"
STATUS_PATH = "/_jumpwire/status"
PING_PATH = "/_jumpwire/ping"

DEFAULT_REQUEST_TIMEOUT = 10.0

# Transport failures raised before any bytes reached the gateway.
_UNSENT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout, httpx.PoolTimeout)


class GatewayClient:
    """Async client for the gateway's HTTP API.

    Every request carries the operator's bearer token when one is configured.
    Approval endpoints refuse to run without one.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        *,
        timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token = token
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> GatewayClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def fetch_pending(self, approval_token: str) -> PendingRequest:
        """Fetch the current state of a pending approval."""
        self._require_auth()
        response = await self._send("GET", _approval_path(approval_token))
        self._raise_for_status(response)
        return PendingRequest.from_json(_json_body(response))

    async def commit(
        self, approval_token: str, decision: OperatorDecision
    ) -> CommitOutcome:
        """Submit the operator's decision for a pending approval."""
        self._require_auth()
        response = await self._send(
            "POST", _approval_path(approval_token), json=decision.to_json()
        )
        if response.status_code in (httpx.codes.CONFLICT, httpx.codes.GONE):
            logger.info(
                "Gateway reported conflict for approval commit (status=%s)",
                response.status_code,
            )
            return CommitOutcome.CONFLICT
        self._raise_for_status(response)
        return CommitOutcome.COMMITTED

    async def status(self) -> JSONType:
        response = await self._send("GET", STATUS_PATH)
        self._raise_for_status(response)
        return _json_body(response)

    async def ping(self) -> str:
        response = await self._send("GET", PING_PATH)
        self._raise_for_status(response)
        return response.text

    async def whoami(self) -> JSONType:
        response = await self._send("GET", TOKEN_API)
        self._raise_for_status(response)
        return _json_body(response)

    async def generate_token(self, permissions: Sequence[str]) -> JSONType:
        """Ask the gateway to mint a token scoped to ``method:action`` pairs."""
        body = {"permissions": parse_permissions(permissions)}
        response = await self._send("PUT", TOKEN_API, json=body)
        self._raise_for_status(response)
        return _json_body(response)

    def _require_auth(self) -> None:
        if not self._token:
            raise NotAuthenticatedError(
                "No API token configured; run 'jwctl token set' to authenticate"
            )

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        logger.debug("%s %s", method, path)
        try:
            return await self._http.request(method, path, **kwargs)
        except _UNSENT_ERRORS as exc:
            raise TransientError(
                f"Unable to connect to gateway: {exc}", url=_request_url(exc)
            ) from exc
        except httpx.TimeoutException as exc:
            raise TransientError(
                f"Gateway request timed out: {exc}",
                ambiguous=True,
                url=_request_url(exc),
            ) from exc
        except httpx.TransportError as exc:
            raise TransientError(
                f"Gateway connection failed: {exc}",
                ambiguous=True,
                url=_request_url(exc),
            ) from exc

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        if response.is_success:
            return

        status = response.status_code
        url = str(response.request.url)
        body = response.text
        message = f"Gateway request failed; status={status}; url={url}; body={body}"

        if status in (httpx.codes.UNAUTHORIZED, httpx.codes.FORBIDDEN):
            raise NotAuthenticatedError(
                "Gateway rejected the API token; run 'jwctl token set' to re-authenticate",
                status_code=status,
                url=url,
                body=body,
            )
        if status == httpx.codes.NOT_FOUND:
            raise NotFoundError(message, status_code=status, url=url, body=body)
        if status == httpx.codes.GONE:
            raise RequestExpiredError(message, status_code=status, url=url, body=body)
        if status == httpx.codes.TOO_MANY_REQUESTS or status >= 500:
            raise TransientError(message, status_code=status, url=url, body=body)
        if 400 <= status < 500:
            raise RejectedError(message, status_code=status, url=url, body=body)
        raise GatewayError(message, status_code=status, url=url, body=body)


def parse_permissions(permissions: Sequence[str]) -> dict[str, list[str]]:
    """Group ``method:action`` strings by method.

    >>> parse_permissions(["get:token", "get:status", "put:token"])
    {'get': ['token', 'status'], 'put': ['token']}
    """
    grouped: dict[str, list[str]] = {}
    for permission in permissions:
        method, sep, action = permission.partition(":")
        if not sep or not method or not action:
            raise ValueError(
                f"Invalid permission {permission!r}; expected METHOD:ACTION"
            )
        grouped.setdefault(method.lower(), []).append(action)
    return grouped


def _approval_path(approval_token: str) -> str:
    return f"{APPROVALS_API}/{quote(approval_token, safe='')}"


def _json_body(response: httpx.Response) -> JSONType:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as exc:
        raise ProtocolError(
            "Expected JSON response from gateway",
            status_code=response.status_code,
            url=str(response.request.url),
            body=response.text,
        ) from exc


def _request_url(exc: httpx.RequestError) -> str | None:
    try:
        return str(exc.request.url)
    except RuntimeError:
        return None


__all__ = [
    "GatewayClient",
    "JSONType",
    "parse_permissions",
]
