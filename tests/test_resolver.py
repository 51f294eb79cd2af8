from __future__ import annotations

import anyio
import pytest

from conftest import FAST_RETRY, FakeGateway, db_request, run, sso_request
from jwctl.approvals import ApprovalResolver
from jwctl.errors import (
    CommunicationError,
    NoCandidatesError,
    NotAuthenticatedError,
    NotFoundError,
    RequestExpiredError,
    RequestResolvedError,
    TransientError,
)
from jwctl.models import RequestStatus


def resolve(gateway: FakeGateway, token: str = "abc123"):
    async def runner():
        resolver = ApprovalResolver(gateway, FAST_RETRY)
        return await resolver.resolve(token, anyio.current_time() + 30)

    return run(runner())


def test_returns_pending_request():
    request = db_request("prod-pg", "staging-pg")
    gateway = FakeGateway(pending=[request])

    assert resolve(gateway) == request
    assert gateway.fetch_calls == ["abc123"]


def test_returns_pending_sso_login():
    request = sso_request()
    gateway = FakeGateway(pending=[request])

    assert resolve(gateway) == request


def test_expired_request_is_expired():
    gateway = FakeGateway(pending=[db_request("prod-pg", status=RequestStatus.EXPIRED)])

    with pytest.raises(RequestExpiredError):
        resolve(gateway)

    assert len(gateway.fetch_calls) == 1


def test_resolved_request_is_reported_as_resolved():
    gateway = FakeGateway(pending=[db_request("prod-pg", status=RequestStatus.RESOLVED)])

    with pytest.raises(RequestResolvedError):
        resolve(gateway)

    assert len(gateway.fetch_calls) == 1


def test_empty_candidate_set_is_expired():
    gateway = FakeGateway(pending=[db_request()])

    with pytest.raises(NoCandidatesError):
        resolve(gateway)


def test_not_found_is_not_retried():
    gateway = FakeGateway(pending=[NotFoundError("unknown token")])

    with pytest.raises(NotFoundError):
        resolve(gateway)

    assert len(gateway.fetch_calls) == 1


def test_not_authenticated_is_not_retried():
    gateway = FakeGateway(pending=[NotAuthenticatedError("bad token")])

    with pytest.raises(NotAuthenticatedError):
        resolve(gateway)

    assert len(gateway.fetch_calls) == 1


def test_transient_failures_are_retried():
    request = db_request("prod-pg")
    gateway = FakeGateway(
        pending=[TransientError("reset"), TransientError("503"), request]
    )

    assert resolve(gateway) == request
    assert len(gateway.fetch_calls) == 3


def test_exhausted_retries_raise_communication_error():
    gateway = FakeGateway(pending=[TransientError("reset")])

    with pytest.raises(CommunicationError) as excinfo:
        resolve(gateway)

    assert isinstance(excinfo.value.__cause__, TransientError)
    assert len(gateway.fetch_calls) == FAST_RETRY.max_retries + 1
