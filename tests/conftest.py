from __future__ import annotations

import asyncio
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from typing import Any

import anyio
import pytest

from jwctl.approvals import InputEvent, RetryPolicy
from jwctl.models import (
    CommitOutcome,
    OperatorDecision,
    PendingRequest,
    RequestKind,
    RequestStatus,
    UpstreamCandidate,
)


FAST_RETRY = RetryPolicy(max_retries=3, base_delay=0.0, factor=2.0, max_delay=0.0)


def run(coro: Any) -> Any:
    return asyncio.run(coro)


def db_request(
    *names: str, status: RequestStatus = RequestStatus.PENDING
) -> PendingRequest:
    return PendingRequest(
        kind=RequestKind.DATABASE_CONNECTION,
        status=status,
        candidates=tuple(
            UpstreamCandidate(id=index, display_name=name, database_type="postgresql")
            for index, name in enumerate(names, start=1)
        ),
    )


def sso_request() -> PendingRequest:
    return PendingRequest(
        kind=RequestKind.SSO_LOGIN,
        status=RequestStatus.PENDING,
        provider_name="okta",
        authorization_url="https://sso.example.com/authorize?state=abc",
    )


class FakeGateway:
    """Scripted gateway; the last scripted item repeats once the rest are used."""

    def __init__(
        self,
        pending: Sequence[PendingRequest | Exception] = (),
        commits: Sequence[CommitOutcome | Exception] = (),
    ) -> None:
        self.pending = list(pending)
        self.commits = list(commits)
        self.fetch_calls: list[str] = []
        self.commit_calls: list[tuple[str, OperatorDecision]] = []

    async def fetch_pending(self, approval_token: str) -> PendingRequest:
        self.fetch_calls.append(approval_token)
        return _next(self.pending)

    async def commit(
        self, approval_token: str, decision: OperatorDecision
    ) -> CommitOutcome:
        self.commit_calls.append((approval_token, decision))
        return _next(self.commits)


def _next(items: list[Any]) -> Any:
    if not items:
        raise AssertionError("FakeGateway called more often than scripted")
    item = items.pop(0) if len(items) > 1 else items[0]
    if isinstance(item, Exception):
        raise item
    return item


class ScriptedEvents:
    """Event source replaying fixed events, then waiting forever or closing."""

    def __init__(self, *events: InputEvent, close: bool = False) -> None:
        self.events = list(events)
        self.close = close
        self.reads = 0
        self.sessions = 0
        self.active = False

    async def __aenter__(self) -> ScriptedEvents:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        return None

    @contextmanager
    def listening(self) -> Iterator[None]:
        self.sessions += 1
        self.active = True
        try:
            yield
        finally:
            self.active = False

    async def next_event(self) -> InputEvent:
        assert self.active, "input read outside of listening()"
        self.reads += 1
        if self.events:
            return self.events.pop(0)
        if self.close:
            raise EOFError("scripted input closed")
        await anyio.sleep_forever()
        raise AssertionError("unreachable")


class RecordingView:
    def __init__(self) -> None:
        self.frames: list[tuple[list[str], int]] = []
        self.logins: list[PendingRequest] = []
        self.closed = 0

    def show_candidates(
        self, candidates: Sequence[UpstreamCandidate], cursor: int
    ) -> None:
        self.frames.append(([c.display_name for c in candidates], cursor))

    def show_login(self, request: PendingRequest) -> None:
        self.logins.append(request)

    def close(self) -> None:
        self.closed += 1


class RecordingBrowser:
    def __init__(self) -> None:
        self.opened: list[str] = []

    def __call__(self, url: str) -> int:
        self.opened.append(url)
        return 0


@pytest.fixture
def view() -> RecordingView:
    return RecordingView()


@pytest.fixture
def browser() -> RecordingBrowser:
    return RecordingBrowser()
