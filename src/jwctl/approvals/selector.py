from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from contextlib import AbstractContextManager
from dataclasses import dataclass
from enum import Enum
from typing import Protocol

import anyio

from jwctl.models import (
    CancelReason,
    OperatorDecision,
    PendingRequest,
    RequestKind,
    UpstreamCandidate,
)


logger = logging.getLogger(__name__)


class InputEvent(str, Enum):
    """Discrete operator input understood by the selector."""

    MOVE_UP = "move_up"
    MOVE_DOWN = "move_down"
    CONFIRM = "confirm"
    CANCEL = "cancel"
    RESIZE = "resize"
    INTERRUPT = "interrupt"


class EventSource(Protocol):
    def listening(self) -> AbstractContextManager[None]:
        """Capture operator input for the duration of the block."""
        ...

    async def next_event(self) -> InputEvent:
        """Wait for the next event; raise ``EOFError`` when input is closed."""
        ...


class SelectionView(Protocol):
    def show_candidates(
        self, candidates: Sequence[UpstreamCandidate], cursor: int
    ) -> None: ...

    def show_login(self, request: PendingRequest) -> None: ...

    def close(self) -> None: ...


BrowserLauncher = Callable[[str], object]


@dataclass(slots=True)
class CandidateCursor:
    """Highlighted position in the candidate list; moves wrap around."""

    size: int
    index: int = 0

    def next(self) -> None:
        self.index = (self.index + 1) % self.size

    def previous(self) -> None:
        self.index = (self.index - 1) % self.size


class InteractiveSelector:
    """Turn operator input into a single decision for a pending request.

    The wait for input is bounded by the deadline passed to :meth:`select`;
    running out of time yields a ``TIMED_OUT`` cancellation. Resize and
    interrupt events cancel the selection.
    """

    def __init__(
        self,
        events: EventSource,
        view: SelectionView,
        *,
        browser: BrowserLauncher,
    ) -> None:
        self._events = events
        self._view = view
        self._browser = browser

    async def select(
        self, request: PendingRequest, input_deadline: float
    ) -> OperatorDecision:
        try:
            with self._events.listening():
                if request.kind is RequestKind.SSO_LOGIN:
                    decision = await self._confirm_login(request, input_deadline)
                else:
                    decision = await self._choose_candidate(request, input_deadline)
        finally:
            self._view.close()

        logger.debug("Operator decision: %s", decision)
        return decision

    async def _choose_candidate(
        self, request: PendingRequest, input_deadline: float
    ) -> OperatorDecision:
        candidates = request.candidates
        if not candidates:
            raise ValueError("Cannot present a request without candidates")

        cursor = CandidateCursor(len(candidates))
        while True:
            self._view.show_candidates(candidates, cursor.index)
            event = await self._next_event(input_deadline)
            match event:
                case None:
                    return OperatorDecision.cancel(CancelReason.TIMED_OUT)
                case InputEvent.MOVE_UP:
                    cursor.previous()
                case InputEvent.MOVE_DOWN:
                    cursor.next()
                case InputEvent.CONFIRM:
                    return OperatorDecision.approve(candidates[cursor.index].id)
                case _:
                    return OperatorDecision.cancel(CancelReason.USER_CANCELLED)

    async def _confirm_login(
        self, request: PendingRequest, input_deadline: float
    ) -> OperatorDecision:
        if not request.authorization_url:
            raise ValueError("Cannot present a login without an authorization URL")

        logger.info("Opening %s in the default browser", request.authorization_url)
        self._browser(request.authorization_url)

        while True:
            self._view.show_login(request)
            event = await self._next_event(input_deadline)
            match event:
                case None:
                    return OperatorDecision.cancel(CancelReason.TIMED_OUT)
                case InputEvent.CONFIRM:
                    return OperatorDecision.confirm()
                case InputEvent.MOVE_UP | InputEvent.MOVE_DOWN:
                    continue
                case _:
                    return OperatorDecision.cancel(CancelReason.USER_CANCELLED)

    async def _next_event(self, input_deadline: float) -> InputEvent | None:
        """Next event, or ``None`` once the deadline passes."""
        remaining = input_deadline - anyio.current_time()
        if remaining <= 0:
            return None

        event: InputEvent | None = None
        with anyio.move_on_after(remaining):
            try:
                event = await self._events.next_event()
            except EOFError:
                logger.debug("Input closed while waiting for a decision")
                return InputEvent.CANCEL
        if event is None:
            logger.info("No decision within the time allowed")
        return event


__all__ = [
    "BrowserLauncher",
    "CandidateCursor",
    "EventSource",
    "InputEvent",
    "InteractiveSelector",
    "SelectionView",
]
