from __future__ import annotations

import anyio
import pytest

from conftest import ScriptedEvents, db_request, run, sso_request
from jwctl.approvals import CandidateCursor, InputEvent, InteractiveSelector
from jwctl.models import CancelReason, DecisionKind, OperatorDecision


def select(events, view, browser, request, seconds: float = 5.0) -> OperatorDecision:
    async def runner():
        selector = InteractiveSelector(events, view, browser=browser)
        return await selector.select(request, anyio.current_time() + seconds)

    return run(runner())


class TestCandidateCursor:
    def test_moves_wrap_around(self):
        cursor = CandidateCursor(3)

        cursor.previous()
        assert cursor.index == 2
        cursor.next()
        assert cursor.index == 0
        cursor.next()
        cursor.next()
        assert cursor.index == 2


class TestDatabaseSelection:
    def test_confirm_selects_first_candidate_by_default(self, view, browser):
        events = ScriptedEvents(InputEvent.CONFIRM)

        decision = select(events, view, browser, db_request("prod-pg", "staging-pg"))

        assert decision == OperatorDecision.approve(1)
        assert view.frames == [(["prod-pg", "staging-pg"], 0)]

    def test_move_down_then_confirm(self, view, browser):
        events = ScriptedEvents(InputEvent.MOVE_DOWN, InputEvent.CONFIRM)

        decision = select(events, view, browser, db_request("prod-pg", "staging-pg"))

        assert decision == OperatorDecision.approve(2)
        assert [cursor for _, cursor in view.frames] == [0, 1]

    def test_move_up_wraps_to_last(self, view, browser):
        events = ScriptedEvents(InputEvent.MOVE_UP, InputEvent.CONFIRM)

        decision = select(events, view, browser, db_request("a", "b", "c"))

        assert decision == OperatorDecision.approve(3)

    @pytest.mark.parametrize(
        "event", [InputEvent.CANCEL, InputEvent.RESIZE, InputEvent.INTERRUPT]
    )
    def test_cancel_resize_and_interrupt_cancel(self, view, browser, event):
        events = ScriptedEvents(InputEvent.MOVE_DOWN, event, InputEvent.CONFIRM)

        decision = select(events, view, browser, db_request("prod-pg", "staging-pg"))

        assert decision.kind is DecisionKind.CANCEL
        assert decision.cancel_reason is CancelReason.USER_CANCELLED
        assert events.events == [InputEvent.CONFIRM]

    def test_closed_input_cancels(self, view, browser):
        events = ScriptedEvents(close=True)

        decision = select(events, view, browser, db_request("prod-pg"))

        assert decision.cancel_reason is CancelReason.USER_CANCELLED

    def test_no_input_before_deadline_times_out(self, view, browser):
        events = ScriptedEvents()

        decision = select(events, view, browser, db_request("prod-pg"), seconds=0.05)

        assert decision == OperatorDecision.cancel(CancelReason.TIMED_OUT)

    def test_elapsed_deadline_times_out_without_reading(self, view, browser):
        events = ScriptedEvents(InputEvent.CONFIRM)

        decision = select(events, view, browser, db_request("prod-pg"), seconds=0)

        assert decision.cancel_reason is CancelReason.TIMED_OUT
        assert events.reads == 0

    def test_view_is_closed(self, view, browser):
        select(ScriptedEvents(InputEvent.CONFIRM), view, browser, db_request("a"))

        assert view.closed == 1
        assert browser.opened == []

    def test_empty_candidates_are_rejected(self, view, browser):
        with pytest.raises(ValueError):
            select(ScriptedEvents(), view, browser, db_request())

        assert view.closed == 1


class TestLoginConfirmation:
    def test_opens_browser_once_and_confirms(self, view, browser):
        events = ScriptedEvents(
            InputEvent.MOVE_DOWN, InputEvent.MOVE_UP, InputEvent.CONFIRM
        )
        request = sso_request()

        decision = select(events, view, browser, request)

        assert decision == OperatorDecision.confirm()
        assert browser.opened == [request.authorization_url]
        assert len(view.logins) == 3
        assert view.frames == []

    def test_cancel(self, view, browser):
        decision = select(ScriptedEvents(InputEvent.CANCEL), view, browser, sso_request())

        assert decision.cancel_reason is CancelReason.USER_CANCELLED
        assert len(browser.opened) == 1

    def test_times_out(self, view, browser):
        decision = select(ScriptedEvents(), view, browser, sso_request(), seconds=0.05)

        assert decision.cancel_reason is CancelReason.TIMED_OUT
        assert len(browser.opened) == 1


def test_input_is_captured_only_while_selecting(view, browser):
    events = ScriptedEvents(InputEvent.MOVE_DOWN, InputEvent.CONFIRM)

    select(events, view, browser, db_request("prod-pg", "staging-pg"))

    assert events.sessions == 1
    assert events.active is False
