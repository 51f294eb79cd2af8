"""Terminal collaborators for the interactive selector.

Raw keyboard input comes from prompt_toolkit, rendering goes through a rich
live display on stderr so stdout only carries the final outcome.
"""

from __future__ import annotations

import asyncio
import logging
import math
import signal
import sys
from collections.abc import Iterable, Iterator, Sequence
from contextlib import ExitStack, contextmanager
from typing import Any

import anyio
import click
from prompt_toolkit.input import Input, create_input
from prompt_toolkit.key_binding import KeyPress
from prompt_toolkit.keys import Keys
from rich.console import Console, Group
from rich.live import Live
from rich.text import Text

from jwctl.approvals.selector import InputEvent
from jwctl.models import PendingRequest, UpstreamCandidate


logger = logging.getLogger(__name__)

_KEY_EVENTS: dict[Any, InputEvent] = {
    Keys.Up: InputEvent.MOVE_UP,
    "k": InputEvent.MOVE_UP,
    Keys.Down: InputEvent.MOVE_DOWN,
    "j": InputEvent.MOVE_DOWN,
    Keys.Enter: InputEvent.CONFIRM,
    Keys.ControlJ: InputEvent.CONFIRM,
    "q": InputEvent.CANCEL,
    Keys.Escape: InputEvent.CANCEL,
    Keys.ControlD: InputEvent.CANCEL,
    Keys.ControlC: InputEvent.INTERRUPT,
}

_SIGNAL_EVENTS = {
    name: event
    for name, event in (
        ("SIGWINCH", InputEvent.RESIZE),
        ("SIGINT", InputEvent.INTERRUPT),
        ("SIGTERM", InputEvent.INTERRUPT),
    )
    if hasattr(signal, name)
}

# Seconds to wait for the rest of an escape sequence.
FLUSH_TIMEOUT = 0.5

CANDIDATE_HINT = "↑/↓ move · enter approve · q cancel"
LOGIN_HINT = "enter confirm once the browser login is complete · q cancel"


def key_event(key: Any) -> InputEvent | None:
    """Selector event for a prompt_toolkit key, if it has one."""
    return _KEY_EVENTS.get(key)


class TerminalEvents:
    """Event source reading raw keys and signals from the controlling terminal.

    Use as an async context manager. The terminal is only switched to raw
    mode, and signals only captured, inside :meth:`listening`.
    """

    def __init__(self, terminal_input: Input | None = None) -> None:
        self._input = terminal_input
        self._send, self._receive = anyio.create_memory_object_stream(
            max_buffer_size=math.inf
        )
        self._loop: asyncio.AbstractEventLoop | None = None
        self._flush_handle: asyncio.TimerHandle | None = None

    async def __aenter__(self) -> TerminalEvents:
        if self._input is None:
            if not sys.stdin.isatty():
                raise click.UsageError(
                    "Approving a request requires an interactive terminal."
                )
            self._input = create_input()
        self._loop = asyncio.get_running_loop()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        self._send.close()

    @contextmanager
    def listening(self) -> Iterator[None]:
        """Put the terminal in raw mode and deliver key and signal events."""
        assert self._input is not None and self._loop is not None
        self._drain()
        with ExitStack() as stack:
            stack.enter_context(self._input.raw_mode())
            stack.enter_context(self._input.attach(self._on_input))
            stack.callback(self._cancel_flush)
            for name, event in _SIGNAL_EVENTS.items():
                signum = getattr(signal, name)
                try:
                    self._loop.add_signal_handler(signum, self._emit, event)
                except (NotImplementedError, RuntimeError):
                    logger.debug("Cannot watch %s on this platform", name)
                    continue
                stack.callback(self._loop.remove_signal_handler, signum)
            yield

    async def next_event(self) -> InputEvent:
        try:
            return await self._receive.receive()
        except anyio.EndOfStream as exc:
            raise EOFError("Terminal input closed") from exc

    def _on_input(self) -> None:
        assert self._input is not None and self._loop is not None
        self._dispatch(self._input.read_keys())
        if self._input.closed:
            self._send.close()
            return

        # A lone escape stays buffered until the parser is flushed.
        self._cancel_flush()
        self._flush_handle = self._loop.call_later(FLUSH_TIMEOUT, self._flush)

    def _flush(self) -> None:
        assert self._input is not None
        self._flush_handle = None
        self._dispatch(self._input.flush_keys())

    def _cancel_flush(self) -> None:
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None

    def _dispatch(self, key_presses: Iterable[KeyPress]) -> None:
        for key_press in key_presses:
            event = key_event(key_press.key)
            if event is not None:
                self._emit(event)

    def _drain(self) -> None:
        while True:
            try:
                stale = self._receive.receive_nowait()
            except (anyio.WouldBlock, anyio.EndOfStream):
                return
            logger.debug("Discarding %s left from an earlier prompt", stale.value)

    def _emit(self, event: InputEvent) -> None:
        try:
            self._send.send_nowait(event)
        except anyio.ClosedResourceError:
            logger.debug("Dropping %s after input closed", event.value)


class TerminalView:
    """Inline, redrawn-in-place rendering of the selection prompt."""

    def __init__(self, console: Console | None = None) -> None:
        self._console = console or Console(stderr=True)
        self._live: Live | None = None

    def show_candidates(
        self, candidates: Sequence[UpstreamCandidate], cursor: int
    ) -> None:
        lines = [Text("Select the upstream database for this connection:", style="bold")]
        for index, candidate in enumerate(candidates):
            label = candidate.display_name
            if candidate.database_type:
                label = f"{label} ({candidate.database_type})"
            if index == cursor:
                lines.append(Text(f">> {label}", style="bold italic"))
            else:
                lines.append(Text(f"   {label}"))
        lines.append(Text(CANDIDATE_HINT, style="dim"))
        self._update(Group(*lines))

    def show_login(self, request: PendingRequest) -> None:
        provider = request.provider_name or "the identity provider"
        lines = [
            Text(f"Complete the {provider} login in your browser.", style="bold"),
            Text(f"If it did not open, visit: {request.authorization_url}"),
            Text(LOGIN_HINT, style="dim"),
        ]
        self._update(Group(*lines))

    def close(self) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None

    def _update(self, renderable: Group) -> None:
        if self._live is None:
            self._live = Live(
                renderable,
                console=self._console,
                auto_refresh=False,
                transient=True,
            )
            self._live.start(refresh=True)
        else:
            self._live.update(renderable, refresh=True)


def open_browser(url: str) -> int:
    """Open ``url`` in the operator's default browser."""
    status = click.launch(url)
    if status != 0:
        logger.warning("Unable to open a browser (exit status %s)", status)
    return status


__all__ = ["TerminalEvents", "TerminalView", "key_event", "open_browser"]
