"""Main Textual application for the wsterm TUI."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from rich.markup import escape
from rich.text import Text

from textual import events, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import VerticalScroll
from textual.message import Message
from textual.widgets import Footer, Header, Static

from wsterm.protocol.encoder import InputEvent, InputMode
from wsterm.protocol.keys import decode_key
from wsterm.session.wire import EventType, Wire, WireEvent

if TYPE_CHECKING:
    from wsterm.client.session import SessionClient

logger = logging.getLogger(__name__)

_STYLES: dict[str, str] = {
    "info": "bold cyan",
    "error": "bold red",
}


# Scrollback kept by the terminal view, in lines
MAX_SCROLLBACK = 5000


def trim_scrollback(text: Text, max_lines: int) -> Text:
    """Keep only the last ``max_lines`` newline-terminated lines of ``text``.

    Styles of the kept part are preserved.
    """
    plain = text.plain
    excess = plain.count("\n") - max_lines
    if excess <= 0:
        return text
    cut = 0
    for _ in range(excess):
        cut = plain.index("\n", cut) + 1
    return text[cut:]


class TUILogHandler(logging.Handler):
    """Logging handler that captures the last log message for the TUI status bar.

    Writing to stderr would corrupt the Textual display, so the handler keeps
    the most recent record and asks the app to redraw its status bar.
    """

    def __init__(self, app: TerminalApp) -> None:
        super().__init__()
        self._app = app
        self.last_message: str = ""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.last_message = self.format(record)
            try:
                self._app.call_from_thread(self._app._update_status)
            except RuntimeError:
                # Already on the app's thread
                self._app.call_later(self._app._update_status)
        except Exception:
            self.handleError(record)


class TerminalView(Static, can_focus=True):
    """Shell output surface. Decodes key presses into input events."""

    class KeyInput(Message):
        """A key press decoded into an input event."""

        def __init__(self, event: InputEvent) -> None:
            super().__init__()
            self.event = event

    def __init__(self, max_lines: int = MAX_SCROLLBACK, **kwargs) -> None:
        super().__init__("", **kwargs)
        self._text = Text()
        self._lines = 0
        self._max_lines = max_lines

    def append(self, text: str, style: str | None = None) -> None:
        self._text.append(text, style=_STYLES.get(style or ""))
        self._lines += text.count("\n")
        # Trimmed in batches of a tenth of the limit
        if self._lines > self._max_lines + self._max_lines // 10:
            self._text = trim_scrollback(self._text, self._max_lines)
            self._lines = self._max_lines
        self.update(self._text)

    def clear(self) -> None:
        self._text = Text()
        self._lines = 0
        self.update(self._text)

    @property
    def plain(self) -> str:
        return self._text.plain

    def on_key(self, event: events.Key) -> None:
        input_event = decode_key(event.key, event.character)
        if input_event is None:
            # Reserved or unmapped: let bindings and the host handle it
            return
        event.stop()
        event.prevent_default()
        self.post_message(self.KeyInput(input_event))


class TerminalApp(App):
    """wsterm TUI — a terminal session on a remote shell."""

    TITLE = "wsterm"
    CSS = """
    #terminal-scroll {
        height: 1fr;
        border: solid $primary;
    }

    #terminal {
        width: 100%;
        height: auto;
        padding: 0 1;
    }

    #input-line {
        height: 1;
        padding: 0 1;
        background: $boost;
    }

    #status-bar {
        dock: bottom;
        height: 1;
        background: $surface;
        color: $text-muted;
        padding: 0 1;
    }
    """

    BINDINGS = [
        Binding("ctrl+q", "quit", "Quit", priority=True),
        Binding("ctrl+l", "clear_terminal", "Clear"),
        Binding("f6", "reconnect", "Reconnect"),
    ]

    def __init__(self, client: SessionClient, wire: Wire) -> None:
        super().__init__()
        self.client = client
        self.wire = wire
        self._connected = False
        self._phase = "Idle"
        self._log_handler: TUILogHandler | None = None

    def compose(self) -> ComposeResult:
        yield Header()
        with VerticalScroll(id="terminal-scroll"):
            yield TerminalView(id="terminal")
        if self.client.mode is InputMode.LINE:
            yield Static("> ", id="input-line")
        yield Static(id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        self.sub_title = f"{self.client.url} ({self.client.mode})"
        self._install_log_handler()
        self._update_status()
        # Subscribe before connecting so the first status events are not lost
        self._listen_wire(self.wire.subscribe())
        self.query_one("#terminal", TerminalView).focus()
        self.client.start()

    def on_unmount(self) -> None:
        self.client.shutdown()
        self.wire.close()

    def _install_log_handler(self) -> None:
        root = logging.getLogger()
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        self._log_handler = TUILogHandler(self)
        self._log_handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        root.addHandler(self._log_handler)
        logging.getLogger("websockets").setLevel(logging.WARNING)

    # --- Status bar ---

    def _update_status(self) -> None:
        try:
            status = self.query_one("#status-bar", Static)
        except Exception:
            return
        if self._connected:
            indicator = "[bold green]● connected[/bold green]"
        else:
            indicator = "[bold red]○ disconnected[/bold red]"
        parts = [indicator, escape(self._phase)]
        if self._log_handler and self._log_handler.last_message:
            last_log = self._log_handler.last_message
            if len(last_log) > 80:
                last_log = last_log[:77] + "..."
            parts.append(f"[dim]{escape(last_log)}[/dim]")
        status.update(" | ".join(parts))

    # --- Terminal helpers ---

    def _terminal(self) -> TerminalView:
        return self.query_one("#terminal", TerminalView)

    # --- Wire event loop ---

    @work(exclusive=True)
    async def _listen_wire(self, queue: asyncio.Queue[WireEvent | None]) -> None:
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                self._handle_event(event)
        finally:
            self.wire.unsubscribe(queue)

    def _handle_event(self, event: WireEvent) -> None:
        handlers = {
            EventType.OUTPUT: self._on_output,
            EventType.CLEAR: self._on_clear,
            EventType.SCROLL: self._on_scroll,
            EventType.STATUS: self._on_status,
            EventType.LINE: self._on_line,
        }
        handler = handlers.get(event.type)
        if handler:
            handler(event.data)

    def _on_output(self, data: dict) -> None:
        self._terminal().append(data.get("text", ""), data.get("style"))

    def _on_clear(self, data: dict) -> None:
        self._terminal().clear()

    def _on_scroll(self, data: dict) -> None:
        self.query_one("#terminal-scroll", VerticalScroll).scroll_end(animate=False)

    def _on_status(self, data: dict) -> None:
        self._connected = bool(data.get("connected"))
        self._phase = data.get("phase", "")
        self._update_status()

    def _on_line(self, data: dict) -> None:
        try:
            line = self.query_one("#input-line", Static)
        except Exception:
            return
        line.update(Text("> " + data.get("text", "")))

    # --- Input ---

    def on_terminal_view_key_input(self, message: TerminalView.KeyInput) -> None:
        self.client.handle_input(message.event)

    def action_clear_terminal(self) -> None:
        self.client.clear()

    def action_reconnect(self) -> None:
        self.client.reconnect()
