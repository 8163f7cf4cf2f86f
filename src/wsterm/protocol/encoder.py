"""Byte encoder — maps input events to the bytes a remote shell expects.

Two input modes share one encoder:

* **raw**: every event becomes a frame immediately; the remote side echoes.
* **line**: printable and editing keys mutate a local line buffer; the line
  is sent as one frame (with a trailing newline) on submit. Interrupt, EOF
  and tab bypass the buffer.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from wsterm.errors import EncodeError

INTERRUPT = b"\x03"
EOF = b"\x04"
TAB = b"\t"
NEWLINE = b"\n"
DELETE = b"\x7f"


class InputMode(enum.StrEnum):
    RAW = "raw"
    LINE = "line"


class ControlKey(enum.StrEnum):
    INTERRUPT = "interrupt"
    EOF = "eof"


class EditKey(enum.StrEnum):
    BACKSPACE = "backspace"
    TAB = "tab"


@dataclass(frozen=True)
class Printable:
    """A single printable character (one code point, any plane)."""

    char: str


@dataclass(frozen=True)
class Control:
    key: ControlKey


@dataclass(frozen=True)
class Edit:
    key: EditKey


@dataclass(frozen=True)
class Submit:
    """Line termination (Enter)."""


InputEvent = Printable | Control | Edit | Submit

_CONTROL_BYTES: dict[ControlKey, bytes] = {
    ControlKey.INTERRUPT: INTERRUPT,
    ControlKey.EOF: EOF,
}


def _encode_char(char: str) -> bytes:
    if len(char) != 1:
        raise EncodeError(f"Printable must hold exactly one character, got {char!r}")
    try:
        return char.encode("utf-8")
    except UnicodeEncodeError as e:
        # Lone surrogates cannot be represented on the wire
        raise EncodeError(f"Cannot encode {char!r}: {e}") from e


def encode(event: InputEvent, mode: InputMode, line: str = "") -> bytes | None:
    """Encode one input event into an outbound frame.

    Args:
        event: The input event.
        mode: Input mode.
        line: Current line buffer contents (line mode only, used on Submit).

    Returns:
        The frame to transmit, or None when the event produces no frame
        (buffered printable or backspace in line mode).

    Raises:
        EncodeError: The event cannot be represented as bytes.
    """
    if isinstance(event, Control):
        return _CONTROL_BYTES[event.key]

    if isinstance(event, Edit):
        if event.key is EditKey.TAB:
            return TAB
        if mode is InputMode.RAW:
            return DELETE
        return None

    if isinstance(event, Printable):
        data = _encode_char(event.char)
        return data if mode is InputMode.RAW else None

    if isinstance(event, Submit):
        if mode is InputMode.RAW:
            return NEWLINE
        try:
            return line.encode("utf-8") + NEWLINE
        except UnicodeEncodeError as e:
            raise EncodeError(f"Cannot encode line: {e}") from e

    raise EncodeError(f"Unknown input event: {event!r}")


class LineBuffer:
    """Client-held line buffer for line mode.

    ``feed()`` applies the buffer edit for an event and returns the frame to
    send, if any. The buffer is cleared after a submitted line is encoded.
    """

    def __init__(self) -> None:
        self._chars: list[str] = []

    @property
    def text(self) -> str:
        return "".join(self._chars)

    def feed(self, event: InputEvent) -> bytes | None:
        if isinstance(event, Printable):
            # Validate now so a bad character never lands in the buffer
            _encode_char(event.char)
            self._chars.append(event.char)
            return None

        if isinstance(event, Edit) and event.key is EditKey.BACKSPACE:
            if self._chars:
                self._chars.pop()
            return None

        if isinstance(event, Submit):
            frame = encode(event, InputMode.LINE, line=self.text)
            self._chars.clear()
            return frame

        return encode(event, InputMode.LINE)

    def clear(self) -> None:
        self._chars.clear()

    def __len__(self) -> int:
        return len(self._chars)
