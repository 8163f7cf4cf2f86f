"""Input protocol — input events, byte encoding, and key decoding."""

from wsterm.protocol.encoder import (
    Control,
    ControlKey,
    Edit,
    EditKey,
    InputEvent,
    InputMode,
    LineBuffer,
    Printable,
    Submit,
    encode,
)
from wsterm.protocol.keys import decode_key, is_reserved

__all__ = [
    "Control",
    "ControlKey",
    "Edit",
    "EditKey",
    "InputEvent",
    "InputMode",
    "LineBuffer",
    "Printable",
    "Submit",
    "encode",
    "decode_key",
    "is_reserved",
]
