"""Key decoding — front-end key names to input events.

Key names follow Textual's conventions ("enter", "ctrl+c", "f5"). Decoding
happens once, at the input boundary; everything downstream works with the
closed set of InputEvent variants.
"""

from __future__ import annotations

from wsterm.protocol.encoder import (
    Control,
    ControlKey,
    Edit,
    EditKey,
    InputEvent,
    Printable,
    Submit,
)

# Left alone so the host (terminal emulator, browser) can handle them
RESERVED_KEYS = frozenset({"f5", "f12", "ctrl+r"})

_NAMED_KEYS: dict[str, InputEvent] = {
    "enter": Submit(),
    "backspace": Edit(EditKey.BACKSPACE),
    "ctrl+h": Edit(EditKey.BACKSPACE),
    "tab": Edit(EditKey.TAB),
    "ctrl+c": Control(ControlKey.INTERRUPT),
    "ctrl+d": Control(ControlKey.EOF),
}


def is_reserved(key: str) -> bool:
    return key.lower() in RESERVED_KEYS


def decode_key(key: str, character: str | None = None) -> InputEvent | None:
    """Decode a key press into an input event.

    Args:
        key: Key name, e.g. "a", "enter", "ctrl+c".
        character: The printable character produced by the key, if any.

    Returns:
        The input event, or None for reserved keys and keys with no
        encoding (arrows, function keys, other control chords).
    """
    name = key.lower()
    if name in RESERVED_KEYS:
        return None
    event = _NAMED_KEYS.get(name)
    if event is not None:
        return event
    if character and len(character) == 1 and character.isprintable():
        return Printable(character)
    return None
