"""Key vocabulary, raw key event translation, and chord notation."""

from __future__ import annotations

from dataclasses import dataclass

from .models import MODIFIERS, KeyChord

VALID_KEYS: frozenset[str] = frozenset(
    [
        *"abcdefghijklmnopqrstuvwxyz",
        *"0123456789",
        "enter",
        "escape",
        "tab",
        "space",
        "backspace",
        "delete",
        "up",
        "down",
        "left",
        "right",
        "home",
        "end",
        "pageup",
        "pagedown",
        *(f"f{index}" for index in range(1, 13)),
        *"[]\\;',./`-=",
        *"+*^$%#@!~{}",
    ]
)

KEY_ALIASES: dict[str, str] = {
    "arrowup": "up",
    "arrowdown": "down",
    "arrowleft": "left",
    "arrowright": "right",
    " ": "space",
    "return": "enter",
    "esc": "escape",
    "del": "delete",
}

# Extra spellings accepted in binding tables but never produced by a keyboard.
NOTATION_ALIASES: dict[str, str] = {
    "numpad0": "0",
    "pgup": "pageup",
    "pgdn": "pagedown",
}

# US-layout shifted characters mapped to their base key; the shift flag stays.
SHIFTED_ALIASES: dict[str, str] = {
    ":": ";",
    '"': "'",
    "<": ",",
    ">": ".",
    "?": "/",
    "_": "-",
    "|": "\\",
}

# Symbols that can only be typed with shift; shift is implied, never stored.
IMPLIED_SHIFT_KEYS = frozenset("+*^$%#@!~{}")

MODIFIER_ALIASES: dict[str, str] = {
    "ctrl": "ctrl",
    "control": "ctrl",
    "shift": "shift",
    "alt": "alt",
    "option": "alt",
    "opt": "alt",
    "meta": "meta",
    "cmd": "meta",
    "command": "meta",
    "super": "meta",
}

MODIFIER_KEY_NAMES = frozenset({"control", "ctrl", "shift", "alt", "meta", "os", "altgraph"})

_KEY_LABELS: dict[str, str] = {
    "space": "Space",
    "enter": "Enter",
    "escape": "Esc",
    "tab": "Tab",
    "backspace": "Backspace",
    "delete": "Del",
    "up": "↑",
    "down": "↓",
    "left": "←",
    "right": "→",
}


@dataclass
class KeyEvent:
    """Abstract key-down event delivered by the host front end."""

    key: str
    ctrl: bool = False
    shift: bool = False
    alt: bool = False
    meta: bool = False
    default_prevented: bool = False
    propagation_stopped: bool = False
    immediate_propagation_stopped: bool = False

    def prevent_default(self) -> None:
        self.default_prevented = True

    def stop_propagation(self) -> None:
        self.propagation_stopped = True

    def stop_immediate_propagation(self) -> None:
        self.propagation_stopped = True
        self.immediate_propagation_stopped = True

    @property
    def suppressed(self) -> bool:
        """Return whether no other handler may see this event."""
        return self.default_prevented and self.immediate_propagation_stopped


def normalize_key(raw_key: str) -> str | None:
    """Map a raw key identifier onto the closed key vocabulary."""
    lowered = raw_key.lower()
    mapped = KEY_ALIASES.get(lowered, SHIFTED_ALIASES.get(lowered, lowered))
    if mapped in VALID_KEYS:
        return mapped
    return None


def make_chord(key: str, modifiers: tuple[str, ...] | list[str]) -> KeyChord:
    """Build a chord, dropping shift where the key already implies it."""
    if key in IMPLIED_SHIFT_KEYS:
        modifiers = [modifier for modifier in modifiers if modifier != "shift"]
    return KeyChord(key=key, modifiers=tuple(modifiers))


def extract_modifiers(event: KeyEvent) -> tuple[str, ...]:
    """Return held modifiers in canonical order."""
    return tuple(name for name in MODIFIERS if getattr(event, name))


def parse_key_event(event: KeyEvent) -> KeyChord | None:
    """Translate a key-down event, or return None for modifier-only and unknown keys."""
    if event.key.lower() in MODIFIER_KEY_NAMES:
        return None
    key = normalize_key(event.key)
    if key is None:
        return None
    return make_chord(key, extract_modifiers(event))


def parse_chord(text: str) -> KeyChord | None:
    """Parse one chord written like ``shift+cmd+z``."""
    raw = text.strip().lower()
    if not raw:
        return None
    if raw == "+":
        tokens = ["+"]
    elif raw.endswith("++"):
        tokens = raw[:-2].split("+") + ["+"]
    else:
        tokens = raw.split("+")

    modifiers: list[str] = []
    key: str | None = None
    for token in tokens:
        token = token.strip()
        if not token:
            return None
        modifier = MODIFIER_ALIASES.get(token)
        if modifier is not None:
            modifiers.append(modifier)
            continue
        if key is not None:
            return None
        key = token

    if key is None:
        return None
    normalized = normalize_key(NOTATION_ALIASES.get(key, key))
    if normalized is None:
        return None
    if key in SHIFTED_ALIASES and "shift" not in modifiers:
        modifiers.append("shift")
    return make_chord(normalized, modifiers)


def parse_key_sequence(text: str) -> tuple[KeyChord, ...] | None:
    """Parse space-separated chords; None when any chord is unreadable."""
    chords: list[KeyChord] = []
    for part in text.split():
        chord = parse_chord(part)
        if chord is None:
            return None
        chords.append(chord)
    return tuple(chords)


def chord_to_event(chord: KeyChord) -> KeyEvent:
    """Build the key-down event that would produce a chord."""
    return KeyEvent(
        key=chord.key,
        ctrl="ctrl" in chord.modifiers,
        shift="shift" in chord.modifiers,
        alt="alt" in chord.modifiers,
        meta="meta" in chord.modifiers,
    )


def format_chord(chord: KeyChord) -> str:
    """Return a human-readable label such as ``Ctrl+Shift+P``."""
    parts: list[str] = []
    if "ctrl" in chord.modifiers:
        parts.append("Ctrl")
    if "alt" in chord.modifiers:
        parts.append("Alt")
    if "shift" in chord.modifiers:
        parts.append("Shift")
    if "meta" in chord.modifiers:
        parts.append("⌘")
    parts.append(_KEY_LABELS.get(chord.key, chord.key.upper()))
    return "+".join(parts)


def format_sequence(sequence: tuple[KeyChord, ...] | list[KeyChord]) -> str:
    """Return chords joined with arrows."""
    return " → ".join(format_chord(chord) for chord in sequence)
