"""Chord buffer with an inactivity timeout, scoped to one active challenge."""

from __future__ import annotations

from collections.abc import Callable

from loguru import logger

from .keys import KeyEvent, parse_key_event
from .models import KeyChord
from .timers import Timer, TimerQueue

InputCallback = Callable[[KeyChord, list[KeyChord]], None]


class InputManager:
    """Accumulate chords from key-down events until the sequence goes quiet."""

    def __init__(
        self,
        on_input: InputCallback,
        timers: TimerQueue,
        timeout_ms: int = 1000,
        on_timeout: Callable[[], None] | None = None,
        scope: str | None = None,
    ) -> None:
        self._on_input = on_input
        self._on_timeout = on_timeout
        self._timers = timers
        self.timeout_ms = timeout_ms
        self.scope = scope
        self._buffer: list[KeyChord] = []
        self._timer: Timer | None = None
        self._destroyed = False

    @property
    def buffer(self) -> list[KeyChord]:
        """Return a copy of the captured chords."""
        return list(self._buffer)

    @property
    def timer_pending(self) -> bool:
        return self._timer is not None and self._timer.active

    def handle_key_down(self, event: KeyEvent) -> KeyChord | None:
        """Capture one key-down event and return the chord it produced, if any."""
        if self._destroyed:
            return None
        chord = parse_key_event(event)
        if chord is None:
            return None

        # Captured keys never reach the host, whether or not they match.
        event.prevent_default()
        event.stop_propagation()
        event.stop_immediate_propagation()

        self._timers.cancel(self._timer)
        self._timer = None
        self._buffer.append(chord)
        self._on_input(chord, list(self._buffer))

        if not self._destroyed:
            self._timer = self._timers.schedule(self.timeout_ms, self._expire, tag=self.scope)
        return chord

    def reset_buffer(self) -> None:
        """Clear the buffer and cancel the inactivity timer."""
        self._buffer = []
        self._timers.cancel(self._timer)
        self._timer = None

    def destroy(self) -> None:
        """Stop capturing; no timer will be armed after this."""
        self.reset_buffer()
        self._destroyed = True

    def _expire(self) -> None:
        self._timer = None
        if not self._buffer:
            return
        logger.debug(f"Sequence timeout after {len(self._buffer)} chord(s) in scope {self.scope}")
        self._buffer = []
        if self._on_timeout is not None:
            self._on_timeout()
