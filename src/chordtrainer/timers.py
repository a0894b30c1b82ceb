"""Millisecond clock and the deferred-callback queue polled by the session driver."""

from __future__ import annotations

import heapq
import itertools
import time
from collections.abc import Callable
from dataclasses import dataclass, field

Clock = Callable[[], int]


def now_ms() -> int:
    """Return wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(order=True)
class Timer:
    """One scheduled callback."""

    due_at: int
    seq: int
    callback: Callable[[], None] = field(compare=False)
    tag: str | None = field(default=None, compare=False)
    cancelled: bool = field(default=False, compare=False)
    fired: bool = field(default=False, compare=False)

    @property
    def active(self) -> bool:
        return not self.cancelled and not self.fired


class TimerQueue:
    """Single-threaded timer queue; callbacks only run inside ``run_due``."""

    def __init__(self, clock: Clock = now_ms) -> None:
        self.clock = clock
        self._heap: list[Timer] = []
        self._counter = itertools.count()

    def schedule(self, delay_ms: int, callback: Callable[[], None], tag: str | None = None) -> Timer:
        """Schedule a callback ``delay_ms`` from now."""
        timer = Timer(
            due_at=self.clock() + max(0, int(delay_ms)),
            seq=next(self._counter),
            callback=callback,
            tag=tag,
        )
        heapq.heappush(self._heap, timer)
        return timer

    def cancel(self, timer: Timer | None) -> None:
        """Cancel a timer; cancelling an absent or spent timer is a no-op."""
        if timer is not None:
            timer.cancelled = True

    def cancel_tagged(self, tag: str) -> int:
        """Cancel every pending timer carrying ``tag``."""
        count = 0
        for timer in self._heap:
            if timer.active and timer.tag == tag:
                timer.cancelled = True
                count += 1
        return count

    def cancel_all(self) -> int:
        """Cancel every pending timer."""
        count = 0
        for timer in self._heap:
            if timer.active:
                timer.cancelled = True
                count += 1
        return count

    def pending(self, tag: str | None = None) -> list[Timer]:
        """Return live timers in firing order, optionally filtered by tag."""
        live = [timer for timer in self._heap if timer.active and (tag is None or timer.tag == tag)]
        return sorted(live)

    def next_due(self) -> int | None:
        """Return the due time of the earliest live timer."""
        live = self.pending()
        return live[0].due_at if live else None

    def run_due(self, now: int | None = None) -> int:
        """Fire every live timer due at ``now`` in due order and return how many fired.

        Callbacks may schedule or cancel timers; newly scheduled timers that are
        already due fire in the same call.
        """
        current = self.clock() if now is None else now
        fired = 0
        while self._heap and self._heap[0].due_at <= current:
            timer = heapq.heappop(self._heap)
            if not timer.active:
                continue
            timer.fired = True
            timer.callback()
            fired += 1
        return fired
