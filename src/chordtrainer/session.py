"""Session driver: runs the reducer, executes its effects, and owns the timers.

Deferred work (sequence inactivity, wrong-input settle, scenario auto-advance,
challenge timeout) is queued in one ``TimerQueue`` and only runs inside
``poll``. Every timer is tagged with the id of the challenge it belongs to and
is discarded if that challenge is no longer current when it fires.
"""

from __future__ import annotations

import random
from collections import deque
from collections.abc import Callable
from dataclasses import asdict, replace
from typing import Any, Literal, Protocol

from loguru import logger

from .challenge import create_challenge, evaluate_input
from .engine import (
    INITIAL_STATE,
    CancelTimers,
    ChallengeTimeout,
    Effect,
    EngineEvent,
    ExitToMenu,
    Failed,
    GameState,
    GenerateChallenge,
    KeyInput,
    Listening,
    Loading,
    NextChallenge,
    PersistResult,
    PresentChallenge,
    Prompt,
    Reset,
    ResetInput,
    SelectTool,
    SequenceTimeout,
    SessionContext,
    Skip,
    StartSession,
    Success,
    active_challenge,
    transition,
)
from .input_manager import InputManager
from .keys import KeyEvent
from .mastery import apply_result, compute_session_stats
from .models import Challenge, GameSettings, KeyChord, PersistedState, Result, SessionStats, ToolDefinition
from .selector import select_binding
from .storage import merge_settings
from .timers import Clock, Timer, TimerQueue, now_ms

FEEDBACK_DELAY_MS = 800

InputStatus = Literal["idle", "partial", "success", "error"]
StateListener = Callable[[GameState], None]


class PersistenceGateway(Protocol):
    """What the driver needs from a state store."""

    def save(self, state: PersistedState) -> None: ...


class SessionDriver:
    """Single owner of the session context, game state, and pending timers."""

    def __init__(
        self,
        persisted: PersistedState,
        gateway: PersistenceGateway,
        *,
        clock: Clock = now_ms,
        rng: random.Random | None = None,
        feedback_delay_ms: int = FEEDBACK_DELAY_MS,
    ) -> None:
        self.clock = clock
        self.timers = TimerQueue(clock)
        self.gateway = gateway
        self.rng = rng if rng is not None else random.Random()
        self.feedback_delay_ms = feedback_delay_ms
        self.context = SessionContext(persisted=persisted)
        self.state: GameState = INITIAL_STATE
        self.stats = SessionStats(start_time=clock())
        self.input_status: InputStatus = "idle"
        self.last_result: Result | None = None
        self._input: InputManager | None = None
        self._feedback_timer: Timer | None = None
        self._listeners: list[StateListener] = []
        self._queue: deque[tuple[EngineEvent, tuple[KeyChord, ...]]] = deque()
        self._dispatching = False

    @property
    def persisted(self) -> PersistedState:
        return self.context.persisted

    @property
    def settings(self) -> GameSettings:
        return self.context.persisted.settings

    @property
    def challenge(self) -> Challenge | None:
        """Return the challenge awaiting input, if any."""
        return active_challenge(self.state)

    @property
    def buffer(self) -> list[KeyChord]:
        """Return chords captured for the active challenge."""
        return self._input.buffer if self._input is not None else []

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener and return a function that removes it."""
        self._listeners.append(listener)
        return lambda: self._listeners.remove(listener)

    # Front-end operations

    def select_tool(self, tool: ToolDefinition) -> GameState:
        return self.dispatch(SelectTool(tool=tool))

    def start_session(self, tool: ToolDefinition, mode: str, mode_id: str | None = None) -> GameState:
        """Start drilling ``tool`` in ``mode``, remembering the choice."""
        persisted = replace(self.context.persisted, last_tool=tool.id, last_mode=mode)
        self.context = replace(self.context, tool=tool, mode=mode, mode_id=mode_id, persisted=persisted)
        self.gateway.save(persisted)
        self.stats = SessionStats(start_time=self.clock())
        logger.info(f"Starting {mode} session for {tool.id} ({len(tool.bindings)} bindings)")
        return self.dispatch(StartSession(tool=tool, mode=mode, mode_id=mode_id))

    def next_challenge(self) -> GameState:
        return self.dispatch(NextChallenge())

    def skip(self) -> GameState:
        return self.dispatch(Skip())

    def exit_to_menu(self) -> GameState:
        return self.dispatch(ExitToMenu())

    def reset(self) -> GameState:
        return self.dispatch(Reset())

    def update_settings(self, **changes: Any) -> GameSettings:
        """Merge setting changes into the owned snapshot and save it."""
        merged = merge_settings({**asdict(self.settings), **changes}, base=self.settings)
        persisted = replace(self.context.persisted, settings=merged)
        self.context = replace(self.context, persisted=persisted)
        self.gateway.save(persisted)
        if self._input is not None:
            self._input.timeout_ms = merged.sequence_timeout
        return merged

    def handle_key(self, event: KeyEvent) -> KeyChord | None:
        """Feed one raw key-down event; return the captured chord, if any."""
        self.poll()
        if self._input is None:
            return None
        return self._input.handle_key_down(event)

    def poll(self, now: int | None = None) -> int:
        """Run every timer that has come due."""
        return self.timers.run_due(now)

    def has_pending_feedback(self) -> bool:
        """Return whether a wrong chord is waiting out its settle delay."""
        return self._feedback_timer is not None and self._feedback_timer.active

    # Event processing

    def dispatch(self, event: EngineEvent, buffer: tuple[KeyChord, ...] = ()) -> GameState:
        """Queue an event and process the queue unless already processing."""
        self._queue.append((event, buffer))
        if self._dispatching:
            return self.state
        self._dispatching = True
        try:
            while self._queue:
                next_event, next_buffer = self._queue.popleft()
                self._process(next_event, next_buffer)
        finally:
            self._dispatching = False
        return self.state

    def _process(self, event: EngineEvent, buffer: tuple[KeyChord, ...]) -> None:
        previous = self.state
        context = replace(self.context, buffer=buffer, now=self.clock())
        outcome = transition(previous, event, context)

        # Effects run before the new state is published.
        for effect in outcome.effects:
            self._execute(effect)

        self.state = outcome.state
        if outcome.state is not previous:
            logger.debug(f"{type(previous).__name__} --{type(event).__name__}--> {type(outcome.state).__name__}")
        if isinstance(event, ExitToMenu | Reset):
            self.context = replace(self.context, tool=None, mode_id=None)
        self._sync_input()
        self._orchestrate(previous, outcome.state)
        for listener in list(self._listeners):
            listener(self.state)

    def _execute(self, effect: Effect) -> None:
        if isinstance(effect, PersistResult):
            persisted = apply_result(self.context.persisted, effect.result, self.clock())
            self.context = replace(self.context, persisted=persisted)
            self.gateway.save(persisted)
            self.stats = compute_session_stats(self.stats, effect.result)
            self.last_result = effect.result
            self.input_status = "success" if effect.result.success else "idle"
        elif isinstance(effect, CancelTimers):
            if effect.challenge_id is None:
                self.timers.cancel_all()
            else:
                self.timers.cancel_tagged(effect.challenge_id)
            self._feedback_timer = None
        elif isinstance(effect, ResetInput):
            if self._input is not None:
                self._input.reset_buffer()
            self._feedback_timer = None
            if self.input_status != "success":
                self.input_status = "idle"
        elif isinstance(effect, GenerateChallenge):
            self._generate(effect)

    def _generate(self, effect: GenerateChallenge) -> None:
        binding = select_binding(
            effect.tool,
            self.context.persisted.mastery,
            effect.mode,
            effect.mode_id,
            now=self.clock(),
            rng=self.rng,
        )
        challenge = create_challenge(binding, effect.mode, self.settings, self.clock(), rng=self.rng)
        self.input_status = "idle"
        self._queue.append((PresentChallenge(challenge=challenge), ()))

    def _sync_input(self) -> None:
        """Keep exactly one input manager, scoped to the active challenge."""
        challenge = active_challenge(self.state)
        if self._input is not None and (challenge is None or self._input.scope != challenge.id):
            self._input.destroy()
            self._input = None
        if challenge is not None and self._input is None:
            challenge_id = challenge.id
            self._input = InputManager(
                on_input=self._on_chord,
                timers=self.timers,
                timeout_ms=self.settings.sequence_timeout,
                on_timeout=lambda: self._on_sequence_timeout(challenge_id),
                scope=challenge_id,
            )

    def _orchestrate(self, previous: GameState, current: GameState) -> None:
        """Schedule mode-dependent follow-ups for a freshly entered state."""
        if isinstance(previous, Loading) and isinstance(current, Prompt):
            timeout = self.settings.challenge_timeout
            if timeout:
                challenge_id = current.challenge.id
                self.timers.schedule(
                    timeout,
                    lambda: self._fire(challenge_id, ChallengeTimeout()),
                    tag=challenge_id,
                )
            return

        if self.context.mode != "scenario" or current is previous:
            return
        if isinstance(current, Success) or (isinstance(current, Failed) and current.reason.type == "wrong"):
            challenge_id = _round_id(current)
            self.timers.schedule(
                self.feedback_delay_ms,
                lambda: self._fire(challenge_id, NextChallenge()),
                tag=challenge_id,
            )

    # Timer and input callbacks

    def _on_chord(self, chord: KeyChord, buffer: list[KeyChord]) -> None:
        challenge = active_challenge(self.state)
        if challenge is None:
            return
        self.timers.cancel(self._feedback_timer)
        self._feedback_timer = None
        prior = tuple(buffer[:-1])

        if evaluate_input(challenge, buffer) != "none":
            self.input_status = "partial"
            self.dispatch(KeyInput(chord=chord), prior)
            return

        # A wrong chord is only committed once the settle delay passes untouched.
        self.input_status = "error"
        challenge_id = challenge.id
        self._feedback_timer = self.timers.schedule(
            self.feedback_delay_ms,
            lambda: self._commit_wrong(challenge_id, chord, prior),
            tag=challenge_id,
        )
        for listener in list(self._listeners):
            listener(self.state)

    def _commit_wrong(self, challenge_id: str, chord: KeyChord, prior: tuple[KeyChord, ...]) -> None:
        self._feedback_timer = None
        self._fire(challenge_id, KeyInput(chord=chord), prior)

    def _on_sequence_timeout(self, challenge_id: str) -> None:
        self._fire(challenge_id, SequenceTimeout())

    def _fire(self, challenge_id: str, event: EngineEvent, buffer: tuple[KeyChord, ...] = ()) -> None:
        """Dispatch a timer's event unless its challenge has been superseded."""
        if _round_id(self.state) != challenge_id:
            logger.debug(f"Discarding stale {type(event).__name__} for challenge {challenge_id}")
            return
        if isinstance(event, ChallengeTimeout) and self._input is not None:
            buffer = tuple(self._input.buffer)
        self.dispatch(event, buffer)


def _round_id(state: GameState) -> str | None:
    """Return the id of the challenge a state belongs to."""
    if isinstance(state, Prompt | Listening | Failed):
        return state.challenge.id
    if isinstance(state, Success):
        return state.result.challenge_id
    return None
