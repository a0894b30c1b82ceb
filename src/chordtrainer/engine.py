"""Session state machine as a pure reducer.

``transition(state, event, context)`` returns the next state and the effects an
outer driver must execute (persist a result, generate a challenge, cancel
timers, reset the input buffer). Any event a state does not handle returns that
state unchanged with no effects.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from .challenge import create_result, evaluate_input
from .models import (
    Challenge,
    FailureReason,
    InputBuffer,
    KeyChord,
    PersistedState,
    Result,
    ToolDefinition,
)

# States


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Loading:
    pass


@dataclass(frozen=True)
class ToolSelect:
    pass


@dataclass(frozen=True)
class ModeSelect:
    tool: ToolDefinition


@dataclass(frozen=True)
class Prompt:
    challenge: Challenge


@dataclass(frozen=True)
class Listening:
    challenge: Challenge
    buffer: InputBuffer


@dataclass(frozen=True)
class Success:
    result: Result


@dataclass(frozen=True)
class Failed:
    challenge: Challenge
    reason: FailureReason


GameState = Idle | Loading | ToolSelect | ModeSelect | Prompt | Listening | Success | Failed

INITIAL_STATE: GameState = ToolSelect()

# Events


@dataclass(frozen=True)
class SelectTool:
    tool: ToolDefinition


@dataclass(frozen=True)
class StartSession:
    tool: ToolDefinition
    mode: str
    mode_id: str | None = None


@dataclass(frozen=True)
class PresentChallenge:
    challenge: Challenge


@dataclass(frozen=True)
class KeyInput:
    chord: KeyChord


@dataclass(frozen=True)
class SequenceTimeout:
    pass


@dataclass(frozen=True)
class ChallengeTimeout:
    pass


@dataclass(frozen=True)
class Skip:
    pass


@dataclass(frozen=True)
class NextChallenge:
    pass


@dataclass(frozen=True)
class ExitToMenu:
    pass


@dataclass(frozen=True)
class Reset:
    pass


EngineEvent = (
    SelectTool
    | StartSession
    | PresentChallenge
    | KeyInput
    | SequenceTimeout
    | ChallengeTimeout
    | Skip
    | NextChallenge
    | ExitToMenu
    | Reset
)

# Effects


@dataclass(frozen=True)
class PersistResult:
    result: Result


@dataclass(frozen=True)
class GenerateChallenge:
    tool: ToolDefinition
    mode: str
    mode_id: str | None = None


@dataclass(frozen=True)
class CancelTimers:
    """Cancel deferred events; ``challenge_id=None`` cancels all of them."""

    challenge_id: str | None = None


@dataclass(frozen=True)
class ResetInput:
    pass


Effect = PersistResult | GenerateChallenge | CancelTimers | ResetInput


@dataclass(frozen=True)
class SessionContext:
    """Single-owner session data threaded through every reducer call.

    ``buffer`` holds the chords captured before the event being dispatched and
    ``now`` is the event time in epoch milliseconds.
    """

    persisted: PersistedState
    tool: ToolDefinition | None = None
    mode: str = "reflex"
    mode_id: str | None = None
    buffer: tuple[KeyChord, ...] = ()
    now: int = 0


@dataclass(frozen=True)
class Transition:
    state: GameState
    effects: list[Effect] = field(default_factory=list)


def active_challenge(state: GameState) -> Challenge | None:
    """Return the challenge awaiting input, if any."""
    if isinstance(state, Prompt | Listening):
        return state.challenge
    return None


def transition(state: GameState, event: EngineEvent, context: SessionContext) -> Transition:
    """Apply one event."""
    if isinstance(event, SelectTool):
        if isinstance(state, ToolSelect | Idle | ModeSelect):
            return Transition(ModeSelect(tool=event.tool))
        return Transition(state)

    if isinstance(event, StartSession):
        return Transition(
            Loading(),
            [CancelTimers(), ResetInput(), GenerateChallenge(tool=event.tool, mode=event.mode, mode_id=event.mode_id)],
        )

    if isinstance(event, PresentChallenge):
        if isinstance(state, Loading):
            return Transition(Prompt(challenge=event.challenge))
        return Transition(state)

    if isinstance(event, KeyInput):
        return _key_input(state, event.chord, context)

    if isinstance(event, Skip):
        challenge = active_challenge(state)
        if challenge is None:
            return Transition(state)
        result = create_result(challenge, (), False, context.now)
        return Transition(
            Failed(challenge=challenge, reason=FailureReason(type="skipped")),
            [PersistResult(result), CancelTimers(challenge.id), ResetInput()],
        )

    if isinstance(event, SequenceTimeout):
        if isinstance(state, Listening):
            # Same challenge object, so the reaction clock keeps running.
            return Transition(Prompt(challenge=state.challenge))
        return Transition(state)

    if isinstance(event, ChallengeTimeout):
        challenge = active_challenge(state)
        if challenge is None:
            return Transition(state)
        result = create_result(challenge, context.buffer, False, context.now)
        return Transition(
            Failed(challenge=challenge, reason=FailureReason(type="timeout")),
            [PersistResult(result), CancelTimers(challenge.id), ResetInput()],
        )

    if isinstance(event, NextChallenge):
        if context.tool is None:
            return Transition(state)
        return Transition(
            Loading(),
            [
                CancelTimers(),
                ResetInput(),
                GenerateChallenge(tool=context.tool, mode=context.mode, mode_id=context.mode_id),
            ],
        )

    if isinstance(event, ExitToMenu):
        return Transition(ToolSelect(), [CancelTimers(), ResetInput()])

    if isinstance(event, Reset):
        return Transition(Idle(), [CancelTimers(), ResetInput()])

    return Transition(state)


def _key_input(state: GameState, chord: KeyChord, context: SessionContext) -> Transition:
    challenge = active_challenge(state)
    if challenge is None:
        return Transition(state)

    buffer = (*context.buffer, chord)
    match = evaluate_input(challenge, buffer)

    if match == "partial":
        return Transition(
            Listening(challenge=challenge, buffer=InputBuffer(sequence=buffer, last_input_time=context.now))
        )

    success = match == "complete"
    result = create_result(challenge, buffer, success, context.now)
    effects: list[Effect] = [PersistResult(result), CancelTimers(challenge.id), ResetInput()]
    if success:
        return Transition(Success(result=result), effects)
    return Transition(Failed(challenge=challenge, reason=FailureReason(type="wrong", user_input=buffer)), effects)
