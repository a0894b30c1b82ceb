"""Core domain models for key binding drills."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

GameMode = Literal["reflex", "scenario"]
MatchType = Literal["none", "partial", "complete"]

MODIFIERS: tuple[str, ...] = ("alt", "ctrl", "meta", "shift")
GAME_MODES: tuple[str, ...] = ("reflex", "scenario")


@dataclass(frozen=True)
class KeyChord:
    """Modifiers held together with exactly one base key."""

    key: str
    modifiers: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        # Modifier order never matters, so store one canonical order.
        object.__setattr__(self, "modifiers", tuple(sorted(set(self.modifiers))))


@dataclass(frozen=True)
class ContextRule:
    """Scenario precondition used only for prompt flavour."""

    type: str
    value: str | None = None
    min: int | None = None


@dataclass(frozen=True)
class Binding:
    """One named action and the chord sequence that triggers it."""

    id: str
    tool: str
    action: str
    sequence: tuple[KeyChord, ...]
    category: str
    difficulty: int
    mode: str | None = None
    description: str = ""
    context: tuple[ContextRule, ...] = ()


@dataclass(frozen=True)
class ModeDefinition:
    """Editing mode offered by a tool (vim normal/insert/...)."""

    id: str
    name: str
    default: bool = False


@dataclass(frozen=True)
class DifficultyCurve:
    """Descriptive warm-up and mastery counts for a tool."""

    warmup: int
    mastery: int


@dataclass(frozen=True)
class ToolDefinition:
    """Tool with its bindings."""

    id: str
    name: str
    bindings: tuple[Binding, ...]
    modes: tuple[ModeDefinition, ...] = ()
    difficulty_curve: DifficultyCurve = DifficultyCurve(warmup=10, mastery=50)


@dataclass(frozen=True)
class MasteryRecord:
    """Historical performance on one binding."""

    binding_id: str
    attempts: int = 0
    successes: int = 0
    avg_reaction_ms: float = 0.0
    last_seen: int = 0


@dataclass(frozen=True)
class GameSettings:
    """User-tunable drill settings."""

    assist_mode: bool = False
    reduced_motion: bool = False
    sequence_timeout: int = 1500
    challenge_timeout: int | None = None


@dataclass(frozen=True)
class PersistedState:
    """Snapshot owned by the state store."""

    version: int
    mastery: dict[str, MasteryRecord] = field(default_factory=dict)
    settings: GameSettings = GameSettings()
    last_tool: str | None = None
    last_mode: str | None = None


@dataclass(frozen=True)
class ChallengeUIHints:
    """What the front end should reveal for a challenge."""

    show_binding: bool
    show_hint: bool
    instruction_text: str | None = None


@dataclass(frozen=True)
class Challenge:
    """One drill round."""

    id: str
    binding: Binding
    prompt: str
    start_timestamp: int
    ui_hints: ChallengeUIHints
    context: dict[str, Any] | None = None


@dataclass(frozen=True)
class Result:
    """Outcome of one completed attempt."""

    challenge_id: str
    binding_id: str
    reaction_ms: int
    success: bool
    input_sequence: tuple[KeyChord, ...]


@dataclass(frozen=True)
class FailureReason:
    """Why a challenge ended without success."""

    type: Literal["timeout", "reset", "skipped", "wrong"]
    user_input: tuple[KeyChord, ...] = ()


@dataclass(frozen=True)
class InputBuffer:
    """Chords captured so far for the active challenge."""

    sequence: tuple[KeyChord, ...]
    last_input_time: int


@dataclass(frozen=True)
class SessionStats:
    """Running totals for the current drill session."""

    start_time: int
    total_attempts: int = 0
    correct_attempts: int = 0
    avg_reaction_ms: float = 0.0
