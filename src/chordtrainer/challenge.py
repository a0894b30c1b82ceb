"""Build presentable challenges and results from bindings."""

from __future__ import annotations

import random
import uuid
from collections.abc import Sequence
from typing import Any

from .matcher import sequence_matches
from .models import (
    Binding,
    Challenge,
    ChallengeUIHints,
    ContextRule,
    GameSettings,
    KeyChord,
    MatchType,
    Result,
)

SCENARIO_PHRASES: dict[str, tuple[str, ...]] = {
    "motion": (
        "Move to the target position",
        "Navigate to the specified location",
        "Reach the destination",
    ),
    "edit": (
        "Modify the text as needed",
        "Apply the required change",
        "Transform the content",
    ),
    "search": (
        "Locate the pattern",
        "Find the target",
        "Search for the match",
    ),
    "mode": (
        "Switch to the appropriate mode",
        "Enter the required state",
        "Change the editing mode",
    ),
    "file": (
        "Perform the file operation",
        "Execute the file action",
    ),
    "navigation": (
        "Navigate to the target",
        "Jump to the location",
    ),
    "view": (
        "Adjust the view",
        "Change the display",
    ),
}
FALLBACK_PHRASE = "Execute the action"

SCENARIO_INSTRUCTION = "keybinding to learn"
ASSIST_INSTRUCTION = "hint"


def new_challenge_id() -> str:
    return uuid.uuid4().hex[:8]


def compute_ui_hints(mode: str, assist_mode: bool) -> ChallengeUIHints:
    """Decide what to reveal for a mode and assist setting."""
    if mode == "scenario":
        instruction: str | None = SCENARIO_INSTRUCTION
    elif assist_mode:
        instruction = ASSIST_INSTRUCTION
    else:
        instruction = None
    return ChallengeUIHints(
        show_binding=mode == "scenario" or assist_mode,
        show_hint=assist_mode and mode == "reflex",
        instruction_text=instruction,
    )


def scenario_prompt(binding: Binding, rng: random.Random | None = None) -> str:
    """Return ``"<scenario phrase>: <action>"`` for the binding's category."""
    chooser = rng if rng is not None else random
    phrases = SCENARIO_PHRASES.get(binding.category, (FALLBACK_PHRASE,))
    return f"{chooser.choice(phrases)}: {binding.action}"


def scenario_context(rules: Sequence[ContextRule]) -> dict[str, Any]:
    """Fold context rules into a flat display map."""
    context: dict[str, Any] = {}
    for rule in rules:
        if rule.type == "mode":
            context["mode"] = rule.value
        elif rule.type == "cursor":
            context["cursor_position"] = rule.value
        elif rule.type == "selection":
            context["has_selection"] = rule.value == "active"
        elif rule.type == "windows":
            context["window_count"] = rule.min
        elif rule.type == "fileState":
            context["is_dirty"] = rule.value == "dirty"
    return context


def create_challenge(
    binding: Binding,
    mode: str,
    settings: GameSettings | None = None,
    timestamp: int = 0,
    *,
    rng: random.Random | None = None,
    challenge_id: str | None = None,
) -> Challenge:
    """Create a fresh challenge for one round."""
    settings = settings if settings is not None else GameSettings()
    if mode == "scenario":
        prompt = scenario_prompt(binding, rng)
        context: dict[str, Any] | None = scenario_context(binding.context)
    else:
        prompt = binding.action
        context = None
    return Challenge(
        id=challenge_id or new_challenge_id(),
        binding=binding,
        prompt=prompt,
        start_timestamp=timestamp,
        ui_hints=compute_ui_hints(mode, settings.assist_mode),
        context=context,
    )


def evaluate_input(challenge: Challenge, input_sequence: Sequence[KeyChord]) -> MatchType:
    """Classify captured chords against the challenge's binding."""
    return sequence_matches(input_sequence, challenge.binding.sequence)


def create_result(
    challenge: Challenge, input_sequence: Sequence[KeyChord], success: bool, timestamp: int
) -> Result:
    """Create a result; reaction time runs from the challenge's start."""
    return Result(
        challenge_id=challenge.id,
        binding_id=challenge.binding.id,
        reaction_ms=max(0, timestamp - challenge.start_timestamp),
        success=success,
        input_sequence=tuple(input_sequence),
    )


def evaluate_context(binding: Binding, context: dict[str, Any]) -> bool:
    """Return whether a display context satisfies every rule of a binding."""
    return all(_rule_holds(rule, context) for rule in binding.context)


def _rule_holds(rule: ContextRule, context: dict[str, Any]) -> bool:
    if rule.type == "mode":
        return context.get("mode") == rule.value
    if rule.type == "cursor":
        return context.get("cursor_position") == rule.value
    if rule.type == "selection":
        active = bool(context.get("has_selection"))
        return active if rule.value == "active" else not active
    if rule.type == "windows":
        count = context.get("window_count")
        return isinstance(count, int) and count >= (rule.min or 0)
    if rule.type == "fileState":
        dirty = bool(context.get("is_dirty"))
        return dirty if rule.value == "dirty" else not dirty
    return True
