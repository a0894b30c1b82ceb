"""Ordered-prefix matching of captured chords against binding sequences."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from .models import Binding, KeyChord, MatchType, ToolDefinition


@dataclass(frozen=True)
class MatchResult:
    """Classification plus the bindings still reachable from the buffer."""

    type: MatchType
    binding_id: str | None = None
    possible_bindings: tuple[str, ...] = ()


def chords_equal(a: KeyChord, b: KeyChord) -> bool:
    """Compare base keys and modifier sets, ignoring modifier order."""
    if a.key != b.key:
        return False
    return sorted(set(a.modifiers)) == sorted(set(b.modifiers))


def sequence_matches(input_sequence: Sequence[KeyChord], target: Sequence[KeyChord]) -> MatchType:
    """Classify the input as no match, a strict prefix, or the whole target."""
    if not input_sequence:
        return "none"
    if len(input_sequence) > len(target):
        return "none"
    for given, expected in zip(input_sequence, target):
        if not chords_equal(given, expected):
            return "none"
    return "complete" if len(input_sequence) == len(target) else "partial"


def match_with_ambiguity(
    input_sequence: Sequence[KeyChord], binding: Binding, all_bindings: Sequence[Binding]
) -> MatchResult:
    """Match against one binding, listing every binding a partial buffer could still become."""
    direct = sequence_matches(input_sequence, binding.sequence)
    if direct == "complete":
        return MatchResult(type="complete", binding_id=binding.id)
    if direct == "none":
        return MatchResult(type="none")
    possible = tuple(
        other.id for other in all_bindings if sequence_matches(input_sequence, other.sequence) != "none"
    )
    return MatchResult(type="partial", possible_bindings=possible)


def find_overlapping_bindings(tool: ToolDefinition, binding: Binding) -> list[Binding]:
    """Return other bindings of the tool sharing a leading chord prefix with this one."""
    overlapping: list[Binding] = []
    for other in tool.bindings:
        if other.id == binding.id:
            continue
        shortest = min(len(other.sequence), len(binding.sequence))
        if any(sequence_matches(binding.sequence[: index + 1], other.sequence) != "none" for index in range(shortest)):
            overlapping.append(other)
    return overlapping
