"""Weighted choice of the next binding to drill."""

from __future__ import annotations

import random
from collections.abc import Mapping
from dataclasses import dataclass

from .mastery import get_mastery_score
from .models import Binding, MasteryRecord, ToolDefinition

DAY_MS = 24 * 60 * 60 * 1000
TOP_K = 5


@dataclass(frozen=True)
class ScoredBinding:
    """Binding with its selection score breakdown."""

    binding: Binding
    score: float
    difficulty_weight: float
    weakness_weight: float
    recency_weight: float


def candidate_pool(tool: ToolDefinition, current_mode_id: str | None = None) -> list[Binding]:
    """Return bindings usable in the current mode, or every binding if none are."""
    candidates = list(tool.bindings)
    if current_mode_id and tool.modes:
        candidates = [binding for binding in candidates if not binding.mode or binding.mode == current_mode_id]
    if not candidates:
        candidates = list(tool.bindings)
    return candidates


def score_candidates(
    candidates: list[Binding], mastery: Mapping[str, MasteryRecord], now: int
) -> list[ScoredBinding]:
    """Score candidates and return them best first.

    Weak and stale bindings rank highest; easy bindings get a small bonus.
    """
    scored: list[ScoredBinding] = []
    for binding in candidates:
        record = mastery.get(binding.id)
        difficulty_weight = 1 / max(1, binding.difficulty)
        weakness_weight = 1 - get_mastery_score(record, now)
        if record is not None and record.attempts > 0:
            recency_weight = min(1.0, max(0, now - record.last_seen) / DAY_MS)
        else:
            recency_weight = 1.0
        score = difficulty_weight * 0.2 + weakness_weight * 0.5 + recency_weight * 0.3
        scored.append(
            ScoredBinding(
                binding=binding,
                score=score,
                difficulty_weight=difficulty_weight,
                weakness_weight=weakness_weight,
                recency_weight=recency_weight,
            )
        )
    # Stable sort keeps table order among equal scores.
    scored.sort(key=lambda item: item.score, reverse=True)
    return scored


def select_binding(
    tool: ToolDefinition,
    mastery: Mapping[str, MasteryRecord],
    mode: str = "reflex",
    current_mode_id: str | None = None,
    *,
    now: int,
    rng: random.Random | None = None,
) -> Binding:
    """Pick uniformly among the top-scoring candidates.

    ``mode`` is the drill mode; it does not change the weighting.
    """
    if not tool.bindings:
        raise ValueError(f"Tool '{tool.id}' has no bindings to drill.")
    chooser = rng if rng is not None else random
    scored = score_candidates(candidate_pool(tool, current_mode_id), mastery, now)
    top = scored[: min(TOP_K, len(scored))]
    return chooser.choice(top).binding


def bindings_by_category(tool: ToolDefinition) -> dict[str, list[Binding]]:
    """Group a tool's bindings by category, keeping table order."""
    grouped: dict[str, list[Binding]] = {}
    for binding in tool.bindings:
        grouped.setdefault(binding.category, []).append(binding)
    return grouped


def bindings_by_difficulty(tool: ToolDefinition, difficulty: int) -> list[Binding]:
    """Return bindings of one difficulty level."""
    return [binding for binding in tool.bindings if binding.difficulty == difficulty]
