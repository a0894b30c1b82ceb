"""Per-binding mastery statistics and the score derived from them.

Model:
- success rate dominates the score (weight 0.5);
- speed contributes up to 0.3, reaching zero for reactions of 5 seconds or more;
- recency contributes up to 0.2, decaying exponentially with a 7-day constant.
"""

from __future__ import annotations

import math
from dataclasses import replace

from .models import MasteryRecord, PersistedState, Result, SessionStats

SLOW_REACTION_MS = 5000
DECAY_MS = 7 * 24 * 60 * 60 * 1000


def empty_record(binding_id: str) -> MasteryRecord:
    """Return the record of a never-attempted binding."""
    return MasteryRecord(binding_id=binding_id)


def update_mastery(previous: MasteryRecord | None, result: Result, timestamp: int) -> MasteryRecord:
    """Fold one attempt into a binding's record."""
    record = previous if previous is not None else empty_record(result.binding_id)
    attempts = record.attempts + 1
    successes = record.successes + (1 if result.success else 0)
    if result.success:
        avg_reaction_ms = (record.avg_reaction_ms * record.successes + result.reaction_ms) / successes
    else:
        avg_reaction_ms = record.avg_reaction_ms
    return MasteryRecord(
        binding_id=result.binding_id,
        attempts=attempts,
        successes=successes,
        avg_reaction_ms=avg_reaction_ms,
        last_seen=timestamp,
    )


def get_mastery_score(record: MasteryRecord | None, now: int) -> float:
    """Return a ranking score in [0, 1]; 0 for bindings never attempted."""
    if record is None or record.attempts <= 0:
        return 0.0
    success_rate = min(1.0, record.successes / record.attempts)
    speed_factor = max(0.0, 1 - record.avg_reaction_ms / SLOW_REACTION_MS)
    # Clock skew can put last_seen in the future; treat that as "just seen".
    elapsed = max(0, now - record.last_seen)
    decay_factor = math.exp(-elapsed / DECAY_MS)
    score = success_rate * 0.5 + speed_factor * 0.3 + decay_factor * 0.2
    return max(0.0, min(1.0, score))


def apply_result(state: PersistedState, result: Result, timestamp: int) -> PersistedState:
    """Return a new snapshot with the result folded into the mastery table."""
    updated = update_mastery(state.mastery.get(result.binding_id), result, timestamp)
    mastery = dict(state.mastery)
    mastery[result.binding_id] = updated
    return replace(state, mastery=mastery)


def compute_session_stats(previous: SessionStats, result: Result) -> SessionStats:
    """Fold one result into the session totals."""
    total_attempts = previous.total_attempts + 1
    correct_attempts = previous.correct_attempts + (1 if result.success else 0)
    if result.success:
        avg_reaction_ms = (previous.avg_reaction_ms * previous.correct_attempts + result.reaction_ms) / correct_attempts
    else:
        avg_reaction_ms = previous.avg_reaction_ms
    return replace(
        previous,
        total_attempts=total_attempts,
        correct_attempts=correct_attempts,
        avg_reaction_ms=avg_reaction_ms,
    )
