import random

from conftest import make_binding

from chordtrainer.challenge import (
    ASSIST_INSTRUCTION,
    FALLBACK_PHRASE,
    SCENARIO_INSTRUCTION,
    SCENARIO_PHRASES,
    compute_ui_hints,
    create_challenge,
    create_result,
    evaluate_context,
    evaluate_input,
    scenario_context,
)
from chordtrainer.keys import parse_key_sequence
from chordtrainer.models import ContextRule, GameSettings

NOW = 1_700_000_000_000


def test_ui_hints_by_mode_and_assist() -> None:
    reflex = compute_ui_hints("reflex", assist_mode=False)
    assert (reflex.show_binding, reflex.show_hint, reflex.instruction_text) == (False, False, None)

    assisted = compute_ui_hints("reflex", assist_mode=True)
    assert (assisted.show_binding, assisted.show_hint, assisted.instruction_text) == (True, True, ASSIST_INSTRUCTION)

    scenario = compute_ui_hints("scenario", assist_mode=False)
    assert (scenario.show_binding, scenario.show_hint) == (True, False)
    assert scenario.instruction_text == SCENARIO_INSTRUCTION


def test_reflex_challenge_prompts_with_action() -> None:
    binding = make_binding("quick-open", "cmd+p", action="Quick open")
    challenge = create_challenge(binding, "reflex", GameSettings(), NOW)
    assert challenge.prompt == "Quick open"
    assert challenge.start_timestamp == NOW
    assert challenge.context is None
    assert len(challenge.id) == 8


def test_scenario_challenge_uses_category_phrase_and_context() -> None:
    binding = make_binding(
        "line-end",
        "$",
        action="Go to end of line",
        category="motion",
        context=(ContextRule(type="mode", value="normal"), ContextRule(type="cursor", value="start")),
    )
    challenge = create_challenge(binding, "scenario", timestamp=NOW, rng=random.Random(3))
    phrase, action = challenge.prompt.split(": ", 1)
    assert phrase in SCENARIO_PHRASES["motion"]
    assert action == "Go to end of line"
    assert challenge.context == {"mode": "normal", "cursor_position": "start"}


def test_scenario_prompt_falls_back_for_unknown_category() -> None:
    binding = make_binding("x", "x", action="Do it", category="window")
    challenge = create_challenge(binding, "scenario", timestamp=NOW)
    assert challenge.prompt == f"{FALLBACK_PHRASE}: Do it"


def test_each_challenge_gets_a_fresh_id() -> None:
    binding = make_binding("x", "x")
    ids = {create_challenge(binding, "reflex", timestamp=NOW).id for _ in range(20)}
    assert len(ids) == 20
    assert create_challenge(binding, "reflex", challenge_id="fixed").id == "fixed"


def test_evaluate_input_and_result_timing() -> None:
    binding = make_binding("top", "g g")
    challenge = create_challenge(binding, "reflex", timestamp=NOW, challenge_id="c1")
    typed = parse_key_sequence("g g")
    assert typed is not None
    assert evaluate_input(challenge, typed[:1]) == "partial"
    assert evaluate_input(challenge, typed) == "complete"

    result = create_result(challenge, typed, True, NOW + 1234)
    assert result.challenge_id == "c1"
    assert result.binding_id == "top"
    assert result.reaction_ms == 1234
    assert result.input_sequence == typed
    assert create_result(challenge, (), False, NOW - 50).reaction_ms == 0


def test_scenario_context_and_rule_evaluation() -> None:
    rules = (
        ContextRule(type="selection", value="active"),
        ContextRule(type="windows", min=2),
        ContextRule(type="fileState", value="dirty"),
    )
    context = scenario_context(rules)
    assert context == {"has_selection": True, "window_count": 2, "is_dirty": True}

    binding = make_binding("x", "x", context=rules)
    assert evaluate_context(binding, context) is True
    assert evaluate_context(binding, {**context, "window_count": 1}) is False
    assert evaluate_context(binding, {**context, "is_dirty": False}) is False
