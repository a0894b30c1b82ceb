from conftest import make_binding

from chordtrainer.keys import parse_key_sequence
from chordtrainer.matcher import chords_equal, find_overlapping_bindings, match_with_ambiguity, sequence_matches
from chordtrainer.models import KeyChord, ToolDefinition


def _seq(text: str) -> tuple[KeyChord, ...]:
    sequence = parse_key_sequence(text)
    assert sequence is not None
    return sequence


def test_chords_equal_ignores_modifier_order() -> None:
    a = KeyChord(key="p", modifiers=("meta", "shift"))
    b = KeyChord(key="p", modifiers=("shift", "meta"))
    assert chords_equal(a, b)
    assert not chords_equal(a, KeyChord(key="p", modifiers=("meta",)))
    assert not chords_equal(a, KeyChord(key="o", modifiers=("meta", "shift")))


def test_sequence_matches_classification() -> None:
    target = _seq("ctrl+w v")
    assert sequence_matches((), target) == "none"
    assert sequence_matches(_seq("ctrl+w"), target) == "partial"
    assert sequence_matches(_seq("ctrl+w v"), target) == "complete"
    assert sequence_matches(_seq("ctrl+w v v"), target) == "none"
    assert sequence_matches(_seq("v"), target) == "none"


def test_sequence_matches_is_prefix_sensitive() -> None:
    target = _seq("g g")
    assert sequence_matches(_seq("g"), target) == "partial"
    assert sequence_matches(_seq("shift+g"), target) == "none"
    assert sequence_matches(_seq("g shift+g"), target) == "none"


def test_match_with_ambiguity_lists_reachable_bindings() -> None:
    top = make_binding("top", "g g")
    prefix = make_binding("prefix", "g t")
    other = make_binding("other", "d d")
    bindings = [top, prefix, other]

    partial = match_with_ambiguity(_seq("g"), top, bindings)
    assert partial.type == "partial"
    assert partial.possible_bindings == ("top", "prefix")

    complete = match_with_ambiguity(_seq("g g"), top, bindings)
    assert complete.type == "complete"
    assert complete.binding_id == "top"

    assert match_with_ambiguity(_seq("d"), top, bindings).type == "none"


def test_find_overlapping_bindings() -> None:
    split = make_binding("split", "ctrl+w v")
    next_window = make_binding("next-window", "ctrl+w w")
    delete_word = make_binding("delete-word", "ctrl+w")
    undo = make_binding("undo", "u")
    tool = ToolDefinition(id="demo", name="Demo", bindings=(split, next_window, delete_word, undo))

    overlapping = [binding.id for binding in find_overlapping_bindings(tool, split)]
    assert overlapping == ["next-window", "delete-word"]
    assert find_overlapping_bindings(tool, undo) == []
