import json
from pathlib import Path

from loguru import logger

from chordtrainer import content_loader
from chordtrainer.content_loader import load_tools_from_dir


def _write(root: Path, name: str, payload: object) -> None:
    root.mkdir(parents=True, exist_ok=True)
    (root / name).write_text(json.dumps(payload), encoding="utf-8")


def test_invalid_bindings_are_dropped_with_warning(tmp_path: Path) -> None:
    root = tmp_path / "loader-invalid"
    payload = {
        "id": "t",
        "name": "T",
        "modes": [{"id": "normal", "name": "Normal"}],
        "bindings": [
            {"id": "ok", "action": "Fine", "keys": "ctrl+s"},
            {"id": "no-keys", "action": "Empty", "keys": ""},
            {"id": "bad-key", "action": "Unknown key", "keys": "ctrl+hyperspace"},
            {"id": "bad-difficulty", "action": "Too hard", "keys": "x", "difficulty": 9},
            {"id": "bad-mode", "action": "Wrong mode", "keys": "x", "mode": "insert"},
            {"action": "No id", "keys": "x"},
        ],
    }
    _write(root, "t.json", payload)
    messages: list[str] = []
    handler_id = logger.add(lambda message: messages.append(str(message)), level="WARNING")
    try:
        tools = load_tools_from_dir(root)
    finally:
        logger.remove(handler_id)

    assert [binding.id for binding in tools["t"].bindings] == ["ok"]
    assert len(messages) == 5


def test_tool_without_valid_bindings_raises_value_error(tmp_path: Path) -> None:
    root = tmp_path / "loader-empty"
    _write(root, "t.json", {"id": "t", "name": "T", "bindings": [{"id": "x", "action": "X", "keys": ""}]})

    try:
        load_tools_from_dir(root)
        raise AssertionError("Expected ValueError for tool without bindings.")
    except ValueError as exc:
        assert "no valid bindings" in str(exc)


def test_tool_without_id_raises_value_error(tmp_path: Path) -> None:
    root = tmp_path / "loader-no-id"
    _write(root, "t.json", {"name": "T", "bindings": []})

    try:
        load_tools_from_dir(root)
        raise AssertionError("Expected ValueError for tool without id.")
    except ValueError as exc:
        assert "no id" in str(exc)


def test_duplicate_tool_id_in_dir_raises(tmp_path: Path) -> None:
    root = tmp_path / "loader-dup-id"
    binding = {"id": "x", "action": "X", "keys": "x"}
    _write(root, "a.json", {"id": "same", "name": "A", "bindings": [binding]})
    _write(root, "b.json", {"id": "same", "name": "B", "bindings": [binding]})

    try:
        load_tools_from_dir(root)
        raise AssertionError("Expected ValueError for duplicate tool ids.")
    except ValueError as exc:
        assert "Duplicate tool id" in str(exc)


def test_duplicate_binding_ids_get_index_suffix(tmp_path: Path) -> None:
    root = tmp_path / "loader-dup-binding"
    payload = {
        "id": "code",
        "name": "Code",
        "keybindings": [
            {"key": "cmd+k", "command": "editor.action.format"},
            {"key": "cmd+shift+k", "command": "editor.action.format"},
            {"key": "cmd+l", "command": "editor.action.format"},
        ],
    }
    _write(root, "code.json", payload)

    ids = [binding.id for binding in load_tools_from_dir(root)["code"].bindings]
    assert ids == ["code-editor-action-format", "code-editor-action-format-1", "code-editor-action-format-2"]


def test_unknown_context_rules_are_ignored(tmp_path: Path) -> None:
    root = tmp_path / "loader-context"
    payload = {
        "id": "t",
        "name": "T",
        "bindings": [
            {
                "id": "x",
                "action": "X",
                "keys": "x",
                "context": [{"type": "weather", "value": "rain"}, {"type": "selection", "value": "active"}, "junk"],
            }
        ],
    }
    _write(root, "t.json", payload)

    rules = load_tools_from_dir(root)["t"].bindings[0].context
    assert [rule.type for rule in rules] == ["selection"]


def test_load_tools_reads_utf8_bom(tmp_path: Path) -> None:
    root = tmp_path / "loader-bom"
    root.mkdir(parents=True, exist_ok=True)
    payload = {"id": "t", "name": "Tëst", "bindings": [{"id": "x", "action": "X", "keys": "x"}]}
    (root / "t.json").write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8-sig")

    assert load_tools_from_dir(root)["t"].name == "Tëst"


def test_load_tools_uses_content_package(monkeypatch, tmp_path: Path) -> None:
    root = tmp_path / "loader-package"
    _write(root, "only.json", {"id": "only", "name": "Only", "bindings": [{"id": "x", "action": "X", "keys": "x"}]})
    (root / "notes.txt").write_text("ignored", encoding="utf-8")
    monkeypatch.setattr(content_loader.resources, "files", lambda package: root)

    assert list(content_loader.load_tools()) == ["only"]


def test_malformed_modes_raise_value_error(tmp_path: Path) -> None:
    binding = {"id": "x", "action": "X", "keys": "x"}
    cases = {
        "mode-no-id": {"id": "t", "name": "T", "modes": [{"name": "Normal"}], "bindings": [binding]},
        "mode-not-object": {"id": "t", "name": "T", "modes": ["normal"], "bindings": [binding]},
        "modes-not-list": {"id": "t", "name": "T", "modes": {"id": "normal"}, "bindings": [binding]},
    }
    for name, payload in cases.items():
        root = tmp_path / f"loader-{name}"
        _write(root, "t.json", payload)
        try:
            load_tools_from_dir(root)
            raise AssertionError(f"Expected ValueError for {name}.")
        except ValueError as exc:
            assert "mode" in str(exc)


def test_malformed_difficulty_curve_raises_value_error(tmp_path: Path) -> None:
    binding = {"id": "x", "action": "X", "keys": "x"}
    for index, curve in enumerate([[8, 60], "steep", {"warmup": "eight"}, {"mastery": True}]):
        root = tmp_path / f"loader-curve-{index}"
        _write(root, "t.json", {"id": "t", "name": "T", "difficulty_curve": curve, "bindings": [binding]})
        try:
            load_tools_from_dir(root)
            raise AssertionError(f"Expected ValueError for curve {curve!r}.")
        except ValueError as exc:
            assert "difficulty_curve" in str(exc)
