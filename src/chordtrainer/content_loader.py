"""Load declarative tool binding tables from bundled JSON resources."""

from __future__ import annotations

import json
import re
from importlib import resources
from pathlib import Path
from typing import Any

from loguru import logger

from .keys import parse_chord, parse_key_sequence
from .models import Binding, ContextRule, DifficultyCurve, KeyChord, ModeDefinition, ToolDefinition

CONTENT_PACKAGE = "chordtrainer.content.tools"
CONTEXT_RULE_TYPES = {"mode", "cursor", "selection", "windows", "fileState"}

# Ordered keyword table used to categorize raw editor commands.
_COMMAND_CATEGORIES: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("navigation", ("cursor", "navigate", "goto", "scroll")),
    ("search", ("find", "search", "replace")),
    (
        "edit",
        (
            "delete",
            "copy",
            "cut",
            "paste",
            "undo",
            "redo",
            "comment",
            "indent",
            "format",
            "fold",
            "unfold",
            "Line",
            "insert",
        ),
    ),
    ("debug", ("debug", "breakpoint")),
    ("terminal", ("terminal",)),
    ("editor", ("editor", "split", "close", "focus")),
    ("view", ("view", "sidebar", "panel", "zoom", "toggle")),
    ("file", ("file", "save", "open")),
    ("intellisense", ("suggest", "snippet", "trigger")),
    ("refactor", ("refactor", "rename", "quickFix")),
    ("ai", ("composer", "chat", "ai")),
)


def _sequence_from_raw(raw: Any) -> tuple[KeyChord, ...] | None:
    """Parse ``"ctrl+w v"`` strings or lists of chord strings/objects."""
    if isinstance(raw, str):
        return parse_key_sequence(raw)
    if not isinstance(raw, list):
        return None
    chords: list[KeyChord] = []
    for item in raw:
        if isinstance(item, str):
            chord = parse_chord(item)
        elif isinstance(item, dict):
            modifiers = [str(value) for value in item.get("modifiers", [])]
            chord = parse_chord("+".join([*modifiers, str(item.get("key", ""))]))
        else:
            chord = None
        if chord is None:
            return None
        chords.append(chord)
    return tuple(chords)


def _context_from_raw(raw: Any) -> tuple[ContextRule, ...]:
    """Build context rules, ignoring unknown rule types."""
    if not isinstance(raw, list):
        return ()
    rules: list[ContextRule] = []
    for item in raw:
        if not isinstance(item, dict) or item.get("type") not in CONTEXT_RULE_TYPES:
            continue
        if item["type"] == "windows":
            rules.append(ContextRule(type="windows", min=int(item.get("min", 1))))
        else:
            rules.append(ContextRule(type=str(item["type"]), value=str(item.get("value", ""))))
    return tuple(rules)


def _binding_from_dict(tool_id: str, raw: dict[str, Any], mode_ids: set[str]) -> Binding | None:
    """Build a binding from raw JSON content, or None if it cannot be drilled."""
    binding_id = str(raw.get("id", "")).strip()
    action = str(raw.get("action", "")).strip()
    if not binding_id or not action:
        logger.warning(f"Skipping {tool_id} binding without id or action: {raw!r}")
        return None

    sequence = _sequence_from_raw(raw.get("keys", raw.get("sequence")))
    if not sequence:
        logger.warning(f"Skipping {tool_id} binding '{binding_id}': no readable key sequence.")
        return None

    difficulty = raw.get("difficulty", difficulty_for_sequence(sequence))
    if not isinstance(difficulty, int) or isinstance(difficulty, bool) or not 1 <= difficulty <= 5:
        logger.warning(f"Skipping {tool_id} binding '{binding_id}': difficulty {difficulty!r} outside 1-5.")
        return None

    mode = raw.get("mode")
    if mode is not None:
        mode = str(mode)
        if mode not in mode_ids:
            logger.warning(f"Skipping {tool_id} binding '{binding_id}': unknown mode '{mode}'.")
            return None

    return Binding(
        id=binding_id,
        tool=tool_id,
        action=action,
        sequence=sequence,
        category=str(raw.get("category", "general")),
        difficulty=difficulty,
        mode=mode,
        description=str(raw.get("description", "")),
        context=_context_from_raw(raw.get("context")),
    )


def _binding_from_keybinding(tool_id: str, raw: dict[str, Any]) -> Binding | None:
    """Derive a binding from an editor keybindings.json style entry."""
    command = str(raw.get("command", "")).strip()
    sequence = parse_key_sequence(str(raw.get("key", "")))
    if not command or not sequence:
        logger.warning(f"Skipping {tool_id} keybinding with unreadable key or command: {raw!r}")
        return None
    return Binding(
        id=f"{tool_id}-" + re.sub(r"[^a-zA-Z0-9]", "-", command).lower(),
        tool=tool_id,
        action=humanize_command(command),
        sequence=sequence,
        category=categorize_command(command),
        difficulty=difficulty_for_sequence(sequence),
        description=str(raw.get("when", "")),
    )


def _tool_from_dict(raw: dict[str, Any]) -> ToolDefinition:
    """Build a tool from raw JSON content."""
    tool_id = str(raw.get("id", "")).strip()
    if not tool_id:
        raise ValueError("Tool definition has no id.")

    modes = _modes_from_raw(tool_id, raw.get("modes", []))
    mode_ids = {mode.id for mode in modes}

    candidates: list[Binding | None] = [
        _binding_from_dict(tool_id, item, mode_ids) for item in raw.get("bindings", []) if isinstance(item, dict)
    ]
    candidates.extend(
        _binding_from_keybinding(tool_id, item) for item in raw.get("keybindings", []) if isinstance(item, dict)
    )
    bindings = _dedupe_binding_ids([binding for binding in candidates if binding is not None])
    if not bindings:
        raise ValueError(f"Tool '{tool_id}' has no valid bindings.")

    return ToolDefinition(
        id=tool_id,
        name=str(raw.get("name", tool_id)),
        bindings=bindings,
        modes=modes,
        difficulty_curve=_curve_from_raw(tool_id, raw.get("difficulty_curve", {})),
    )


def _modes_from_raw(tool_id: str, raw: Any) -> tuple[ModeDefinition, ...]:
    if not isinstance(raw, list):
        raise ValueError(f"Tool '{tool_id}' modes must be a list.")
    modes: list[ModeDefinition] = []
    for item in raw:
        mode_id = str(item.get("id", "")).strip() if isinstance(item, dict) else ""
        if not mode_id:
            raise ValueError(f"Tool '{tool_id}' has a mode with no id.")
        name = str(item.get("name", mode_id))
        modes.append(ModeDefinition(id=mode_id, name=name, default=bool(item.get("default"))))
    return tuple(modes)


def _curve_from_raw(tool_id: str, raw: Any) -> DifficultyCurve:
    if not isinstance(raw, dict):
        raise ValueError(f"Tool '{tool_id}' difficulty_curve must be an object.")
    values: dict[str, int] = {}
    for name, default in (("warmup", 10), ("mastery", 50)):
        value = raw.get(name, default)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"Tool '{tool_id}' difficulty_curve.{name} must be an integer.")
        values[name] = value
    return DifficultyCurve(**values)


def _dedupe_binding_ids(bindings: list[Binding]) -> tuple[Binding, ...]:
    """Suffix repeated ids with their table index so every id is unique."""
    seen: set[str] = set()
    unique: list[Binding] = []
    for index, binding in enumerate(bindings):
        if binding.id in seen:
            binding = Binding(
                id=f"{binding.id}-{index}",
                tool=binding.tool,
                action=binding.action,
                sequence=binding.sequence,
                category=binding.category,
                difficulty=binding.difficulty,
                mode=binding.mode,
                description=binding.description,
                context=binding.context,
            )
        seen.add(binding.id)
        unique.append(binding)
    return tuple(unique)


def load_tools() -> dict[str, ToolDefinition]:
    """Load bundled tools."""
    tools: dict[str, ToolDefinition] = {}
    for entry in sorted(resources.files(CONTENT_PACKAGE).iterdir(), key=lambda item: item.name):
        if entry.name.endswith(".json"):
            tool = _tool_from_dict(json.loads(entry.read_text(encoding="utf-8-sig")))
            if tool.id in tools:
                raise ValueError(f"Duplicate tool id: {tool.id}")
            tools[tool.id] = tool
    return tools


def load_tools_from_dir(path: Path) -> dict[str, ToolDefinition]:
    """Load tools from directory for tests/tools."""
    tools: dict[str, ToolDefinition] = {}
    for file_path in sorted(path.glob("*.json")):
        tool = _tool_from_dict(json.loads(file_path.read_text(encoding="utf-8-sig")))
        if tool.id in tools:
            raise ValueError(f"Duplicate tool id: {tool.id}")
        tools[tool.id] = tool
    return tools


def humanize_command(command: str) -> str:
    """Turn ``workbench.action.quickOpen`` into ``Quick open``."""
    last = command.split(".")[-1]
    words = re.sub(r"([A-Z])", r" \1", last)
    words = re.sub(r"[-_]", " ", words).lower().strip()
    return words[:1].upper() + words[1:]


def categorize_command(command: str) -> str:
    """Guess a category from keywords in an editor command id."""
    for category, keywords in _COMMAND_CATEGORIES:
        if any(keyword in command for keyword in keywords):
            return category
    return "general"


def difficulty_for_sequence(sequence: tuple[KeyChord, ...]) -> int:
    """Estimate difficulty: multi-chord sequences 3, else by modifier count."""
    if len(sequence) > 1:
        return 3
    modifier_count = len(sequence[0].modifiers)
    if modifier_count <= 1:
        return 1
    if modifier_count == 2:
        return 2
    return 3
