from __future__ import annotations

import shutil
import sys
from collections.abc import Iterator
from pathlib import Path
from uuid import uuid4

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from chordtrainer.keys import parse_key_sequence  # noqa: E402
from chordtrainer.models import Binding, ModeDefinition, PersistedState, ToolDefinition  # noqa: E402


def _tmp_path_fixture() -> Iterator[Path]:
    """Provide per-test temporary directory path inside the workspace.

    This overrides pytest's builtin ``tmp_path`` fixture: tests keep temporary
    files under the project working directory at ``.tmp_pytest/``.
    """
    base = ROOT / ".tmp_pytest"
    base.mkdir(parents=True, exist_ok=True)
    path = base / str(uuid4())
    path.mkdir(parents=True, exist_ok=False)
    try:
        yield path
    finally:
        shutil.rmtree(path, ignore_errors=True)
        try:
            next(base.iterdir())
        except StopIteration:
            base.rmdir()
        except FileNotFoundError:
            pass


tmp_path = pytest.fixture(name="tmp_path")(_tmp_path_fixture)


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class MemoryGateway:
    """Persistence gateway that keeps every saved snapshot."""

    def __init__(self) -> None:
        self.saved: list[PersistedState] = []

    def save(self, state: PersistedState) -> None:
        self.saved.append(state)


def make_binding(binding_id: str, keys: str, *, tool: str = "demo", mode: str | None = None, **extra) -> Binding:
    sequence = parse_key_sequence(keys)
    assert sequence, keys
    return Binding(
        id=binding_id,
        tool=tool,
        action=extra.pop("action", binding_id.replace("-", " ")),
        sequence=sequence,
        category=extra.pop("category", "edit"),
        difficulty=extra.pop("difficulty", 1),
        mode=mode,
        **extra,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def gateway() -> MemoryGateway:
    return MemoryGateway()


@pytest.fixture
def quick_open_tool() -> ToolDefinition:
    return ToolDefinition(id="demo", name="Demo", bindings=(make_binding("quick-open", "cmd+p"),))


@pytest.fixture
def top_of_file_tool() -> ToolDefinition:
    return ToolDefinition(id="demo", name="Demo", bindings=(make_binding("file-top", "g g", category="motion"),))


@pytest.fixture
def modal_tool() -> ToolDefinition:
    return ToolDefinition(
        id="modal",
        name="Modal",
        modes=(ModeDefinition(id="normal", name="Normal", default=True), ModeDefinition(id="insert", name="Insert")),
        bindings=(
            make_binding("down", "j", tool="modal", mode="normal", category="motion"),
            make_binding("up", "k", tool="modal", mode="normal", category="motion"),
            make_binding("leave-insert", "escape", tool="modal", mode="insert", category="mode"),
        ),
    )
