"""CLI entrypoint for the keybinding drill trainer."""

from __future__ import annotations

import argparse
import os
import sys
import time
from collections.abc import Callable
from pathlib import Path

from loguru import logger

from .content_loader import load_tools
from .engine import Failed, Listening, Success
from .keys import chord_to_event, format_chord, format_sequence, parse_key_sequence
from .mastery import get_mastery_score
from .models import GAME_MODES, Challenge, PersistedState, ToolDefinition
from .session import SessionDriver
from .storage import StateStore
from .timers import Clock, now_ms

InputFn = Callable[[str], str]
PrintFn = Callable[[str], None]
SleepFn = Callable[[float], None]
BACK_COMMANDS = {":back", ":b", "back"}
MENU_QUIT_COMMANDS = {"q"}
FLOW_EXIT_COMMANDS = {":quit", ":exit", ":q"}
MENU_BACK_COMMANDS = {"b"}
SKIP_COMMANDS = {":skip", ":s"}
STATE_ENV_VAR = "CHORDTRAINER_STATE"
DEFAULT_STATE_PATH = Path(".chordtrainer") / "state.db"


class QuitApp(Exception):
    """Signal immediate app exit from nested menu flows."""


def _state_path(explicit: str | None = None) -> Path:
    """Resolve the state database location."""
    if explicit:
        return Path(explicit)
    from_env = os.environ.get(STATE_ENV_VAR, "").strip()
    if from_env:
        return Path(from_env)
    return DEFAULT_STATE_PATH


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if verbose else "WARNING")


def run(argv: list[str] | None = None) -> int:
    """Run the CLI application."""
    parser = argparse.ArgumentParser(prog="chordtrainer", description="Keyboard shortcut muscle-memory drills")
    parser.add_argument("command", nargs="?", default="play", choices=["play", "stats", "export", "import"])
    parser.add_argument("path", nargs="?", help="JSON file for export/import")
    parser.add_argument("--state", help=f"state database path (default: ${STATE_ENV_VAR} or {DEFAULT_STATE_PATH})")
    parser.add_argument("--verbose", action="store_true", help="log debug output to stderr")
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    state_path = _state_path(args.state)

    if args.command == "play":
        return play_shell(state_path=state_path)
    if args.command == "stats":
        return stats_command(state_path)
    if not args.path:
        parser.error(f"{args.command} needs a file path")
    if args.command == "export":
        return export_command(state_path, args.path)
    return import_command(state_path, args.path)


def stats_command(state_path: Path, print_fn: PrintFn = print) -> int:
    """Print stored mastery for every bundled tool."""
    store = StateStore(state_path)
    try:
        _stats_flow(load_tools(), store.load(), now_ms(), print_fn)
    finally:
        store.close()
    return 0


def export_command(state_path: Path, export_path: str, print_fn: PrintFn = print) -> int:
    """Write the stored state to a JSON file."""
    store = StateStore(state_path)
    try:
        summary = store.export_state(export_path)
    except OSError as exc:
        print_fn(f"Export failed: {exc}")
        return 1
    finally:
        store.close()
    print_fn(f"Exported {summary.mastery_rows} mastery records to {summary.path}")
    return 0


def import_command(state_path: Path, import_path: str, print_fn: PrintFn = print) -> int:
    """Replace the stored state with an exported one."""
    store = StateStore(state_path)
    try:
        summary = store.import_state(import_path)
    except (OSError, ValueError, OverflowError) as exc:
        print_fn(f"Import failed: {exc}")
        return 1
    finally:
        store.close()
    print_fn(f"Imported {summary.mastery_rows} mastery records from {summary.path}")
    return 0


def play_shell(
    input_fn: InputFn = input,
    print_fn: PrintFn = print,
    *,
    state_path: Path | str | None = None,
    tools: dict[str, ToolDefinition] | None = None,
    clock: Clock = now_ms,
    sleep_fn: SleepFn = time.sleep,
) -> int:
    """Run persistent menu-driven shell."""
    available = tools if tools is not None else load_tools()
    store = StateStore(state_path if state_path is not None else _state_path())
    try:
        driver = SessionDriver(store.load(), store, clock=clock)
        try:
            while True:
                print_fn("\n=== Keybinding Trainer ===")
                print_fn("1) Practice")
                print_fn("2) Stats")
                print_fn("3) Settings")
                print_fn("q) Quit")
                choice = input_fn("Choose: ").strip().lower()

                if choice == "1":
                    _practice_flow(driver, available, input_fn, print_fn, sleep_fn)
                elif choice == "2":
                    _stats_flow(available, driver.persisted, clock(), print_fn)
                elif choice == "3":
                    _settings_flow(driver, input_fn, print_fn)
                elif choice in MENU_QUIT_COMMANDS:
                    return 0
                else:
                    print_fn("Invalid choice.")
        except QuitApp:
            return 0
    finally:
        store.close()


def _choose_index(count: int, choice: str) -> int | None:
    if not choice.isdigit():
        return None
    index = int(choice) - 1
    if 0 <= index < count:
        return index
    return None


def _practice_flow(
    driver: SessionDriver,
    tools: dict[str, ToolDefinition],
    input_fn: InputFn,
    print_fn: PrintFn,
    sleep_fn: SleepFn,
) -> None:
    """Pick tool, mode and sub-mode, then drill."""
    ordered = sorted(tools.values(), key=lambda item: item.id)
    last_tool = driver.persisted.last_tool
    print_fn("\n=== Choose Tool ===")
    for idx, tool in enumerate(ordered, start=1):
        marker = " (last)" if tool.id == last_tool else ""
        print_fn(f"{idx}) {tool.name} - {len(tool.bindings)} bindings{marker}")
    print_fn("b) Back")
    print_fn("q) Quit")
    choice = input_fn("Choose tool: ").strip().lower()
    if choice in MENU_BACK_COMMANDS:
        return
    if choice in MENU_QUIT_COMMANDS:
        raise QuitApp()
    index = _choose_index(len(ordered), choice)
    if index is None:
        print_fn("Invalid choice.")
        return
    tool = ordered[index]
    driver.select_tool(tool)

    print_fn(f"\n=== {tool.name}: Choose Mode ===")
    print_fn("1) Reflex - name the keys for an action")
    print_fn("2) Scenario - keys shown, build muscle memory")
    print_fn("b) Back")
    choice = input_fn("Choose mode: ").strip().lower()
    if choice in MENU_BACK_COMMANDS:
        driver.exit_to_menu()
        return
    mode_index = _choose_index(len(GAME_MODES), choice)
    if mode_index is None:
        print_fn("Invalid choice.")
        driver.exit_to_menu()
        return
    mode = GAME_MODES[mode_index]

    mode_id: str | None = None
    if tool.modes:
        print_fn(f"\n=== {tool.name}: Choose Editor Mode ===")
        for idx, item in enumerate(tool.modes, start=1):
            marker = " (default)" if item.default else ""
            print_fn(f"{idx}) {item.name}{marker}")
        print_fn("a) All modes")
        choice = input_fn("Choose editor mode: ").strip().lower()
        if choice != "a":
            sub_index = _choose_index(len(tool.modes), choice)
            if sub_index is None:
                print_fn("Invalid choice.")
                driver.exit_to_menu()
                return
            mode_id = tool.modes[sub_index].id

    driver.start_session(tool, mode, mode_id)
    _drill_loop(driver, input_fn, print_fn, sleep_fn)


def _show_challenge(challenge: Challenge, print_fn: PrintFn) -> None:
    hints = challenge.ui_hints
    print_fn(f"\n{challenge.prompt}")
    if challenge.context:
        details = ", ".join(f"{key}={value}" for key, value in challenge.context.items())
        print_fn(f"Context: {details}")
    if hints.show_binding:
        label = hints.instruction_text or "keys"
        print_fn(f"{label.capitalize()}: {format_sequence(challenge.binding.sequence)}")
    if hints.show_hint and len(challenge.binding.sequence) > 1:
        print_fn(f"Starts with {format_chord(challenge.binding.sequence[0])}")


def _print_outcome(driver: SessionDriver, print_fn: PrintFn) -> None:
    state = driver.state
    if isinstance(state, Success):
        print_fn(f"Correct. {state.result.reaction_ms} ms")
        return
    if not isinstance(state, Failed):
        return
    expected = format_sequence(state.challenge.binding.sequence)
    if state.reason.type == "wrong":
        print_fn(f"Wrong: {format_sequence(state.reason.user_input)}. Expected {expected}")
    elif state.reason.type == "timeout":
        print_fn(f"Time is up. Expected {expected}")
    else:
        print_fn(f"Skipped. Answer: {expected}")


def _drill_loop(driver: SessionDriver, input_fn: InputFn, print_fn: PrintFn, sleep_fn: SleepFn) -> None:
    """Run challenges until the user leaves."""
    print_fn("Type keys like ctrl+shift+p; separate chords in a sequence with spaces.")
    print_fn("Type :skip to skip, :b or :q to leave.")
    while True:
        challenge = driver.challenge
        if challenge is None:
            break
        _show_challenge(challenge, print_fn)
        line = input_fn("Keys: ").strip()
        lowered = line.lower()
        driver.poll()
        if lowered in BACK_COMMANDS or lowered in FLOW_EXIT_COMMANDS:
            break
        if lowered in SKIP_COMMANDS:
            driver.skip()
        else:
            chords = parse_key_sequence(line)
            if not chords:
                print_fn("Could not read those keys.")
                continue
            for chord in chords:
                driver.handle_key(chord_to_event(chord))
                if driver.challenge is None:
                    break
            if driver.has_pending_feedback():
                sleep_fn(driver.feedback_delay_ms / 1000)
                driver.poll()
            elif isinstance(driver.state, Listening):
                sleep_fn(driver.settings.sequence_timeout / 1000)
                driver.poll()
                print_fn("Sequence incomplete. Try again.")
                continue

        _print_outcome(driver, print_fn)
        if driver.context.mode == "scenario" and isinstance(driver.state, Success | Failed):
            sleep_fn(driver.feedback_delay_ms / 1000)
            driver.poll()
        if isinstance(driver.state, Success | Failed):
            answer = input_fn("Enter for next, :b to leave: ").strip().lower()
            if answer in BACK_COMMANDS or answer in FLOW_EXIT_COMMANDS:
                break
            driver.next_challenge()

    stats = driver.stats
    driver.exit_to_menu()
    if stats.total_attempts:
        print_fn(
            f"\nSession: {stats.correct_attempts}/{stats.total_attempts} correct, "
            f"avg {stats.avg_reaction_ms:.0f} ms"
        )


def _stats_flow(tools: dict[str, ToolDefinition], state: PersistedState, now: int, print_fn: PrintFn) -> None:
    """Print a mastery table per tool."""
    print_fn("\n=== Mastery ===")
    shown = False
    for tool in sorted(tools.values(), key=lambda item: item.id):
        rows: list[tuple[str, str, str, str, str]] = []
        for binding in tool.bindings:
            record = state.mastery.get(binding.id)
            if record is None or record.attempts == 0:
                continue
            rate = 100.0 * record.successes / record.attempts
            rows.append(
                (
                    binding.action,
                    str(record.attempts),
                    f"{rate:.0f}%",
                    f"{record.avg_reaction_ms:.0f}",
                    f"{get_mastery_score(record, now):.2f}",
                )
            )
        if not rows:
            continue
        shown = True
        action_width = max(len("Action"), max(len(row[0]) for row in rows))
        header = f"{'Action':<{action_width}} {'Tries':>5} {'Hit':>5} {'Avg ms':>7} {'Score':>5}"
        print_fn(f"\n{tool.name}")
        print_fn(header)
        print_fn("-" * len(header))
        for row in rows:
            print_fn(f"{row[0]:<{action_width}} {row[1]:>5} {row[2]:>5} {row[3]:>7} {row[4]:>5}")
    if not shown:
        print_fn("No attempts recorded yet.")


def _settings_flow(driver: SessionDriver, input_fn: InputFn, print_fn: PrintFn) -> None:
    """Edit game settings."""
    while True:
        settings = driver.settings
        challenge_timeout = f"{settings.challenge_timeout} ms" if settings.challenge_timeout else "off"
        print_fn("\n=== Settings ===")
        print_fn(f"1) Assist mode: {'on' if settings.assist_mode else 'off'}")
        print_fn(f"2) Reduced motion: {'on' if settings.reduced_motion else 'off'}")
        print_fn(f"3) Sequence timeout: {settings.sequence_timeout} ms")
        print_fn(f"4) Challenge timeout: {challenge_timeout}")
        print_fn("b) Back")
        print_fn("q) Quit")
        choice = input_fn("Choose setting: ").strip().lower()
        if choice in MENU_BACK_COMMANDS:
            return
        if choice in MENU_QUIT_COMMANDS:
            raise QuitApp()
        if choice == "1":
            driver.update_settings(assist_mode=not settings.assist_mode)
        elif choice == "2":
            driver.update_settings(reduced_motion=not settings.reduced_motion)
        elif choice in {"3", "4"}:
            raw = input_fn("Milliseconds (0 = off): " if choice == "4" else "Milliseconds: ").strip()
            if not raw.isdigit():
                print_fn("Enter a whole number of milliseconds.")
                continue
            value = int(raw)
            if choice == "3":
                if value <= 0:
                    print_fn("Sequence timeout must be positive.")
                    continue
                driver.update_settings(sequence_timeout=value)
            else:
                driver.update_settings(challenge_timeout=value or None)
        else:
            print_fn("Invalid choice.")


def main_entry() -> None:
    """Console script entrypoint."""
    raise SystemExit(run())


if __name__ == "__main__":  # pragma: no cover
    main_entry()
