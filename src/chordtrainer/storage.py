"""Local persistence of the mastery table and settings.

The persisted state is one JSON blob stored under a fixed key in a small SQLite
key/value table. Loading never raises: a missing or corrupt blob yields the
default state. Saving is best effort and only logs failures.
"""

from __future__ import annotations

import json
import math
import sqlite3
from dataclasses import asdict, dataclass, replace
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, cast

from loguru import logger

from . import __version__
from .models import GameSettings, MasteryRecord, PersistedState

SCHEMA_VERSION = 1
STATE_VERSION = 1
EXPORT_FORMAT_VERSION = 1
STORAGE_KEY = "keybind-trainer-state"

DEFAULT_SETTINGS = GameSettings()

# Older blobs used the browser trainer's camelCase field names.
_LEGACY_KEYS: dict[str, str] = {
    "assistMode": "assist_mode",
    "reducedMotion": "reduced_motion",
    "sequenceTimeout": "sequence_timeout",
    "challengeTimeout": "challenge_timeout",
    "bindingId": "binding_id",
    "avgReactionMs": "avg_reaction_ms",
    "lastSeen": "last_seen",
    "lastTool": "last_tool",
    "lastMode": "last_mode",
}


@dataclass(frozen=True)
class TransferSummary:
    """Summary emitted by state export/import operations."""

    path: str
    mastery_rows: int
    version: int


def default_state() -> PersistedState:
    """Return a fresh state at the current version."""
    return PersistedState(version=STATE_VERSION, mastery={}, settings=DEFAULT_SETTINGS)


class StateStore:
    """Load/save gateway for the persisted trainer state."""

    def __init__(self, db_path: Path | str) -> None:
        """Open the database and bring its schema up to date."""
        if isinstance(db_path, Path):
            db_path.parent.mkdir(parents=True, exist_ok=True)
            target = str(db_path)
        else:
            target = db_path
        self._conn = sqlite3.connect(target)
        self._conn.row_factory = sqlite3.Row
        self._apply_migrations()

    def _apply_migrations(self) -> None:
        """Apply forward-only schema migrations to latest version."""
        current = int(self._conn.execute("PRAGMA user_version").fetchone()[0])
        if current > SCHEMA_VERSION:
            raise RuntimeError(f"Database schema version {current} is newer than supported {SCHEMA_VERSION}.")

        for version in range(current + 1, SCHEMA_VERSION + 1):
            if version == 1:
                self._migrate_to_v1()
            with self._conn:
                self._conn.execute(f"PRAGMA user_version = {version}")

    def _migrate_to_v1(self) -> None:
        """Create the key/value table."""
        with self._conn:
            self._conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """)

    def _read_blob(self) -> str | None:
        row = self._conn.execute("SELECT value FROM kv_store WHERE key = ?", (STORAGE_KEY,)).fetchone()
        if row is None:
            return None
        return str(row["value"])

    def _write_blob(self, value: str) -> None:
        with self._conn:
            self._conn.execute(
                """
                INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
                """,
                (STORAGE_KEY, value, datetime.now(UTC).isoformat()),
            )

    def load(self) -> PersistedState:
        """Return the stored state, or defaults when absent or unreadable."""
        try:
            raw_text = self._read_blob()
            if raw_text is None:
                return default_state()
            raw_obj: object = json.loads(raw_text)
        except (sqlite3.Error, ValueError) as exc:
            logger.warning(f"Discarding unreadable trainer state: {exc}")
            return default_state()

        if not isinstance(raw_obj, dict):
            logger.warning("Discarding trainer state whose root is not an object.")
            return default_state()
        raw = cast(dict[str, object], raw_obj)

        try:
            if _coerce_int(raw.get("version")) == STATE_VERSION:
                return state_from_dict(raw)
            migrated = migrate_state(raw)
        except (ValueError, OverflowError, TypeError) as exc:
            logger.warning(f"Discarding malformed trainer state: {exc}")
            return default_state()
        logger.warning(f"Migrated trainer state from version {raw.get('version')!r} to {STATE_VERSION}.")
        self.save(migrated)
        return migrated

    def save(self, state: PersistedState) -> None:
        """Write the state; failures are logged and swallowed."""
        try:
            self._write_blob(json.dumps(state_to_dict(state)))
        except (sqlite3.Error, OSError, TypeError, ValueError) as exc:
            logger.warning(f"Could not save trainer state: {exc}")

    def update_settings(self, **changes: Any) -> PersistedState:
        """Merge setting changes into the stored state and save it."""
        current = self.load()
        merged = merge_settings({**asdict(current.settings), **changes}, base=current.settings)
        updated = replace(current, settings=merged)
        self.save(updated)
        return updated

    def get_mastery(self, binding_id: str) -> MasteryRecord | None:
        """Return the stored record for one binding."""
        return self.load().mastery.get(binding_id)

    def clear_all(self) -> None:
        """Forget all stored state."""
        try:
            with self._conn:
                self._conn.execute("DELETE FROM kv_store WHERE key = ?", (STORAGE_KEY,))
        except sqlite3.Error as exc:
            logger.warning(f"Could not clear trainer state: {exc}")

    def export_state(self, export_path: Path | str) -> TransferSummary:
        """Write the current state to a JSON file."""
        state = self.load()
        payload = {
            "format_version": EXPORT_FORMAT_VERSION,
            "exported_at": datetime.now(UTC).isoformat(),
            "source": {
                "app_version": __version__,
                "state_version": STATE_VERSION,
            },
            "state": state_to_dict(state),
        }
        path = Path(export_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        logger.info(f"Exported {len(state.mastery)} mastery records to {path}")
        return TransferSummary(path=str(path), mastery_rows=len(state.mastery), version=state.version)

    def import_state(self, import_path: Path | str) -> TransferSummary:
        """Replace the stored state with one read from an export file."""
        path = Path(import_path)
        raw_obj: object = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(raw_obj, dict):
            raise ValueError("Import file root must be a JSON object.")
        raw = cast(dict[str, object], raw_obj)

        format_version = _coerce_int(raw.get("format_version", 0))
        if format_version is None:
            raise ValueError("Import file has invalid format_version.")
        if format_version > EXPORT_FORMAT_VERSION:
            raise ValueError(
                f"Import file format version {format_version} is newer than supported {EXPORT_FORMAT_VERSION}."
            )

        state_obj = raw.get("state")
        if not isinstance(state_obj, dict):
            raise ValueError("Import file has no state object.")
        state_raw = cast(dict[str, object], state_obj)
        if _coerce_int(state_raw.get("version")) == STATE_VERSION:
            state = state_from_dict(state_raw)
        else:
            state = migrate_state(state_raw)
        self.save(state)
        logger.info(f"Imported {len(state.mastery)} mastery records from {path}")
        return TransferSummary(path=str(path), mastery_rows=len(state.mastery), version=state.version)

    def close(self) -> None:
        """Close db connection."""
        self._conn.close()

    def __del__(self) -> None:  # pragma: no cover
        """Best-effort connection cleanup."""
        try:
            self.close()
        except Exception:
            pass


def state_to_dict(state: PersistedState) -> dict[str, object]:
    """Serialize a state to plain JSON types."""
    payload: dict[str, object] = {
        "version": state.version,
        "mastery": {binding_id: asdict(record) for binding_id, record in state.mastery.items()},
        "settings": asdict(state.settings),
    }
    if state.last_tool is not None:
        payload["last_tool"] = state.last_tool
    if state.last_mode is not None:
        payload["last_mode"] = state.last_mode
    return payload


def state_from_dict(raw: dict[str, object]) -> PersistedState:
    """Build a state from a current-version blob, dropping invalid entries."""
    return PersistedState(
        version=STATE_VERSION,
        mastery=_normalize_mastery(raw.get("mastery")),
        settings=merge_settings(raw.get("settings"), base=DEFAULT_SETTINGS),
        last_tool=_optional_str(raw.get("last_tool")),
        last_mode=_optional_str(raw.get("last_mode")),
    )


def migrate_state(raw: dict[str, object]) -> PersistedState:
    """Upgrade a blob of another version, keeping mastery and known settings."""
    renamed = _rename_legacy_keys(raw)
    settings_obj = renamed.get("settings")
    settings_raw = _rename_legacy_keys(cast(dict[str, object], settings_obj)) if isinstance(settings_obj, dict) else {}
    mastery_obj = renamed.get("mastery")
    mastery_raw: object = mastery_obj
    if isinstance(mastery_obj, dict):
        mastery_raw = {
            key: _rename_legacy_keys(cast(dict[str, object], value)) if isinstance(value, dict) else value
            for key, value in cast(dict[str, object], mastery_obj).items()
        }
    return PersistedState(
        version=STATE_VERSION,
        mastery=_normalize_mastery(mastery_raw),
        settings=merge_settings(settings_raw, base=DEFAULT_SETTINGS),
        last_tool=_optional_str(renamed.get("last_tool")),
        last_mode=_optional_str(renamed.get("last_mode")),
    )


def _rename_legacy_keys(raw: dict[str, object]) -> dict[str, object]:
    renamed: dict[str, object] = {}
    for key, value in raw.items():
        renamed[_LEGACY_KEYS.get(key, key)] = value
    return renamed


def _normalize_mastery(raw: object) -> dict[str, MasteryRecord]:
    """Normalize raw mastery rows, skipping anything malformed."""
    if not isinstance(raw, dict):
        return {}
    rows = cast(dict[str, object], raw)
    mastery: dict[str, MasteryRecord] = {}
    for key, item in rows.items():
        if not isinstance(item, dict):
            continue
        row = cast(dict[str, object], item)
        binding_id = row.get("binding_id", key)
        if not isinstance(binding_id, str) or not binding_id.strip():
            continue
        attempts = max(0, _coerce_int(row.get("attempts", 0), default=0) or 0)
        successes = max(0, _coerce_int(row.get("successes", 0), default=0) or 0)
        successes = min(successes, attempts)
        avg_reaction_ms = _coerce_float(row.get("avg_reaction_ms", 0.0), default=0.0) or 0.0
        if successes == 0:
            avg_reaction_ms = 0.0
        last_seen = max(0, _coerce_int(row.get("last_seen", 0), default=0) or 0)
        mastery[binding_id.strip()] = MasteryRecord(
            binding_id=binding_id.strip(),
            attempts=attempts,
            successes=successes,
            avg_reaction_ms=max(0.0, avg_reaction_ms),
            last_seen=last_seen,
        )
    return mastery


def merge_settings(raw: object, base: GameSettings) -> GameSettings:
    """Merge known setting fields over ``base``; unknown fields are dropped."""
    if not isinstance(raw, dict):
        return base
    row = cast(dict[str, object], raw)
    assist_mode = row.get("assist_mode", base.assist_mode)
    reduced_motion = row.get("reduced_motion", base.reduced_motion)
    sequence_timeout = _coerce_int(row.get("sequence_timeout", base.sequence_timeout))
    if sequence_timeout is None or sequence_timeout <= 0:
        sequence_timeout = base.sequence_timeout
    challenge_timeout_raw = row.get("challenge_timeout", base.challenge_timeout)
    challenge_timeout = None if challenge_timeout_raw is None else _coerce_int(challenge_timeout_raw)
    if challenge_timeout is not None and challenge_timeout <= 0:
        challenge_timeout = None
    return GameSettings(
        assist_mode=assist_mode if isinstance(assist_mode, bool) else base.assist_mode,
        reduced_motion=reduced_motion if isinstance(reduced_motion, bool) else base.reduced_motion,
        sequence_timeout=sequence_timeout,
        challenge_timeout=challenge_timeout,
    )


def _optional_str(value: object) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _coerce_int(value: object, default: int | None = None) -> int | None:
    """Coerce value to int for state normalization."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else default
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return default
    return default


def _coerce_float(value: object, default: float | None = None) -> float | None:
    """Coerce value to float for state normalization."""
    if isinstance(value, bool):
        return float(int(value))
    if isinstance(value, int | float):
        result = float(value)
    elif isinstance(value, str):
        try:
            result = float(value)
        except ValueError:
            return default
    else:
        return default
    return result if math.isfinite(result) else default
