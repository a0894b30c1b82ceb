"""chordtrainer: drill keyboard shortcuts until they are muscle memory."""

from __future__ import annotations

import tomllib
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

__all__ = ["__version__"]

DISTRIBUTION = "chordtrainer"


def _version_from_pyproject() -> str | None:
    """Read [project].version from a source checkout's pyproject.toml."""
    for base in Path(__file__).resolve().parents:
        pyproject = base / "pyproject.toml"
        if not pyproject.exists():
            continue
        try:
            project = tomllib.loads(pyproject.read_text(encoding="utf-8")).get("project", {})
        except tomllib.TOMLDecodeError:
            return None
        if project.get("name") != DISTRIBUTION:
            continue
        found = project.get("version")
        return str(found) if found else None
    return None


def _resolve_version() -> str:
    from_source = _version_from_pyproject()
    if from_source is not None:
        return from_source
    try:
        return version(DISTRIBUTION)
    except PackageNotFoundError:
        return "0+unknown"


__version__ = _resolve_version()
