"""Locating and reading ``entitlectl.toml``.

The config file marks a data root: the directory holding it is where the
``.entitlectl/`` state directory (database, artifacts) lives unless
``--data-root`` says otherwise.  ``ENTITLECTL_CONFIG`` names a file
explicitly and disables the walk-up search.
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any

import click

CONFIG_FILENAME = "entitlectl.toml"
CONFIG_ENV_VAR = "ENTITLECTL_CONFIG"


def find_config(start: Path | None = None) -> Path | None:
    """Return the nearest ``entitlectl.toml`` at or above *start* (default: cwd).

    An ``ENTITLECTL_CONFIG`` that points at a missing file yields None
    rather than falling back to the search.
    """
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        explicit = Path(env_path)
        return explicit if explicit.is_file() else None

    directory = (start or Path.cwd()).resolve()
    for candidate_dir in (directory, *directory.parents):
        candidate = candidate_dir / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
    return None


def read_toml(path: Path | None) -> dict[str, Any]:
    """Parse *path* into a dict of settings sections; ``{}`` when absent.

    A malformed file is a usage error reported with its location.
    """
    if path is None or not path.is_file():
        return {}
    try:
        return tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise click.ClickException(f"Invalid TOML in {path}: {exc}") from exc
