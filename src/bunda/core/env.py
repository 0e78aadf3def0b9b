"""
Locating the checkout and its `.env` file.

The Mapbox token and the database URL usually live in a `.env` next to
`pyproject.toml`. The API, CLI and tests start from different working
directories, so both the `.env` lookup and relative SQLite paths are anchored
on the nearest ancestor of the working directory that holds one of those files.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

_ROOT_MARKERS = (".env", "pyproject.toml")


@lru_cache
def get_project_root() -> Path:
    """Return the project root (cached).

    `BUNDA_PROJECT_ROOT` wins, then the directory of `BUNDA_ENV_FILE`, then the
    nearest ancestor of the working directory holding `.env` or `pyproject.toml`.
    """
    override = os.getenv("BUNDA_PROJECT_ROOT")
    if override:
        return Path(override).expanduser().resolve()

    env_file = os.getenv("BUNDA_ENV_FILE")
    if env_file:
        return Path(env_file).expanduser().resolve().parent

    cwd = Path.cwd().resolve()
    for candidate in (cwd, *cwd.parents):
        if any((candidate / marker).is_file() for marker in _ROOT_MARKERS):
            return candidate
    return cwd


@lru_cache
def load_dotenv_if_present() -> Path | None:
    """Load `.env` once without overriding the process environment; returns its path."""
    explicit = os.getenv("BUNDA_ENV_FILE")
    env_path = Path(explicit).expanduser().resolve() if explicit else get_project_root() / ".env"
    if not env_path.is_file():
        return None
    load_dotenv(dotenv_path=env_path, override=False)
    return env_path


def resolve_project_path(path: str | Path) -> Path:
    p = Path(path).expanduser()
    if p.is_absolute():
        return p
    return (get_project_root() / p).resolve()
