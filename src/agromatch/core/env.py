"""
Environment + project-root helpers.

Running the CLI from different working directories can cause:
- env vars from a repo-local `.env` not being loaded
- relative paths (e.g., `data/requests.sample.json`) resolving incorrectly

This module provides:
- `load_dotenv_if_present()`: `.env` loading (never overrides existing env vars)
- `get_project_root()`: find the repo root (prefers `.env` / `.git`, falls back to marker dirs)
- `resolve_project_path()`: resolve relative paths against the project root
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv


def _iter_parents(start: Path) -> list[Path]:
    start = start.resolve()
    return [start, *list(start.parents)]


def _looks_like_project_root(path: Path) -> bool:
    if (path / ".env").is_file():
        return True
    if (path / ".git").exists():
        return True
    return (path / "src" / "agromatch").is_dir()


@lru_cache
def get_project_root() -> Path:
    """Return the best-guess project root directory (cached)."""
    override = os.getenv("AGROMATCH_PROJECT_ROOT")
    if override:
        return Path(override).expanduser().resolve()

    env_file = os.getenv("AGROMATCH_ENV_FILE")
    if env_file:
        return Path(env_file).expanduser().resolve().parent

    for candidate in _iter_parents(Path.cwd()):
        if _looks_like_project_root(candidate):
            return candidate

    # Installed elsewhere (e.g. notebooks): search upwards from this module.
    for candidate in _iter_parents(Path(__file__).parent):
        if _looks_like_project_root(candidate):
            return candidate

    return Path.cwd().resolve()


@lru_cache
def load_dotenv_if_present() -> Path | None:
    """Load `.env` once if present; returns the loaded env path (or None)."""
    explicit = os.getenv("AGROMATCH_ENV_FILE")
    if explicit:
        env_path = Path(explicit).expanduser().resolve()
    else:
        env_path = get_project_root() / ".env"

    if not env_path.is_file():
        return None
    load_dotenv(dotenv_path=env_path, override=False)
    return env_path


def resolve_project_path(path: str | Path) -> Path:
    """Resolve a possibly-relative path against the project root."""
    p = Path(path).expanduser()
    if p.is_absolute():
        return p
    return (get_project_root() / p).resolve()
