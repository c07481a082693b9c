from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

"""Environment helpers.

The settlement credential, RPC endpoint and supplier wallet are read with
``os.getenv``; a project-level ``.env`` is loaded first so they need not be
exported in the shell. Real environment variables always win over the file.
"""

__all__ = ["load_project_dotenv", "env_flag", "env_list"]

_TRUTHY = {"1", "true", "yes", "on"}


def _find_project_root(start: Path | None = None) -> Path:
    """Closest directory at or above ``start`` holding a `pyproject.toml`."""
    here = Path(__file__).resolve().parent
    origin = (start or here).resolve()
    for candidate in (origin, *origin.parents):
        if (candidate / "pyproject.toml").is_file():
            return candidate
    return here


def load_project_dotenv(start: Path | None = None) -> Path | None:
    """Load the project `.env` without overriding; return its path, or None when absent."""
    dotenv_path = _find_project_root(start) / ".env"
    if not dotenv_path.is_file():
        return None
    load_dotenv(dotenv_path=dotenv_path, override=False)
    return dotenv_path


def env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in _TRUTHY


def env_list(name: str) -> list[str]:
    """Comma-separated variable as a list, blanks dropped."""
    return [part.strip() for part in os.getenv(name, "").split(",") if part.strip()]
