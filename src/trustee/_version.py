"""Version string with build metadata, as printed by ``trustee --version``."""
from __future__ import annotations

import platform
import subprocess
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

from trustee import __version__


def package_version() -> str:
    """Installed distribution version; the source version when not installed."""
    try:
        return version("trustee")
    except PackageNotFoundError:
        return __version__


def git_commit(path: str | Path | None = None) -> str | None:
    """Short SHA of the checkout containing *path*, or None outside a git repository."""
    cwd = Path(path) if path is not None else Path(__file__).resolve().parent
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            capture_output=True, text=True, cwd=cwd, timeout=5,
        )
    except (FileNotFoundError, NotADirectoryError, subprocess.TimeoutExpired):
        return None
    sha = result.stdout.strip()
    return sha if result.returncode == 0 and sha else None


def version_string() -> str:
    details = []
    commit = git_commit()
    if commit:
        details.append(f"commit {commit}")
    details.append(f"Python {platform.python_version()}")
    details.append(f"{platform.system()} {platform.machine()}".strip())
    return f"trustee {package_version()} ({', '.join(details)})"
