"""Version detection with support for development checkouts."""

from __future__ import annotations

import os
import subprocess
from importlib import metadata
from pathlib import Path

_DISTRIBUTION = "mediasidecar"

# Fallback version if nothing else works
_FALLBACK_VERSION = "unknown"


def _get_git_sha() -> str | None:
    """Return the short SHA of the checkout containing this package, if any."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            capture_output=True,
            text=True,
            timeout=5,
            check=False,
            cwd=Path(__file__).parent,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def get_version() -> str:
    """Get the current version string.

    Priority:
    1. BUILD_VERSION environment variable (set during CI/CD)
    2. Installed distribution metadata
    3. Git short SHA of a source checkout
    4. Fallback to "unknown"
    """
    build_version = os.environ.get("BUILD_VERSION")
    if build_version:
        return build_version.strip()

    try:
        return metadata.version(_DISTRIBUTION)
    except metadata.PackageNotFoundError:
        pass

    sha = _get_git_sha()
    if sha:
        return f"dev ({sha})"
    return _FALLBACK_VERSION


# Cache the version on module load
__version__ = get_version()
