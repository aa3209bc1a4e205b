from __future__ import annotations

import os
import stat
import tempfile
import threading
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

# Boolean true/false string values
_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off"})

# os.umask can only be read by setting it
_UMASK_LOCK = threading.Lock()


def expand_env(value: Any) -> Any:
    if isinstance(value, str):
        return os.path.expandvars(value)
    if isinstance(value, list):
        return [expand_env(item) for item in value]
    if isinstance(value, dict):
        return {key: expand_env(val) for key, val in value.items()}
    return value


def load_yaml_file(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    return expand_env(data)


def atomic_write_text(path: Path, text: str) -> None:
    """Replace ``path`` with ``text`` without exposing a partially written file.

    The content goes to a temporary file in the same directory, is flushed to
    disk, then renamed over the target. On failure only the temporary file is
    removed and the previous target is left untouched.

    The file keeps the mode of the target it replaces, or gets the mode a
    plain ``open`` would create under the current umask.
    """
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            os.fchmod(handle.fileno(), _target_mode(path))
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp, path)
    except BaseException:
        try:
            tmp.unlink()
        except FileNotFoundError:
            pass
        raise


def _current_umask() -> int:
    with _UMASK_LOCK:
        mask = os.umask(0)
        os.umask(mask)
    return mask


def _target_mode(path: Path) -> int:
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        return 0o666 & ~_current_umask()


def parse_env_bool(value: Optional[str]) -> Optional[bool]:
    """Parse a boolean from an environment variable string.

    Returns None if value is None or not a recognized boolean string.
    """
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return None


def env_bool(name: str) -> Optional[bool]:
    """Get a boolean from an environment variable.

    Returns None if not set or not a recognized boolean string.
    """
    return parse_env_bool(os.getenv(name))
