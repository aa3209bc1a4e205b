"""Tool registry: version reporting and execution of the probing tools.

The sidecar components only depend on the narrow ``ToolRegistry`` protocol.
``SubprocessToolRegistry`` runs the real binaries; ``StaticToolRegistry``
serves canned output for embedding callers and tests.
"""

from __future__ import annotations

import logging
import re
import subprocess
import threading
import time
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Protocol

from .config import ToolSettings
from .errors import OperationCancelled, ToolExecutionError
from .models import TOOL_ORDER, ToolType

LOGGER = logging.getLogger(__name__)

# Interval at which a running tool is checked for cancellation
POLL_INTERVAL = 0.2

_VERSION_PATTERNS: dict[ToolType, re.Pattern[str]] = {
    ToolType.FFPROBE: re.compile(r"ffprobe version n?(?P<version>\d+(?:\.\d+)*)"),
    ToolType.MKVMERGE: re.compile(r"mkvmerge v(?P<version>\d+(?:\.\d+)*)"),
    ToolType.MEDIAINFO: re.compile(r"MediaInfoLib - v(?P<version>\d+(?:\.\d+)*)"),
}

_VERSION_ARGS: dict[ToolType, tuple[str, ...]] = {
    ToolType.FFPROBE: ("-version",),
    ToolType.MKVMERGE: ("--version",),
    ToolType.MEDIAINFO: ("--version",),
}

# mkvmerge exits with 1 when it only emitted warnings
_ACCEPTED_EXIT_CODES: dict[ToolType, frozenset[int]] = {
    ToolType.FFPROBE: frozenset({0}),
    ToolType.MKVMERGE: frozenset({0, 1}),
    ToolType.MEDIAINFO: frozenset({0}),
}


class ToolRegistry(Protocol):
    def version(self, tool: ToolType) -> str: ...

    def run(self, tool: ToolType, path: Path, cancel_event: threading.Event | None = None) -> str: ...


def current_versions(registry: ToolRegistry) -> dict[ToolType, str]:
    return {tool: registry.version(tool) for tool in TOOL_ORDER}


def parse_tool_version(tool: ToolType, text: str) -> str | None:
    """Extract the version number from a tool's ``--version`` banner."""
    match = _VERSION_PATTERNS[tool].search(text)
    if not match:
        return None
    return match.group("version")


def build_probe_command(tool: ToolType, executable: str, path: Path) -> list[str]:
    if tool is ToolType.FFPROBE:
        return [
            executable,
            "-loglevel",
            "quiet",
            "-show_streams",
            "-show_format",
            "-print_format",
            "json",
            str(path),
        ]
    if tool is ToolType.MKVMERGE:
        return [executable, "--identify", "--identification-format", "json", str(path)]
    return [executable, "--Output=XML", str(path)]


def run_command(
    tool: ToolType,
    command: list[str],
    *,
    timeout: float | None = None,
    cancel_event: threading.Event | None = None,
) -> tuple[int, str, str]:
    """Run ``command`` and return ``(returncode, stdout, stderr)``.

    The child process is killed when ``cancel_event`` is set or ``timeout``
    seconds elapse.

    Raises:
        OperationCancelled: if the cancel event was set.
        ToolExecutionError: if the process could not be started or timed out.
    """
    if cancel_event is not None and cancel_event.is_set():
        raise OperationCancelled(f"{tool.label} cancelled before start")

    try:
        process = subprocess.Popen(
            command,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            stdin=subprocess.DEVNULL,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except OSError as exc:
        raise ToolExecutionError(tool, f"unable to start {command[0]}: {exc}") from exc

    deadline = time.monotonic() + timeout if timeout else None
    while True:
        try:
            stdout, stderr = process.communicate(timeout=POLL_INTERVAL)
            return process.returncode, stdout, stderr
        except subprocess.TimeoutExpired:
            pass

        if cancel_event is not None and cancel_event.is_set():
            process.kill()
            process.communicate()
            raise OperationCancelled(f"{tool.label} cancelled")
        if deadline is not None and time.monotonic() >= deadline:
            process.kill()
            process.communicate()
            raise ToolExecutionError(tool, f"timed out after {timeout:g}s")


class SubprocessToolRegistry:
    """Runs the installed probing tools as child processes."""

    def __init__(self, settings: ToolSettings) -> None:
        self.settings = settings
        self._versions: dict[ToolType, str] = {}
        self._lock = threading.Lock()

    def executable(self, tool: ToolType) -> str:
        return self.settings.executable(tool)

    def version(self, tool: ToolType) -> str:
        override = self.settings.versions.get(tool)
        if override:
            return override
        with self._lock:
            cached = self._versions.get(tool)
            if cached is not None:
                return cached
            detected = self._detect_version(tool)
            self._versions[tool] = detected
            return detected

    def _detect_version(self, tool: ToolType) -> str:
        command = [self.executable(tool), *_VERSION_ARGS[tool]]
        returncode, stdout, stderr = run_command(tool, command, timeout=self.settings.timeout or None)
        if returncode != 0:
            raise ToolExecutionError(tool, f"version query exited with {returncode}: {stderr.strip()}")
        version = parse_tool_version(tool, stdout)
        if version is None:
            first_line = stdout.strip().splitlines()[0] if stdout.strip() else ""
            raise ToolExecutionError(tool, f"unable to parse version from {first_line!r}")
        LOGGER.debug("Detected %s version %s", tool.label, version)
        return version

    def run(self, tool: ToolType, path: Path, cancel_event: threading.Event | None = None) -> str:
        command = build_probe_command(tool, self.executable(tool), path)
        LOGGER.debug("Running %s", " ".join(command))
        returncode, stdout, stderr = run_command(
            tool,
            command,
            timeout=self.settings.timeout or None,
            cancel_event=cancel_event,
        )
        if returncode not in _ACCEPTED_EXIT_CODES[tool]:
            detail = stderr.strip() or stdout.strip()[:200]
            raise ToolExecutionError(tool, f"exited with {returncode}: {detail}")
        if not stdout.strip():
            raise ToolExecutionError(tool, "produced no output")
        return stdout


ToolRunner = Callable[[Path], str]


class StaticToolRegistry:
    """In-memory registry backed by fixed versions and runner callables.

    Each runner receives the media path and returns raw tool output, or
    raises ``ToolExecutionError``. Invocations are counted per tool.
    """

    def __init__(
        self,
        versions: Mapping[ToolType, str],
        runners: Mapping[ToolType, ToolRunner],
    ) -> None:
        self.versions = dict(versions)
        self.runners = dict(runners)
        self.calls: dict[ToolType, int] = {tool: 0 for tool in TOOL_ORDER}
        self._lock = threading.Lock()

    def version(self, tool: ToolType) -> str:
        return self.versions[tool]

    def run(self, tool: ToolType, path: Path, cancel_event: threading.Event | None = None) -> str:
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelled(f"{tool.label} cancelled before start")
        with self._lock:
            self.calls[tool] += 1
        return self.runners[tool](path)

    @property
    def total_calls(self) -> int:
        return sum(self.calls.values())
