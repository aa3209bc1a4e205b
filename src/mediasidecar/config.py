from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .models import ToolType
from .utils import env_bool, load_yaml_file, parse_env_bool

ENV_INVALIDATE_ON_TOOL_CHANGE = "MEDIASIDECAR_INVALIDATE_ON_TOOL_CHANGE"
ENV_PARALLEL_PROBE = "MEDIASIDECAR_PARALLEL_PROBE"
ENV_LOG_LEVEL = "MEDIASIDECAR_LOG_LEVEL"

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


@dataclass
class ToolSettings:
    """Locations and invocation policy for the probing tools."""

    ffprobe: str = "ffprobe"
    mkvmerge: str = "mkvmerge"
    mediainfo: str = "mediainfo"
    timeout: float = 300.0  # seconds per invocation, 0 disables
    parallel_probe: bool = False
    versions: dict[ToolType, str] = field(default_factory=dict)  # explicit version overrides

    def executable(self, tool: ToolType) -> str:
        return getattr(self, tool.value)


@dataclass
class SidecarSettings:
    """Cache policy passed explicitly to the validator and store.

    Attributes:
        invalidate_on_tool_change: Re-probe when a stored tool version differs
            from the installed one. When off, such records are still used and
            the mismatch is only logged.
        lock_paths: Serialize concurrent operations on the same media path.
    """

    invalidate_on_tool_change: bool = False
    lock_paths: bool = True


@dataclass
class LoggingSettings:
    level: str = "INFO"

    @property
    def numeric_level(self) -> int:
        return logging.getLevelName(self.level)


@dataclass
class AppConfig:
    sidecar: SidecarSettings = field(default_factory=SidecarSettings)
    tools: ToolSettings = field(default_factory=ToolSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)


def _ensure_mapping(value: Any, *, field_name: str) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"'{field_name}' must be provided as a mapping when specified")
    return value


def _parse_bool(value: Any, *, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        parsed = parse_env_bool(value)
        if parsed is not None:
            return parsed
    raise ValueError(f"'{field_name}' must be a boolean")


def _build_sidecar_settings(data: dict[str, Any]) -> SidecarSettings:
    defaults = SidecarSettings()
    return SidecarSettings(
        invalidate_on_tool_change=_parse_bool(
            data.get("invalidate_on_tool_change", defaults.invalidate_on_tool_change),
            field_name="sidecar.invalidate_on_tool_change",
        ),
        lock_paths=_parse_bool(
            data.get("lock_paths", defaults.lock_paths),
            field_name="sidecar.lock_paths",
        ),
    )


def _build_tool_settings(data: dict[str, Any]) -> ToolSettings:
    defaults = ToolSettings()
    executables: dict[str, str] = {}
    for tool in ToolType:
        raw = data.get(tool.value, defaults.executable(tool))
        if not isinstance(raw, str) or not raw.strip():
            raise ValueError(f"'tools.{tool.value}' must be a non-empty string")
        executables[tool.value] = os.path.expanduser(raw.strip())

    try:
        timeout = float(data.get("timeout", defaults.timeout))
    except (TypeError, ValueError) as exc:
        raise ValueError("'tools.timeout' must be a number") from exc
    if timeout < 0:
        raise ValueError("'tools.timeout' must not be negative")

    versions_raw = _ensure_mapping(data.get("versions"), field_name="tools.versions")
    versions: dict[ToolType, str] = {}
    for key, value in versions_raw.items():
        try:
            tool = ToolType(str(key).strip().lower())
        except ValueError as exc:
            raise ValueError(f"'tools.versions' has unknown tool '{key}'") from exc
        if value is None:
            continue
        versions[tool] = str(value).strip()

    return ToolSettings(
        **executables,
        timeout=timeout,
        parallel_probe=_parse_bool(
            data.get("parallel_probe", defaults.parallel_probe),
            field_name="tools.parallel_probe",
        ),
        versions=versions,
    )


def _build_logging_settings(data: dict[str, Any]) -> LoggingSettings:
    level = str(data.get("level", LoggingSettings.level)).strip().upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"'logging.level' must be one of {', '.join(sorted(_LOG_LEVELS))}")
    return LoggingSettings(level=level)


def _apply_env_overrides(config: AppConfig) -> AppConfig:
    invalidate = env_bool(ENV_INVALIDATE_ON_TOOL_CHANGE)
    if invalidate is not None:
        config.sidecar.invalidate_on_tool_change = invalidate
    parallel = env_bool(ENV_PARALLEL_PROBE)
    if parallel is not None:
        config.tools.parallel_probe = parallel
    level = os.getenv(ENV_LOG_LEVEL)
    if level:
        config.logging = _build_logging_settings({"level": level})
    return config


def build_config(data: dict[str, Any]) -> AppConfig:
    if not isinstance(data, dict):
        raise ValueError("Configuration root must be a mapping")
    config = AppConfig(
        sidecar=_build_sidecar_settings(_ensure_mapping(data.get("sidecar"), field_name="sidecar")),
        tools=_build_tool_settings(_ensure_mapping(data.get("tools"), field_name="tools")),
        logging=_build_logging_settings(_ensure_mapping(data.get("logging"), field_name="logging")),
    )
    return _apply_env_overrides(config)


def load_config(path: Path | None = None) -> AppConfig:
    """Load configuration from a YAML file, or defaults when ``path`` is None."""
    data = load_yaml_file(path) if path is not None else {}
    return build_config(data)
