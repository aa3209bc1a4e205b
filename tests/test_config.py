from __future__ import annotations

import logging
from pathlib import Path

import pytest

from mediasidecar.config import (
    ENV_INVALIDATE_ON_TOOL_CHANGE,
    ENV_LOG_LEVEL,
    ENV_PARALLEL_PROBE,
    AppConfig,
    build_config,
    load_config,
)
from mediasidecar.models import ToolType


@pytest.fixture(autouse=True)
def _clear_env(monkeypatch) -> None:
    for name in (ENV_INVALIDATE_ON_TOOL_CHANGE, ENV_PARALLEL_PROBE, ENV_LOG_LEVEL):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_no_path_gives_defaults(self) -> None:
        config = load_config()
        assert isinstance(config, AppConfig)
        assert config.sidecar.invalidate_on_tool_change is False
        assert config.sidecar.lock_paths is True
        assert config.tools.ffprobe == "ffprobe"
        assert config.tools.timeout == 300.0
        assert config.tools.parallel_probe is False
        assert config.tools.versions == {}
        assert config.logging.numeric_level == logging.INFO

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config(path) == AppConfig()


class TestYamlLoading:
    def test_full_document(self, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.setenv("TOOLS_DIR", "/opt/tools")
        path = tmp_path / "mediasidecar.yaml"
        path.write_text(
            """
sidecar:
  invalidate_on_tool_change: yes
  lock_paths: false
tools:
  ffprobe: ${TOOLS_DIR}/ffprobe
  mkvmerge: /usr/local/bin/mkvmerge
  timeout: 60
  parallel_probe: true
  versions:
    MediaInfo: "24.01"
logging:
  level: debug
""",
            encoding="utf-8",
        )

        config = load_config(path)

        assert config.sidecar.invalidate_on_tool_change is True
        assert config.sidecar.lock_paths is False
        assert config.tools.ffprobe == "/opt/tools/ffprobe"
        assert config.tools.mkvmerge == "/usr/local/bin/mkvmerge"
        assert config.tools.mediainfo == "mediainfo"
        assert config.tools.executable(ToolType.MKVMERGE) == "/usr/local/bin/mkvmerge"
        assert config.tools.timeout == 60.0
        assert config.tools.parallel_probe is True
        assert config.tools.versions == {ToolType.MEDIAINFO: "24.01"}
        assert config.logging.level == "DEBUG"

    def test_missing_file_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.yaml")


class TestValidation:
    @pytest.mark.parametrize(
        ("data", "message"),
        [
            ({"sidecar": ["not", "a", "mapping"]}, "'sidecar' must be provided as a mapping"),
            ({"sidecar": {"invalidate_on_tool_change": "maybe"}}, "must be a boolean"),
            ({"tools": {"ffprobe": ""}}, "'tools.ffprobe' must be a non-empty string"),
            ({"tools": {"timeout": "soon"}}, "'tools.timeout' must be a number"),
            ({"tools": {"timeout": -1}}, "must not be negative"),
            ({"tools": {"versions": {"handbrake": "1.0"}}}, "unknown tool 'handbrake'"),
            ({"logging": {"level": "LOUD"}}, "'logging.level' must be one of"),
        ],
    )
    def test_invalid_values(self, data: dict, message: str) -> None:
        with pytest.raises(ValueError, match=message):
            build_config(data)

    def test_root_must_be_mapping(self) -> None:
        with pytest.raises(ValueError, match="root must be a mapping"):
            build_config(["sidecar"])  # type: ignore[arg-type]


class TestEnvironmentOverrides:
    def test_env_overrides_file_values(self, monkeypatch) -> None:
        monkeypatch.setenv(ENV_INVALIDATE_ON_TOOL_CHANGE, "true")
        monkeypatch.setenv(ENV_PARALLEL_PROBE, "1")
        monkeypatch.setenv(ENV_LOG_LEVEL, "warning")

        config = build_config({"sidecar": {"invalidate_on_tool_change": False}})

        assert config.sidecar.invalidate_on_tool_change is True
        assert config.tools.parallel_probe is True
        assert config.logging.level == "WARNING"

    def test_unrecognized_env_value_is_ignored(self, monkeypatch) -> None:
        monkeypatch.setenv(ENV_INVALIDATE_ON_TOOL_CHANGE, "sometimes")
        assert build_config({}).sidecar.invalidate_on_tool_change is False

    def test_invalid_env_log_level(self, monkeypatch) -> None:
        monkeypatch.setenv(ENV_LOG_LEVEL, "chatty")
        with pytest.raises(ValueError):
            build_config({})
