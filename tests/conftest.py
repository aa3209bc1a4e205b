from __future__ import annotations

import json
from pathlib import Path

import pytest

from mediasidecar.config import SidecarSettings
from mediasidecar.models import ToolType
from mediasidecar.store import SidecarStore
from mediasidecar.tools import StaticToolRegistry

FFPROBE_OUTPUT = json.dumps(
    {
        "streams": [
            {
                "index": 0,
                "codec_name": "h264",
                "codec_type": "video",
                "width": 1920,
                "height": 1080,
                "field_order": "progressive",
                "disposition": {"default": 1, "forced": 0},
                "tags": {"language": "eng"},
            },
            {
                "index": 1,
                "codec_name": "ac3",
                "codec_type": "audio",
                "channels": 6,
                "disposition": {"default": 1, "forced": 0},
                "tags": {"language": "eng", "title": "Surround 5.1"},
            },
            {
                "index": 2,
                "codec_name": "subrip",
                "codec_type": "subtitle",
                "disposition": {"default": 0, "forced": 1},
                "tags": {"LANGUAGE": "fre"},
            },
        ],
        "format": {"format_name": "matroska,webm", "duration": "5423.120000"},
    }
)

MKVMERGE_OUTPUT = json.dumps(
    {
        "container": {
            "type": "Matroska",
            "recognized": True,
            "supported": True,
            "properties": {"duration": 5423120000000},
        },
        "tracks": [
            {
                "id": 0,
                "type": "video",
                "codec": "AVC/H.264/MPEG-4p10",
                "properties": {
                    "language": "eng",
                    "default_track": True,
                    "forced_track": False,
                    "pixel_dimensions": "1920x1080",
                },
            },
            {
                "id": 1,
                "type": "audio",
                "codec": "AC-3",
                "properties": {
                    "language": "eng",
                    "track_name": "Surround 5.1",
                    "default_track": True,
                    "audio_channels": 6,
                },
            },
            {
                "id": 2,
                "type": "subtitles",
                "codec": "SubRip/SRT",
                "properties": {"language": "fre", "forced_track": True},
            },
        ],
    }
)

MEDIAINFO_OUTPUT = """<?xml version="1.0" encoding="UTF-8"?>
<MediaInfo xmlns="https://mediaarea.net/mediainfo" version="2.0">
<creatingLibrary version="24.01" url="https://mediaarea.net/MediaInfo">MediaInfoLib</creatingLibrary>
<media ref="/media/movie.mkv">
<track type="General">
<Format>Matroska</Format>
<Duration>5423.120</Duration>
</track>
<track type="Video">
<ID>1</ID>
<Format>AVC</Format>
<Width>1920</Width>
<Height>1080</Height>
<ScanType>Progressive</ScanType>
<Language>en</Language>
<Default>Yes</Default>
<Forced>No</Forced>
</track>
<track type="Audio">
<ID>2</ID>
<Format>AC-3</Format>
<Channels>6</Channels>
<Title>Surround 5.1</Title>
<Language>en</Language>
<Default>Yes</Default>
<Forced>No</Forced>
</track>
<track type="Text">
<ID>3</ID>
<Format>UTF-8</Format>
<Language>fr</Language>
<Default>No</Default>
<Forced>Yes</Forced>
</track>
</media>
</MediaInfo>
"""

SAMPLE_OUTPUTS = {
    ToolType.FFPROBE: FFPROBE_OUTPUT,
    ToolType.MKVMERGE: MKVMERGE_OUTPUT,
    ToolType.MEDIAINFO: MEDIAINFO_OUTPUT,
}

TOOL_VERSIONS = {
    ToolType.FFPROBE: "6.0",
    ToolType.MKVMERGE: "80.0",
    ToolType.MEDIAINFO: "24.01",
}


def make_registry(outputs: dict[ToolType, str] | None = None) -> StaticToolRegistry:
    outputs = dict(SAMPLE_OUTPUTS if outputs is None else outputs)
    return StaticToolRegistry(
        TOOL_VERSIONS,
        {tool: (lambda _path, text=text: text) for tool, text in outputs.items()},
    )


@pytest.fixture
def ffprobe_output() -> str:
    return FFPROBE_OUTPUT


@pytest.fixture
def mkvmerge_output() -> str:
    return MKVMERGE_OUTPUT


@pytest.fixture
def mediainfo_output() -> str:
    return MEDIAINFO_OUTPUT


@pytest.fixture
def registry() -> StaticToolRegistry:
    return make_registry()


@pytest.fixture
def media_file(tmp_path: Path) -> Path:
    path = tmp_path / "movie.mkv"
    path.write_bytes(b"\x1a\x45\xdf\xa3" + b"\x00" * 1020)
    return path


@pytest.fixture
def store(registry: StaticToolRegistry) -> SidecarStore:
    return SidecarStore(registry, SidecarSettings())


@pytest.fixture
def registry_factory():
    return make_registry


@pytest.fixture
def sample_outputs() -> dict[ToolType, str]:
    return dict(SAMPLE_OUTPUTS)


@pytest.fixture
def tool_versions() -> dict[ToolType, str]:
    return dict(TOOL_VERSIONS)
