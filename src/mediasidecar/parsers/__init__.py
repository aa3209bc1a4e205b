"""Parsers that normalize raw probing-tool output into ``MediaInfo``.

Each parser accepts the tool's raw text and either returns a populated
``MediaInfo`` or raises ``ToolParseError``.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from types import MappingProxyType

from ..models import MediaInfo, ToolType
from .ffprobe import parse_ffprobe
from .mediainfo import parse_mediainfo
from .mkvmerge import parse_mkvmerge

Parser = Callable[[str], MediaInfo]

PARSERS: Mapping[ToolType, Parser] = MappingProxyType(
    {
        ToolType.FFPROBE: parse_ffprobe,
        ToolType.MKVMERGE: parse_mkvmerge,
        ToolType.MEDIAINFO: parse_mediainfo,
    }
)


def parse_tool_output(tool: ToolType, text: str) -> MediaInfo:
    return PARSERS[tool](text)


__all__ = [
    "PARSERS",
    "Parser",
    "parse_ffprobe",
    "parse_mediainfo",
    "parse_mkvmerge",
    "parse_tool_output",
]
