"""Normalize ``mediainfo --Output=XML`` output."""

from __future__ import annotations

import re
import xml.etree.ElementTree as ET

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..errors import ToolParseError
from ..models import MediaInfo, ToolType, TrackInfo, TrackKind

_KINDS = {
    "Video": TrackKind.VIDEO,
    "Audio": TrackKind.AUDIO,
    "Text": TrackKind.SUBTITLE,
}

_YES = frozenset({"yes", "true", "1"})

# Pre-2.0 documents format values for display, e.g. "1h 30mn" or "1 920 pixels"
_LEGACY_RENAMES = {"Channel_s_": "Channels", "Scan_type": "ScanType"}
_LEADING_INT = re.compile(r"\s*(\d+)")
_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)\s*(ms|mn|min|h|s)\b")
_DURATION_UNITS = {"h": 3600.0, "mn": 60.0, "min": 60.0, "s": 1.0, "ms": 0.001}


class MediaInfoTrack(BaseModel):
    """Flattened ``<track>`` element; child element names are the keys."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    type: str
    id: int | None = Field(default=None, alias="ID")
    format: str | None = Field(default=None, alias="Format")
    language: str | None = Field(default=None, alias="Language")
    title: str | None = Field(default=None, alias="Title")
    default: bool = Field(default=False, alias="Default")
    forced: bool = Field(default=False, alias="Forced")
    width: int | None = Field(default=None, alias="Width")
    height: int | None = Field(default=None, alias="Height")
    channels: int | None = Field(default=None, alias="Channels")
    scan_type: str | None = Field(default=None, alias="ScanType")
    duration: float | None = Field(default=None, alias="Duration")

    @field_validator("id", mode="before")
    @classmethod
    def _leading_id(cls, value: object) -> object:
        # Transport streams report IDs as "256 (0x100)"
        if isinstance(value, str):
            head = value.split(" ", 1)[0].split("-", 1)[0]
            return head or None
        return value

    @field_validator("default", "forced", mode="before")
    @classmethod
    def _yes_no(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower() in _YES
        return value

    @field_validator("channels", mode="before")
    @classmethod
    def _first_channel_count(cls, value: object) -> object:
        # Multi-layout audio reports e.g. "8 / 6"
        if isinstance(value, str):
            return value.split("/", 1)[0].strip() or None
        return value


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _flatten(element: ET.Element) -> dict[str, str]:
    values: dict[str, str] = {"type": element.get("type", "")}
    for child in element:
        name = _local_name(child.tag)
        # first occurrence wins, mediainfo repeats some fields with extra detail
        if name not in values and child.text is not None:
            values[name] = child.text.strip()
    return values


def _legacy_duration(text: str) -> float | None:
    try:
        # --Full output puts the raw millisecond count first
        return float(text) / 1000
    except ValueError:
        pass
    parts = _DURATION_PART.findall(text)
    if not parts:
        return None
    return sum(float(amount) * _DURATION_UNITS[unit] for amount, unit in parts)


def _normalize_legacy(values: dict[str, str]) -> dict[str, object]:
    normalized: dict[str, object] = {}
    for name, value in values.items():
        normalized.setdefault(_LEGACY_RENAMES.get(name, name), value)
    for name in ("Width", "Height"):
        if name in normalized:
            normalized[name] = "".join(ch for ch in str(normalized[name]) if ch.isdigit()) or None
    if "Channels" in normalized:
        match = _LEADING_INT.match(str(normalized["Channels"]))
        normalized["Channels"] = match.group(1) if match else None
    if "Duration" in normalized:
        normalized["Duration"] = _legacy_duration(str(normalized["Duration"]))
    return normalized


def parse_mediainfo(text: str) -> MediaInfo:
    try:
        root = ET.fromstring(text)
    except ET.ParseError as exc:
        raise ToolParseError(ToolType.MEDIAINFO, f"invalid XML output: {exc}") from exc

    legacy = _local_name(root.tag) == "Mediainfo"
    if legacy:
        # Pre-2.0 documents use <Mediainfo><File><track/></File></Mediainfo>
        media = next((child for child in root if _local_name(child.tag) == "File"), None)
    else:
        media = next((child for child in root if _local_name(child.tag) == "media"), None)
    if media is None:
        raise ToolParseError(ToolType.MEDIAINFO, "output contains no media element")

    try:
        tracks = [
            MediaInfoTrack.model_validate(_normalize_legacy(_flatten(element)) if legacy else _flatten(element))
            for element in media
            if _local_name(element.tag) == "track"
        ]
    except ValidationError as exc:
        raise ToolParseError(ToolType.MEDIAINFO, f"invalid track data: {exc}") from exc

    info = MediaInfo(tool=ToolType.MEDIAINFO)
    for track in tracks:
        if track.type == "General":
            info.container = track.format
            info.duration = track.duration
            continue
        kind = _KINDS.get(track.type)
        if kind is None:
            continue
        interlaced = None
        if kind is TrackKind.VIDEO and track.scan_type:
            interlaced = track.scan_type.lower() != "progressive"
        info.add_track(
            TrackInfo(
                kind=kind,
                id=track.id,
                codec=track.format,
                language=track.language,
                title=track.title,
                default=track.default,
                forced=track.forced,
                width=track.width,
                height=track.height,
                channels=track.channels,
                interlaced=interlaced,
            )
        )
    return info
