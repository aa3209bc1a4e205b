"""Normalize ``ffprobe -print_format json`` output."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import ToolParseError
from ..models import MediaInfo, ToolType, TrackInfo, TrackKind

_KINDS = {
    "video": TrackKind.VIDEO,
    "audio": TrackKind.AUDIO,
    "subtitle": TrackKind.SUBTITLE,
}

# field_order values ffprobe reports for interlaced content
_INTERLACED_ORDERS = frozenset({"tt", "bb", "tb", "bt"})


class FfProbeDisposition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    default: int = 0
    forced: int = 0


class FfProbeStream(BaseModel):
    model_config = ConfigDict(extra="ignore")

    index: int
    codec_type: str | None = None
    codec_name: str | None = None
    width: int | None = None
    height: int | None = None
    channels: int | None = None
    field_order: str | None = None
    disposition: FfProbeDisposition = Field(default_factory=FfProbeDisposition)
    tags: dict[str, str] = Field(default_factory=dict)


class FfProbeFormat(BaseModel):
    model_config = ConfigDict(extra="ignore")

    format_name: str | None = None
    duration: float | None = None


class FfProbeOutput(BaseModel):
    model_config = ConfigDict(extra="ignore")

    streams: list[FfProbeStream] | None = None
    format: FfProbeFormat | None = None


def _tag(tags: dict[str, str], name: str) -> str | None:
    # ffprobe preserves the container's tag case ("language" vs "LANGUAGE")
    for key, value in tags.items():
        if key.lower() == name:
            return value or None
    return None


def _interlaced(field_order: str | None) -> bool | None:
    if not field_order or field_order == "unknown":
        return None
    return field_order in _INTERLACED_ORDERS


def parse_ffprobe(text: str) -> MediaInfo:
    try:
        output = FfProbeOutput.model_validate_json(text)
    except ValidationError as exc:
        raise ToolParseError(ToolType.FFPROBE, f"invalid JSON output: {exc}") from exc
    if output.streams is None and output.format is None:
        raise ToolParseError(ToolType.FFPROBE, "output contains neither streams nor format")

    info = MediaInfo(tool=ToolType.FFPROBE)
    if output.format is not None:
        info.container = output.format.format_name
        info.duration = output.format.duration

    for stream in output.streams or []:
        kind = _KINDS.get(stream.codec_type or "")
        if kind is None:
            # data and attachment streams are not tracked
            continue
        info.add_track(
            TrackInfo(
                kind=kind,
                id=stream.index,
                codec=stream.codec_name,
                language=_tag(stream.tags, "language"),
                title=_tag(stream.tags, "title"),
                default=bool(stream.disposition.default),
                forced=bool(stream.disposition.forced),
                width=stream.width,
                height=stream.height,
                channels=stream.channels,
                interlaced=_interlaced(stream.field_order) if kind is TrackKind.VIDEO else None,
            )
        )
    return info
