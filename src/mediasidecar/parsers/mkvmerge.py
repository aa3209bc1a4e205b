"""Normalize ``mkvmerge --identify --identification-format json`` output."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import ToolParseError
from ..models import MediaInfo, ToolType, TrackInfo, TrackKind

_KINDS = {
    "video": TrackKind.VIDEO,
    "audio": TrackKind.AUDIO,
    "subtitles": TrackKind.SUBTITLE,
}

_DIMENSIONS_PATTERN = re.compile(r"^(?P<width>\d+)x(?P<height>\d+)$")

# mkvmerge reports durations in nanoseconds
_NANOSECONDS = 1_000_000_000


class MkvTrackProperties(BaseModel):
    model_config = ConfigDict(extra="ignore")

    language: str | None = None
    language_ietf: str | None = None
    track_name: str | None = None
    default_track: bool = False
    forced_track: bool = False
    pixel_dimensions: str | None = None
    audio_channels: int | None = None


class MkvTrack(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: int
    type: str
    codec: str | None = None
    properties: MkvTrackProperties = Field(default_factory=MkvTrackProperties)


class MkvContainerProperties(BaseModel):
    model_config = ConfigDict(extra="ignore")

    duration: int | None = None


class MkvContainer(BaseModel):
    model_config = ConfigDict(extra="ignore")

    type: str | None = None
    recognized: bool = False
    supported: bool = False
    properties: MkvContainerProperties = Field(default_factory=MkvContainerProperties)


class MkvIdentification(BaseModel):
    model_config = ConfigDict(extra="ignore")

    container: MkvContainer
    tracks: list[MkvTrack] = Field(default_factory=list)


def _dimensions(value: str | None) -> tuple[int | None, int | None]:
    if not value:
        return None, None
    match = _DIMENSIONS_PATTERN.match(value)
    if not match:
        return None, None
    return int(match.group("width")), int(match.group("height"))


def parse_mkvmerge(text: str) -> MediaInfo:
    try:
        output = MkvIdentification.model_validate_json(text)
    except ValidationError as exc:
        raise ToolParseError(ToolType.MKVMERGE, f"invalid JSON output: {exc}") from exc
    if not output.container.recognized:
        raise ToolParseError(ToolType.MKVMERGE, "container not recognized")

    info = MediaInfo(tool=ToolType.MKVMERGE, container=output.container.type)
    if output.container.properties.duration is not None:
        info.duration = output.container.properties.duration / _NANOSECONDS

    for track in output.tracks:
        kind = _KINDS.get(track.type)
        if kind is None:
            continue
        props = track.properties
        width, height = _dimensions(props.pixel_dimensions)
        info.add_track(
            TrackInfo(
                kind=kind,
                id=track.id,
                codec=track.codec,
                language=props.language_ietf or props.language,
                title=props.track_name,
                default=props.default_track,
                forced=props.forced_track,
                width=width,
                height=height,
                channels=props.audio_channels,
            )
        )
    return info
