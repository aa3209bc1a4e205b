from __future__ import annotations

import datetime as dt
import os
import stat
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional

from .errors import MediaNotFoundError, NotReadableError


class ToolType(str, Enum):
    """The three metadata probing tools whose output is cached."""

    FFPROBE = "ffprobe"
    MKVMERGE = "mkvmerge"
    MEDIAINFO = "mediainfo"

    @property
    def label(self) -> str:
        return _TOOL_LABELS[self]


_TOOL_LABELS = {
    ToolType.FFPROBE: "FfProbe",
    ToolType.MKVMERGE: "MkvMerge",
    ToolType.MEDIAINFO: "MediaInfo",
}

# Canonical ordering used wherever the triple is iterated.
TOOL_ORDER = (ToolType.FFPROBE, ToolType.MKVMERGE, ToolType.MEDIAINFO)


class TrackKind(str, Enum):
    VIDEO = "video"
    AUDIO = "audio"
    SUBTITLE = "subtitle"


def _timestamp_from_stat(result: os.stat_result) -> dt.datetime:
    # Truncate to microseconds so the value survives an ISO-8601 round trip.
    micros = result.st_mtime_ns // 1000
    return dt.datetime(1970, 1, 1, tzinfo=dt.timezone.utc) + dt.timedelta(microseconds=micros)


@dataclass(frozen=True, slots=True)
class MediaFingerprint:
    """Modification time and size of a media file at probe time."""

    last_write_time_utc: dt.datetime
    length: int

    @classmethod
    def from_path(cls, path: Path) -> MediaFingerprint:
        try:
            result = path.stat()
        except FileNotFoundError as exc:
            raise MediaNotFoundError(f"Media file not found: {path}") from exc
        except OSError as exc:
            raise NotReadableError(f"Unable to stat {path}: {exc}") from exc
        if not stat.S_ISREG(result.st_mode):
            raise NotReadableError(f"Not a regular file: {path}")
        return cls(last_write_time_utc=_timestamp_from_stat(result), length=result.st_size)

    @classmethod
    def probe_live(cls, path: Path) -> Optional[MediaFingerprint]:
        """Return the current fingerprint, or None when the file is gone or unreadable."""
        try:
            return cls.from_path(path)
        except (MediaNotFoundError, NotReadableError):
            return None


@dataclass(frozen=True, slots=True)
class ToolVersionStamp:
    tool: ToolType
    version: str

    def matches(self, version: str) -> bool:
        return self.version.casefold() == version.casefold()


@dataclass(slots=True)
class TrackInfo:
    kind: TrackKind
    id: Optional[int] = None
    codec: Optional[str] = None
    language: Optional[str] = None
    title: Optional[str] = None
    default: bool = False
    forced: bool = False
    width: Optional[int] = None
    height: Optional[int] = None
    channels: Optional[int] = None
    interlaced: Optional[bool] = None


@dataclass(slots=True)
class MediaInfo:
    """Normalized metadata produced from one tool's output."""

    tool: ToolType
    container: Optional[str] = None
    duration: Optional[float] = None
    video: List[TrackInfo] = field(default_factory=list)
    audio: List[TrackInfo] = field(default_factory=list)
    subtitle: List[TrackInfo] = field(default_factory=list)

    def add_track(self, track: TrackInfo) -> None:
        if track.kind is TrackKind.VIDEO:
            self.video.append(track)
        elif track.kind is TrackKind.AUDIO:
            self.audio.append(track)
        else:
            self.subtitle.append(track)

    @property
    def tracks(self) -> List[TrackInfo]:
        return [*self.video, *self.audio, *self.subtitle]


@dataclass(frozen=True, slots=True)
class MediaInfoSet:
    """The three independent per-tool views of one media file."""

    ffprobe: MediaInfo
    mkvmerge: MediaInfo
    mediainfo: MediaInfo

    def get(self, tool: ToolType) -> MediaInfo:
        return getattr(self, tool.value)

    def __iter__(self) -> Iterator[MediaInfo]:
        return iter((self.ffprobe, self.mkvmerge, self.mediainfo))
