"""Versioned, serializable snapshot of one media file's probe output.

A ``SidecarRecord`` is persisted as a JSON document next to the media file
(``movie.mkv`` -> ``movie.sidecar``). Records are immutable: changing a field
means deriving a copy and rewriting the whole document.
"""

from __future__ import annotations

import base64
import datetime as dt
import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer, field_validator

from .compression import compress, decompress
from .errors import DataCorruptionError, SchemaMismatchError, ToolParseError
from .models import TOOL_ORDER, MediaFingerprint, MediaInfoSet, ToolType, ToolVersionStamp
from .parsers import PARSERS, Parser
from .probe import ProbeResult

SCHEMA_VERSION = 1
SIDECAR_EXTENSION = ".sidecar"

_VERSION_FIELDS = {
    ToolType.FFPROBE: "ffprobe_tool_version",
    ToolType.MKVMERGE: "mkvmerge_tool_version",
    ToolType.MEDIAINFO: "mediainfo_tool_version",
}

_DATA_FIELDS = {
    ToolType.FFPROBE: "ffprobe_data",
    ToolType.MKVMERGE: "mkvmerge_data",
    ToolType.MEDIAINFO: "mediainfo_data",
}


def sidecar_path_for(media_path: Path) -> Path:
    return media_path.with_suffix(SIDECAR_EXTENSION)


def is_sidecar_extension(extension: str) -> bool:
    return extension.lower() == SIDECAR_EXTENSION.lower()


def is_sidecar_file(path: Path) -> bool:
    return is_sidecar_extension(path.suffix)


class SidecarRecord(BaseModel):
    """On-disk sidecar document.

    Attributes:
        schema_version: Document layout version, must equal ``SCHEMA_VERSION``
        media_last_write_time_utc: Media modification time when probed
        media_length: Media size in bytes when probed
        ffprobe_tool_version: ffprobe version that produced ``ffprobe_data``
        mkvmerge_tool_version: mkvmerge version that produced ``mkvmerge_data``
        mediainfo_tool_version: mediainfo version that produced ``mediainfo_data``
        ffprobe_data: Compressed ffprobe JSON
        mkvmerge_data: Compressed mkvmerge JSON
        mediainfo_data: Compressed mediainfo XML
        verified: Set by the pipeline once it confirmed the media file's integrity
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    schema_version: int = Field(alias="schemaVersion")
    media_last_write_time_utc: dt.datetime = Field(alias="mediaLastWriteTimeUtc")
    media_length: int = Field(alias="mediaLength")
    ffprobe_tool_version: str = Field(alias="ffProbeToolVersion")
    mkvmerge_tool_version: str = Field(alias="mkvMergeToolVersion")
    mediainfo_tool_version: str = Field(alias="mediaInfoToolVersion")
    ffprobe_data: bytes = Field(alias="ffProbeInfoData")
    mkvmerge_data: bytes = Field(alias="mkvMergeInfoData")
    mediainfo_data: bytes = Field(alias="mediaInfoData")
    verified: bool = False

    @field_validator("media_last_write_time_utc", mode="after")
    @classmethod
    def _assume_utc(cls, value: dt.datetime) -> dt.datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=dt.timezone.utc)
        return value.astimezone(dt.timezone.utc)

    @field_validator("ffprobe_data", "mkvmerge_data", "mediainfo_data", mode="before")
    @classmethod
    def _decode_base64(cls, value: Any) -> Any:
        if isinstance(value, str):
            return base64.b64decode(value, validate=True)
        return value

    @field_serializer("ffprobe_data", "mkvmerge_data", "mediainfo_data", when_used="json")
    def _encode_base64(self, value: bytes) -> str:
        return base64.b64encode(value).decode("ascii")

    @classmethod
    def create(
        cls,
        media_path: Path,
        probe: ProbeResult,
        tool_versions: Mapping[ToolType, str],
        *,
        verified: bool = False,
    ) -> SidecarRecord:
        """Build a record for freshly probed media.

        The fingerprint is captured now, after probing, so it reflects the
        file the tools actually read.
        """
        fingerprint = MediaFingerprint.from_path(media_path)
        fields: dict[str, Any] = {
            "schema_version": SCHEMA_VERSION,
            "media_last_write_time_utc": fingerprint.last_write_time_utc,
            "media_length": fingerprint.length,
            "verified": verified,
        }
        for tool in TOOL_ORDER:
            fields[_VERSION_FIELDS[tool]] = tool_versions[tool]
            fields[_DATA_FIELDS[tool]] = compress(probe.raw[tool])
        return cls(**fields)

    @classmethod
    def from_json(cls, text: str) -> SidecarRecord:
        """Deserialize a sidecar document.

        The schema version is checked before any other field is looked at.

        Raises:
            SchemaMismatchError: ``schemaVersion`` is missing or differs from
                ``SCHEMA_VERSION``.
            DataCorruptionError: the document is not valid JSON or a field is
                missing or malformed.
        """
        try:
            payload = json.loads(text)
        except ValueError as exc:
            raise DataCorruptionError(f"Sidecar is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise DataCorruptionError("Sidecar JSON root must be an object")

        found = payload.get("schemaVersion")
        if type(found) is not int or found != SCHEMA_VERSION:
            raise SchemaMismatchError(found, SCHEMA_VERSION)

        try:
            return cls.model_validate(payload)
        except ValidationError as exc:
            raise DataCorruptionError(f"Sidecar fields are invalid: {exc}") from exc

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)

    @property
    def fingerprint(self) -> MediaFingerprint:
        return MediaFingerprint(last_write_time_utc=self.media_last_write_time_utc, length=self.media_length)

    def tool_version(self, tool: ToolType) -> str:
        return getattr(self, _VERSION_FIELDS[tool])

    @property
    def tool_stamps(self) -> tuple[ToolVersionStamp, ...]:
        return tuple(ToolVersionStamp(tool=tool, version=self.tool_version(tool)) for tool in TOOL_ORDER)

    def compressed_data(self, tool: ToolType) -> bytes:
        return getattr(self, _DATA_FIELDS[tool])

    def raw_text(self, tool: ToolType) -> str:
        return decompress(self.compressed_data(tool))

    def decode(self, parsers: Mapping[ToolType, Parser] | None = None) -> MediaInfoSet:
        """Decompress and parse all three stored outputs.

        Raises:
            DataCorruptionError: any blob fails to decompress or parse; no
                partial result is produced.
        """
        parsers = parsers if parsers is not None else PARSERS
        parsed = {}
        for tool in TOOL_ORDER:
            text = self.raw_text(tool)
            try:
                parsed[tool] = parsers[tool](text)
            except ToolParseError as exc:
                raise DataCorruptionError(f"Stored {tool.label} data failed to parse: {exc}") from exc
        return MediaInfoSet(
            ffprobe=parsed[ToolType.FFPROBE],
            mkvmerge=parsed[ToolType.MKVMERGE],
            mediainfo=parsed[ToolType.MEDIAINFO],
        )

    def with_verified(self, verified: bool) -> SidecarRecord:
        return self.model_copy(update={"verified": verified})

    def describe(self) -> dict[str, object]:
        """Field summary for diagnostic output."""
        fields: dict[str, object] = {
            "Schema Version": self.schema_version,
            "Media Modified (UTC)": self.media_last_write_time_utc.isoformat(),
            "Media Length": self.media_length,
            "Verified": self.verified,
        }
        for tool in TOOL_ORDER:
            fields[f"{tool.label} Version"] = self.tool_version(tool)
            fields[f"{tool.label} Data"] = f"{len(self.compressed_data(tool))} bytes compressed"
        return fields
