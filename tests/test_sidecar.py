"""Tests for SidecarRecord serialization and decoding."""

from __future__ import annotations

import base64
import datetime as dt
import json
import os
from pathlib import Path

import pytest

from mediasidecar.compression import compress
from mediasidecar.errors import DataCorruptionError, ErrorKind, MediaNotFoundError, SchemaMismatchError
from mediasidecar.models import MediaFingerprint, ToolType
from mediasidecar.probe import ProbeAggregator
from mediasidecar.sidecar import (
    SCHEMA_VERSION,
    SIDECAR_EXTENSION,
    SidecarRecord,
    is_sidecar_extension,
    is_sidecar_file,
    sidecar_path_for,
)

EXPECTED_KEYS = {
    "schemaVersion",
    "mediaLastWriteTimeUtc",
    "mediaLength",
    "ffProbeToolVersion",
    "mkvMergeToolVersion",
    "mediaInfoToolVersion",
    "ffProbeInfoData",
    "mkvMergeInfoData",
    "mediaInfoData",
    "verified",
}


@pytest.fixture
def record(registry, media_file: Path, tool_versions) -> SidecarRecord:
    probe = ProbeAggregator(registry).probe(media_file)
    return SidecarRecord.create(media_file, probe, tool_versions)


class TestSidecarPaths:
    def test_path_replaces_media_extension(self) -> None:
        assert sidecar_path_for(Path("/media/movie.mkv")) == Path("/media/movie.sidecar")

    def test_extension_check_is_case_insensitive(self) -> None:
        assert is_sidecar_extension(SIDECAR_EXTENSION)
        assert is_sidecar_extension(".SideCar")
        assert not is_sidecar_extension(".mkv")

    def test_is_sidecar_file(self) -> None:
        assert is_sidecar_file(Path("movie.sidecar"))
        assert not is_sidecar_file(Path("movie.mkv"))


class TestCreate:
    def test_captures_fingerprint_and_versions(self, record: SidecarRecord, media_file: Path) -> None:
        assert record.schema_version == SCHEMA_VERSION
        assert record.fingerprint == MediaFingerprint.from_path(media_file)
        assert record.tool_version(ToolType.MKVMERGE) == "80.0"
        assert record.verified is False

    def test_stores_compressed_raw_output(self, record: SidecarRecord, sample_outputs) -> None:
        for tool, text in sample_outputs.items():
            assert record.raw_text(tool) == text
            assert record.compressed_data(tool) == compress(text)

    def test_missing_media(self, registry, media_file: Path, tool_versions) -> None:
        probe = ProbeAggregator(registry).probe(media_file)
        media_file.unlink()
        with pytest.raises(MediaNotFoundError):
            SidecarRecord.create(media_file, probe, tool_versions)


class TestJsonShape:
    def test_uses_external_field_names(self, record: SidecarRecord) -> None:
        payload = json.loads(record.to_json())
        assert set(payload) == EXPECTED_KEYS
        assert payload["schemaVersion"] == SCHEMA_VERSION
        assert payload["verified"] is False

    def test_blobs_are_base64(self, record: SidecarRecord) -> None:
        payload = json.loads(record.to_json())
        assert base64.b64decode(payload["ffProbeInfoData"]) == record.ffprobe_data

    def test_timestamp_is_utc_iso8601(self, record: SidecarRecord) -> None:
        payload = json.loads(record.to_json())
        parsed = dt.datetime.fromisoformat(payload["mediaLastWriteTimeUtc"].replace("Z", "+00:00"))
        assert parsed.utcoffset() == dt.timedelta(0)

    def test_round_trip_preserves_every_field(self, record: SidecarRecord) -> None:
        restored = SidecarRecord.from_json(record.to_json())
        assert restored == record
        assert restored.fingerprint == record.fingerprint

    def test_naive_and_offset_timestamps_normalize_to_utc(self, record: SidecarRecord) -> None:
        payload = json.loads(record.to_json())
        payload["mediaLastWriteTimeUtc"] = "2024-03-01T12:00:00"
        assert SidecarRecord.from_json(json.dumps(payload)).media_last_write_time_utc == dt.datetime(
            2024, 3, 1, 12, tzinfo=dt.timezone.utc
        )
        payload["mediaLastWriteTimeUtc"] = "2024-03-01T14:00:00+02:00"
        assert SidecarRecord.from_json(json.dumps(payload)).media_last_write_time_utc == dt.datetime(
            2024, 3, 1, 12, tzinfo=dt.timezone.utc
        )

    def test_unknown_keys_are_ignored(self, record: SidecarRecord) -> None:
        payload = json.loads(record.to_json())
        payload["futureField"] = "x"
        assert SidecarRecord.from_json(json.dumps(payload)) == record


class TestFromJsonErrors:
    def test_older_schema_version(self, record: SidecarRecord) -> None:
        payload = json.loads(record.to_json())
        payload["schemaVersion"] = SCHEMA_VERSION - 1
        with pytest.raises(SchemaMismatchError) as excinfo:
            SidecarRecord.from_json(json.dumps(payload))
        assert excinfo.value.found == SCHEMA_VERSION - 1
        assert excinfo.value.expected == SCHEMA_VERSION
        assert excinfo.value.kind is ErrorKind.SCHEMA_MISMATCH

    def test_schema_checked_before_other_fields(self) -> None:
        with pytest.raises(SchemaMismatchError):
            SidecarRecord.from_json(json.dumps({"schemaVersion": SCHEMA_VERSION + 1}))

    @pytest.mark.parametrize("value", [None, "1", 1.0, True])
    def test_schema_version_must_be_exact_integer(self, record: SidecarRecord, value: object) -> None:
        payload = json.loads(record.to_json())
        payload["schemaVersion"] = value
        with pytest.raises(SchemaMismatchError):
            SidecarRecord.from_json(json.dumps(payload))

    def test_missing_schema_version(self, record: SidecarRecord) -> None:
        payload = json.loads(record.to_json())
        del payload["schemaVersion"]
        with pytest.raises(SchemaMismatchError):
            SidecarRecord.from_json(json.dumps(payload))

    @pytest.mark.parametrize("text", ["", "{", "[]", '"text"'])
    def test_malformed_document(self, text: str) -> None:
        with pytest.raises(DataCorruptionError):
            SidecarRecord.from_json(text)

    def test_missing_field(self, record: SidecarRecord) -> None:
        payload = json.loads(record.to_json())
        del payload["mkvMergeInfoData"]
        with pytest.raises(DataCorruptionError):
            SidecarRecord.from_json(json.dumps(payload))

    def test_invalid_base64(self, record: SidecarRecord) -> None:
        payload = json.loads(record.to_json())
        payload["mediaInfoData"] = "***not base64***"
        with pytest.raises(DataCorruptionError):
            SidecarRecord.from_json(json.dumps(payload))


class TestDecode:
    def test_decodes_all_three_views(self, record: SidecarRecord) -> None:
        infos = record.decode()
        assert infos.ffprobe.container == "matroska,webm"
        assert infos.mkvmerge.container == "Matroska"
        assert len(infos.mediainfo.audio) == 1

    def test_undecompressable_blob(self, record: SidecarRecord) -> None:
        broken = record.model_copy(update={"mkvmerge_data": b"garbage"})
        with pytest.raises(DataCorruptionError):
            broken.decode()

    def test_unparseable_blob(self, record: SidecarRecord) -> None:
        broken = record.model_copy(update={"ffprobe_data": compress("not json")})
        with pytest.raises(DataCorruptionError, match="FfProbe"):
            broken.decode()


class TestVerifiedAndDescribe:
    def test_with_verified_returns_copy(self, record: SidecarRecord) -> None:
        verified = record.with_verified(True)
        assert verified.verified is True
        assert record.verified is False
        assert verified.ffprobe_data == record.ffprobe_data

    def test_describe_lists_versions_and_sizes(self, record: SidecarRecord) -> None:
        fields = record.describe()
        assert fields["Schema Version"] == SCHEMA_VERSION
        assert fields["FfProbe Version"] == "6.0"
        assert fields["MediaInfo Version"] == "24.01"
        assert fields["MkvMerge Data"].endswith("bytes compressed")
        assert fields["Verified"] is False

    def test_mtime_keeps_microseconds(self, registry, media_file: Path, tool_versions) -> None:
        os.utime(media_file, ns=(1_700_000_000_123_456_789, 1_700_000_000_123_456_789))
        probe = ProbeAggregator(registry).probe(media_file)
        record = SidecarRecord.create(media_file, probe, tool_versions)
        restored = SidecarRecord.from_json(record.to_json())
        assert restored.media_last_write_time_utc.microsecond == 123456
