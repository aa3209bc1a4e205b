"""Read / validate / recreate / write lifecycle of sidecar files.

Per media file the store moves through four states:

- **Absent**: no sidecar file exists
- **Invalid**: a sidecar exists but failed to load or was rejected by the
  validator
- **Valid**: a sidecar exists and the validator accepted it
- **Ready**: the caller holds the three normalized ``MediaInfo`` views

Absent and Invalid lead to a full probe and a rewritten sidecar; Valid
decodes the stored output without touching the external tools.
"""

from __future__ import annotations

import contextlib
import logging
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .config import SidecarSettings
from .errors import (
    DataCorruptionError,
    ErrorKind,
    NotReadableError,
    OperationCancelled,
    SchemaMismatchError,
    SidecarError,
)
from .logging_utils import render_fields_block
from .models import MediaFingerprint, MediaInfoSet
from .probe import ProbeAggregator
from .sidecar import SidecarRecord, sidecar_path_for
from .tools import ToolRegistry, current_versions
from .utils import atomic_write_text
from .validator import IssueKind, ValidationIssue, ValidationReport, log_report, validate_record

LOGGER = logging.getLogger(__name__)


class LoadStatus(str, Enum):
    CACHED = "cached"
    PROBED = "probed"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class LoadResult:
    """Outcome of a store operation for one media file.

    ``infos`` is populated exactly when the status is CACHED or PROBED.
    ``report`` holds the validation report of the sidecar that was found on
    disk, if one was read.
    """

    media_path: Path
    status: LoadStatus
    infos: MediaInfoSet | None = None
    record: SidecarRecord | None = None
    error: SidecarError | None = None
    report: ValidationReport | None = None

    @property
    def ok(self) -> bool:
        return self.status in (LoadStatus.CACHED, LoadStatus.PROBED)

    @property
    def cancelled(self) -> bool:
        return self.status is LoadStatus.CANCELLED

    @property
    def error_kind(self) -> ErrorKind | None:
        return self.error.kind if self.error is not None else None

    @property
    def verified(self) -> bool:
        return self.record is not None and self.record.verified


@dataclass
class _CachedRead:
    record: SidecarRecord | None = None
    infos: MediaInfoSet | None = None
    report: ValidationReport | None = None


@dataclass
class _PathLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class SidecarStore:
    """Owns the sidecar file of each media file it is asked about.

    Example:
        store = SidecarStore(SubprocessToolRegistry(config.tools), config.sidecar)
        result = store.load(Path("/media/movie.mkv"))
        if result.ok:
            ffprobe_info = result.infos.ffprobe
    """

    def __init__(
        self,
        registry: ToolRegistry,
        settings: SidecarSettings | None = None,
        *,
        aggregator: ProbeAggregator | None = None,
        parallel_probe: bool = False,
    ) -> None:
        self.registry = registry
        self.settings = settings if settings is not None else SidecarSettings()
        self.aggregator = aggregator if aggregator is not None else ProbeAggregator(registry, parallel=parallel_probe)
        self._locks: dict[str, _PathLock] = {}
        self._locks_guard = threading.Lock()

    @staticmethod
    def sidecar_path(media_path: Path) -> Path:
        return sidecar_path_for(media_path)

    def exists(self, media_path: Path) -> bool:
        """Return True when a sidecar file exists, without validating it."""
        return self.sidecar_path(Path(media_path)).exists()

    def read(self, media_path: Path) -> SidecarRecord | None:
        """Deserialize the sidecar file as-is, without validating it.

        Returns None when no sidecar exists.

        Raises:
            NotReadableError: the sidecar could not be read
            SchemaMismatchError: the sidecar uses another schema version
            DataCorruptionError: the sidecar is malformed
        """
        path = self.sidecar_path(Path(media_path))
        if not path.exists():
            return None
        return SidecarRecord.from_json(self._read_text(path))

    def load(self, media_path: Path, cancel_event: threading.Event | None = None) -> LoadResult:
        """Return the media info from a valid sidecar, else probe and rewrite it."""
        media_path = Path(media_path)
        return self._guarded(media_path, lambda: self._load(media_path, cancel_event))

    def force_refresh(self, media_path: Path, cancel_event: threading.Event | None = None) -> LoadResult:
        """Probe and rewrite the sidecar without looking at the existing one."""
        media_path = Path(media_path)
        return self._guarded(media_path, lambda: self._recreate(media_path, cancel_event))

    def mark_verified(
        self,
        media_path: Path,
        verified: bool = True,
        cancel_event: threading.Event | None = None,
    ) -> LoadResult:
        """Persist the verified flag.

        A valid sidecar is rewritten with only the flag changed. Without one
        the file is probed and a new sidecar is written carrying the flag.
        """
        media_path = Path(media_path)
        return self._guarded(media_path, lambda: self._mark_verified(media_path, verified, cancel_event))

    def _guarded(self, media_path: Path, operation: Callable[[], LoadResult]) -> LoadResult:
        try:
            with self._path_lock(media_path):
                return operation()
        except OperationCancelled as exc:
            LOGGER.info("Cancelled : %s : %s", media_path.name, exc)
            return LoadResult(media_path=media_path, status=LoadStatus.CANCELLED, error=exc)
        except SidecarError as exc:
            LOGGER.error("Failed to get media info : %s : %s", media_path.name, exc)
            return LoadResult(media_path=media_path, status=LoadStatus.FAILED, error=exc)

    def _load(self, media_path: Path, cancel_event: threading.Event | None) -> LoadResult:
        cached = self._read_cached(media_path)
        if cached.infos is not None:
            return LoadResult(
                media_path=media_path,
                status=LoadStatus.CACHED,
                infos=cached.infos,
                record=cached.record,
                report=cached.report,
            )
        result = self._recreate(media_path, cancel_event)
        result.report = cached.report
        return result

    def _mark_verified(
        self,
        media_path: Path,
        verified: bool,
        cancel_event: threading.Event | None,
    ) -> LoadResult:
        cached = self._read_cached(media_path)
        if cached.infos is None or cached.record is None:
            result = self._recreate(media_path, cancel_event, verified=verified)
            result.report = cached.report
            return result

        record = cached.record
        if record.verified != verified:
            record = record.with_verified(verified)
            self._write(media_path, record)
        return LoadResult(
            media_path=media_path,
            status=LoadStatus.CACHED,
            infos=cached.infos,
            record=record,
            report=cached.report,
        )

    def _read_cached(self, media_path: Path) -> _CachedRead:
        """Load and validate the existing sidecar.

        Schema and corruption errors are recovered here: they only mean the
        sidecar must be recreated.
        """
        path = self.sidecar_path(media_path)
        if not path.exists():
            LOGGER.debug("No sidecar file : %s", path.name)
            return _CachedRead()

        LOGGER.info("Reading media info from sidecar file : %s", path.name)
        try:
            record = SidecarRecord.from_json(self._read_text(path))
        except SchemaMismatchError as exc:
            LOGGER.error("Sidecar JSON schema mismatch : %s != %s : %s", exc.found, exc.expected, path.name)
            return _CachedRead()
        except (DataCorruptionError, NotReadableError) as exc:
            LOGGER.warning("Failed to read sidecar file : %s : %s", path.name, exc)
            return _CachedRead()
        if LOGGER.isEnabledFor(logging.DEBUG):
            LOGGER.debug(render_fields_block(f"Sidecar {path.name}", record.describe()))

        live = MediaFingerprint.probe_live(media_path)
        report = validate_record(record, live, current_versions(self.registry), self.settings)
        log_report(report, path.name)
        if not report.valid:
            return _CachedRead(record=record, report=report)

        try:
            infos = record.decode()
        except DataCorruptionError as exc:
            LOGGER.error("Failed to de-serialize tool data : %s : %s", path.name, exc)
            report.reject(ValidationIssue(IssueKind.DATA, "InfoData", "decodable", str(exc), fatal=True))
            return _CachedRead(record=record, report=report)
        return _CachedRead(record=record, infos=infos, report=report)

    def _recreate(
        self,
        media_path: Path,
        cancel_event: threading.Event | None,
        *,
        verified: bool = False,
    ) -> LoadResult:
        versions = current_versions(self.registry)
        probe = self.aggregator.probe(media_path, cancel_event)
        record = SidecarRecord.create(media_path, probe, versions, verified=verified)
        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelled(f"Cancelled before writing sidecar: {media_path.name}")
        self._write(media_path, record)
        return LoadResult(media_path=media_path, status=LoadStatus.PROBED, infos=probe.infos, record=record)

    def _write(self, media_path: Path, record: SidecarRecord) -> None:
        path = self.sidecar_path(media_path)
        text = record.to_json()
        LOGGER.info("Writing media info to sidecar file : %s", path.name)
        try:
            atomic_write_text(path, text)
        except OSError as exc:
            raise NotReadableError(f"Unable to write sidecar {path}: {exc}") from exc

    @staticmethod
    def _read_text(path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise DataCorruptionError(f"Sidecar is not valid UTF-8: {exc}") from exc
        except OSError as exc:
            raise NotReadableError(f"Unable to read sidecar {path}: {exc}") from exc

    @contextlib.contextmanager
    def _path_lock(self, media_path: Path) -> Iterator[None]:
        if not self.settings.lock_paths:
            yield
            return
        key = str(media_path.absolute())
        with self._locks_guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = self._locks[key] = _PathLock()
            entry.users += 1
        try:
            with entry.lock:
                yield
        finally:
            # entries are dropped once no caller holds or waits on them
            with self._locks_guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[key]
