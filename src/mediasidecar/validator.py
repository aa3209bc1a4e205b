"""Decide whether a persisted sidecar record still describes the live media file.

``validate_record`` is a pure function over the record, the live fingerprint,
the installed tool versions and the cache policy. Every check that can run
does run, so the report lists every reason a record is stale rather than only
the first one found.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum

from .config import SidecarSettings
from .models import MediaFingerprint, ToolType
from .sidecar import SCHEMA_VERSION, SidecarRecord

LOGGER = logging.getLogger(__name__)


class IssueKind(str, Enum):
    SCHEMA = "schema"
    FINGERPRINT = "fingerprint"
    TOOL_VERSION = "tool-version"
    DATA = "data"


@dataclass(frozen=True)
class ValidationIssue:
    kind: IssueKind
    field: str
    expected: object
    actual: object
    fatal: bool


@dataclass
class ValidationReport:
    schema_ok: bool = True
    fingerprint_ok: bool = True
    tools_ok: bool = True
    valid: bool = True
    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def stale_tools(self) -> list[str]:
        return [issue.field for issue in self.issues if issue.kind is IssueKind.TOOL_VERSION]

    def reject(self, issue: ValidationIssue) -> None:
        """Record a fatal issue found after validation and mark the record invalid."""
        self.issues.append(issue)
        self.valid = False


def validate_record(
    record: SidecarRecord,
    live: MediaFingerprint | None,
    current_versions: Mapping[ToolType, str],
    settings: SidecarSettings,
) -> ValidationReport:
    """Check ``record`` against the live file and the installed tools.

    Args:
        record: Deserialized sidecar record
        live: Current fingerprint of the media file, None if it could not be read
        current_versions: Tool versions active in this run
        settings: Cache policy; ``invalidate_on_tool_change`` decides whether a
            version mismatch alone rejects the record

    Returns:
        ValidationReport with one issue per failed comparison
    """
    report = ValidationReport()

    if record.schema_version != SCHEMA_VERSION:
        report.schema_ok = False
        report.valid = False
        report.issues.append(
            ValidationIssue(IssueKind.SCHEMA, "SchemaVersion", record.schema_version, SCHEMA_VERSION, fatal=True)
        )
        return report

    stored = record.fingerprint
    if live is None:
        report.fingerprint_ok = False
        report.issues.append(ValidationIssue(IssueKind.FINGERPRINT, "MediaFile", "present", "missing", fatal=True))
    else:
        if stored.last_write_time_utc != live.last_write_time_utc:
            report.fingerprint_ok = False
            report.issues.append(
                ValidationIssue(
                    IssueKind.FINGERPRINT,
                    "LastWriteTimeUtc",
                    stored.last_write_time_utc.isoformat(),
                    live.last_write_time_utc.isoformat(),
                    fatal=True,
                )
            )
        if stored.length != live.length:
            report.fingerprint_ok = False
            report.issues.append(
                ValidationIssue(IssueKind.FINGERPRINT, "FileLength", stored.length, live.length, fatal=True)
            )

    for stamp in record.tool_stamps:
        current = current_versions[stamp.tool]
        if not stamp.matches(current):
            report.tools_ok = False
            report.issues.append(
                ValidationIssue(
                    IssueKind.TOOL_VERSION,
                    stamp.tool.label,
                    stamp.version,
                    current,
                    fatal=settings.invalidate_on_tool_change,
                )
            )

    report.valid = (
        report.schema_ok
        and report.fingerprint_ok
        and (report.tools_ok or not settings.invalidate_on_tool_change)
    )
    return report


def log_report(report: ValidationReport, name: str) -> None:
    """Log each issue individually, then the verdict."""
    for issue in report.issues:
        if issue.kind is IssueKind.SCHEMA:
            LOGGER.error("Sidecar JSON schema mismatch : %s != %s : %s", issue.expected, issue.actual, name)
        elif issue.kind is IssueKind.FINGERPRINT:
            LOGGER.warning(
                "Sidecar %s out of sync with media file : %s != %s : %s",
                issue.field,
                issue.expected,
                issue.actual,
                name,
            )
        else:
            LOGGER.warning(
                "Sidecar %s tool version out of date : %s != %s : %s",
                issue.field,
                issue.expected,
                issue.actual,
                name,
            )

    if not report.valid:
        LOGGER.warning("Discarding sidecar, %d issue(s) found : %s", len(report.issues), name)
    elif report.issues:
        LOGGER.info("Using sidecar despite stale tool versions (%s) : %s", ", ".join(report.stale_tools), name)


__all__ = [
    "IssueKind",
    "ValidationIssue",
    "ValidationReport",
    "log_report",
    "validate_record",
]
