"""Error taxonomy shared by the sidecar components.

Components below the store raise these exceptions; ``SidecarStore`` is the
boundary that turns them into an explicit ``LoadResult``.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .models import ToolType


class ErrorKind(str, Enum):
    NOT_FOUND = "not-found"
    NOT_READABLE = "not-readable"
    SCHEMA_MISMATCH = "schema-mismatch"
    DATA_CORRUPTION = "data-corruption"
    TOOL_EXECUTION_FAILED = "tool-execution-failed"
    TOOL_PARSE_FAILED = "tool-parse-failed"
    CANCELLED = "cancelled"


class SidecarError(Exception):
    """Base exception for sidecar cache errors."""

    kind: ErrorKind = ErrorKind.DATA_CORRUPTION


class MediaNotFoundError(SidecarError):
    """Media file (or a required companion file) does not exist."""

    kind = ErrorKind.NOT_FOUND


class NotReadableError(SidecarError):
    """Permission or I/O failure while accessing a file."""

    kind = ErrorKind.NOT_READABLE


class SchemaMismatchError(SidecarError):
    """Companion file was written with an incompatible schema version."""

    kind = ErrorKind.SCHEMA_MISMATCH

    def __init__(self, found: object, expected: int) -> None:
        super().__init__(f"Sidecar schema version {found!r} does not match {expected}")
        self.found = found
        self.expected = expected


class DataCorruptionError(SidecarError):
    """Stored data failed to decompress, decode or parse."""

    kind = ErrorKind.DATA_CORRUPTION


class ToolExecutionError(SidecarError):
    """An external probing tool could not be run or exited with an error."""

    kind = ErrorKind.TOOL_EXECUTION_FAILED

    def __init__(self, tool: ToolType, message: str) -> None:
        super().__init__(f"{tool.label}: {message}")
        self.tool = tool


class ToolParseError(SidecarError):
    """Output of an external probing tool could not be parsed."""

    kind = ErrorKind.TOOL_PARSE_FAILED

    def __init__(self, tool: ToolType, message: str) -> None:
        super().__init__(f"{tool.label}: {message}")
        self.tool = tool


class OperationCancelled(SidecarError):
    """The caller's cancel event was set while the operation was in flight."""

    kind = ErrorKind.CANCELLED
