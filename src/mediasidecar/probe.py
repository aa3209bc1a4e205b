"""Run the three probing tools against a media file and normalize the output."""

from __future__ import annotations

import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from .errors import MediaNotFoundError, NotReadableError, OperationCancelled
from .models import TOOL_ORDER, MediaInfoSet, ToolType
from .parsers import PARSERS, Parser

if TYPE_CHECKING:
    from collections.abc import Mapping

    from .tools import ToolRegistry

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeResult:
    """Raw tool output plus the normalized views parsed from it."""

    raw: dict[ToolType, str]
    infos: MediaInfoSet


def check_media_file(path: Path) -> None:
    """Raise unless ``path`` is an existing, readable regular file."""
    if not path.exists():
        raise MediaNotFoundError(f"Media file not found: {path}")
    if not path.is_file():
        raise NotReadableError(f"Not a regular file: {path}")
    if not os.access(path, os.R_OK):
        raise NotReadableError(f"Media file is not readable: {path}")


class ProbeAggregator:
    """Collects ffprobe, mkvmerge and mediainfo output for one file.

    Aggregation is all-or-nothing: any execution or parse failure propagates
    and no partial result is returned. No retries happen at this layer.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        *,
        parallel: bool = False,
        parsers: Mapping[ToolType, Parser] | None = None,
    ) -> None:
        self.registry = registry
        self.parallel = parallel
        self.parsers = parsers if parsers is not None else PARSERS

    def probe(self, path: Path, cancel_event: threading.Event | None = None) -> ProbeResult:
        check_media_file(path)
        LOGGER.info("Reading media info from tools : %s", path.name)

        if self.parallel:
            raw = self._run_parallel(path, cancel_event)
        else:
            raw = {tool: self.registry.run(tool, path, cancel_event) for tool in TOOL_ORDER}

        if cancel_event is not None and cancel_event.is_set():
            raise OperationCancelled(f"Probe cancelled: {path.name}")

        parsed = {tool: self.parsers[tool](raw[tool]) for tool in TOOL_ORDER}
        return ProbeResult(
            raw=raw,
            infos=MediaInfoSet(
                ffprobe=parsed[ToolType.FFPROBE],
                mkvmerge=parsed[ToolType.MKVMERGE],
                mediainfo=parsed[ToolType.MEDIAINFO],
            ),
        )

    def _run_parallel(self, path: Path, cancel_event: threading.Event | None) -> dict[ToolType, str]:
        # A failure in one tool cancels its siblings so the call returns promptly.
        local_cancel = threading.Event()

        def _run(tool: ToolType) -> str:
            if cancel_event is not None and cancel_event.is_set():
                local_cancel.set()
            try:
                return self.registry.run(tool, path, _LinkedEvent(cancel_event, local_cancel))
            except BaseException:
                local_cancel.set()
                raise

        with ThreadPoolExecutor(max_workers=len(TOOL_ORDER), thread_name_prefix="probe") as executor:
            futures = {tool: executor.submit(_run, tool) for tool in TOOL_ORDER}
            errors: list[BaseException] = []
            results: dict[ToolType, str] = {}
            for tool, future in futures.items():
                try:
                    results[tool] = future.result()
                except BaseException as exc:  # noqa: BLE001 - re-raised below
                    errors.append(exc)

        if errors:
            # Prefer the root failure over the sibling cancellations it caused.
            primary = next((exc for exc in errors if not isinstance(exc, OperationCancelled)), errors[0])
            raise primary
        return results


class _LinkedEvent:
    """Read-only view that is set when either the caller's or the local event is."""

    def __init__(self, outer: threading.Event | None, inner: threading.Event) -> None:
        self._outer = outer
        self._inner = inner

    def is_set(self) -> bool:
        return self._inner.is_set() or (self._outer is not None and self._outer.is_set())
