"""Command line front-end for creating and inspecting sidecar files."""

from __future__ import annotations

import argparse
import logging
import os
import threading
from collections.abc import Callable, Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import yaml
from rich.console import Console
from rich.table import Table

from .config import AppConfig, load_config
from .errors import SidecarError
from .logging_utils import configure_logging, render_section_block
from .models import MediaInfo
from .sidecar import is_sidecar_file
from .store import LoadResult, LoadStatus, SidecarStore
from .tools import SubprocessToolRegistry
from .version import __version__

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 2

ENV_CONFIG_PATH = "MEDIASIDECAR_CONFIG"

# Status colors, matching the summary tables
_STATUS_STYLES = {
    LoadStatus.CACHED: "green",
    LoadStatus.PROBED: "cyan",
    LoadStatus.FAILED: "red",
    LoadStatus.CANCELLED: "yellow",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mediasidecar",
        description="Create, validate and inspect cached media info sidecar files.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(os.environ[ENV_CONFIG_PATH]) if os.getenv(ENV_CONFIG_PATH) else None,
        help=f"Path to YAML settings (default: ${ENV_CONFIG_PATH}, else built-in defaults)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--invalidate-on-tool-change",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Re-probe files whose sidecar was written by a different tool version",
    )
    parser.add_argument("--jobs", "-j", type=int, default=1, help="Number of files processed in parallel")

    subparsers = parser.add_subparsers(dest="command", required=True)

    get_parser = subparsers.add_parser("get", help="Load media info, from the sidecar when it is still valid")
    get_parser.add_argument("paths", nargs="+", type=Path)

    create_parser = subparsers.add_parser("create", help="Re-probe and rewrite sidecar files")
    create_parser.add_argument("paths", nargs="+", type=Path)

    verify_parser = subparsers.add_parser("verify-flag", help="Set the verified flag in sidecar files")
    verify_parser.add_argument("paths", nargs="+", type=Path)
    verify_parser.add_argument("--unset", action="store_true", help="Clear the flag instead of setting it")

    show_parser = subparsers.add_parser("show", help="Print stored sidecar fields without probing")
    show_parser.add_argument("paths", nargs="+", type=Path)

    return parser


def expand_media_paths(paths: Iterable[Path]) -> list[Path]:
    """Expand directories one level into the media files they contain."""
    expanded: list[Path] = []
    for path in paths:
        if path.is_dir():
            expanded.extend(
                sorted(child for child in path.iterdir() if child.is_file() and not is_sidecar_file(child))
            )
        else:
            expanded.append(path)
    return expanded


def render_media_info(result: LoadResult, console: Console) -> None:
    if result.infos is None:
        return
    table = Table(title=f"{result.media_path.name} ({result.status.value})", title_justify="left")
    table.add_column("Tool", style="bold")
    table.add_column("Container")
    table.add_column("Duration", justify="right")
    table.add_column("Type")
    table.add_column("Codec")
    table.add_column("Language")
    table.add_column("Details")
    for info in result.infos:
        _add_info_rows(table, info)
    console.print(table)


def _add_info_rows(table: Table, info: MediaInfo) -> None:
    duration = f"{info.duration:.1f}s" if info.duration is not None else ""
    tracks = info.tracks
    if not tracks:
        table.add_row(info.tool.label, info.container or "", duration, "", "", "", "")
        return
    for index, track in enumerate(tracks):
        details: list[str] = []
        if track.width and track.height:
            details.append(f"{track.width}x{track.height}")
        if track.channels:
            details.append(f"{track.channels}ch")
        if track.interlaced:
            details.append("interlaced")
        if track.default:
            details.append("default")
        if track.forced:
            details.append("forced")
        table.add_row(
            info.tool.label if index == 0 else "",
            (info.container or "") if index == 0 else "",
            duration if index == 0 else "",
            track.kind.value,
            track.codec or "",
            track.language or "",
            ", ".join(details),
        )


def _show_records(store: SidecarStore, paths: Sequence[Path], console: Console) -> int:
    exit_code = EXIT_OK
    for path in paths:
        try:
            record = store.read(path)
        except SidecarError as exc:
            LOGGER.error("Unable to read sidecar for %s: %s", path.name, exc)
            exit_code = EXIT_FAILED
            continue
        if record is None:
            LOGGER.warning("No sidecar file for %s", path.name)
            exit_code = EXIT_FAILED
            continue
        table = Table(title=str(store.sidecar_path(path)), title_justify="left", show_header=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        for key, value in record.describe().items():
            table.add_row(key, str(value))
        console.print(table)
    return exit_code


def run_batch(
    operation: Callable[[Path, threading.Event], LoadResult],
    paths: Sequence[Path],
    *,
    jobs: int = 1,
    cancel_event: threading.Event | None = None,
) -> list[LoadResult]:
    """Apply ``operation`` to each path, stopping new work once cancelled."""
    cancel_event = cancel_event if cancel_event is not None else threading.Event()

    def _one(path: Path) -> LoadResult:
        if cancel_event.is_set():
            return LoadResult(media_path=path, status=LoadStatus.CANCELLED)
        return operation(path, cancel_event)

    with ThreadPoolExecutor(max_workers=max(jobs, 1), thread_name_prefix="sidecar") as executor:
        futures = [executor.submit(_one, path) for path in paths]
        try:
            return [future.result() for future in futures]
        except KeyboardInterrupt:
            LOGGER.warning("Interrupted, cancelling remaining files")
            cancel_event.set()
            return [future.result() for future in futures]


def summarize(results: Sequence[LoadResult]) -> int:
    failed = [f"{r.media_path.name}: {r.error}" for r in results if r.status is LoadStatus.FAILED]
    cancelled = [r.media_path.name for r in results if r.cancelled]
    cached = sum(1 for r in results if r.status is LoadStatus.CACHED)
    probed = sum(1 for r in results if r.status is LoadStatus.PROBED)

    LOGGER.info("Processed %d file(s): %d from sidecar, %d probed", len(results), cached, probed)
    if failed or cancelled:
        LOGGER.warning(render_section_block("Sidecar Summary", [("Failed", failed), ("Cancelled", cancelled)]))
    if cancelled:
        return EXIT_CANCELLED
    if failed:
        return EXIT_FAILED
    return EXIT_OK


def _build_store(config: AppConfig) -> SidecarStore:
    registry = SubprocessToolRegistry(config.tools)
    return SidecarStore(registry, config.sidecar, parallel_probe=config.tools.parallel_probe)


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        configure_logging(logging.INFO)
        LOGGER.error("Failed to load config: %s", exc)
        return EXIT_FAILED

    configure_logging(logging.DEBUG if args.verbose else config.logging.numeric_level)
    if args.invalidate_on_tool_change is not None:
        config.sidecar.invalidate_on_tool_change = args.invalidate_on_tool_change

    store = _build_store(config)
    console = Console()
    paths = expand_media_paths(args.paths)

    if args.command == "show":
        return _show_records(store, paths, console)

    if args.command == "get":
        operation = store.load
    elif args.command == "create":
        operation = store.force_refresh
    else:
        verified = not args.unset

        def operation(path: Path, cancel_event: threading.Event) -> LoadResult:
            return store.mark_verified(path, verified, cancel_event)

    results = run_batch(operation, paths, jobs=args.jobs)
    if args.command == "get":
        for result in results:
            render_media_info(result, console)
    return summarize(results)
