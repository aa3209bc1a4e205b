from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from textwrap import wrap
from typing import Union

from rich.console import Console
from rich.logging import RichHandler

DEFAULT_WRAP_WIDTH = 110
DEFAULT_LABEL_WIDTH = 24
DEFAULT_INDENT = "    "

LOG_FORMAT = "%(message)s"
PLAIN_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

FieldMapping = Union[Mapping[str, object], Sequence[tuple[str, object]]]


def configure_logging(level: int = logging.INFO, *, console: Console | None = None, rich: bool = True) -> None:
    """Install a root handler for command line use.

    Rich output goes to stderr so stdout stays free for tables.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if rich:
        handler: logging.Handler = RichHandler(
            console=console or Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
            log_time_format=f"[{LOG_DATE_FORMAT}]",
        )
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(PLAIN_LOG_FORMAT, datefmt=LOG_DATE_FORMAT))

    root.addHandler(handler)
    root.setLevel(level)


def _stringify(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple, set)):
        return ", ".join(_stringify(item) for item in value)
    return str(value)


def _wrap_text(text: str, width: int) -> list[str]:
    if not text:
        return [""]
    lines: list[str] = []
    for raw_line in text.splitlines() or [""]:
        lines.extend(wrap(raw_line, width=width) or [""])
    return lines


def render_fields_block(title: str, fields: FieldMapping, *, pad_top: bool = True) -> str:
    """Render ``fields`` as an aligned ``label: value`` block under ``title``."""
    items = list(fields.items()) if isinstance(fields, Mapping) else list(fields)
    lines = [""] if pad_top else []
    lines.extend([title, "-" * len(title)])

    label_width = max(min(max((len(str(key)) for key, _ in items), default=0), DEFAULT_LABEL_WIDTH), 8)
    value_width = max(DEFAULT_WRAP_WIDTH - len(DEFAULT_INDENT) - label_width - 4, 32)
    for key, value in items:
        wrapped = _wrap_text(_stringify(value), value_width)
        lines.append(f"{DEFAULT_INDENT}{str(key):<{label_width}}: {wrapped[0]}")
        for continuation in wrapped[1:]:
            lines.append(f"{DEFAULT_INDENT}{'':<{label_width}}  {continuation}")
    return "\n".join(lines).rstrip()


def render_section_block(
    title: str,
    sections: Sequence[tuple[str, Iterable[str]]],
    *,
    pad_top: bool = True,
    empty_label: str = "(none)",
) -> str:
    """Render bulleted sections under ``title``."""
    lines = [""] if pad_top else []
    lines.extend([title, "-" * len(title)])
    bullet = DEFAULT_INDENT + "- "
    continuation_indent = DEFAULT_INDENT + "  "
    bullet_width = max(DEFAULT_WRAP_WIDTH - len(bullet), 24)

    for heading, items in sections:
        lines.append("")
        lines.append(f"{heading}:")
        materialized = [item for item in items if item is not None]
        if not materialized:
            lines.append(f"{DEFAULT_INDENT}{empty_label}")
            continue
        for item in materialized:
            wrapped = _wrap_text(_stringify(item), bullet_width)
            lines.append(f"{bullet}{wrapped[0]}")
            lines.extend(f"{continuation_indent}{text}" for text in wrapped[1:])
    return "\n".join(lines).rstrip()
