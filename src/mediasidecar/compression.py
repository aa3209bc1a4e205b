"""Reversible text compression for stored probe output."""

from __future__ import annotations

import gzip
import zlib

from .errors import DataCorruptionError

# Fixed mtime keeps the output deterministic for identical input.
_GZIP_MTIME = 0


def compress(text: str) -> bytes:
    """Compress ``text`` as gzip of its UTF-8 encoding."""
    return gzip.compress(text.encode("utf-8"), mtime=_GZIP_MTIME)


def decompress(data: bytes) -> str:
    """Inverse of :func:`compress`.

    Raises:
        DataCorruptionError: if ``data`` is not a complete gzip stream or the
            payload is not valid UTF-8.
    """
    try:
        raw = gzip.decompress(data)
    except (OSError, EOFError, zlib.error) as exc:
        raise DataCorruptionError(f"Unable to decompress stored data: {exc}") from exc
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DataCorruptionError(f"Stored data is not valid UTF-8: {exc}") from exc
