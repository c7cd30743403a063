from __future__ import annotations

import logging
import re
import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .location import GpsPoint, location_label
from .series import SeriesPattern
from .text_utils import format_timestamp

logger = logging.getLogger(__name__)

# Characters that are unsafe in filenames on at least one platform.
FILENAME_UNSAFE_RE = re.compile(r"[/\\:*?\"<>|()\[\]]")
_CONTROL_RE = re.compile(r"[\x00-\x1f\x7f]")
_WHITESPACE_RE = re.compile(r"\s+")
_REPEATED_SEP_RE = re.compile(r"([_\-.])\1+")
_MIXED_SEP_RE = re.compile(r"[_\-.]*_[_\-.]*")
_EDGE_CHARS = "_-. "

# Reserved names on Windows (case-insensitive).
FILENAME_RESERVED_WIN = frozenset(
    {"CON", "PRN", "AUX", "NUL"} | {f"COM{i}" for i in range(1, 10)} | {f"LPT{i}" for i in range(1, 10)}
)

MAX_NAME_CHARS = 200
# Most filesystems cap a single name at 255 bytes; the counter reserve leaves room for "_N" from the allocator.
FILENAME_MAX_BYTES = 255
COUNTER_RESERVE_BYTES = 8

# Metadata tags used for the timestamp fragment, first parseable wins.
TIMESTAMP_TAGS = ("DateTimeOriginal", "CreateDate", "CreationDate")


def sanitize_stem(text: str | None) -> str | None:
    """
    Turn candidate text into a filename stem: unsafe characters become '_',
    control characters are dropped, whitespace runs collapse to '_', repeated
    separators collapse, separators are trimmed from both ends. None when
    nothing is left.
    """
    if not text:
        return None
    safe = _CONTROL_RE.sub("", text)
    safe = FILENAME_UNSAFE_RE.sub("_", safe)
    safe = _WHITESPACE_RE.sub("_", safe.strip())
    safe = _MIXED_SEP_RE.sub("_", safe)
    safe = _REPEATED_SEP_RE.sub(r"\1", safe)
    safe = safe.strip(_EDGE_CHARS)
    if not safe:
        return None
    if safe.upper() in FILENAME_RESERVED_WIN:
        return f"{safe}_"
    return safe


def timestamp_label(metadata: Mapping[str, Any]) -> str | None:
    for tag in TIMESTAMP_TAGS:
        value = metadata.get(tag)
        formatted = format_timestamp(value if isinstance(value, str) else None)
        if formatted:
            return formatted
    return None


def build_base_name(
    stem: str,
    *,
    location: str | None = None,
    timestamp: str | None = None,
    ordinal: str | None = None,
    max_chars: int = MAX_NAME_CHARS,
    max_bytes: int | None = None,
) -> str:
    """
    stem[_location][_timestamp][_ordinal], cut to max_chars characters and,
    when given, max_bytes of UTF-8 without losing the ordinal.
    """
    head = "_".join(p for p in (stem, location, timestamp) if p)
    tail = f"_{ordinal}" if ordinal else ""
    budget = max(1, max_chars - len(tail))
    if len(head) > budget:
        head = head[:budget].rstrip(_EDGE_CHARS) or head[:budget]
    if max_bytes is not None:
        byte_budget = max(1, max_bytes - len(tail.encode("utf-8")))
        if len(head.encode("utf-8")) > byte_budget:
            cut = _cut_to_bytes(head, byte_budget)
            head = cut.rstrip(_EDGE_CHARS) or cut
    return head + tail


def _cut_to_bytes(text: str, limit: int) -> str:
    # Drops a multi-byte character split at the boundary.
    return text.encode("utf-8")[:limit].decode("utf-8", "ignore")


@dataclass(frozen=True)
class NameOptions:
    include_location: bool = False
    include_timestamp: bool = False
    geocode: bool = True
    max_name_chars: int = MAX_NAME_CHARS


def proposed_base(
    text: str,
    *,
    path: Path,
    metadata: Mapping[str, Any],
    series: SeriesPattern | None,
    options: NameOptions,
    geocoder: Callable[[GpsPoint], str | None],
) -> str | None:
    """Sanitized and enriched base name (no extension) for a winning candidate, or None."""
    stem = sanitize_stem(text)
    if stem is None:
        return None
    location = None
    if options.include_location:
        location = sanitize_stem(location_label(metadata, geocode=options.geocode, geocoder=geocoder))
    timestamp = timestamp_label(metadata) if options.include_timestamp else None
    ordinal = series.ordinal_suffix(path) if series is not None else None
    return build_base_name(
        stem,
        location=location,
        timestamp=timestamp,
        ordinal=ordinal,
        max_chars=options.max_name_chars,
        max_bytes=FILENAME_MAX_BYTES - len(path.suffix.encode("utf-8")) - COUNTER_RESERVE_BYTES,
    )


class NameAllocator:
    """
    Hands out unique names within one directory.

    Seeded with every entry already in the directory; names compare
    case-insensitively. Thread-safe.
    """

    def __init__(self, existing: Iterable[str] = ()) -> None:
        self._lock = threading.Lock()
        self._taken: set[str] = {n.lower() for n in existing}

    @classmethod
    def for_directory(cls, directory: Path) -> NameAllocator:
        return cls(entry.name for entry in directory.iterdir())

    def is_taken(self, name: str) -> bool:
        with self._lock:
            return name.lower() in self._taken

    def mark_taken(self, name: str) -> None:
        with self._lock:
            self._taken.add(name.lower())

    def allocate(self, base: str, extension: str, own_name: str | None = None) -> str:
        """
        Return base+extension, or base_1+extension, base_2+extension, ... for
        the first free name. A file's own current name counts as free for it.
        """
        own = own_name.lower() if own_name else None
        with self._lock:
            candidate = f"{base}{extension}"
            counter = 0
            while True:
                lowered = candidate.lower()
                if lowered == own:
                    return candidate
                if lowered not in self._taken:
                    self._taken.add(lowered)
                    return candidate
                counter += 1
                candidate = f"{base}_{counter}{extension}"


def generate_filename(
    text: str,
    *,
    path: Path,
    metadata: Mapping[str, Any],
    series: SeriesPattern | None,
    options: NameOptions,
    allocator: NameAllocator,
    geocoder: Callable[[GpsPoint], str | None],
) -> str | None:
    """Final, directory-unique filename (with the original extension) for path, or None."""
    base = proposed_base(text, path=path, metadata=metadata, series=series, options=options, geocoder=geocoder)
    if base is None:
        return None
    return allocator.allocate(base, path.suffix, own_name=path.name)
