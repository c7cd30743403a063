from __future__ import annotations

import re
from datetime import datetime
from pathlib import Path

# Camera, scanner and screenshot prefixes stripped before stem analysis (case-insensitive).
_COMMON_PREFIXES = (
    "IMG_",
    "DSC_",
    "SCAN_",
    "Screenshot_",
    "Capture_",
    "VID_",
    "Screen_Shot_",
    "Photo_",
    "Video_",
    "Document_",
    "Copy_of_",
    "Draft_",
    "New_",
    "Untitled_",
    "image_",
    "video_",
    "file_",
)

_STEM_SPLIT_RE = re.compile(r"[_\-. ]+")
_VERSION_RE = re.compile(r"^(?:v\d+|version\d*|final\w*|rev\d*|copy\d*)$", re.IGNORECASE)

_GENERIC_DIR_NAMES = frozenset(
    {
        "documents",
        "downloads",
        "desktop",
        "pictures",
        "videos",
        "music",
        "photos",
        "files",
        "mydocuments",
        "tmp",
        "temp",
        "temporary",
        "cache",
        "data",
        "misc",
        "miscellaneous",
        "other",
        "stuff",
        "things",
        "new",
        "old",
        "archive",
        "backup",
        "src",
        "lib",
        "bin",
        "build",
        "dist",
        "output",
        "home",
        "users",
        "",
    }
)

_WHITESPACE_RE = re.compile(r"\s+")

# EXIF and ISO timestamp layouts seen in exiftool output.
_TIMESTAMP_FORMATS = (
    "%Y:%m:%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%dT%H:%M:%S",
    "%Y%m%d_%H%M%S",
    "%Y:%m:%d",
    "%Y-%m-%d",
    "%Y%m%d",
)
_TZ_SUFFIX_RE = re.compile(r"(?:[+-]\d{2}:?\d{2}|Z)$")
_FRACTION_RE = re.compile(r"\.\d+$")


def clean_text(text: str | None) -> str:
    """Collapse whitespace and strip; None becomes ''."""
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text).strip()


def truncate_text(text: str, max_chars: int) -> str:
    """Cut text to max_chars, preferring the last word boundary."""
    if len(text) <= max_chars:
        return text
    cut = text[:max_chars]
    last_space = cut.rfind(" ")
    if last_space > max_chars // 2:
        cut = cut[:last_space]
    return cut.rstrip()


def strip_common_prefixes(name: str) -> str:
    """Remove camera/device prefixes repeatedly (IMG_DSC_x -> x)."""
    result = name
    changed = True
    while changed:
        changed = False
        lower = result.lower()
        for prefix in _COMMON_PREFIXES:
            if lower.startswith(prefix.lower()):
                result = result[len(prefix) :]
                changed = True
                break
    return result


def is_date_token(token: str) -> bool:
    digits = re.sub(r"[^0-9A-Za-z]", "", token)
    return digits.isdigit() and len(digits) in (4, 6, 8)


def is_time_token(token: str) -> bool:
    digits = re.sub(r"[^0-9A-Za-z]", "", token)
    if not digits.isdigit() or len(digits) not in (4, 6):
        return False
    return int(digits) < 240000


def is_version_token(token: str) -> bool:
    return bool(_VERSION_RE.match(token))


def _is_meaningful_part(part: str) -> bool:
    if len(part) < 2 or part.isdigit():
        return False
    if is_date_token(part) or is_time_token(part) or is_version_token(part):
        return False
    return any(c.isalpha() for c in part)


def extract_meaningful_stem(path: str | Path) -> str | None:
    """
    Derive a name fragment from the original filename stem.

    Device prefixes, pure numbers, dates, times and version markers are
    dropped. Needs two meaningful parts, or one part of at least 5 characters.
    """
    stem = Path(path).stem
    cleaned = strip_common_prefixes(stem)
    parts = [p for p in _STEM_SPLIT_RE.split(cleaned) if p]
    meaningful = [p for p in parts if _is_meaningful_part(p)]
    if len(meaningful) >= 2:
        return "_".join(meaningful)
    if len(meaningful) == 1 and len(meaningful[0]) >= 5:
        return meaningful[0]
    return None


def is_generic_dir_name(name: str) -> bool:
    lower = name.strip().lower()
    if lower in _GENERIC_DIR_NAMES:
        return True
    if len(lower) == 4 and lower.isdigit() and 1900 <= int(lower) <= 2100:
        return True
    if len(lower) == 2 and lower.isdigit() and 1 <= int(lower) <= 12:
        return True
    return False


def extract_directory_context(path: str | Path) -> str | None:
    """Parent and grandparent directory names that carry meaning, grandparent first."""
    parent = Path(path).parent
    parts: list[str] = []
    if parent.name and not is_generic_dir_name(parent.name):
        parts.append(parent.name)
    grandparent = parent.parent
    if (
        parent.name
        and grandparent.name
        and grandparent.name != parent.name
        and not is_generic_dir_name(grandparent.name)
    ):
        parts.insert(0, grandparent.name)
    return "_".join(parts) if parts else None


def format_timestamp(value: str | None) -> str | None:
    """
    Normalize an exiftool timestamp to YYYY-MM-DD.

    Accepts "2023:10:15 14:30:22", ISO forms with or without time zone and
    compact "20231015_143022". Returns None when nothing parses.
    """
    if not value or not isinstance(value, str):
        return None
    raw = value.strip()
    raw = _TZ_SUFFIX_RE.sub("", raw).strip()
    raw = _FRACTION_RE.sub("", raw)
    for fmt in _TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(raw, fmt).strftime("%Y-%m-%d")
        except ValueError:
            continue
    return None
