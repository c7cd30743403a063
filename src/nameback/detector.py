from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)


class FileCategory(str, Enum):
    IMAGE = "image"
    DOCUMENT = "document"
    AUDIO = "audio"
    VIDEO = "video"
    EMAIL = "email"
    WEB = "web"
    ARCHIVE = "archive"
    SOURCE_CODE = "source_code"
    UNKNOWN = "unknown"


_EXT_CATEGORY: dict[str, FileCategory] = {
    **dict.fromkeys(
        ("jpg", "jpeg", "png", "gif", "tif", "tiff", "webp", "bmp", "heic", "heif", "raw", "cr2", "nef", "arw", "dng"),
        FileCategory.IMAGE,
    ),
    **dict.fromkeys(
        ("pdf", "txt", "md", "markdown", "csv", "tsv", "rtf", "doc", "docx", "odt", "xls", "xlsx", "ppt", "pptx"),
        FileCategory.DOCUMENT,
    ),
    **dict.fromkeys(("mp3", "wav", "flac", "aac", "m4a", "ogg", "opus", "wma", "aiff"), FileCategory.AUDIO),
    **dict.fromkeys(("mp4", "mov", "avi", "mkv", "webm", "m4v", "wmv", "flv", "3gp", "mts"), FileCategory.VIDEO),
    **dict.fromkeys(("eml", "msg"), FileCategory.EMAIL),
    **dict.fromkeys(("html", "htm", "mhtml"), FileCategory.WEB),
    **dict.fromkeys(("zip", "tar", "gz", "tgz", "bz2", "xz", "7z", "rar"), FileCategory.ARCHIVE),
    **dict.fromkeys(
        ("py", "js", "ts", "rs", "java", "c", "cpp", "cc", "cxx", "h", "hpp", "hxx"),
        FileCategory.SOURCE_CODE,
    ),
}

# Extensions the content extractor reads as plain text.
TEXT_EXTENSIONS = frozenset({"txt", "md", "markdown", "csv", "tsv"})

# (offset, signature, category); checked when the extension is unknown.
_MAGIC: tuple[tuple[int, bytes, FileCategory], ...] = (
    (0, b"%PDF-", FileCategory.DOCUMENT),
    (0, b"\xff\xd8\xff", FileCategory.IMAGE),
    (0, b"\x89PNG\r\n\x1a\n", FileCategory.IMAGE),
    (0, b"GIF87a", FileCategory.IMAGE),
    (0, b"GIF89a", FileCategory.IMAGE),
    (0, b"II*\x00", FileCategory.IMAGE),
    (0, b"MM\x00*", FileCategory.IMAGE),
    (0, b"ID3", FileCategory.AUDIO),
    (0, b"fLaC", FileCategory.AUDIO),
    (0, b"OggS", FileCategory.AUDIO),
    (4, b"ftyp", FileCategory.VIDEO),
    (0, b"\x1aE\xdf\xa3", FileCategory.VIDEO),
    (0, b"PK\x03\x04", FileCategory.ARCHIVE),
    (257, b"ustar", FileCategory.ARCHIVE),
)


def _extension(path: Path) -> str:
    return path.suffix.lower().lstrip(".")


def _sniff(path: Path) -> FileCategory:
    try:
        with open(path, "rb") as f:
            head = f.read(262)
    except OSError as exc:
        logger.debug("Could not read header of %s: %s", path, exc)
        return FileCategory.UNKNOWN
    for offset, signature, category in _MAGIC:
        if head[offset : offset + len(signature)] == signature:
            return category
    if head[:4] == b"RIFF":
        kind = head[8:12]
        if kind == b"WAVE":
            return FileCategory.AUDIO
        if kind == b"AVI ":
            return FileCategory.VIDEO
        if kind == b"WEBP":
            return FileCategory.IMAGE
    return FileCategory.UNKNOWN


def detect_type(path: str | Path) -> FileCategory:
    """Classify a file by extension, falling back to a magic-byte sniff."""
    path_obj = Path(path)
    category = _EXT_CATEGORY.get(_extension(path_obj))
    if category is not None:
        return category
    return _sniff(path_obj)


def is_pdf(path: str | Path) -> bool:
    return _extension(Path(path)) == "pdf"


def is_text_like(path: str | Path) -> bool:
    return _extension(Path(path)) in TEXT_EXTENSIONS
