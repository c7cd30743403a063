from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from . import format_handlers, media
from .detector import FileCategory, detect_type, is_pdf, is_text_like
from .key_phrases import key_phrase_text
from .location import reverse_geocode
from .pdf_extract import MIN_CHARS_BEFORE_OCR, pdf_title_lines, pdf_to_text, render_pdf_page
from .text_utils import clean_text, extract_directory_context, extract_meaningful_stem, truncate_text

logger = logging.getLogger(__name__)

MIN_METADATA_CHARS = 3
MAX_CANDIDATE_CHARS = 80


class SourceKind(str, Enum):
    METADATA = "metadata"
    OCR_TEXT = "ocr_text"
    PDF_BODY = "pdf_body"
    PLAIN_TEXT = "plain_text"
    FILENAME_STEM = "filename_stem"
    DIRECTORY_CONTEXT = "directory_context"
    KEY_PHRASE = "key_phrase"


@dataclass(frozen=True)
class NameCandidate:
    text: str
    source: SourceKind
    language: str | None = None  # OCR language for OCR_TEXT
    field: str | None = None  # metadata tag for METADATA

    def __post_init__(self) -> None:
        if not self.text or not self.text.strip():
            raise ValueError("NameCandidate text must be non-empty")


# Metadata tags tried per category, highest priority first.
METADATA_PRIORITY: Mapping[FileCategory, tuple[str, ...]] = {
    FileCategory.IMAGE: (
        "Title",
        "XPTitle",
        "Description",
        "ImageDescription",
        "Caption-Abstract",
        "DateTimeOriginal",
    ),
    FileCategory.DOCUMENT: ("Title", "Subject", "Author", "Creator"),
    FileCategory.AUDIO: ("Title", "Artist", "Album"),
    FileCategory.VIDEO: ("Title", "Description", "CreateDate", "CreationDate"),
    FileCategory.EMAIL: (),
    FileCategory.WEB: ("Title", "Description"),
    FileCategory.ARCHIVE: (),
    FileCategory.SOURCE_CODE: (),
    FileCategory.UNKNOWN: (),
}

_ERROR_WORDS = (
    "error",
    "exception",
    "warning",
    "failed",
    "cannot",
    "invalid",
    "undefined",
    "null",
    "errno",
    "traceback",
    "fatal",
    "critical",
)
_DEVICE_WORDS = (
    "canon",
    "ipr",
    "printer",
    "scanner",
    "epson",
    "hp",
    "brother",
    "xerox",
    "kyocera",
    "ricoh",
    "lexmark",
    "dell",
    "fujitsu",
)
_PLACEHOLDER_WORDS = (
    "untitled",
    "new document",
    "document1",
    "image1",
    "noname",
    "unnamed",
    "temp",
    "test",
    "sample",
    "copy of",
    "draft",
)


def _word_pattern(words: Iterable[str]) -> re.Pattern[str]:
    alternatives = "|".join(re.escape(w).replace(r"\ ", r"\s+") for w in words)
    return re.compile(rf"(?<![^\W_])(?:{alternatives})(?![^\W_])", re.IGNORECASE)


# Metadata values matching any of these are never used as names.
DENY_PATTERNS: tuple[tuple[str, re.Pattern[str]], ...] = (
    ("error", _word_pattern(_ERROR_WORDS)),
    ("device", _word_pattern(_DEVICE_WORDS)),
    ("placeholder", _word_pattern(_PLACEHOLDER_WORDS)),
)


def deny_reason(value: str) -> str | None:
    for name, pattern in DENY_PATTERNS:
        if pattern.search(value):
            return name
    return None


def is_useful_metadata(value: str | None) -> bool:
    """Reject empty, very short, error-like, device-name and placeholder values."""
    if value is None:
        return False
    stripped = value.strip()
    if len(stripped) < MIN_METADATA_CHARS:
        return False
    return deny_reason(stripped) is None


def metadata_value(raw: Any) -> str | None:
    """Flatten an exiftool value (str, number or list) to text."""
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, (list, tuple)):
        parts = [str(v) for v in raw if v is not None and str(v).strip()]
        return ", ".join(parts) if parts else None
    if isinstance(raw, dict):
        return None
    return str(raw)


@dataclass(frozen=True)
class Collaborators:
    """External capabilities used by the collector; tests substitute fakes."""

    detect_type: Callable[[Path], FileCategory] = detect_type
    read_metadata: Callable[[Path], dict[str, Any]] = media.read_metadata
    load_image: Callable[[Path], Any] = media.load_image
    ocr: Callable[[Any, str], str] = media.ocr_image
    video_frame: Callable[[Path, float], Any] = media.video_frame
    pdf_text: Callable[[Path], str] = pdf_to_text
    pdf_page_image: Callable[[Path, int], Any] = render_pdf_page
    text_content: Callable[[Path], str | None] = media.read_text_content
    format_text: Callable[[Path, FileCategory], str | None] = format_handlers.format_text
    reverse_geocode: Callable[[Any], str | None] = reverse_geocode


@dataclass(frozen=True)
class CollectOptions:
    ocr_languages: tuple[str, ...] = ("chi_tra", "chi_sim", "eng")
    multiframe_video: bool = True
    use_directory_context: bool = True
    key_phrase_min_chars: int = 150
    max_key_phrases: int = 3
    max_key_phrase_chars: int = 80


VIDEO_FRAME_SECONDS = (1.0, 5.0, 10.0)


def _call(label: str, path: Path, fn: Callable[..., Any], *args: Any) -> Any:
    """Run a collaborator; any failure counts as 'no data' for this source."""
    try:
        return fn(*args)
    except Exception as exc:
        logger.warning("%s failed for %s: %s", label, path.name, exc)
        return None


def metadata_candidates(category: FileCategory, metadata: Mapping[str, Any]) -> list[NameCandidate]:
    out: list[NameCandidate] = []
    for tag in METADATA_PRIORITY.get(category, ()):
        value = metadata_value(metadata.get(tag))
        if value is None:
            continue
        cleaned = clean_text(value)
        if not is_useful_metadata(cleaned):
            logger.debug("Ignoring metadata %s=%r", tag, cleaned)
            continue
        out.append(NameCandidate(truncate_text(cleaned, MAX_CANDIDATE_CHARS), SourceKind.METADATA, field=tag))
    return out


def text_candidates(
    text: str | None,
    source: SourceKind,
    options: CollectOptions,
    *,
    language: str | None = None,
) -> list[NameCandidate]:
    """Short text is used directly; long text is reduced to its key phrases."""
    cleaned = clean_text(text)
    if not cleaned:
        return []
    if len(cleaned) > options.key_phrase_min_chars:
        phrases = key_phrase_text(
            cleaned,
            max_phrases=options.max_key_phrases,
            max_chars=options.max_key_phrase_chars,
        )
        return [NameCandidate(phrases, SourceKind.KEY_PHRASE, language=language)] if phrases else []
    return [NameCandidate(truncate_text(cleaned, MAX_CANDIDATE_CHARS), source, language=language)]


def best_ocr_text(
    image: Any,
    languages: Iterable[str],
    ocr: Callable[[Any, str], str],
) -> tuple[str, str | None]:
    """OCR in each language; keep the result with most non-space characters (earlier language wins ties)."""
    best_text, best_lang, best_count = "", None, 0
    for lang in languages:
        try:
            text = clean_text(ocr(image, lang))
        except Exception as exc:
            logger.debug("OCR with %s failed: %s", lang, exc)
            continue
        count = sum(1 for c in text if not c.isspace())
        logger.debug("OCR with %s: %s characters", lang, count)
        if count > best_count:
            best_text, best_lang, best_count = text, lang, count
    return best_text, best_lang


def _ocr_candidates(image: Any, options: CollectOptions, collaborators: Collaborators) -> list[NameCandidate]:
    if image is None:
        return []
    text, lang = best_ocr_text(image, options.ocr_languages, collaborators.ocr)
    return text_candidates(text, SourceKind.OCR_TEXT, options, language=lang)


def _pdf_candidates(path: Path, options: CollectOptions, collaborators: Collaborators) -> list[NameCandidate]:
    body = _call("PDF text extraction", path, collaborators.pdf_text, path) or ""
    cleaned = clean_text(body)
    if len(cleaned) < MIN_CHARS_BEFORE_OCR:
        logger.debug("PDF text too short (%s chars), trying OCR on %s", len(cleaned), path.name)
        image = _call("PDF page rendering", path, collaborators.pdf_page_image, path, 0)
        return _ocr_candidates(image, options, collaborators)

    out: list[NameCandidate] = []
    title = pdf_title_lines(body)
    if title:
        out.append(NameCandidate(title, SourceKind.PDF_BODY))
    if len(cleaned) > options.key_phrase_min_chars:
        out.extend(text_candidates(cleaned, SourceKind.PDF_BODY, options))
    elif not title:
        out.append(NameCandidate(truncate_text(cleaned, MAX_CANDIDATE_CHARS), SourceKind.PDF_BODY))
    return out


def _format_candidates(path: Path, category: FileCategory, collaborators: Collaborators) -> list[NameCandidate]:
    """Header, title, archive or docstring text; ranked like a metadata value."""
    label = format_handlers.HANDLERS[category][0]
    text = clean_text(_call(label, path, collaborators.format_text, path, category))
    if not text:
        return []
    return [NameCandidate(truncate_text(text, MAX_CANDIDATE_CHARS), SourceKind.METADATA, field=label)]


def gather_content(
    path: Path,
    category: FileCategory,
    options: CollectOptions,
    collaborators: Collaborators,
) -> list[NameCandidate]:
    """Content-derived candidates (OCR, PDF body, text files, structured formats) for one file."""
    if category is FileCategory.IMAGE:
        image = _call("Image loading", path, collaborators.load_image, path)
        return _ocr_candidates(image, options, collaborators)
    if category is FileCategory.DOCUMENT:
        if is_pdf(path):
            return _pdf_candidates(path, options, collaborators)
        if is_text_like(path):
            text = _call("Text extraction", path, collaborators.text_content, path)
            return text_candidates(text, SourceKind.PLAIN_TEXT, options)
        return []
    if category is FileCategory.VIDEO:
        seconds = VIDEO_FRAME_SECONDS if options.multiframe_video else VIDEO_FRAME_SECONDS[:1]
        out: list[NameCandidate] = []
        for second in seconds:
            frame = _call("Video frame extraction", path, collaborators.video_frame, path, second)
            out.extend(_ocr_candidates(frame, options, collaborators))
        return out
    if category in format_handlers.HANDLERS:
        return _format_candidates(path, category, collaborators)
    return []


def fallback_candidates(path: Path, options: CollectOptions) -> list[NameCandidate]:
    out: list[NameCandidate] = []
    stem = extract_meaningful_stem(path)
    if stem:
        out.append(NameCandidate(stem, SourceKind.FILENAME_STEM))
    if options.use_directory_context:
        context = extract_directory_context(path)
        if context:
            out.append(NameCandidate(context, SourceKind.DIRECTORY_CONTEXT))
    return out


def collect_candidates(
    path: Path,
    category: FileCategory,
    metadata: Mapping[str, Any],
    options: CollectOptions | None = None,
    collaborators: Collaborators | None = None,
) -> list[NameCandidate]:
    """
    Ordered name candidates for one file: metadata in priority order, or
    content when no metadata value survived, followed by the filename stem
    and directory context. All of them compete in scoring.
    """
    options = options or CollectOptions()
    collaborators = collaborators or Collaborators()

    candidates = metadata_candidates(category, metadata)
    if not candidates:
        candidates = gather_content(path, category, options, collaborators)
    candidates += fallback_candidates(path, options)
    if not candidates:
        logger.info("No name candidates for %s", path.name)
    return candidates
