"""
External collaborators: exiftool metadata, Tesseract OCR, ffmpeg frame grabs
and text-file content.

Every function here degrades to an empty result (``{}``, ``""`` or ``None``)
when the tool is missing or the file cannot be read; the failure is logged and
the caller simply ends up with fewer name candidates.
"""

from __future__ import annotations

import csv
import json
import logging
import os
import subprocess
import tempfile
from pathlib import Path
from typing import Any

from .detector import is_pdf
from .pdf_extract import get_pdf_metadata
from .text_utils import clean_text, truncate_text

logger = logging.getLogger(__name__)

EXIFTOOL_TIMEOUT_S = 30
FFMPEG_TIMEOUT_S = 60

MAX_TEXT_LINES = 100
MAX_TEXT_CHARS = 500
MAX_TITLE_CHARS = 80

_GENERIC_HEADINGS = frozenset(
    {
        "introduction",
        "overview",
        "table of contents",
        "contents",
        "summary",
        "conclusion",
        "abstract",
        "preface",
        "foreword",
    }
)
_CSV_SEMANTIC_COLUMNS = frozenset({"name", "title", "description", "subject", "label", "product", "item"})


def _exiftool_cmd() -> str:
    return (os.environ.get("NAMEBACK_EXIFTOOL") or "").strip() or "exiftool"


def _ffmpeg_cmd() -> str:
    return (os.environ.get("NAMEBACK_FFMPEG") or "").strip() or "ffmpeg"


def run_exiftool(path: str | Path) -> dict[str, Any]:
    """First object of `exiftool -json <path>`, {} on any failure."""
    path = Path(path)
    try:
        result = subprocess.run(
            [_exiftool_cmd(), "-json", str(path)],
            capture_output=True,
            text=True,
            check=True,
            timeout=EXIFTOOL_TIMEOUT_S,
        )
    except FileNotFoundError:
        logger.warning("exiftool not found; metadata unavailable for %s", path.name)
        return {}
    except subprocess.CalledProcessError as exc:
        logger.debug("exiftool failed for %s: %s", path, (exc.stderr or "").strip())
        return {}
    except subprocess.TimeoutExpired:
        logger.warning("exiftool timed out for %s", path)
        return {}
    try:
        data = json.loads(result.stdout or "[]")
    except json.JSONDecodeError as exc:
        logger.debug("exiftool returned invalid JSON for %s: %s", path, exc)
        return {}
    if isinstance(data, list) and data and isinstance(data[0], dict):
        return data[0]
    return {}


def read_metadata(path: str | Path) -> dict[str, Any]:
    """Metadata fields keyed by exiftool tag name. PDFs fall back to PyMuPDF document info."""
    meta = run_exiftool(path)
    if not meta and is_pdf(path):
        meta = dict(get_pdf_metadata(path))
    return meta


def load_image(path: str | Path) -> Any | None:
    from PIL import Image, UnidentifiedImageError

    try:
        with Image.open(path) as img:
            img.load()
            return img.copy()
    except (OSError, UnidentifiedImageError) as exc:
        logger.debug("Could not load image %s: %s", path, exc)
        return None


def ocr_image(image: Any, lang: str) -> str:
    """Tesseract OCR of a PIL image in one language, '' on failure."""
    import pytesseract

    try:
        return pytesseract.image_to_string(image, lang=lang) or ""
    except pytesseract.TesseractNotFoundError:
        logger.warning("Tesseract not found; OCR unavailable")
        return ""
    except (pytesseract.TesseractError, RuntimeError, OSError) as exc:
        logger.debug("OCR with %s failed: %s", lang, exc)
        return ""


def video_frame(path: str | Path, seconds: float) -> Any | None:
    """Grab one frame at `seconds` with ffmpeg and return it as a PIL image."""
    from PIL import Image, UnidentifiedImageError

    path = Path(path)
    with tempfile.TemporaryDirectory(prefix="nameback_frame_") as tmp:
        frame = Path(tmp) / "frame.png"
        cmd = [
            _ffmpeg_cmd(),
            "-ss",
            f"{seconds:g}",
            "-i",
            str(path),
            "-vframes",
            "1",
            "-f",
            "image2",
            str(frame),
            "-y",
        ]
        try:
            subprocess.run(cmd, capture_output=True, check=True, timeout=FFMPEG_TIMEOUT_S)
        except FileNotFoundError:
            logger.warning("ffmpeg not found; cannot extract video frames from %s", path.name)
            return None
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired) as exc:
            logger.debug("ffmpeg frame extraction at %ss failed for %s: %s", seconds, path, exc)
            return None
        if not frame.exists():
            return None
        try:
            with Image.open(frame) as img:
                img.load()
                return img.copy()
        except (OSError, UnidentifiedImageError) as exc:
            logger.debug("Could not read extracted frame for %s: %s", path, exc)
            return None


def _read_lines(path: Path, limit: int = MAX_TEXT_LINES) -> list[str]:
    lines: list[str] = []
    with open(path, encoding="utf-8", errors="replace") as f:
        for i, line in enumerate(f):
            if i >= limit:
                break
            lines.append(line.rstrip("\n"))
    return lines


def _markdown_title(lines: list[str]) -> str | None:
    in_frontmatter = bool(lines) and lines[0].strip() == "---"
    for line in lines[1:] if in_frontmatter else lines:
        stripped = line.strip()
        if in_frontmatter:
            if stripped == "---":
                in_frontmatter = False
            elif stripped.lower().startswith("title:"):
                title = stripped[len("title:") :].strip().strip("\"'").strip()
                if len(title) > 3:
                    return truncate_text(title, MAX_TITLE_CHARS)
            continue
        if stripped.startswith("#"):
            heading = stripped.lstrip("#").strip()
            if heading.lower() in _GENERIC_HEADINGS:
                continue
            if len(heading) > 3:
                return truncate_text(heading, MAX_TITLE_CHARS)
    return None


def _is_number(value: str) -> bool:
    try:
        float(value)
    except ValueError:
        return False
    return True


def _csv_columns(path: Path) -> str | None:
    with open(path, encoding="utf-8", errors="replace", newline="") as f:
        reader = csv.reader(f)
        header = next(reader, None)
        first_row = next(reader, None) or []
    if not header:
        return None
    chosen: list[str] = []
    for idx, raw in enumerate(header):
        name = raw.strip().strip("\"'")
        if not name:
            continue
        lower = name.lower()
        if lower in _CSV_SEMANTIC_COLUMNS:
            chosen.insert(0, name)
        elif len(chosen) < 2:
            is_id = "id" in lower or lower == "index" or "key" in lower or "guid" in lower
            is_time = any(t in lower for t in ("date", "time", "created", "modified"))
            value = first_row[idx].strip() if idx < len(first_row) else ""
            if not is_id and not is_time and value and not _is_number(value):
                chosen.append(name)
        if len(chosen) >= 2:
            break
    cleaned = clean_text("_".join(chosen[:2]))
    return truncate_text(cleaned, MAX_TITLE_CHARS) if len(cleaned) > 3 else None


def _plain_text(lines: list[str]) -> str | None:
    parts: list[str] = []
    total = 0
    for line in lines:
        stripped = line.strip()
        if stripped:
            parts.append(stripped)
            total += len(stripped) + 1
        if total > MAX_TEXT_CHARS:
            break
    text = clean_text(" ".join(parts))
    return text if len(text) > 10 else None


def read_text_content(path: str | Path) -> str | None:
    """
    Naming text from a text-like file.

    Markdown: frontmatter title or first non-generic heading. CSV: up to two
    descriptive header columns. Otherwise (and as markdown fallback) the
    first ~500 characters of non-empty lines; long results are reduced to
    key phrases by the caller.
    """
    path = Path(path)
    ext = path.suffix.lower()
    try:
        if ext == ".csv":
            return _csv_columns(path)
        lines = _read_lines(path)
        if ext in (".md", ".markdown"):
            title = _markdown_title(lines)
            if title:
                return title
        return _plain_text(lines)
    except (OSError, UnicodeError, csv.Error) as exc:
        logger.debug("Could not read text content of %s: %s", path, exc)
        return None
