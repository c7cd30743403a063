from __future__ import annotations

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Any

from .text_utils import truncate_text

logger = logging.getLogger(__name__)

# Document info dates look like D:YYYYMMDDHHmmSS+hh'mm'; only the date part is used.
_PDF_DATE_RE = re.compile(r"^D:(\d{8})")

# Body text shorter than this is treated as image-only and the first page is OCR'd.
MIN_CHARS_BEFORE_OCR = 10

# Only the start of a document matters for naming.
MAX_CONTENT_CHARS = 20_000

TITLE_LINES = 4
TITLE_SHORT_LINE_CHARS = 30
TITLE_MAX_CHARS = 80
TITLE_MIN_CHARS = 10

# Render scale for OCR of image-only pages (~200 dpi).
_RENDER_ZOOM = 200 / 72


def _open(path: Path) -> Any:
    import fitz  # type: ignore[import-not-found]

    return fitz.open(path)


def _close(doc: Any) -> None:
    closer = getattr(doc, "close", None)
    if callable(closer):
        closer()


def _page_text(page: Any) -> str:
    """Plain text of one page; text blocks when the plain layout comes back empty."""
    try:
        text = (page.get_text("text") or "").strip()
    except Exception as exc:
        logger.debug("get_text('text') failed: %s", exc)
        text = ""
    if text:
        return text
    try:
        blocks = page.get_text("blocks") or []
    except Exception as exc:
        logger.debug("get_text('blocks') failed: %s", exc)
        return ""
    return " ".join(str(b[4]).strip() for b in blocks if len(b) > 4 and str(b[4]).strip())


def _page_texts(doc: Any, path: Path, max_pages: int) -> list[str]:
    count = getattr(doc, "page_count", 0) or 0
    if max_pages > 0:
        count = min(count, max_pages)
    texts: list[str] = []
    for index in range(count):
        try:
            text = _page_text(doc[index])
        except Exception as exc:
            logger.warning("Cannot read page %s of %s: %s", index, path.name, exc)
            continue
        if text:
            texts.append(text)
    return texts


def pdf_to_text(
    filepath: str | Path | None,
    *,
    max_chars: int = MAX_CONTENT_CHARS,
    max_pages: int = 0,
) -> str:
    """
    Body text of a PDF, cut to max_chars. PyMuPDF is imported on first use.
    Returns '' when the file cannot be opened or holds no text layer.
    """
    if not filepath:
        return ""
    path = Path(filepath)
    try:
        doc = _open(path)
    except ImportError:
        logger.warning("PyMuPDF is not installed; cannot read %s", path.name)
        return ""
    except Exception as exc:
        logger.warning("Cannot open %s: %s", path, exc)
        return ""
    try:
        texts = _page_texts(doc, path, max_pages)
    finally:
        _close(doc)

    body = "\n".join(texts).strip()
    if not body:
        logger.debug("%s has no text layer (encrypted or image-only)", path.name)
        return ""
    return truncate_text(body, max_chars)


def pdf_title_lines(text: str | None) -> str | None:
    """
    Build a title from the leading lines of a PDF body.

    Takes the first four non-empty lines longer than 3 characters. The first
    line is always used; following lines are appended only when they are
    short (<= 30 chars), stopping before the title exceeds 80 characters or
    once it reaches 30. Accepted when at least 10 characters long.
    """
    if not text:
        return None
    lines = [ln.strip() for ln in text.splitlines()]
    lines = [ln for ln in lines if len(ln) > 3][:TITLE_LINES]
    if not lines:
        return None
    combined = ""
    for line in lines:
        if not combined:
            combined = line
        elif len(line) <= TITLE_SHORT_LINE_CHARS:
            candidate = f"{combined} {line}"
            if len(candidate) > TITLE_MAX_CHARS:
                break
            combined = candidate
        if len(combined) >= TITLE_SHORT_LINE_CHARS:
            break
    combined = truncate_text(combined, TITLE_MAX_CHARS)
    return combined if len(combined) >= TITLE_MIN_CHARS else None


def render_pdf_page(filepath: str | Path, page_number: int = 0) -> Any | None:
    """Render one page to a PIL image for OCR. None when PyMuPDF/Pillow are missing or rendering fails."""
    path = Path(filepath)
    try:
        import fitz  # type: ignore[import-not-found]
        from PIL import Image
    except ImportError as exc:
        logger.debug("Cannot render %s: %s", path.name, exc)
        return None
    try:
        doc = fitz.open(path)
    except Exception as exc:
        logger.debug("Could not open PDF for rendering %s: %s", path, exc)
        return None
    try:
        if page_number >= (getattr(doc, "page_count", 0) or 0):
            return None
        pix = doc[page_number].get_pixmap(matrix=fitz.Matrix(_RENDER_ZOOM, _RENDER_ZOOM))
        mode = "RGBA" if getattr(pix, "alpha", False) else "RGB"
        return Image.frombytes(mode, (pix.width, pix.height), pix.samples)
    except Exception as exc:
        logger.debug("Rendering page %s of %s failed: %s", page_number, path, exc)
        return None
    finally:
        _close(doc)


def _pdf_date(value: Any) -> str | None:
    """'D:20230415093000+02'00'' -> '2023:04:15' (exiftool date layout)."""
    if not isinstance(value, str):
        return None
    m = _PDF_DATE_RE.match(value.strip())
    if not m:
        return None
    try:
        return datetime.strptime(m.group(1), "%Y%m%d").strftime("%Y:%m:%d")
    except ValueError:
        return None


_INFO_TEXT_KEYS = (("title", "Title"), ("subject", "Subject"), ("author", "Author"), ("creator", "Creator"))
_INFO_DATE_KEYS = (("creationDate", "CreationDate"), ("modDate", "ModifyDate"))


def get_pdf_metadata(filepath: str | Path | None) -> dict[str, str]:
    """
    PDF document info keyed like exiftool output. Empty values are left out;
    {} when the file cannot be opened or PyMuPDF is missing.
    """
    if not filepath:
        return {}
    path = Path(filepath)
    try:
        doc = _open(path)
    except ImportError:
        return {}
    except Exception as exc:
        logger.debug("Cannot read document info of %s: %s", path, exc)
        return {}
    try:
        info = doc.metadata or {}
    finally:
        _close(doc)

    fields: dict[str, str] = {}
    for key, tag in _INFO_TEXT_KEYS:
        text = str(info.get(key) or "").strip()
        if text:
            fields[tag] = text
    for key, tag in _INFO_DATE_KEYS:
        stamp = _pdf_date(info.get(key))
        if stamp:
            fields[tag] = stamp
    return fields
