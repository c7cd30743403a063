"""
Name text from structured formats that carry their own description.

Email headers give subject, sender and date; HTML pages give their
``<title>``; archives are summarized from their member list; source files
give their leading docstring or doc comment. Each reader returns None when
the file has nothing usable and raises OSError when it cannot be read.
"""

from __future__ import annotations

import ast
import logging
import os
import re
import tarfile
import zipfile
from collections.abc import Callable
from email import policy
from email.parser import BytesHeaderParser
from email.utils import parseaddr, parsedate_to_datetime
from html.parser import HTMLParser
from pathlib import Path

from .detector import FileCategory

logger = logging.getLogger(__name__)

# Headers and <head> sections live near the start of the file.
MAX_HEAD_BYTES = 64 * 1024
MAX_SOURCE_BYTES = 1024 * 1024
MAX_DOCSTRING_CHARS = 100


def _read_head(path: Path, limit: int) -> bytes:
    with open(path, "rb") as f:
        return f.read(limit)


def _join_words(text: str, keep: str = "") -> str:
    """Letters, digits and whitespace (plus keep), words joined with '_'."""
    filtered = "".join(c for c in text if c.isalnum() or c.isspace() or c in keep)
    return "_".join(filtered.split())


# --- email ----------------------------------------------------------------------


def sender_name(value: str) -> str:
    """'Jane Doe <jane@example.com>' -> 'Jane_Doe'; a bare address gives its user part."""
    name, address = parseaddr(value)
    if name.strip():
        return _join_words(name)
    address = address or value
    if "@" in address:
        return _join_words(address.split("@", 1)[0])
    return _join_words(address)


def email_date(value: str) -> str | None:
    try:
        return parsedate_to_datetime(value).strftime("%Y-%m-%d")
    except (TypeError, ValueError, IndexError):
        logger.debug("Unparseable email date %r", value)
        return None


def email_name(path: Path) -> str | None:
    """Subject_from_Sender_YYYY-MM-DD from the message headers; missing parts are left out."""
    headers = BytesHeaderParser(policy=policy.default).parsebytes(_read_head(path, MAX_HEAD_BYTES))
    parts: list[str] = []
    subject = _join_words(str(headers.get("Subject") or ""))
    if subject:
        parts.append(subject)
    sender = sender_name(str(headers.get("From") or ""))
    if sender:
        parts.append(f"from_{sender}")
    raw_date = headers.get("Date")
    date = email_date(str(raw_date)) if raw_date else None
    if date:
        parts.append(date)
    return "_".join(parts) or None


# --- html -----------------------------------------------------------------------

# Site suffixes that say nothing about the page itself.
TITLE_SUFFIXES = (
    " - Google Search",
    " - Google",
    " - Wikipedia",
    " - YouTube",
    " | Facebook",
    " | Twitter",
    " | LinkedIn",
)


class _HeadParser(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.title: list[str] = []
        self.description: str | None = None
        self._in_title = False
        self._done = False

    def handle_starttag(self, tag, attrs):
        if self._done:
            return
        if tag == "title":
            self._in_title = True
        elif tag == "body":
            self._done = True
        elif tag == "meta" and self.description is None:
            values = dict(attrs)
            if (values.get("name") or "").lower() == "description" and values.get("content"):
                self.description = values["content"]

    def handle_endtag(self, tag):
        if tag == "title":
            self._in_title = False
        elif tag == "head":
            self._done = True

    def handle_data(self, data):
        if self._in_title and not self._done:
            self.title.append(data)


def clean_page_title(title: str) -> str:
    text = " ".join(title.split())
    for suffix in TITLE_SUFFIXES:
        if text.endswith(suffix):
            text = text[: -len(suffix)]
            break
    return _join_words(text, keep="-_")


def html_title(path: Path) -> str | None:
    """Page <title>, or the meta description when the title is empty."""
    parser = _HeadParser()
    parser.feed(_read_head(path, MAX_HEAD_BYTES).decode("utf-8", "replace"))
    parser.close()
    for text in ("".join(parser.title), parser.description or ""):
        cleaned = clean_page_title(text)
        if cleaned:
            return cleaned
    return None


# --- archives -------------------------------------------------------------------

_JUNK_PREFIXES = (".ds_store", "thumbs.db", "desktop.ini", "__macosx")


def _is_junk_member(name: str) -> bool:
    lower = name.lower()
    if any(part.startswith(_JUNK_PREFIXES) for part in lower.split("/")):
        return True
    base = lower.rsplit("/", 1)[-1]
    return base.endswith(".txt") and ("readme" in base or "license" in base)


def _clean_member_name(name: str) -> str:
    kept = "".join(c for c in name if c.isalnum() or c in "_-")
    return kept.strip("_-")


def archive_members(path: Path) -> list[str] | None:
    """File members of a zip or tar archive (directories excluded); None for other formats."""
    if zipfile.is_zipfile(path):
        with zipfile.ZipFile(path) as archive:
            return [info.filename for info in archive.infolist() if not info.is_dir()]
    if tarfile.is_tarfile(path):
        with tarfile.open(path) as archive:
            return [member.name for member in archive.getmembers() if member.isfile()]
    logger.debug("No reader for archive %s", path.name)
    return None


def summarize_members(names: list[str]) -> str | None:
    """
    A single member gives its stem; several members give their common
    leading path or name, cut back to the last separator.
    """
    files = [n for n in names if not _is_junk_member(n)]
    if len(files) == 1:
        stem = os.path.splitext(files[0].rsplit("/", 1)[-1])[0]
        if len(stem) <= 2:
            return None
        return _clean_member_name(stem) or None
    if len(files) < 2:
        return None
    prefix = os.path.commonprefix(files)
    if len(prefix) <= 3:
        return None
    separators = [i for i, c in enumerate(prefix) if not c.isalnum()]
    if separators and separators[-1] > 0:
        prefix = prefix[: separators[-1]]
    common = _clean_member_name(prefix)
    return common if len(common) > 3 else None


def archive_summary(path: Path) -> str | None:
    try:
        names = archive_members(path)
    except (zipfile.BadZipFile, tarfile.TarError) as exc:
        logger.debug("Could not list archive %s: %s", path.name, exc)
        return None
    return summarize_members(names) if names else None


# --- source code ----------------------------------------------------------------

_PY_DOCSTRING_RE = re.compile(r'\A(?:\s*#[^\n]*\n)*\s*[rRuU]?("""|\'\'\')(.*?)\1', re.DOTALL)
_BLOCK_COMMENT_RE = re.compile(r"/\*[*!](.*?)\*/", re.DOTALL)
_JSDOC_RE = re.compile(r"/\*\*(.*?)\*/", re.DOTALL)
_FILE_TAG_RE = re.compile(r"@(?:file|fileoverview|module)\s+(.+)")

C_EXTENSIONS = frozenset({"c", "cpp", "cc", "cxx", "h", "hpp", "hxx"})


def clean_docstring(text: str) -> str:
    """One line: the first sentence, or up to MAX_DOCSTRING_CHARS cut at a word boundary."""
    cleaned = " ".join(text.split())
    period = cleaned.find(". ")
    if 0 <= period < MAX_DOCSTRING_CHARS:
        return cleaned[:period]
    if len(cleaned) > MAX_DOCSTRING_CHARS:
        space = cleaned.rfind(" ", 0, MAX_DOCSTRING_CHARS)
        if space > 0:
            return cleaned[:space]
    return cleaned


def _comment_lines(block: str) -> list[str]:
    return [line.strip().lstrip("*").strip() for line in block.splitlines()]


def _description(lines: list[str]) -> str:
    """Comment text before the first @tag."""
    out: list[str] = []
    for line in lines:
        if line.startswith("@"):
            break
        out.append(line)
    return " ".join(out).strip()


def python_docstring(source: str) -> str | None:
    try:
        return ast.get_docstring(ast.parse(source))
    except (SyntaxError, ValueError):
        match = _PY_DOCSTRING_RE.match(source)
        return match.group(2) if match else None


def jsdoc_description(source: str) -> str | None:
    match = _JSDOC_RE.search(source)
    if match is None:
        return None
    lines = _comment_lines(match.group(1))
    for line in lines:
        tagged = _FILE_TAG_RE.search(line)
        if tagged:
            return tagged.group(1)
    return _description(lines) or None


def leading_line_comments(source: str, marker: str) -> str | None:
    """Consecutive `marker` comment lines at the top of the file (after blank lines)."""
    out: list[str] = []
    for line in source.splitlines():
        stripped = line.strip()
        if stripped.startswith(marker):
            out.append(stripped[len(marker) :].strip())
        elif out or (stripped and not stripped.startswith("#")):
            break
    return " ".join(out).strip() or None


def block_doc_comment(source: str) -> str | None:
    """First /** */ or /*! */ block, else leading /// lines."""
    match = _BLOCK_COMMENT_RE.search(source)
    if match is not None:
        text = _description(_comment_lines(match.group(1)))
        if text:
            return text
    return leading_line_comments(source, "///")


def code_docstring(path: Path) -> str | None:
    extension = path.suffix.lower().lstrip(".")
    source = _read_head(path, MAX_SOURCE_BYTES).decode("utf-8", "replace")
    if extension == "py":
        raw = python_docstring(source)
    elif extension in ("js", "ts"):
        raw = jsdoc_description(source)
    elif extension == "rs":
        raw = leading_line_comments(source, "//!")
    elif extension == "java":
        match = _JSDOC_RE.search(source)
        raw = _description(_comment_lines(match.group(1))) if match else None
    elif extension in C_EXTENSIONS:
        raw = block_doc_comment(source)
    else:
        raw = None
    if not raw:
        return None
    return clean_docstring(raw) or None


# Category -> (candidate field label, reader).
HANDLERS: dict[FileCategory, tuple[str, Callable[[Path], str | None]]] = {
    FileCategory.EMAIL: ("EmailHeaders", email_name),
    FileCategory.WEB: ("HtmlTitle", html_title),
    FileCategory.ARCHIVE: ("ArchiveContents", archive_summary),
    FileCategory.SOURCE_CODE: ("Docstring", code_docstring),
}


def format_text(path: Path, category: FileCategory) -> str | None:
    entry = HANDLERS.get(category)
    if entry is None:
        return None
    return entry[1](path)
