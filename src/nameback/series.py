"""
Numbered-series detection.

Files such as ``beach_001.jpg``, ``beach_002.jpg``, ``beach_003.jpg`` form a
series; once renamed, each member keeps its ordinal (``sunset_001.jpg``...).
Detection runs once per directory, before any name is allocated.
"""

from __future__ import annotations

import logging
import re
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

MIN_SERIES_MEMBERS = 3


class SeriesKind(str, Enum):
    UNDERSCORE = "underscore"
    PARENTHESIZED = "parenthesized"
    HYPHEN = "hyphen"
    SPACE = "space"


# Order doubles as the final tie-break between kinds.
_KIND_PATTERNS: tuple[tuple[SeriesKind, re.Pattern[str]], ...] = (
    (SeriesKind.UNDERSCORE, re.compile(r"^(.+?)_(\d+)$")),
    (SeriesKind.PARENTHESIZED, re.compile(r"^(.+?)\s*\((\d+)\)$")),
    (SeriesKind.HYPHEN, re.compile(r"^(.+?)-(\d+)$")),
    (SeriesKind.SPACE, re.compile(r"^(.+?)\s+(\d+)$")),
)
_KIND_ORDER = {kind: i for i, (kind, _) in enumerate(_KIND_PATTERNS)}


@dataclass(frozen=True)
class SeriesPattern:
    prefix: str
    digit_width: int  # 0 = unpadded ordinals
    kind: SeriesKind
    member_paths: tuple[Path, ...]
    member_ordinals: tuple[str, ...]

    def __post_init__(self) -> None:
        if len(self.member_paths) != len(self.member_ordinals):
            raise ValueError("member_paths and member_ordinals must have equal length")

    def ordinal_suffix(self, path: Path) -> str | None:
        """The member's ordinal exactly as it appeared (padding preserved)."""
        try:
            return self.member_ordinals[self.member_paths.index(path)]
        except ValueError:
            return None

    def __len__(self) -> int:
        return len(self.member_paths)


@dataclass(frozen=True)
class _Match:
    path: Path
    kind: SeriesKind
    prefix: str
    digits: str

    @property
    def padded(self) -> bool:
        return len(self.digits) > 1 and self.digits.startswith("0")


_ClassKey = tuple[str, SeriesKind, int]


def _stem_matches(path: Path) -> list[_Match]:
    stem = path.stem
    out = []
    for kind, pattern in _KIND_PATTERNS:
        m = pattern.match(stem)
        if m:
            out.append(_Match(path, kind, m.group(1), m.group(2)))
    return out


def detect_series(paths: Iterable[Path]) -> list[SeriesPattern]:
    """
    Group files into numbered series.

    A series is (prefix, kind, digit width). Zero-padded ordinals define the
    width; an unpadded ordinal joins a padded class of the same prefix and kind
    when its length equals that width, otherwise the unpadded class (width 0).
    A file matching several kinds keeps the longest numeric group, then the
    class with most provisional members, then the fixed kind order. Only
    groups of at least three files are returned.
    """
    ordered = sorted(paths, key=lambda p: p.name)
    matches = {path: _stem_matches(path) for path in ordered}

    padded_widths: dict[tuple[str, SeriesKind], set[int]] = defaultdict(set)
    for path_matches in matches.values():
        for m in path_matches:
            if m.padded:
                padded_widths[(m.prefix, m.kind)].add(len(m.digits))

    def class_of(m: _Match) -> _ClassKey:
        width = len(m.digits)
        if m.padded or width in padded_widths[(m.prefix, m.kind)]:
            return (m.prefix, m.kind, width)
        return (m.prefix, m.kind, 0)

    provisional: dict[_ClassKey, int] = defaultdict(int)
    for path_matches in matches.values():
        for key in {class_of(m) for m in path_matches}:
            provisional[key] += 1

    groups: dict[_ClassKey, list[_Match]] = defaultdict(list)
    for path_matches in matches.values():
        if not path_matches:
            continue
        chosen = min(
            path_matches,
            key=lambda m: (-len(m.digits), -provisional[class_of(m)], _KIND_ORDER[m.kind]),
        )
        groups[class_of(chosen)].append(chosen)

    patterns = [
        SeriesPattern(
            prefix=prefix,
            digit_width=width,
            kind=kind,
            member_paths=tuple(m.path for m in members),
            member_ordinals=tuple(m.digits for m in members),
        )
        for (prefix, kind, width), members in groups.items()
        if len(members) >= MIN_SERIES_MEMBERS
    ]
    patterns.sort(key=lambda s: (s.prefix, _KIND_ORDER[s.kind], s.digit_width))
    for s in patterns:
        logger.debug("Detected %s series %r (width %s, %s members)", s.kind.value, s.prefix, s.digit_width, len(s))
    return patterns


def series_by_path(patterns: Iterable[SeriesPattern]) -> dict[Path, SeriesPattern]:
    return {path: s for s in patterns for path in s.member_paths}
