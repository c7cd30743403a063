from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field, fields, replace
from pathlib import Path

from .candidates import NameCandidate, SourceKind

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_RELIABILITY: dict[SourceKind, float] = {
    SourceKind.METADATA: 3.0,
    SourceKind.PLAIN_TEXT: 2.5,
    SourceKind.PDF_BODY: 2.0,
    SourceKind.KEY_PHRASE: 1.8,
    SourceKind.OCR_TEXT: 1.5,
    SourceKind.FILENAME_STEM: 1.0,
    SourceKind.DIRECTORY_CONTEXT: 0.8,
}

DEFAULT_PENALTIES: dict[str, float] = {
    "date_only": 0.3,
    "error_keyword": 0.2,
    "technical_id": 0.3,
    "installer": 0.2,
    "mostly_numeric": 0.5,
    "symbol_noise": 0.5,
    "repeated_chars": 0.5,
}


@dataclass(frozen=True)
class ScoringWeights:
    """Tunable constants of the scoring formula. Shape is fixed: additive terms, then penalty multipliers."""

    length_weight: float = 2.0
    # (max_length_inclusive, band_score); lengths above the last bound use overflow_length_score.
    length_bands: tuple[tuple[int, float], ...] = ((10, 0.2), (19, 0.6), (60, 1.0), (100, 0.7))
    overflow_length_score: float = 0.4
    source_reliability: dict[SourceKind, float] = field(default_factory=lambda: dict(DEFAULT_SOURCE_RELIABILITY))
    word_cap: int = 5
    per_word_weight: float = 0.5
    diversity_weight: float = 1.5
    penalties: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_PENALTIES))
    min_score: float = 2.0

    def __post_init__(self) -> None:
        if self.word_cap < 0:
            raise ValueError(f"word_cap must be >= 0, got {self.word_cap}")
        unknown = set(self.penalties) - set(DEFAULT_PENALTIES)
        if unknown:
            raise ValueError(f"Unknown penalty names: {sorted(unknown)}")

    def length_score(self, length: int) -> float:
        for bound, band in self.length_bands:
            if length <= bound:
                return band
        return self.overflow_length_score

    def reliability(self, source: SourceKind) -> float:
        return self.source_reliability.get(source, 0.0)


def weights_from_dict(data: dict) -> ScoringWeights:
    """Build ScoringWeights from a plain dict (JSON/YAML config). Unknown keys are ignored."""
    if not isinstance(data, dict):
        raise ValueError("scoring weights must be a mapping")
    base = ScoringWeights()
    allowed = {f.name for f in fields(ScoringWeights)}
    kwargs: dict = {}
    for key, value in data.items():
        if key not in allowed:
            logger.warning("Ignoring unknown scoring weight %r", key)
            continue
        if key == "source_reliability":
            merged = dict(base.source_reliability)
            for name, weight in (value or {}).items():
                try:
                    merged[SourceKind(str(name).lower())] = float(weight)
                except ValueError as exc:
                    raise ValueError(f"Unknown candidate source {name!r} in source_reliability") from exc
            kwargs[key] = merged
        elif key == "penalties":
            merged_p = dict(base.penalties)
            merged_p.update({str(k): float(v) for k, v in (value or {}).items()})
            kwargs[key] = merged_p
        elif key == "length_bands":
            kwargs[key] = tuple((int(b), float(s)) for b, s in value)
        elif key == "word_cap":
            kwargs[key] = int(value)
        else:
            kwargs[key] = float(value)
    return replace(base, **kwargs)


def load_scoring_weights(path: str | Path) -> ScoringWeights:
    path_obj = Path(path)
    try:
        raw = path_obj.read_text(encoding="utf-8")
    except OSError as exc:
        raise ValueError(f"Could not read scoring weights {path_obj.name!r}: {exc!s}") from exc
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in scoring weights {path_obj.name!r}. {exc!s}") from exc
    return weights_from_dict(data)


# --- penalty matchers -----------------------------------------------------------

_ERROR_RE = re.compile(r"\b(?:error|exception|warning|failed|cannot|invalid|traceback)\b", re.IGNORECASE)
_UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE)
_HEX_RE = re.compile(r"^[0-9a-f]{32,}$", re.IGNORECASE)
_HEX_TOKEN_RE = re.compile(r"\b[0-9a-f]{32,}\b", re.IGNORECASE)
_PLATFORM_RE = re.compile(
    r"windows|win32|win64|macos|osx|darwin|linux|ubuntu|debian|x86|x64|amd64|arm64", re.IGNORECASE
)
_VENDOR_RE = re.compile(r"adobe|microsoft|google|apple|oracle", re.IGNORECASE)
_INSTALLER_RE = re.compile(r"setup|install|package|release", re.IGNORECASE)
_DECIMAL_VERSION_RE = re.compile(r"(?:^|[\s_\-(])v?\d+(?:\.\d+){1,3}(?=$|[\s_\-)])")
_RECENT_YEAR_RE = re.compile(r"20[1-2]\d|2030")
_REPEAT_RE = re.compile(r"(.)\1{3,}")


def is_date_only(text: str) -> bool:
    """Bare 4, 6 or 8 digit runs such as 2023, 202306 or 2023-06-15. Timestamps with a time part are not date-only."""
    compact = "".join(c for c in text if c.isalnum())
    return compact.isdigit() and len(compact) in (4, 6, 8)


def has_error_keyword(text: str) -> bool:
    return bool(_ERROR_RE.search(text))


def looks_like_technical_id(text: str) -> bool:
    stripped = text.strip()
    return bool(_UUID_RE.match(stripped) or _HEX_RE.match(stripped) or _HEX_TOKEN_RE.search(stripped))


def looks_like_installer(text: str) -> bool:
    indicators = sum(
        (
            bool(_PLATFORM_RE.search(text)),
            bool(_DECIMAL_VERSION_RE.search(text)),
            bool(_VENDOR_RE.search(text)),
            bool(_RECENT_YEAR_RE.search(text)),
            bool(_INSTALLER_RE.search(text)),
        )
    )
    return indicators >= 3


def is_mostly_numeric(text: str) -> bool:
    alpha = sum(1 for c in text if c.isalpha())
    digits = sum(1 for c in text if c.isdigit())
    return alpha < 3 or digits / len(text) > 0.7


def is_symbol_noise(text: str) -> bool:
    alnum = sum(1 for c in text if c.isalnum())
    return alnum / len(text) < 0.5


def has_repeated_chars(text: str) -> bool:
    return bool(_REPEAT_RE.search(text))


@dataclass(frozen=True)
class PenaltyRule:
    name: str
    matches: Callable[[str], bool]


# Evaluated in this order; multipliers stack.
PENALTY_RULES: tuple[PenaltyRule, ...] = (
    PenaltyRule("date_only", is_date_only),
    PenaltyRule("error_keyword", has_error_keyword),
    PenaltyRule("technical_id", looks_like_technical_id),
    PenaltyRule("installer", looks_like_installer),
    PenaltyRule("mostly_numeric", is_mostly_numeric),
    PenaltyRule("symbol_noise", is_symbol_noise),
    PenaltyRule("repeated_chars", has_repeated_chars),
)


@dataclass(frozen=True)
class ScoredCandidate:
    candidate: NameCandidate
    score: float
    base_score: float
    penalty: float
    reliability: float
    order: int
    penalties_applied: tuple[str, ...] = ()

    @property
    def sort_key(self) -> tuple[float, float, int]:
        return (-self.score, -self.reliability, self.order)

    @property
    def text(self) -> str:
        return self.candidate.text


@dataclass(frozen=True)
class Selection:
    best: ScoredCandidate | None
    ranked: tuple[ScoredCandidate, ...]

    @property
    def below_threshold(self) -> bool:
        return self.best is None and bool(self.ranked)


@dataclass(frozen=True)
class QualityScorer:
    weights: ScoringWeights = field(default_factory=ScoringWeights)

    def score(self, candidate: NameCandidate, order: int = 0) -> ScoredCandidate:
        w = self.weights
        text = candidate.text.strip()
        reliability = w.reliability(candidate.source)
        if not text:
            return ScoredCandidate(candidate, 0.0, 0.0, 0.0, reliability, order)

        length = len(text)
        base = w.length_score(length) * w.length_weight
        base += reliability
        base += min(len(text.split()), w.word_cap) * w.per_word_weight
        base += (len(set(text)) / length) * w.diversity_weight

        penalty = 1.0
        applied: list[str] = []
        for rule in PENALTY_RULES:
            if rule.matches(text):
                penalty *= w.penalties.get(rule.name, 1.0)
                applied.append(rule.name)

        return ScoredCandidate(
            candidate=candidate,
            score=base * penalty,
            base_score=base,
            penalty=penalty,
            reliability=reliability,
            order=order,
            penalties_applied=tuple(applied),
        )

    def rank(self, candidates: Iterable[NameCandidate]) -> list[ScoredCandidate]:
        scored = [self.score(c, order=i) for i, c in enumerate(candidates)]
        scored.sort(key=lambda s: s.sort_key)
        return scored

    def select(self, candidates: Iterable[NameCandidate]) -> Selection:
        """
        Rank candidates and pick the winner.

        best is None when there are no candidates or when the top score is
        below weights.min_score; ranked always holds every scored candidate.
        """
        ranked = self.rank(candidates)
        if not ranked:
            return Selection(best=None, ranked=())
        top = ranked[0]
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(
                "Candidate ranking: %s",
                [(s.text, s.candidate.source.value, round(s.score, 3), s.penalties_applied) for s in ranked[:5]],
            )
        if top.score < self.weights.min_score:
            logger.info(
                "Best candidate %r scored %.2f, below threshold %.2f",
                top.text,
                top.score,
                self.weights.min_score,
            )
            return Selection(best=None, ranked=tuple(ranked))
        return Selection(best=top, ranked=tuple(ranked))
