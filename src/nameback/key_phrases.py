"""
Key-phrase extraction for long text bodies (OCR output, PDF text, plain text).

Phrases are runs of up to three consecutive non-stop-word tokens. Each distinct
phrase is scored by frequency plus a position weight that favours text near the
start, where titles and headers usually sit.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

STOP_WORDS = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
        "with", "by", "from", "as", "is", "was", "are", "were", "been", "be", "have",
        "has", "had", "do", "does", "did", "will", "would", "could", "should", "may",
        "might", "must", "can", "this", "that", "these", "those", "i", "you", "he",
        "she", "it", "we", "they", "what", "which", "who", "when", "where", "why",
        "how", "not", "no", "so", "if", "then", "than", "there", "their", "its",
        "our", "your", "my", "me", "us", "them", "into", "about", "also", "all",
    }
)  # fmt: skip

_TOKEN_RE = re.compile(r"\w+(?:['’.\-]\w+)*", re.UNICODE)
_BOUNDARY_CHARS = frozenset(".,;:!?()[]{}\n\"|")

MAX_NGRAM = 3
POSITION_DECAY = 0.05


@dataclass(frozen=True)
class _Token:
    text: str
    start: int
    end: int
    stop: bool


@dataclass(frozen=True)
class _Phrase:
    key: str
    first_index: int
    length: int
    score: float


def is_stop_word(word: str) -> bool:
    return word.lower() in STOP_WORDS


def _tokenize(text: str) -> list[_Token]:
    return [
        _Token(text=m.group(0), start=m.start(), end=m.end(), stop=is_stop_word(m.group(0)))
        for m in _TOKEN_RE.finditer(text)
    ]


def _runs(tokens: list[_Token], text: str) -> list[list[int]]:
    """Index runs of non-stop tokens that do not cross sentence punctuation."""
    runs: list[list[int]] = []
    current: list[int] = []
    for i, tok in enumerate(tokens):
        if current:
            gap = text[tokens[current[-1]].end : tok.start]
            if any(c in _BOUNDARY_CHARS for c in gap):
                runs.append(current)
                current = []
        if tok.stop:
            if current:
                runs.append(current)
                current = []
            continue
        current.append(i)
    if current:
        runs.append(current)
    return runs


def extract_key_phrases(text: str | None, max_phrases: int = 3, max_chars: int = 80) -> list[str]:
    """
    Return up to max_phrases non-overlapping phrases in left-to-right order.

    Original casing of the first occurrence is kept. The joined phrases never
    exceed max_chars. Identical input always yields identical output.
    """
    if not text or not text.strip() or max_phrases <= 0:
        return []
    tokens = _tokenize(text)
    if not tokens:
        return []

    frequency: dict[str, int] = {}
    first_seen: dict[str, tuple[int, int]] = {}
    for run in _runs(tokens, text):
        for offset, start in enumerate(run):
            for n in range(1, MAX_NGRAM + 1):
                if offset + n > len(run):
                    break
                idxs = run[offset : offset + n]
                key = " ".join(tokens[i].text.lower() for i in idxs)
                frequency[key] = frequency.get(key, 0) + 1
                if key not in first_seen:
                    first_seen[key] = (start, n)

    if not frequency:
        return []

    phrases = [
        _Phrase(
            key=key,
            first_index=first_seen[key][0],
            length=first_seen[key][1],
            score=frequency[key] + 1.0 / (1.0 + first_seen[key][0] * POSITION_DECAY),
        )
        for key in frequency
    ]
    phrases.sort(key=lambda p: (-p.score, p.first_index, -p.length))

    chosen: list[_Phrase] = []
    used: set[int] = set()
    total_len = 0
    for phrase in phrases:
        if len(chosen) >= max_phrases:
            break
        span = set(range(phrase.first_index, phrase.first_index + phrase.length))
        if span & used:
            continue
        surface = text[tokens[phrase.first_index].start : tokens[phrase.first_index + phrase.length - 1].end]
        added = len(surface) + (1 if chosen else 0)
        if total_len + added > max_chars:
            continue
        chosen.append(phrase)
        used |= span
        total_len += added

    chosen.sort(key=lambda p: p.first_index)
    return [text[tokens[p.first_index].start : tokens[p.first_index + p.length - 1].end] for p in chosen]


def key_phrase_text(text: str | None, max_phrases: int = 3, max_chars: int = 80) -> str:
    """Joined key phrases, '' when nothing usable was found."""
    return " ".join(extract_key_phrases(text, max_phrases=max_phrases, max_chars=max_chars))
