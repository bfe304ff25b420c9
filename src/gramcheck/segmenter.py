from __future__ import annotations

import re

from .errors import SegmentationError
from .models import Sentence

# Greedy terminator run so "?!" and "..." close a single sentence.
# Naive on purpose: abbreviations ("e.g."), decimals ("3.5") and quoted
# sentences are split wherever a terminator appears.
_SENTENCE_RE = re.compile(r"[^.!?]*[.!?]+")


def _make_sentence(text: str, start: int, end: int) -> Sentence | None:
    chunk = text[start:end]
    stripped = chunk.lstrip()
    if not stripped.strip():
        return None
    return Sentence(text=stripped, offset=start + (len(chunk) - len(stripped)))


def segment(text: str) -> list[Sentence]:
    """Split `text` into sentences with absolute offsets.

    Every non-whitespace character of `text` belongs to exactly one sentence and
    `text[s.offset:s.end] == s.text` holds for each of them. Leading whitespace
    of a unit stays outside the sentence; an unterminated tail becomes the last
    sentence.
    """
    if not isinstance(text, str):
        raise SegmentationError(f"Expected str, got {type(text).__name__}")
    if not text.strip():
        return []

    sentences: list[Sentence] = []
    last_end = 0
    for m in _SENTENCE_RE.finditer(text):
        sent = _make_sentence(text, m.start(), m.end())
        if sent is not None:
            sentences.append(sent)
        last_end = m.end()

    if last_end < len(text):
        tail = _make_sentence(text, last_end, len(text))
        if tail is not None:
            sentences.append(tail)
    return sentences
