from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from langdetect import DetectorFactory, detect
from langdetect.lang_detect_exception import LangDetectException

from .errors import UnsupportedLanguage
from .rulesets import STOPWORDS

_logger = logging.getLogger(__name__)

# langdetect is probabilistic; a fixed seed keeps detection repeatable.
DetectorFactory.seed = 0

_WORD_RE = re.compile(r"\b\w+\b")
# Below this many letters the library guesses more than it detects.
_MIN_LIBRARY_CHARS = 12


def count_stopwords(text: str, stopwords: Mapping[str, Iterable[str]] = STOPWORDS) -> dict[str, int]:
    words = _WORD_RE.findall(text.lower())
    counts: dict[str, int] = {}
    for lang, vocab in stopwords.items():
        vocab_set = set(vocab)
        counts[lang] = sum(1 for w in words if w in vocab_set)
    return counts


def guess_by_stopwords(
    text: str,
    *,
    default: str = "en",
    stopwords: Mapping[str, Iterable[str]] = STOPWORDS,
) -> str:
    """Language with the strictly highest stop-word count; ties go to `default`."""
    counts = count_stopwords(text, stopwords)
    if not counts:
        return default
    best = max(counts.values())
    leaders = [lang for lang, n in counts.items() if n == best]
    if best == 0 or len(leaders) != 1:
        return default
    return leaders[0]


def _detect_with_library(text: str) -> str | None:
    sample = text[:1000]
    if len(re.sub(r"\W+", "", sample)) < _MIN_LIBRARY_CHARS:
        return None
    try:
        return detect(sample).split("-")[0].lower()
    except LangDetectException as e:
        _logger.debug(f"langdetect found no features: {e}")
        return None
    except Exception as e:
        # Any library failure falls through to the stop-word vote.
        _logger.debug(f"langdetect failed: {type(e).__name__}: {e}")
        return None


def detect_language(
    text: str,
    *,
    supported: Iterable[str] = ("en", "es"),
    default: str = "en",
    use_library: bool = True,
) -> str:
    """Best-effort language code for `text`. Never raises; returns `default`
    whenever nothing better can be said."""
    try:
        langs = tuple(supported)
        if use_library:
            detected = _detect_with_library(text)
            if detected in langs:
                return detected
            if detected is not None:
                _logger.debug(f"{UnsupportedLanguage(detected, langs)}; falling back to stop-words")
        stopwords = {lang: STOPWORDS[lang] for lang in langs if lang in STOPWORDS}
        return guess_by_stopwords(text, default=default, stopwords=stopwords)
    except Exception as e:
        _logger.warning(f"Language detection failed, using {default!r}: {e}")
        return default


@dataclass(frozen=True)
class LanguageDetector:
    supported: tuple[str, ...] = ("en", "es")
    default: str = "en"
    use_library: bool = True

    def detect(self, text: str) -> str:
        return detect_language(text, supported=self.supported, default=self.default, use_library=self.use_library)
