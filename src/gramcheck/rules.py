from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Pattern, Union

import yaml

from .errors import UnsupportedLanguage
from .models import ALL_CATEGORIES, Correction, ErrorType, Severity

_logger = logging.getLogger(__name__)

_WORD_RE = re.compile(r"\b\w+\b")


@dataclass(frozen=True)
class PatternRule:
    name: str
    pattern: str
    replacement: str
    message: str
    group_to_replace: int = 1
    flags: str = "I"  # e.g. "I" for IGNORECASE
    error_type: ErrorType = ErrorType.GRAMMAR


@dataclass(frozen=True)
class DictionaryRule:
    """Substitution table keyed by lower-cased word token."""

    name: str
    words: Mapping[str, str]
    message: str
    error_type: ErrorType = ErrorType.SPELLING

    def __post_init__(self) -> None:
        frozen = MappingProxyType({str(k).lower(): str(v) for k, v in dict(self.words).items()})
        object.__setattr__(self, "words", frozen)

    def __hash__(self) -> int:
        return hash((self.name, tuple(sorted(self.words.items())), self.message))


Rule = Union[PatternRule, DictionaryRule]
RuleSet = tuple[Rule, ...]

# Severity follows the correction type; shared with the diff extractor.
SEVERITY_BY_TYPE: Mapping[ErrorType, Severity] = MappingProxyType(
    {
        ErrorType.SPELLING: Severity.HIGH,
        ErrorType.GRAMMAR: Severity.HIGH,
        ErrorType.PUNCTUATION: Severity.MEDIUM,
        ErrorType.CAPITALIZATION: Severity.LOW,
        ErrorType.STYLE: Severity.LOW,
    }
)


def _regex_flags(flags: str) -> int:
    out = 0
    if "I" in flags.upper():
        out |= re.IGNORECASE
    if "M" in flags.upper():
        out |= re.MULTILINE
    if "S" in flags.upper():
        out |= re.DOTALL
    return out


@lru_cache(maxsize=512)
def compile_rule(rule: PatternRule) -> Pattern[str]:
    """Compile the rule template. The compiled object is stateless; `finditer`
    starts a fresh scan on every call."""
    regex = re.compile(rule.pattern, flags=_regex_flags(rule.flags))
    if rule.group_to_replace < 0 or rule.group_to_replace > regex.groups:
        raise ValueError(
            f"Rule {rule.name!r}: group_to_replace={rule.group_to_replace} but pattern has {regex.groups} groups"
        )
    return regex


def _apply_pattern_rule(text: str, rule: PatternRule) -> list[Correction]:
    regex = compile_rule(rule)
    group = rule.group_to_replace
    out: list[Correction] = []
    for m in regex.finditer(text):
        original = m.group(group)
        if not original:
            continue
        out.append(
            Correction(
                type=rule.error_type,
                position=m.start(group),
                length=len(original),
                original=original,
                suggestion=rule.replacement,
                message=rule.message,
                severity=SEVERITY_BY_TYPE[rule.error_type],
                rule=rule.name,
            )
        )
    return out


def _apply_dictionary_rule(text: str, rule: DictionaryRule, exempt: frozenset[str]) -> list[Correction]:
    out: list[Correction] = []
    for m in _WORD_RE.finditer(text):
        word = m.group(0)
        lower = word.lower()
        replacement = rule.words.get(lower)
        if replacement is None or lower in exempt:
            continue
        out.append(
            Correction(
                type=rule.error_type,
                position=m.start(),
                length=len(word),
                original=word,
                suggestion=replacement,
                message=f'{rule.message}: "{word}" should be "{replacement}"',
                severity=SEVERITY_BY_TYPE[rule.error_type],
                rule=rule.name,
            )
        )
    return out


def apply_rules(
    text: str,
    rules: Iterable[Rule],
    *,
    personal_dictionary: Iterable[str] = (),
) -> list[Correction]:
    """Run every rule over `text`; positions are relative to `text`.

    Corrections come out in rule order, then match order. Overlapping matches
    from different rules are all reported; merging them is up to the caller.
    """
    exempt = frozenset(w.lower() for w in personal_dictionary)
    out: list[Correction] = []
    for rule in rules:
        if isinstance(rule, PatternRule):
            out.extend(_apply_pattern_rule(text, rule))
        elif isinstance(rule, DictionaryRule):
            out.extend(_apply_dictionary_rule(text, rule, exempt))
        else:
            raise TypeError(f"Unsupported rule kind: {type(rule).__name__}")
    return out


def apply_corrections(text: str, corrections: Sequence[Correction]) -> str:
    """Apply suggestions to `text`, right to left.

    When corrections overlap, the earliest-starting one wins (ties: the one
    listed first) and the rest are skipped. Zero-length corrections insert
    their suggestion at `position`.
    """
    indexed = sorted(enumerate(corrections), key=lambda item: (item[1].position, item[0]))
    kept: list[Correction] = []
    cursor = -1
    for _, corr in indexed:
        if corr.position < 0 or corr.end > len(text):
            raise ValueError(f"Correction out of bounds: {corr.position}+{corr.length} for length {len(text)}")
        if kept and corr.position < cursor:
            continue
        kept.append(corr)
        cursor = corr.end

    out = text
    for corr in reversed(kept):
        out = out[: corr.position] + corr.suggestion + out[corr.end :]
    return out


class RuleEngine:
    """Applies per-language rule sets injected at construction time."""

    def __init__(
        self,
        rule_sets: Mapping[str, Sequence[Rule]],
        *,
        default_language: str = "en",
        personal_dictionary: Iterable[str] = (),
        enabled_categories: Iterable[ErrorType | str] = ALL_CATEGORIES,
    ):
        self._rule_sets: Mapping[str, RuleSet] = MappingProxyType(
            {str(lang).lower(): tuple(rules) for lang, rules in rule_sets.items()}
        )
        if default_language not in self._rule_sets:
            raise UnsupportedLanguage(default_language, self.languages)
        self.default_language = default_language
        self.personal_dictionary = frozenset(w.lower() for w in personal_dictionary)
        self.enabled_categories = frozenset(ErrorType(c) for c in enabled_categories)

    @property
    def languages(self) -> tuple[str, ...]:
        return tuple(self._rule_sets.keys())

    def rules_for(self, language: str | None) -> RuleSet:
        lang = (language or self.default_language).strip().lower()
        rules = self._rule_sets.get(lang)
        if rules is None:
            _logger.debug(f"{UnsupportedLanguage(lang, self.languages)}; using {self.default_language!r} rules")
            return self._rule_sets[self.default_language]
        return rules

    def apply(self, sentence_text: str, rules: Sequence[Rule]) -> list[Correction]:
        corrections = apply_rules(sentence_text, rules, personal_dictionary=self.personal_dictionary)
        return [c for c in corrections if c.type in self.enabled_categories]

    def check(self, sentence_text: str, language: str | None = None) -> list[Correction]:
        return self.apply(sentence_text, self.rules_for(language))


def rule_from_dict(data: Mapping[str, Any]) -> Rule:
    name = str(data["name"])
    message = str(data.get("message", ""))
    error_type = data.get("type")
    if "words" in data:
        words = data.get("words") or {}
        if not isinstance(words, Mapping):
            raise ValueError(f"Rule {name!r}: 'words' must be a mapping")
        return DictionaryRule(
            name=name,
            words={str(k): str(v) for k, v in words.items()},
            message=message,
            error_type=ErrorType(error_type or ErrorType.SPELLING),
        )
    rule = PatternRule(
        name=name,
        pattern=str(data["pattern"]),
        replacement=str(data["replacement"]),
        message=message,
        group_to_replace=int(data.get("group_to_replace", 1)),
        flags=str(data.get("flags", "I")),
        error_type=ErrorType(error_type or ErrorType.GRAMMAR),
    )
    # Validate regex early
    try:
        compile_rule(rule)
    except re.error as e:
        raise ValueError(f"Rule {name!r}: invalid pattern: {e}") from e
    return rule


def load_rule_presets(path: str | Path, preset_name: str = "default") -> dict[str, RuleSet]:
    """Load extra rules from a YAML presets file.

    Layout: ``presets: {<name>: {<lang>: [rule, ...]}}``. A rule with a
    ``words`` mapping is a dictionary rule, anything else a pattern rule.
    """
    preset_file = Path(path)
    data = yaml.safe_load(preset_file.read_text(encoding="utf-8")) or {}
    presets = data.get("presets", {}) or {}
    preset = presets.get(preset_name)
    if preset is None:
        raise ValueError(f"Preset '{preset_name}' not found in {preset_file}. Available: {list(presets.keys())}")
    out: dict[str, RuleSet] = {}
    for lang, rules_data in (preset or {}).items():
        out[str(lang).lower()] = tuple(rule_from_dict(rd) for rd in (rules_data or []))
    return out


def merge_rule_sets(base: Mapping[str, Sequence[Rule]], extra: Mapping[str, Sequence[Rule]]) -> dict[str, RuleSet]:
    merged: dict[str, RuleSet] = {lang: tuple(rules) for lang, rules in base.items()}
    for lang, rules in extra.items():
        merged[lang] = merged.get(lang, ()) + tuple(rules)
    return merged
