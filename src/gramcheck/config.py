from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .models import ErrorType

_PROVIDERS = {"rules", "mock", "openai", "ollama"}


@dataclass(frozen=True)
class CorrectorConfig:
    provider: str = "rules"  # 'rules' | 'mock' | 'openai' | 'ollama'
    model: str = ""
    base_url: str | None = None
    temperature: float = 0.0
    timeout_s: float = 30.0
    max_output_tokens: int = 1000
    system_prompt_path: str | None = None
    # Secondary corrector used for a sentence when the primary one fails.
    fallback: str = "rules"  # 'rules' | 'none'
    cache_enabled: bool = True
    cache_max_entries: int = 1000


@dataclass(frozen=True)
class LanguageConfig:
    default: str = "en"
    # auto: detect per sentence unless a language is passed explicitly.
    mode: str = "auto"  # 'auto' | 'fixed'
    use_library: bool = True


@dataclass(frozen=True)
class DiffConfig:
    granularity: str = "word"  # 'word' | 'char'
    # Efficiency-cleanup threshold; 0 keeps the semantic cleanup only.
    edit_cost: int = 0
    emit_insertions: bool = True


@dataclass(frozen=True)
class RulesConfig:
    preset_file: str | None = None
    preset_name: str = "default"


@dataclass(frozen=True)
class CheckSettings:
    """User-facing settings: language, enabled categories, personal dictionary."""

    language: str | None = None
    enabled_categories: tuple[ErrorType, ...] = tuple(ErrorType)
    personal_dictionary: tuple[str, ...] = ()
    personal_dictionary_path: str | None = None

    def all_exempt_words(self) -> tuple[str, ...]:
        words = [w.strip().lower() for w in self.personal_dictionary if w.strip()]
        if self.personal_dictionary_path:
            words.extend(read_word_list(Path(self.personal_dictionary_path)))
        return tuple(dict.fromkeys(words))


@dataclass(frozen=True)
class PipelineConfig:
    corrector: CorrectorConfig = CorrectorConfig()
    language: LanguageConfig = LanguageConfig()
    diff: DiffConfig = DiffConfig()
    rules: RulesConfig = RulesConfig()
    settings: CheckSettings = field(default_factory=CheckSettings)
    concurrency: int = 1
    sentence_timeout_s: float = 30.0
    log_path: str | None = None
    report_jsonl_path: str | None = None
    report_html_path: str | None = None


def read_word_list(path: Path) -> list[str]:
    words: list[str] = []
    for raw_line in path.read_text(encoding="utf-8-sig").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        words.append(line.lower())
    return words


def _resolve_optional_path(base_dir: Path, value: Any) -> str | None:
    if value is None:
        return None
    raw = str(value).strip()
    if not raw:
        return None
    path = Path(raw)
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    return str(path)


def _normalize_choice(value: Any, *, field_name: str, allowed: set[str], default: str) -> str:
    raw = str(default if value is None else value).strip().lower()
    if raw not in allowed:
        allowed_list = ", ".join(sorted(allowed))
        raise ValueError(f"Invalid value for {field_name}: {raw!r}. Allowed: {allowed_list}")
    return raw


def _parse_categories(value: Any) -> tuple[ErrorType, ...]:
    if value is None:
        return tuple(ErrorType)
    if isinstance(value, str):
        value = [value]
    out: list[ErrorType] = []
    for item in value:
        raw = str(item).strip().lower()
        try:
            out.append(ErrorType(raw))
        except ValueError as e:
            allowed_list = ", ".join(t.value for t in ErrorType)
            raise ValueError(f"Invalid value for settings.enabled_categories: {raw!r}. Allowed: {allowed_list}") from e
    return tuple(dict.fromkeys(out))


def load_config(path: str | Path) -> PipelineConfig:
    cfg_path = Path(path)
    data = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}

    corrector_data = data.get("corrector", {}) or {}
    language_data = data.get("language", {}) or {}
    diff_data = data.get("diff", {}) or {}
    rules_data = data.get("rules", {}) or {}
    settings_data = data.get("settings", {}) or {}

    corrector = CorrectorConfig(
        provider=_normalize_choice(
            corrector_data.get("provider", "rules"),
            field_name="corrector.provider",
            allowed=_PROVIDERS,
            default="rules",
        ),
        model=str(corrector_data.get("model", "")),
        base_url=(str(corrector_data["base_url"]) if corrector_data.get("base_url") is not None else None),
        temperature=float(corrector_data.get("temperature", 0.0)),
        timeout_s=float(corrector_data.get("timeout_s", 30.0)),
        max_output_tokens=int(corrector_data.get("max_output_tokens", 1000)),
        system_prompt_path=_resolve_optional_path(cfg_path.parent, corrector_data.get("system_prompt_path")),
        fallback=_normalize_choice(
            corrector_data.get("fallback", "rules"),
            field_name="corrector.fallback",
            allowed={"rules", "none"},
            default="rules",
        ),
        cache_enabled=bool(corrector_data.get("cache_enabled", True)),
        cache_max_entries=max(1, int(corrector_data.get("cache_max_entries", 1000))),
    )
    language = LanguageConfig(
        default=str(language_data.get("default", "en")).strip().lower(),
        mode=_normalize_choice(
            language_data.get("mode", "auto"),
            field_name="language.mode",
            allowed={"auto", "fixed"},
            default="auto",
        ),
        use_library=bool(language_data.get("use_library", True)),
    )
    diff = DiffConfig(
        granularity=_normalize_choice(
            diff_data.get("granularity", "word"),
            field_name="diff.granularity",
            allowed={"word", "char"},
            default="word",
        ),
        edit_cost=max(0, int(diff_data.get("edit_cost", 0))),
        emit_insertions=bool(diff_data.get("emit_insertions", True)),
    )
    rules = RulesConfig(
        preset_file=_resolve_optional_path(cfg_path.parent, rules_data.get("preset_file")),
        preset_name=str(rules_data.get("preset_name", "default")),
    )
    settings = CheckSettings(
        language=(str(settings_data["language"]).strip().lower() if settings_data.get("language") else None),
        enabled_categories=_parse_categories(settings_data.get("enabled_categories")),
        personal_dictionary=tuple(str(w).strip().lower() for w in (settings_data.get("personal_dictionary") or [])),
        personal_dictionary_path=_resolve_optional_path(
            cfg_path.parent, settings_data.get("personal_dictionary_path")
        ),
    )

    return PipelineConfig(
        corrector=corrector,
        language=language,
        diff=diff,
        rules=rules,
        settings=settings,
        concurrency=max(1, int(data.get("concurrency", 1))),
        sentence_timeout_s=float(data.get("sentence_timeout_s", 30.0)),
        log_path=_resolve_optional_path(cfg_path.parent, data.get("log_path")),
        report_jsonl_path=_resolve_optional_path(cfg_path.parent, data.get("report_jsonl_path")),
        report_html_path=_resolve_optional_path(cfg_path.parent, data.get("report_html_path")),
    )
