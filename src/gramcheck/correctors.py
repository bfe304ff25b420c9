from __future__ import annotations

import json
import os
import re
import socket
import threading
import urllib.error
import urllib.request
from collections import OrderedDict
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from .config import CorrectorConfig
from .errors import CorrectorTimeout, CorrectorUnavailable
from .rules import RuleEngine, apply_corrections


class Corrector(Protocol):
    name: str

    def correct(self, sentence_text: str, language: str) -> str: ...


LANGUAGE_NAMES: dict[str, str] = {
    "en": "English",
    "es": "Spanish",
    "fr": "French",
    "de": "German",
    "ru": "Russian",
}

SYSTEM_PROMPT_TEMPLATE = """You are a careful proofreader for {language} text.

Rules:
1) Fix spelling, grammar, punctuation and capitalization errors only.
2) Keep the wording, tone and meaning. Do not rephrase correct text.
3) Keep leading/trailing whitespace, numbers, names and URLs unchanged.
4) If the text has no errors, return it unchanged.

Return ONLY the corrected text, without quotes, comments or explanations.
"""

_FENCE_RE = re.compile(r"^```[a-zA-Z]*\s*\n?([\s\S]*?)\n?```$")


def language_name(language: str) -> str:
    return LANGUAGE_NAMES.get(language.strip().lower(), language)


def build_system_prompt(language: str, custom_system_prompt: str | None = None) -> str:
    sections = [SYSTEM_PROMPT_TEMPLATE.format(language=language_name(language)).strip()]
    custom = (custom_system_prompt or "").strip()
    if custom:
        sections.append(f"Additional instructions:\n{custom}")
    return "\n\n".join(sections)


def clean_model_output(output: str, source: str) -> str:
    """Strip code fences/quotes the model wrapped around its answer and keep the
    source's surrounding whitespace."""
    text = output.strip()
    m = _FENCE_RE.match(text)
    if m:
        text = m.group(1).strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'" and not (source.strip()[:1] == text[0]):
        text = text[1:-1].strip()
    lead = source[: len(source) - len(source.lstrip())]
    trail = source[len(source.rstrip()) :]
    return f"{lead}{text}{trail}"


def _post_json(url: str, payload: dict[str, Any], headers: dict[str, str], timeout_s: float, label: str) -> Any:
    req = urllib.request.Request(
        url=url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json", **headers},
        method="POST",
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout_s) as resp:
            return json.loads(resp.read().decode("utf-8"))
    except urllib.error.HTTPError as e:
        body = e.read().decode("utf-8", errors="replace") if hasattr(e, "read") else ""
        raise CorrectorUnavailable(f"{label} HTTPError {e.code}: {body}") from e
    except (socket.timeout, TimeoutError) as e:
        raise CorrectorTimeout(f"{label} request timed out after {timeout_s}s") from e
    except urllib.error.URLError as e:
        if isinstance(e.reason, (socket.timeout, TimeoutError)):
            raise CorrectorTimeout(f"{label} request timed out after {timeout_s}s") from e
        raise CorrectorUnavailable(f"{label} request failed: {e}") from e
    except Exception as e:
        raise CorrectorUnavailable(f"{label} request failed: {e}") from e


@dataclass(frozen=True)
class RuleBasedCorrector:
    """Corrected text = every matching rule's suggestion applied to the sentence."""

    engine: RuleEngine
    name: str = "rules"

    def correct(self, sentence_text: str, language: str) -> str:
        corrections = self.engine.check(sentence_text, language)
        if not corrections:
            return sentence_text
        return apply_corrections(sentence_text, corrections)


@dataclass(frozen=True)
class MockCorrector:
    """Deterministic offline corrector for tests and dry runs."""

    replacements: Mapping[str, str] = field(default_factory=dict)
    name: str = "mock"

    def correct(self, sentence_text: str, language: str) -> str:
        out = sentence_text
        for source, target in self.replacements.items():
            out = out.replace(source, target)
        return out


@dataclass(frozen=True)
class OpenAIChatCorrector:
    """OpenAI Chat Completions proofreader.

    Requires env:
      - OPENAI_API_KEY
    Optional:
      - OPENAI_BASE_URL (default https://api.openai.com)
    """

    model: str
    temperature: float = 0.0
    timeout_s: float = 30.0
    max_output_tokens: int = 1000
    base_url: str | None = None
    custom_system_prompt: str | None = None
    name: str = "openai"

    def correct(self, sentence_text: str, language: str) -> str:
        api_key = os.environ.get("OPENAI_API_KEY")
        if not api_key:
            raise CorrectorUnavailable("OPENAI_API_KEY is not set")

        base = (self.base_url or os.environ.get("OPENAI_BASE_URL", "https://api.openai.com")).rstrip("/")
        payload = {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_output_tokens,
            "messages": [
                {"role": "system", "content": build_system_prompt(language, self.custom_system_prompt)},
                {"role": "user", "content": sentence_text},
            ],
        }
        data = _post_json(
            f"{base}/v1/chat/completions",
            payload,
            {"Authorization": f"Bearer {api_key}"},
            self.timeout_s,
            "OpenAI",
        )
        try:
            content = data["choices"][0]["message"]["content"]
        except Exception as e:
            raise CorrectorUnavailable(f"Unexpected OpenAI response schema: {data}") from e
        return clean_model_output(str(content or ""), sentence_text)


@dataclass(frozen=True)
class OllamaChatCorrector:
    """Local Ollama chat proofreader."""

    model: str
    temperature: float = 0.0
    timeout_s: float = 30.0
    max_output_tokens: int = 1000
    base_url: str = "http://localhost:11434"
    custom_system_prompt: str | None = None
    name: str = "ollama"

    def correct(self, sentence_text: str, language: str) -> str:
        payload = {
            "model": self.model,
            "stream": False,
            "messages": [
                {"role": "system", "content": build_system_prompt(language, self.custom_system_prompt)},
                {"role": "user", "content": sentence_text},
            ],
            "options": {"num_predict": self.max_output_tokens, "temperature": self.temperature},
        }
        data = _post_json(f"{self.base_url.rstrip('/')}/api/chat", payload, {}, self.timeout_s, "Ollama")
        try:
            content = data["message"]["content"]
        except Exception as e:
            raise CorrectorUnavailable(f"Unexpected Ollama response schema: {data}") from e
        return clean_model_output(str(content or ""), sentence_text)


class CachingCorrector:
    """LRU cache in front of another corrector, keyed by (language, text)."""

    def __init__(self, inner: Corrector, max_entries: int = 1000):
        self.inner = inner
        self.name = getattr(inner, "name", type(inner).__name__)
        self.max_entries = max(1, int(max_entries))
        self._cache: OrderedDict[tuple[str, str], str] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def correct(self, sentence_text: str, language: str) -> str:
        key = (language, sentence_text)
        with self._lock:
            cached = self._cache.get(key)
            if cached is not None:
                self._cache.move_to_end(key)
                self.hits += 1
                return cached
            self.misses += 1
        corrected = self.inner.correct(sentence_text, language)
        with self._lock:
            self._cache[key] = corrected
            self._cache.move_to_end(key)
            while len(self._cache) > self.max_entries:
                self._cache.popitem(last=False)
        return corrected

    def __len__(self) -> int:
        return len(self._cache)


def build_corrector(
    provider: str,
    engine: RuleEngine,
    *,
    model: str = "",
    temperature: float = 0.0,
    timeout_s: float = 30.0,
    max_output_tokens: int = 1000,
    base_url: str | None = None,
    custom_system_prompt: str | None = None,
) -> Corrector:
    provider_norm = provider.strip().lower()
    if provider_norm == "rules":
        return RuleBasedCorrector(engine)
    if provider_norm == "mock":
        return MockCorrector()
    if provider_norm == "openai":
        return OpenAIChatCorrector(
            model=model or "gpt-4o-mini",
            temperature=temperature,
            timeout_s=timeout_s,
            max_output_tokens=max_output_tokens,
            base_url=base_url,
            custom_system_prompt=custom_system_prompt,
        )
    if provider_norm == "ollama":
        return OllamaChatCorrector(
            model=model or "qwen2.5:7b",
            temperature=temperature,
            timeout_s=timeout_s,
            max_output_tokens=max_output_tokens,
            base_url=base_url or os.environ.get("OLLAMA_BASE_URL", "http://localhost:11434"),
            custom_system_prompt=custom_system_prompt,
        )
    raise ValueError(f"Unknown corrector provider: {provider}")


def _read_optional_text(path_value: str | None) -> str | None:
    if not path_value:
        return None
    path = Path(path_value)
    try:
        text = path.read_text(encoding="utf-8-sig").strip()
    except OSError as e:
        raise RuntimeError(f"Cannot read system prompt from '{path}': {e}") from e
    return text or None


def build_corrector_from_config(cfg: CorrectorConfig, engine: RuleEngine) -> tuple[Corrector, Corrector | None]:
    """Primary corrector (cached when enabled) and the optional fallback."""
    primary = build_corrector(
        cfg.provider,
        engine,
        model=cfg.model,
        temperature=cfg.temperature,
        timeout_s=cfg.timeout_s,
        max_output_tokens=cfg.max_output_tokens,
        base_url=cfg.base_url,
        custom_system_prompt=_read_optional_text(cfg.system_prompt_path),
    )
    if cfg.cache_enabled:
        primary = CachingCorrector(primary, max_entries=cfg.cache_max_entries)
    fallback: Corrector | None = None
    if cfg.fallback == "rules" and cfg.provider != "rules":
        fallback = RuleBasedCorrector(engine)
    return primary, fallback
