from __future__ import annotations

import io
import json
import socket
import urllib.error
from dataclasses import dataclass
from unittest.mock import patch

import pytest

from gramcheck.config import CorrectorConfig
from gramcheck.correctors import (
    CachingCorrector,
    MockCorrector,
    OllamaChatCorrector,
    OpenAIChatCorrector,
    RuleBasedCorrector,
    build_corrector,
    build_corrector_from_config,
    build_system_prompt,
    clean_model_output,
)
from gramcheck.errors import CorrectorTimeout, CorrectorUnavailable
from gramcheck.rules import RuleEngine
from gramcheck.rulesets import default_rule_sets


@dataclass
class _FakeResponse:
    body: str

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def read(self) -> bytes:
        return self.body.encode("utf-8")


def _engine() -> RuleEngine:
    return RuleEngine(default_rule_sets())


def test_build_corrector_supports_expected_providers():
    engine = _engine()
    assert isinstance(build_corrector("rules", engine), RuleBasedCorrector)
    assert isinstance(build_corrector("mock", engine), MockCorrector)
    openai = build_corrector("openai", engine, model="gpt-4o-mini")
    assert isinstance(openai, OpenAIChatCorrector)
    ollama = build_corrector("OLLAMA", engine)
    assert isinstance(ollama, OllamaChatCorrector)
    assert ollama.model == "qwen2.5:7b"
    with pytest.raises(ValueError):
        build_corrector("languagetool", engine)


def test_rule_based_corrector_applies_rules():
    corrector = RuleBasedCorrector(_engine())
    assert corrector.correct("I recieve the package, your welcome.", "en") == (
        "I receive the package, you're welcome."
    )
    assert corrector.correct("Nothing wrong here.", "en") == "Nothing wrong here."


def test_mock_corrector_replacements():
    corrector = MockCorrector({"bad": "good"})
    assert corrector.correct("Another bad one.", "en") == "Another good one."


def test_build_system_prompt_names_language_and_custom_rules():
    prompt = build_system_prompt("es", "Prefer formal register.")
    assert "Spanish" in prompt
    assert "Prefer formal register." in prompt


def test_clean_model_output_strips_wrappers_and_keeps_whitespace():
    assert clean_model_output("```\nI receive it.\n```", "I recieve it. ") == "I receive it. "
    assert clean_model_output('"I receive it."', "I recieve it.") == "I receive it."


def test_openai_corrector_with_mocked_http(monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "test-key")
    seen: dict[str, object] = {}

    def fake_urlopen(req, timeout=0):
        seen["url"] = req.full_url
        seen["payload"] = json.loads(req.data.decode("utf-8"))
        seen["auth"] = req.get_header("Authorization")
        return _FakeResponse(json.dumps({"choices": [{"message": {"content": "I receive the package."}}]}))

    corrector = OpenAIChatCorrector(model="gpt-4o-mini", base_url="https://example.test")
    with patch("gramcheck.correctors.urllib.request.urlopen", side_effect=fake_urlopen):
        out = corrector.correct("I recieve the package.", "en")

    assert out == "I receive the package."
    assert seen["url"] == "https://example.test/v1/chat/completions"
    assert seen["auth"] == "Bearer test-key"
    payload = seen["payload"]
    assert payload["messages"][1]["content"] == "I recieve the package."
    assert "English" in payload["messages"][0]["content"]


def test_openai_corrector_requires_api_key(monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    with pytest.raises(CorrectorUnavailable):
        OpenAIChatCorrector(model="gpt-4o-mini").correct("text", "en")


def test_ollama_corrector_with_mocked_http():
    def fake_urlopen(req, timeout=0):
        assert req.full_url == "http://ollama.test/api/chat"
        return _FakeResponse(json.dumps({"message": {"content": "La música es fácil."}}))

    corrector = OllamaChatCorrector(model="qwen2.5:7b", base_url="http://ollama.test/")
    with patch("gramcheck.correctors.urllib.request.urlopen", side_effect=fake_urlopen):
        assert corrector.correct("La musica es facil.", "es") == "La música es fácil."


def test_ollama_corrector_rejects_unexpected_schema():
    corrector = OllamaChatCorrector(model="m")
    with patch("gramcheck.correctors.urllib.request.urlopen", return_value=_FakeResponse('{"done": true}')):
        with pytest.raises(CorrectorUnavailable):
            corrector.correct("text", "en")


def test_http_timeout_maps_to_corrector_timeout():
    corrector = OllamaChatCorrector(model="m", timeout_s=0.5)
    with patch("gramcheck.correctors.urllib.request.urlopen", side_effect=socket.timeout("timed out")):
        with pytest.raises(CorrectorTimeout):
            corrector.correct("text", "en")
    with patch(
        "gramcheck.correctors.urllib.request.urlopen",
        side_effect=urllib.error.URLError(socket.timeout("timed out")),
    ):
        with pytest.raises(CorrectorTimeout):
            corrector.correct("text", "en")


def test_http_error_maps_to_corrector_unavailable():
    err = urllib.error.HTTPError("http://x", 503, "Service Unavailable", hdrs=None, fp=io.BytesIO(b"overloaded"))
    corrector = OllamaChatCorrector(model="m")
    with patch("gramcheck.correctors.urllib.request.urlopen", side_effect=err):
        with pytest.raises(CorrectorUnavailable, match="503"):
            corrector.correct("text", "en")


class _CountingCorrector:
    name = "counting"

    def __init__(self) -> None:
        self.calls = 0

    def correct(self, sentence_text: str, language: str) -> str:
        self.calls += 1
        return sentence_text.upper()


def test_caching_corrector_hits_and_evicts():
    inner = _CountingCorrector()
    cached = CachingCorrector(inner, max_entries=2)
    assert cached.name == "counting"
    assert cached.correct("a", "en") == "A"
    assert cached.correct("a", "en") == "A"
    assert inner.calls == 1
    assert (cached.hits, cached.misses) == (1, 1)

    cached.correct("a", "es")
    cached.correct("b", "en")
    assert len(cached) == 2
    cached.correct("a", "en")
    assert inner.calls == 4


def test_build_corrector_from_config_wraps_cache_and_fallback(tmp_path):
    prompt_path = tmp_path / "prompt.txt"
    prompt_path.write_text("Keep British spelling.\n", encoding="utf-8")
    cfg = CorrectorConfig(provider="ollama", model="m", system_prompt_path=str(prompt_path))
    primary, fallback = build_corrector_from_config(cfg, _engine())
    assert isinstance(primary, CachingCorrector)
    assert isinstance(primary.inner, OllamaChatCorrector)
    assert primary.inner.custom_system_prompt == "Keep British spelling."
    assert isinstance(fallback, RuleBasedCorrector)

    primary, fallback = build_corrector_from_config(CorrectorConfig(cache_enabled=False), _engine())
    assert isinstance(primary, RuleBasedCorrector)
    assert fallback is None


def test_build_corrector_from_config_missing_prompt_file(tmp_path):
    cfg = CorrectorConfig(provider="mock", system_prompt_path=str(tmp_path / "missing.txt"))
    with pytest.raises(RuntimeError):
        build_corrector_from_config(cfg, _engine())
