from __future__ import annotations

import threading
import time

import pytest

from gramcheck.config import CheckSettings, CorrectorConfig, PipelineConfig
from gramcheck.correctors import CachingCorrector, MockCorrector, RuleBasedCorrector
from gramcheck.errors import CorrectorUnavailable, SegmentationError
from gramcheck.language import LanguageDetector
from gramcheck.models import ErrorType
from gramcheck.orchestrator import CancellationToken, CorrectionOrchestrator, build_orchestrator, check_text
from gramcheck.rules import RuleEngine
from gramcheck.rulesets import default_rule_sets


class _FailingCorrector:
    name = "failing"

    def correct(self, sentence_text: str, language: str) -> str:
        raise CorrectorUnavailable("service down")


class _RecordingCorrector:
    name = "recording"

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def correct(self, sentence_text: str, language: str) -> str:
        with self._lock:
            self.calls.append((sentence_text, language))
        return sentence_text


class _BlockingCorrector:
    name = "blocking"

    def __init__(self) -> None:
        self.release = threading.Event()

    def correct(self, sentence_text: str, language: str) -> str:
        self.release.wait(5.0)
        return sentence_text


def _rules() -> RuleBasedCorrector:
    return RuleBasedCorrector(RuleEngine(default_rule_sets()))


def test_error_positions_are_document_absolute():
    orchestrator = CorrectionOrchestrator(MockCorrector({"bad one": "good one"}))
    results = orchestrator.check("Bad sentence. Another bad one.", language="en")

    assert [r.offset for r in results] == [0, 14]
    assert results[0].errors == []
    assert len(results[1].errors) == 1
    error = results[1].errors[0]
    assert error.position == 22
    assert error.original == "bad"
    assert error.suggestion == "good"
    assert results[1].corrected == "Another good one."


def test_empty_and_blank_documents():
    orchestrator = CorrectionOrchestrator(_rules())
    assert orchestrator.check("") == []
    assert orchestrator.check("   \n ") == []


def test_non_string_document_raises():
    with pytest.raises(SegmentationError):
        CorrectionOrchestrator(_rules()).check(42)  # type: ignore[arg-type]


def test_check_text_with_builtin_rules():
    results = check_text("I recieve the package.", language="en")
    assert len(results) == 1
    errors = results[0].errors
    assert [(e.type, e.position, e.length, e.suggestion) for e in errors] == [(ErrorType.SPELLING, 2, 7, "receive")]
    assert results[0].corrector == "rules"


def test_fallback_used_when_primary_fails():
    orchestrator = CorrectionOrchestrator(_FailingCorrector(), fallback=_rules())
    report = orchestrator.run("Fine here. I recieve it.", language="en")

    assert all(r.ok for r in report.results)
    assert [r.corrector for r in report.results] == ["rules", "rules"]
    assert [e.position for e in report.errors] == [13]
    assert len(report.failures) == 2
    assert "service down" in report.failures[0]


def test_failed_sentence_without_fallback_keeps_original():
    orchestrator = CorrectionOrchestrator(_FailingCorrector())
    report = orchestrator.run("I recieve it. Another one.", language="en")

    assert len(report.results) == 2
    for res in report.results:
        assert not res.ok
        assert res.corrected == res.original
        assert res.errors == []
    assert len(report.failures) == 2


def test_slow_corrector_times_out_and_falls_back():
    slow = _BlockingCorrector()
    orchestrator = CorrectionOrchestrator(slow, fallback=MockCorrector({"recieve": "receive"}), sentence_timeout_s=0.2)
    try:
        started = time.monotonic()
        report = orchestrator.run("I recieve it. Second one.", language="en")
        elapsed = time.monotonic() - started
    finally:
        slow.release.set()

    assert elapsed < 3.0
    assert [r.corrector for r in report.results] == ["mock", "mock"]
    assert [e.position for e in report.errors] == [2]
    assert all("CorrectorTimeout" in note for note in report.failures)


def test_results_keep_document_order_with_concurrency():
    class _Jittery:
        name = "jittery"

        def correct(self, sentence_text: str, language: str) -> str:
            time.sleep(0.05 if sentence_text.startswith("One") else 0.0)
            return sentence_text.replace("teh", "the")

    text = "One teh. Two teh. Three teh. Four teh."
    orchestrator = CorrectionOrchestrator(_Jittery(), concurrency=4)
    results = orchestrator.check(text, language="en")

    assert [r.original for r in results] == ["One teh.", "Two teh.", "Three teh.", "Four teh."]
    positions = [e.position for r in results for e in r.errors]
    assert positions == sorted(positions)
    assert all(text[p : p + 3] == "teh" for p in positions)


def test_cancelled_before_start_returns_nothing():
    token = CancellationToken()
    token.cancel()
    report = CorrectionOrchestrator(_rules()).run("One. Two. Three.", language="en", cancel_token=token)
    assert report.cancelled
    assert report.results == []


def test_cancel_while_running_stops_early():
    token = CancellationToken()

    class _CancelOnFirst:
        name = "cancel"

        def correct(self, sentence_text: str, language: str) -> str:
            token.cancel()
            return sentence_text

    report = CorrectionOrchestrator(_CancelOnFirst()).run("One. Two. Three.", language="en", cancel_token=token)
    assert report.cancelled
    assert len(report.results) < 3


def test_categories_and_personal_dictionary_filter_errors():
    corrector = MockCorrector({"recieve": "receive", "monday": "Monday"})
    text = "I recieve it on monday."

    only_caps = CorrectionOrchestrator(corrector, enabled_categories=[ErrorType.CAPITALIZATION])
    assert [e.type for e in only_caps.run(text, language="en").errors] == [ErrorType.CAPITALIZATION]

    exempt = CorrectionOrchestrator(corrector, personal_dictionary=["Recieve"])
    assert [e.original for e in exempt.run(text, language="en").errors] == ["monday"]


def test_language_resolution_modes():
    recording = _RecordingCorrector()
    detector = LanguageDetector(use_library=False)

    CorrectionOrchestrator(recording, detector=detector).check("El perro de la casa. The cat is on the mat.")
    assert [lang for _, lang in recording.calls] == ["es", "en"]

    recording.calls.clear()
    CorrectionOrchestrator(recording, detector=detector, language_mode="fixed", default_language="es").check(
        "The cat is on the mat."
    )
    assert recording.calls == [("The cat is on the mat.", "es")]

    recording.calls.clear()
    CorrectionOrchestrator(recording, detector=detector).check("El perro de la casa.", language="EN")
    assert recording.calls == [("El perro de la casa.", "en")]


def test_invalid_language_mode():
    with pytest.raises(ValueError):
        CorrectionOrchestrator(_rules(), language_mode="guess")


def test_build_orchestrator_from_config(tmp_path):
    words = tmp_path / "words.txt"
    words.write_text("# mine\nseperate\n", encoding="utf-8")
    cfg = PipelineConfig(
        corrector=CorrectorConfig(provider="mock"),
        settings=CheckSettings(personal_dictionary_path=str(words)),
        concurrency=3,
    )
    orchestrator = build_orchestrator(cfg)

    assert isinstance(orchestrator.corrector, CachingCorrector)
    assert isinstance(orchestrator.fallback, RuleBasedCorrector)
    assert orchestrator.concurrency == 3
    assert "seperate" in orchestrator.personal_dictionary


def test_cancel_interrupts_blocked_corrector():
    slow = _BlockingCorrector()
    token = CancellationToken()
    timer = threading.Timer(0.2, token.cancel)
    orchestrator = CorrectionOrchestrator(slow, sentence_timeout_s=10.0)
    try:
        timer.start()
        started = time.monotonic()
        report = orchestrator.run("One. Two. Three.", language="en", cancel_token=token)
        elapsed = time.monotonic() - started
    finally:
        timer.cancel()
        slow.release.set()

    assert report.cancelled
    assert report.results == []
    assert elapsed < 2.0


def test_slow_fallback_is_bounded_by_sentence_timeout():
    slow_fallback = _BlockingCorrector()
    orchestrator = CorrectionOrchestrator(_FailingCorrector(), fallback=slow_fallback, sentence_timeout_s=0.2)
    try:
        started = time.monotonic()
        report = orchestrator.run("I recieve it.", language="en")
        elapsed = time.monotonic() - started
    finally:
        slow_fallback.release.set()

    assert elapsed < 2.0
    assert len(report.results) == 1
    result = report.results[0]
    assert not result.ok
    assert result.corrector == "blocking"
    assert result.corrected == result.original
    assert "CorrectorTimeout" in report.failures[-1]
