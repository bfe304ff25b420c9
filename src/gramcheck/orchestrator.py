from __future__ import annotations

import logging
import threading
import time
from collections import deque
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError

from .config import PipelineConfig
from .correctors import Corrector, RuleBasedCorrector, build_corrector_from_config
from .diff import DiffExtractor
from .errors import CheckCancelled, CorrectorTimeout
from .language import LanguageDetector
from .models import ALL_CATEGORIES, CheckReport, CheckResult, Correction, ErrorType, Sentence
from .rules import RuleEngine, load_rule_presets, merge_rule_sets
from .rulesets import default_rule_sets
from .segmenter import segment

# How often a blocked wait wakes up to look at the cancellation token.
_POLL_INTERVAL_S = 0.05


class CancellationToken:
    """Thread-safe flag a caller sets to stop an in-flight check."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise CheckCancelled("Check cancelled")


class CorrectionOrchestrator:
    """Segment -> correct -> diff -> re-offset, one sentence at a time.

    The corrector is any object with ``correct(text, language) -> str``; a
    failing or slow sentence falls back to `fallback` (when given) and never
    aborts the rest of the document.
    """

    def __init__(
        self,
        corrector: Corrector,
        *,
        fallback: Corrector | None = None,
        detector: LanguageDetector | None = None,
        extractor: DiffExtractor | None = None,
        default_language: str = "en",
        language_mode: str = "auto",
        enabled_categories: Iterable[ErrorType | str] = ALL_CATEGORIES,
        personal_dictionary: Iterable[str] = (),
        concurrency: int = 1,
        sentence_timeout_s: float = 30.0,
        logger: logging.Logger | None = None,
    ):
        if language_mode not in {"auto", "fixed"}:
            raise ValueError(f"Invalid language_mode: {language_mode!r}. Allowed: auto, fixed")
        self.corrector = corrector
        self.fallback = fallback
        self.detector = detector or LanguageDetector(default=default_language)
        self.extractor = extractor or DiffExtractor()
        self.default_language = default_language
        self.language_mode = language_mode
        self.enabled_categories = frozenset(ErrorType(c) for c in enabled_categories)
        self.personal_dictionary = frozenset(w.lower() for w in personal_dictionary)
        self.concurrency = max(1, int(concurrency))
        self.sentence_timeout_s = float(sentence_timeout_s)
        self.logger = logger or logging.getLogger("gramcheck")

    def check(
        self,
        document_text: str,
        language: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> list[CheckResult]:
        return self.run(document_text, language=language, cancel_token=cancel_token).results

    def run(
        self,
        document_text: str,
        language: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> CheckReport:
        # Segmentation errors (wrong input type) are the only ones that escape.
        sentences = [s for s in segment(document_text) if s.text.strip()]
        report = CheckReport()
        if not sentences:
            return report

        token = cancel_token or CancellationToken()
        self.logger.info(f"Sentences to check: {len(sentences)}")
        executor = self._new_executor()
        in_flight: deque[tuple[Sentence, str, Future[str]]] = deque()
        next_idx = 0
        try:
            while next_idx < len(sentences) or in_flight:
                while next_idx < len(sentences) and len(in_flight) < self.concurrency and not token.cancelled:
                    sent = sentences[next_idx]
                    lang = self.resolve_language(sent.text, language)
                    in_flight.append((sent, lang, executor.submit(self.corrector.correct, sent.text, lang)))
                    next_idx += 1
                if token.cancelled:
                    report.cancelled = True
                    break

                sent, lang, fut = in_flight.popleft()
                try:
                    result, timed_out = self._collect(sent, lang, fut, token, report)
                except CheckCancelled:
                    report.cancelled = True
                    break
                report.results.append(result)
                if timed_out:
                    # The stuck call keeps its worker; later sentences get a fresh pool.
                    executor.shutdown(wait=False)
                    executor = self._new_executor()
        finally:
            for _, _, fut in in_flight:
                fut.cancel()
            executor.shutdown(wait=False, cancel_futures=True)

        if report.cancelled:
            self.logger.info(f"Check cancelled after {len(report.results)}/{len(sentences)} sentences")
        errors_total = sum(len(r.errors) for r in report.results)
        fallback_name = getattr(self.fallback, "name", None)
        fallbacks = 0
        if fallback_name is not None:
            fallbacks = sum(1 for r in report.results if r.ok and r.corrector == fallback_name)
        self.logger.info(
            f"Checked sentences: {len(report.results)}; errors: {errors_total}; "
            f"fallbacks: {fallbacks}; failures: {len(report.failures)}"
        )
        return report

    def resolve_language(self, sentence_text: str, language: str | None) -> str:
        if language:
            return language.strip().lower()
        if self.language_mode == "auto":
            return self.detector.detect(sentence_text)
        return self.default_language

    def _new_executor(self) -> ThreadPoolExecutor:
        return ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="gramcheck")

    def _wait(self, fut: Future[str], token: CancellationToken) -> str:
        deadline = time.monotonic() + self.sentence_timeout_s
        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                fut.cancel()
                raise CorrectorTimeout(f"No correction within {self.sentence_timeout_s}s")
            try:
                return fut.result(timeout=min(remaining, _POLL_INTERVAL_S))
            except FuturesTimeoutError:
                if fut.done():
                    # The corrector itself raised a TimeoutError.
                    return fut.result()
                token.raise_if_cancelled()

    def _run_fallback(self, sent: Sentence, lang: str, token: CancellationToken) -> str:
        # Own worker: the primary call may still hold every worker of the main pool.
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="gramcheck-fallback")
        try:
            return self._wait(pool.submit(self.fallback.correct, sent.text, lang), token)
        finally:
            pool.shutdown(wait=False)

    def _collect(
        self,
        sent: Sentence,
        lang: str,
        fut: Future[str],
        token: CancellationToken,
        report: CheckReport,
    ) -> tuple[CheckResult, bool]:
        timed_out = False
        corrector_name = getattr(self.corrector, "name", type(self.corrector).__name__)
        try:
            corrected = self._wait(fut, token)
        except CheckCancelled:
            raise
        except Exception as e:
            timed_out = isinstance(e, CorrectorTimeout)
            note = f"offset {sent.offset}: {corrector_name} failed: {type(e).__name__}: {e}"
            report.failures.append(note)
            self.logger.warning(note)
            if self.fallback is None:
                return self._failed(sent, lang, corrector_name, note), timed_out
            corrector_name = getattr(self.fallback, "name", type(self.fallback).__name__)
            try:
                corrected = self._run_fallback(sent, lang, token)
            except CheckCancelled:
                raise
            except Exception as fallback_error:
                note = (
                    f"offset {sent.offset}: fallback {corrector_name} failed: "
                    f"{type(fallback_error).__name__}: {fallback_error}"
                )
                report.failures.append(note)
                self.logger.warning(note)
                return self._failed(sent, lang, corrector_name, note), timed_out

        try:
            errors = self.extractor.extract(sent.text, corrected)
        except Exception as e:
            note = f"offset {sent.offset}: diff failed: {e}"
            report.failures.append(note)
            self.logger.warning(note)
            return self._failed(sent, lang, corrector_name, note), timed_out

        errors = [e.shifted(sent.offset) for e in errors if self._keep(e)]
        return (
            CheckResult(
                original=sent.text,
                corrected=corrected,
                errors=errors,
                offset=sent.offset,
                language=lang,
                corrector=corrector_name,
            ),
            timed_out,
        )

    def _keep(self, error: Correction) -> bool:
        if error.type not in self.enabled_categories:
            return False
        if error.type is ErrorType.SPELLING and error.original.strip().lower() in self.personal_dictionary:
            return False
        return True

    @staticmethod
    def _failed(sent: Sentence, lang: str, corrector_name: str, reason: str) -> CheckResult:
        return CheckResult(
            original=sent.text,
            corrected=sent.text,
            errors=[],
            offset=sent.offset,
            language=lang,
            corrector=corrector_name,
            failure=reason,
        )


def build_rule_engine(cfg: PipelineConfig) -> RuleEngine:
    rule_sets = default_rule_sets()
    if cfg.rules.preset_file:
        rule_sets = merge_rule_sets(rule_sets, load_rule_presets(cfg.rules.preset_file, cfg.rules.preset_name))
    return RuleEngine(
        rule_sets,
        default_language=cfg.language.default,
        personal_dictionary=cfg.settings.all_exempt_words(),
        enabled_categories=cfg.settings.enabled_categories,
    )


def build_orchestrator(cfg: PipelineConfig, logger: logging.Logger | None = None) -> CorrectionOrchestrator:
    engine = build_rule_engine(cfg)
    corrector, fallback = build_corrector_from_config(cfg.corrector, engine)
    return CorrectionOrchestrator(
        corrector,
        fallback=fallback,
        detector=LanguageDetector(
            supported=engine.languages,
            default=cfg.language.default,
            use_library=cfg.language.use_library,
        ),
        extractor=DiffExtractor(
            granularity=cfg.diff.granularity,
            edit_cost=cfg.diff.edit_cost,
            emit_insertions=cfg.diff.emit_insertions,
        ),
        default_language=cfg.language.default,
        language_mode=cfg.language.mode,
        enabled_categories=cfg.settings.enabled_categories,
        personal_dictionary=engine.personal_dictionary,
        concurrency=cfg.concurrency,
        sentence_timeout_s=cfg.sentence_timeout_s,
        logger=logger,
    )


def check_text(
    document_text: str,
    language: str | None = None,
    *,
    corrector: Corrector | None = None,
    cancel_token: CancellationToken | None = None,
) -> list[CheckResult]:
    """Check `document_text` with the built-in rule sets (or `corrector`)."""
    engine = RuleEngine(default_rule_sets())
    orchestrator = CorrectionOrchestrator(
        corrector or RuleBasedCorrector(engine),
        fallback=RuleBasedCorrector(engine) if corrector is not None else None,
        detector=LanguageDetector(supported=engine.languages),
    )
    return orchestrator.check(document_text, language=language, cancel_token=cancel_token)
