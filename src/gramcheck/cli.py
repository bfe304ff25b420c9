from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from tqdm import tqdm

from .config import PipelineConfig, load_config
from .diff import extract_errors
from .language import detect_language
from .logging_utils import setup_logging
from .models import CheckResult
from .orchestrator import build_orchestrator
from .report import write_check_jsonl, write_check_report


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="gramcheck", description="Sentence-level grammar and spelling checker.")
    sub = p.add_subparsers(dest="cmd", required=True)

    c = sub.add_parser("check", help="Check one or more UTF-8 text files.")
    c.add_argument("--input", "-i", required=True, nargs="+", help="Path(s) to text files")
    c.add_argument("--config", "-c", default=None, help="Path to YAML config")
    c.add_argument("--language", "-l", default=None, help="Force a language code (skips detection).")
    c.add_argument(
        "--provider",
        choices=["rules", "mock", "openai", "ollama"],
        default=None,
        help="Override corrector provider from config.",
    )
    c.add_argument("--concurrency", type=int, default=None, help="Override concurrency from config.")
    c.add_argument("--json", default=None, help="Write all results as one JSON document.")
    c.add_argument("--jsonl", default=None, help="Override errors jsonl path.")
    c.add_argument("--html", default=None, help="Override HTML report path.")
    c.add_argument("--log", default=None, help="Override log path.")
    c.add_argument("--verbose", "-v", action="store_true", help="Show debug messages on the console.")

    d = sub.add_parser("diff", help="Print the errors that turn ORIGINAL into CORRECTED as JSON.")
    d.add_argument("--original", required=True)
    d.add_argument("--corrected", required=True)
    d.add_argument("--granularity", choices=["word", "char"], default="word")

    t = sub.add_parser("detect", help="Print the detected language code of TEXT.")
    t.add_argument("--text", required=True)
    t.add_argument("--default", default="en", help="Code returned when nothing can be detected.")
    return p


def _report_path(value: str | None, input_path: Path, multiple: bool) -> Path | None:
    if not value:
        return None
    path = Path(value)
    if not multiple:
        return path
    return path.with_name(f"{path.stem}.{input_path.stem}{path.suffix}")


def _apply_overrides(cfg: PipelineConfig, args: argparse.Namespace) -> PipelineConfig:
    if args.provider is not None:
        corrector_cfg = cfg.corrector.__class__(**{**cfg.corrector.__dict__, "provider": str(args.provider)})
        cfg = cfg.__class__(**{**cfg.__dict__, "corrector": corrector_cfg})
    if args.language is not None:
        settings = cfg.settings.__class__(**{**cfg.settings.__dict__, "language": str(args.language).lower()})
        cfg = cfg.__class__(**{**cfg.__dict__, "settings": settings})
    if args.concurrency is not None:
        cfg = cfg.__class__(**{**cfg.__dict__, "concurrency": max(1, int(args.concurrency))})
    if args.jsonl is not None:
        cfg = cfg.__class__(**{**cfg.__dict__, "report_jsonl_path": str(args.jsonl)})
    if args.html is not None:
        cfg = cfg.__class__(**{**cfg.__dict__, "report_html_path": str(args.html)})
    if args.log is not None:
        cfg = cfg.__class__(**{**cfg.__dict__, "log_path": str(args.log)})
    return cfg


def _print_results(label: str, results: list[CheckResult]) -> None:
    for res in results:
        if res.failure is not None:
            print(f"{label}:{res.offset}: failed: {res.failure}")
        for error in res.errors:
            print(f"{label}:{error.position}: {error.type.value}: {error.message}")


def _run_check(args: argparse.Namespace) -> int:
    cfg = load_config(args.config) if args.config else PipelineConfig()
    cfg = _apply_overrides(cfg, args)
    logger = setup_logging(
        Path(cfg.log_path) if cfg.log_path else None,
        level=logging.DEBUG if args.verbose else logging.INFO,
    )
    orchestrator = build_orchestrator(cfg, logger=logger)

    inputs = [Path(p) for p in args.input]
    multiple = len(inputs) > 1
    all_results: dict[str, list[dict]] = {}
    errors_total = 0
    failed_docs = 0
    for input_path in tqdm(inputs, desc="Check", unit="file", disable=not multiple):
        try:
            text = input_path.read_text(encoding="utf-8-sig")
        except OSError as e:
            print(f"{input_path}: cannot read: {e}", file=sys.stderr)
            failed_docs += 1
            continue

        report = orchestrator.run(text, language=cfg.settings.language)
        _print_results(str(input_path), report.results)
        errors_total += len(report.errors)
        if report.results and all(not r.ok for r in report.results):
            failed_docs += 1
            print(f"{input_path}: check failed for every sentence ({len(report.failures)} failures)", file=sys.stderr)
        all_results[str(input_path)] = [r.to_dict() for r in report.results]

        jsonl_path = _report_path(cfg.report_jsonl_path, input_path, multiple)
        if jsonl_path is not None:
            write_check_jsonl(report.results, jsonl_path)
        html_path = _report_path(cfg.report_html_path, input_path, multiple)
        if html_path is not None:
            write_check_report(text, report.results, html_path)
            logger.info(f"Report written: {html_path}")

    if args.json:
        json_path = Path(args.json)
        json_path.parent.mkdir(parents=True, exist_ok=True)
        json_path.write_text(json.dumps(all_results, ensure_ascii=False, indent=2), encoding="utf-8")

    print(f"Checked {len(inputs)} file(s): {errors_total} error(s), {failed_docs} failed")
    return 1 if failed_docs else 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    if args.cmd == "check":
        return _run_check(args)

    if args.cmd == "diff":
        errors = extract_errors(args.original, args.corrected, granularity=args.granularity)
        print(json.dumps([e.to_dict() for e in errors], ensure_ascii=False, indent=2))
        return 0

    if args.cmd == "detect":
        print(detect_language(args.text, default=str(args.default).lower()))
        return 0

    print(f"Unknown command: {args.cmd}", file=sys.stderr)
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
