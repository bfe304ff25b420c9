from __future__ import annotations

import json

from gramcheck import cli


def test_cli_check_prints_errors_and_writes_reports(tmp_path, capsys):
    doc = tmp_path / "doc.txt"
    doc.write_text("I recieve the package. Its a good day.", encoding="utf-8")
    jsonl_path = tmp_path / "errors.jsonl"
    html_path = tmp_path / "report.html"
    json_path = tmp_path / "results.json"

    rc = cli.main(
        [
            "check",
            "--input",
            str(doc),
            "--language",
            "en",
            "--jsonl",
            str(jsonl_path),
            "--html",
            str(html_path),
            "--json",
            str(json_path),
            "--log",
            str(tmp_path / "check.log"),
        ]
    )

    assert rc == 0
    out = capsys.readouterr().out
    assert f"{doc}:2: spelling:" in out
    assert "Checked 1 file(s): 2 error(s), 0 failed" in out
    assert len(jsonl_path.read_text(encoding="utf-8").splitlines()) == 2
    assert "recieve" in html_path.read_text(encoding="utf-8")
    data = json.loads(json_path.read_text(encoding="utf-8"))
    assert [r["offset"] for r in data[str(doc)]] == [0, 23]


def test_cli_check_multiple_files_suffixes_reports(tmp_path, capsys):
    first = tmp_path / "first.txt"
    second = tmp_path / "second.txt"
    first.write_text("I recieve it.", encoding="utf-8")
    second.write_text("All good here.", encoding="utf-8")

    rc = cli.main(["check", "-i", str(first), str(second), "-l", "en", "--jsonl", str(tmp_path / "errors.jsonl")])

    assert rc == 0
    assert (tmp_path / "errors.first.jsonl").exists()
    assert (tmp_path / "errors.second.jsonl").exists()
    assert "Checked 2 file(s): 1 error(s), 0 failed" in capsys.readouterr().out


def test_cli_check_reports_fully_failed_document(tmp_path, monkeypatch, capsys):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    cfg_path = tmp_path / "config.yaml"
    cfg_path.write_text(
        "corrector:\n  provider: openai\n  fallback: none\n  cache_enabled: false\n",
        encoding="utf-8",
    )
    doc = tmp_path / "doc.txt"
    doc.write_text("One. Two.", encoding="utf-8")

    rc = cli.main(["check", "--input", str(doc), "--config", str(cfg_path), "--language", "en"])

    assert rc == 1
    captured = capsys.readouterr()
    assert "check failed for every sentence" in captured.err
    assert "1 failed" in captured.out


def test_cli_check_missing_file(tmp_path, capsys):
    rc = cli.main(["check", "--input", str(tmp_path / "missing.txt")])
    assert rc == 1
    assert "cannot read" in capsys.readouterr().err


def test_cli_diff_prints_json(capsys):
    rc = cli.main(["diff", "--original", "I recieve it", "--corrected", "I receive it"])
    assert rc == 0
    errors = json.loads(capsys.readouterr().out)
    assert errors == [
        {
            "type": "spelling",
            "position": 2,
            "length": 7,
            "original": "recieve",
            "suggestion": "receive",
            "message": 'Spelling: "recieve" → "receive"',
            "severity": "high",
        }
    ]


def test_cli_detect_dispatches(monkeypatch, capsys):
    called: dict[str, object] = {}

    def _fake_detect(text, default="en"):
        called["text"] = text
        called["default"] = default
        return "es"

    monkeypatch.setattr(cli, "detect_language", _fake_detect)
    rc = cli.main(["detect", "--text", "Hola mundo", "--default", "EN"])

    assert rc == 0
    assert capsys.readouterr().out.strip() == "es"
    assert called == {"text": "Hola mundo", "default": "en"}
