from __future__ import annotations

import html
import json
from pathlib import Path
from typing import Iterable, Sequence

from .models import CheckResult, Correction, ErrorType


def esc(s: str) -> str:
    return html.escape(s, quote=True)


def write_check_jsonl(results: Iterable[CheckResult], path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        for res in results:
            if res.failure is not None:
                rec = {
                    "offset": res.offset,
                    "language": res.language,
                    "corrector": res.corrector,
                    "failure": res.failure,
                    "sentence": res.original,
                }
                f.write(json.dumps(rec, ensure_ascii=False) + "\n")
                continue
            for error in res.errors:
                rec = {
                    **error.to_dict(),
                    "offset": res.offset,
                    "language": res.language,
                    "corrector": res.corrector,
                    "sentence": res.original,
                    "corrected": res.corrected,
                }
                f.write(json.dumps(rec, ensure_ascii=False) + "\n")


def highlight_errors(text: str, errors: Sequence[Correction]) -> str:
    """HTML for `text` with each error wrapped in a ``<span class='correction'>``.

    Errors are document-absolute. When two overlap the earlier one is shown,
    as in `apply_corrections`. Spans are placed right to left so earlier
    positions stay valid.
    """
    kept: list[Correction] = []
    start = 0
    for error in sorted(errors, key=lambda e: (e.position, e.length)):
        if error.position < start or error.end > len(text):
            continue
        kept.append(error)
        start = error.end

    pieces: list[str] = []
    cursor = len(text)
    for error in reversed(kept):
        pieces.append(esc(text[error.end : cursor]))
        css = "correction insertion" if error.is_insertion else "correction"
        pieces.append(
            f"<span class='{css}' data-type='{esc(error.type.value)}' "
            f"data-suggestion='{esc(error.suggestion)}' title='{esc(error.message)}'>"
            f"{esc(text[error.position : error.end])}</span>"
        )
        cursor = error.position
    pieces.append(esc(text[:cursor]))
    return "".join(reversed(pieces)).replace("\n", "<br>\n")


def write_check_report(text: str, results: Iterable[CheckResult], path: Path) -> None:
    results = list(results)
    errors = [e for r in results for e in r.errors]
    rows: list[str] = []
    for res in results:
        for error in res.errors:
            rows.append(
                "<tr class='error' data-type='{t}'>".format(t=esc(error.type.value))
                + f"<td class='type'>{esc(error.type.value)}</td>"
                + f"<td class='pos'>{error.position}</td>"
                + f"<td class='orig'>{esc(error.original)}</td>"
                + f"<td class='sugg'>{esc(error.suggestion)}</td>"
                + f"<td class='msg'>{esc(error.message)}</td>"
                + f"<td class='by'>{esc(res.corrector or '')}</td>"
                + "</tr>"
            )
        if res.failure is not None:
            rows.append(
                "<tr class='failure' data-type='failure'>"
                + "<td class='type'>failure</td>"
                + f"<td class='pos'>{res.offset}</td>"
                + f"<td class='orig' colspan='3'>{esc(res.failure)}</td>"
                + f"<td class='by'>{esc(res.corrector or '')}</td>"
                + "</tr>"
            )

    counts = {t.value: 0 for t in ErrorType}
    for e in errors:
        counts[e.type.value] += 1
    toggles = "".join(
        f"<label class='toggle t-{t}'><input type='checkbox' value='{t}' checked/> {t} ({n})</label>"
        for t, n in counts.items()
    )

    html_doc = f"""<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8"/>
<title>gramcheck report</title>
<style>
body {{ font-family: sans-serif; max-width: 960px; margin: 16px auto; }}
.doc {{ white-space: normal; line-height: 1.7; padding: 12px; background: #fafafa; }}
.correction {{ border-bottom: 2px solid var(--c); cursor: help; }}
.insertion {{ border-left: 2px solid var(--c); border-bottom: none; }}
.t-spelling, [data-type="spelling"] {{ --c: #d33; }}
.t-grammar, [data-type="grammar"] {{ --c: #a3d; }}
.t-punctuation, [data-type="punctuation"] {{ --c: #e90; }}
.t-capitalization, [data-type="capitalization"] {{ --c: #39f; }}
.t-style, [data-type="style"] {{ --c: #3a6; }}
.toggle {{ margin-right: 12px; border-bottom: 2px solid var(--c); }}
.hidden-type {{ border: none; }}
table {{ border-collapse: collapse; width: 100%; margin-top: 12px; }}
td {{ border-top: 1px solid #eee; padding: 4px 6px; }}
tr.failure td {{ color: #a00; }}
</style>
</head>
<body>
<h1>gramcheck report</h1>
<p>Sentences: {len(results)}; errors: {len(errors)}.</p>
<div id="toggles">{toggles}</div>

<div class="doc">{highlight_errors(text, errors)}</div>

<table>
<tbody id="tbody">
{''.join(rows) if rows else '<tr><td>No errors</td></tr>'}
</tbody>
</table>

<script>
// Unchecking a category hides its table rows and its underlines in the text.
document.querySelectorAll('#toggles input').forEach(box => box.addEventListener('change', () => {{
  const shown = box.checked;
  document.querySelectorAll(`#tbody tr[data-type="${{box.value}}"]`).forEach(tr => {{
    tr.hidden = !shown;
  }});
  document.querySelectorAll(`.doc .correction[data-type="${{box.value}}"]`).forEach(span => {{
    span.classList.toggle('hidden-type', !shown);
  }});
}}));
</script>
</body>
</html>
"""

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(html_doc, encoding="utf-8")
