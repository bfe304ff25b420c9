from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from diff_match_patch import diff_match_patch

from .errors import DiffComputationError
from .models import Correction, ErrorType
from .rules import SEVERITY_BY_TYPE

DIFF_DELETE = -1
DIFF_INSERT = 1
DIFF_EQUAL = 0

# Equal-runs shorter than this (in diff units) that sit between two edits are
# folded into the edits by the efficiency pass. 0 keeps semantic cleanup only.
DEFAULT_EDIT_COST = 0

_PUNCTUATION_RE = re.compile(r"^[.,;:!?'\"()\-]$")
# Words, whitespace runs and single punctuation characters; covers every char.
_TOKEN_RE = re.compile(r"\w+|\s+|[^\w\s]")

_MESSAGES: Mapping[ErrorType, str] = MappingProxyType(
    {
        ErrorType.SPELLING: 'Spelling: "{original}" → "{suggestion}"',
        ErrorType.GRAMMAR: 'Grammar: "{original}" → "{suggestion}"',
        ErrorType.PUNCTUATION: 'Punctuation: "{original}" → "{suggestion}"',
        ErrorType.CAPITALIZATION: 'Capitalization: "{original}" → "{suggestion}"',
        ErrorType.STYLE: 'Style: "{original}" → "{suggestion}"',
    }
)

Diff = tuple[int, str]


def is_punctuation(text: str) -> bool:
    return _PUNCTUATION_RE.match(text.strip()) is not None


def classify(original: str, suggestion: str) -> ErrorType:
    if original.lower() == suggestion.lower():
        return ErrorType.CAPITALIZATION
    if is_punctuation(original) or is_punctuation(suggestion):
        return ErrorType.PUNCTUATION
    if len(original.split()) != len(suggestion.split()):
        return ErrorType.GRAMMAR
    return ErrorType.SPELLING


def message_for(error_type: ErrorType, original: str, suggestion: str) -> str:
    template = _MESSAGES.get(error_type)
    if template is None:
        return "Suggestion available"
    return template.format(original=original, suggestion=suggestion)


def _new_engine(edit_cost: int) -> diff_match_patch:
    dmp = diff_match_patch()
    # No deadline: the same inputs must always give the same diff.
    dmp.Diff_Timeout = 0
    if edit_cost > 0:
        dmp.Diff_EditCost = edit_cost
    return dmp


def _encode_tokens(old_text: str, new_text: str) -> tuple[str, str, dict[str, str]]:
    token_to_char: dict[str, str] = {}
    char_to_token: dict[str, str] = {}
    next_code = 0x100

    def encode(text: str) -> str:
        nonlocal next_code
        chars: list[str] = []
        for token in _TOKEN_RE.findall(text):
            ch = token_to_char.get(token)
            if ch is None:
                if 0xD800 <= next_code <= 0xDFFF:
                    next_code = 0xE000
                ch = chr(next_code)
                next_code += 1
                token_to_char[token] = ch
                char_to_token[ch] = token
            chars.append(ch)
        return "".join(chars)

    return encode(old_text), encode(new_text), char_to_token


def compute_diff(
    original: str,
    corrected: str,
    *,
    granularity: str = "word",
    edit_cost: int = DEFAULT_EDIT_COST,
) -> list[Diff]:
    """Myers diff of `original` -> `corrected` after semantic cleanup.

    With ``granularity="word"`` the diff runs over word/space/punctuation tokens
    so a replaced word surfaces as one edit instead of scattered characters.
    """
    if granularity not in {"word", "char"}:
        raise ValueError(f"Invalid granularity: {granularity!r}. Allowed: char, word")
    try:
        dmp = _new_engine(edit_cost)
        if granularity == "char":
            diffs = dmp.diff_main(original, corrected, False)
            dmp.diff_cleanupSemantic(diffs)
            if edit_cost > 0:
                dmp.diff_cleanupEfficiency(diffs)
            return [(op, text) for op, text in diffs if text]

        old_enc, new_enc, char_to_token = _encode_tokens(original, corrected)
        diffs = dmp.diff_main(old_enc, new_enc, False)
        dmp.diff_cleanupSemantic(diffs)
        if edit_cost > 0:
            dmp.diff_cleanupEfficiency(diffs)
        out: list[Diff] = []
        for op, encoded in diffs:
            decoded = "".join(char_to_token[c] for c in encoded)
            if decoded:
                out.append((op, decoded))
        return out
    except Exception as e:
        raise DiffComputationError(f"Diff failed: {e}") from e


def _make_error(position: int, original: str, suggestion: str) -> Correction:
    error_type = classify(original, suggestion)
    return Correction(
        type=error_type,
        position=position,
        length=len(original),
        original=original,
        suggestion=suggestion,
        message=message_for(error_type, original, suggestion),
        severity=SEVERITY_BY_TYPE[error_type],
    )


def errors_from_diff(diffs: list[Diff], *, emit_insertions: bool = True) -> list[Correction]:
    """Walk diff ops left to right; positions are offsets into the original."""
    errors: list[Correction] = []
    position = 0
    i = 0
    while i < len(diffs):
        op, text = diffs[i]
        nxt = diffs[i + 1] if i + 1 < len(diffs) else None
        if op == DIFF_EQUAL:
            position += len(text)
        elif op == DIFF_DELETE:
            if nxt is not None and nxt[0] == DIFF_INSERT:
                errors.append(_make_error(position, text, nxt[1]))
                i += 1
            else:
                errors.append(_make_error(position, text, ""))
            position += len(text)
        elif op == DIFF_INSERT:
            if nxt is not None and nxt[0] == DIFF_DELETE:
                errors.append(_make_error(position, nxt[1], text))
                position += len(nxt[1])
                i += 1
            elif emit_insertions:
                errors.append(_make_error(position, "", text))
        else:
            raise DiffComputationError(f"Unknown diff operation: {op!r}")
        i += 1
    return errors


def extract_errors(
    original: str,
    corrected: str,
    *,
    granularity: str = "word",
    edit_cost: int = DEFAULT_EDIT_COST,
    emit_insertions: bool = True,
) -> list[Correction]:
    """Typed errors that turn `original` into `corrected`.

    Applying every error's suggestion right to left (descending position)
    reproduces `corrected`. Pure insertions are zero-length errors unless
    `emit_insertions` is off.
    """
    if original == corrected:
        return []
    diffs = compute_diff(original, corrected, granularity=granularity, edit_cost=edit_cost)
    return errors_from_diff(diffs, emit_insertions=emit_insertions)


@dataclass(frozen=True)
class DiffExtractor:
    granularity: str = "word"
    edit_cost: int = DEFAULT_EDIT_COST
    emit_insertions: bool = True

    def extract(self, original: str, corrected: str) -> list[Correction]:
        return extract_errors(
            original,
            corrected,
            granularity=self.granularity,
            edit_cost=self.edit_cost,
            emit_insertions=self.emit_insertions,
        )
