"""Comment text sanitization.

Order of passes matters: whitespace is normalized before run-collapsing so
that collapsed runs are counted on the visible text, and truncation comes last.
"""

from __future__ import annotations

import re
import unicodedata

from escapebook.config import MAX_RAW_LENGTH, MAX_RUN_LENGTH, MAX_TEXT_LENGTH
from escapebook.exceptions import EmptyContentError, MalformedInputError

# Zero-width and bidi controls. Most are category Cf but a few are worth naming.
_INVISIBLE = {
    "\u200b", "\u200c", "\u200d", "\u200e", "\u200f",
    "\u2060", "\u2061", "\u2062", "\u2063", "\u2064",
    "\ufeff", "\u00ad", "\u180e",
}

_INLINE_SPACE_RE = re.compile(r"[^\S\n]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")
_RUN_RE = re.compile(r"(.)\1{%d,}" % MAX_RUN_LENGTH, re.DOTALL)


def _strip_invisible(text: str) -> str:
    out = []
    for ch in text:
        if ch == "\n" or ch == "\t":
            out.append(ch)
            continue
        if ch in _INVISIBLE:
            continue
        category = unicodedata.category(ch)
        if category in ("Cc", "Cf", "Cs", "Co", "Cn"):
            continue
        if category in ("Zl", "Zp"):
            out.append("\n")
            continue
        out.append(ch)
    return "".join(out)


def _normalize_whitespace(text: str) -> str:
    text = _INLINE_SPACE_RE.sub(" ", text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    text = _BLANK_LINES_RE.sub("\n\n", text)
    return text.strip()


def collapse_runs(text: str, limit: int = MAX_RUN_LENGTH) -> str:
    """Shorten any single character repeated more than ``limit`` times."""
    if limit == MAX_RUN_LENGTH:
        return _RUN_RE.sub(lambda m: m.group(1) * limit, text)
    pattern = re.compile(r"(.)\1{%d,}" % limit, re.DOTALL)
    return pattern.sub(lambda m: m.group(1) * limit, text)


def sanitize_comment(raw: object, max_length: int = MAX_TEXT_LENGTH) -> str:
    """Clean user-supplied comment text.

    Raises EmptyContentError when nothing visible remains. Text of any length
    is accepted: whatever is longer than ``max_length`` after cleaning is
    truncated.
    """
    if raw is None:
        raise EmptyContentError("Comment text is empty")
    if not isinstance(raw, str):
        raise MalformedInputError("Comment text must be a string")
    # Only the head of an oversized payload can survive truncation, so the
    # cleaning passes never see more than MAX_RAW_LENGTH characters.
    if len(raw) > MAX_RAW_LENGTH:
        raw = raw.strip()[:MAX_RAW_LENGTH]

    text = raw.replace("\r\n", "\n").replace("\r", "\n")
    text = unicodedata.normalize("NFC", text)
    text = _strip_invisible(text)
    text = _normalize_whitespace(text)
    text = collapse_runs(text)
    if len(text) > max_length:
        text = text[:max_length].rstrip()
    if not text:
        raise EmptyContentError("Comment text is empty")
    return text
