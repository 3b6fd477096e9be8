"""Error signature normalization.

A signature collapses textually distinct occurrences of the same failure
(different timestamps, shifted line numbers, different casing) into one
stable key so retry attempts can be counted per distinct failure.
"""

from __future__ import annotations

import hashlib
import re

SIGNATURE_LENGTH = 16

_TIMESTAMP_PATTERNS: tuple[re.Pattern[str], ...] = (
    # 2026-10-19T12:34:56.789Z, 2026-10-19 12:34:56+00:00
    re.compile(r"\d{4}-\d{2}-\d{2}[t ]\d{2}:\d{2}:\d{2}(?:\.\d+)?(?:z|[+-]\d{2}:?\d{2})?"),
    re.compile(r"\d{4}-\d{2}-\d{2}"),
    re.compile(r"\b\d{1,2}:\d{2}:\d{2}(?:\.\d+)?\b"),
)
_LINE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"\bline\s+\d+"),
    re.compile(r":\d+(?::\d+)?(?=[:\s)]|$)"),
)
_WHITESPACE = re.compile(r"\s+")


def normalize_error_message(message: str) -> str:
    """Strip volatile substrings and normalize case and whitespace."""
    text = message.lower()
    for pattern in _TIMESTAMP_PATTERNS:
        text = pattern.sub("<ts>", text)
    text = _LINE_PATTERNS[0].sub("line <n>", text)
    text = _LINE_PATTERNS[1].sub(":<n>", text)
    return _WHITESPACE.sub(" ", text).strip()


def compute_error_signature(message: str) -> str:
    """Return the 16-character stable signature of an error message."""
    normalized = normalize_error_message(message)
    digest = hashlib.sha256(normalized.encode("utf-8")).hexdigest()
    return digest[:SIGNATURE_LENGTH]
