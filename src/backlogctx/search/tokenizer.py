"""Compound-word tokenizer shared by the lexical index and the embedder."""

from __future__ import annotations

import re

# Bump whenever tokenize() output changes; persisted snapshots are keyed on it.
TOKENIZER_VERSION = 2

_SPLIT_RE = re.compile(r"[^a-zA-Z0-9'-]+")
_HYPHEN_RE = re.compile(r"-+")
_LOWER_UPPER_RE = re.compile(r"([a-z\d])([A-Z])")
_ACRONYM_RE = re.compile(r"([A-Z]+)([A-Z][a-z])")


def split_camel_case(word: str) -> list[str]:
    """Split a word on camelCase / PascalCase boundaries.

    "FeatureStore" -> ["Feature", "Store"]
    "getHTTPResponse" -> ["get", "HTTP", "Response"]
    """
    marked = _LOWER_UPPER_RE.sub("\\1\0\\2", word)
    marked = _ACRONYM_RE.sub("\\1\0\\2", marked)
    return [part for part in marked.split("\0") if part]


def tokenize(text: str) -> list[str]:
    """Tokenize text, expanding hyphenated and camelCase compounds.

    "FeatureStore" -> ["featurestore", "feature", "store"]
    "keyboard-first" -> ["keyboard-first", "keyboard", "first"]

    Tokens are lowercased and deduplicated in first-seen order.
    """
    if not isinstance(text, str):
        return []

    expanded: list[str] = []
    for raw in _SPLIT_RE.split(text):
        if not raw:
            continue
        lower = raw.lower()
        expanded.append(lower)
        if "-" in raw:
            expanded.extend(p for p in _HYPHEN_RE.split(lower) if p)
        parts = split_camel_case(raw)
        if len(parts) > 1:
            expanded.extend(p.lower() for p in parts)

    return list(dict.fromkeys(expanded))
