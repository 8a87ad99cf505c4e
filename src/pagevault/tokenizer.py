# Pagevault – Hybrid retrieval for project knowledge pages
# Copyright (c) 2026 4rce.com Digital Technologies GmbH. All rights reserved.
# Non-commercial use only. Commercial licensing: info@4rce.com

"""
Text -> filtered token list. Used identically for chunk text and queries,
otherwise BM25 term lookups stop matching.
"""
import re

STOP_WORDS = frozenset({
    "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
    "of", "with", "by", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "this", "that", "these", "those", "i", "you", "he", "she",
    "it", "we", "they", "me", "him", "her", "us", "them",
})

_NON_WORD = re.compile(r"[^\w]")


def tokenize(text: str) -> list[str]:
    """Lower-case, whitespace split, strip non-word chars, drop short tokens
    and stop words."""
    if not text:
        return []
    tokens = []
    for raw in text.lower().split():
        if len(raw) <= 1:
            continue
        term = _NON_WORD.sub("", raw)
        if len(term) <= 1 or term in STOP_WORDS:
            continue
        tokens.append(term)
    return tokens
