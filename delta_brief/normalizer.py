"""
Lexical normalization shared by the novelty check.

This is a heuristic normalizer, not a linguistic stemmer. The suffix rules
run in a fixed priority order and that order is part of the contract:

    1. "ing" -> drop 3 characters
    2. "ed"  -> drop 2 characters
    3. "s" (but not "ss") -> drop 1 character

Changing the order changes which titles collapse to the same canonical
string, which is directly visible as "exact" novelty collisions.
"""

import re
from typing import Iterable, List, Set


STOPWORDS = frozenset({"the", "a", "an", "to", "of", "for", "and", "in", "on", "with", "by"})

_NON_ALNUM_RE = re.compile(r"[^a-z0-9\s]")


def _strip_suffix(token: str) -> str:
    if token.endswith("ing"):
        return token[:-3]
    if token.endswith("ed"):
        return token[:-2]
    if token.endswith("s") and not token.endswith("ss"):
        return token[:-1]
    return token


def normalize(text: str | None) -> List[str]:
    """Turn free text into the canonical token sequence (order and duplicates kept)."""
    if not text:
        return []
    lowered = _NON_ALNUM_RE.sub(" ", str(text).lower())
    return [_strip_suffix(tok) for tok in lowered.split() if tok not in STOPWORDS]


def normalize_to_string(text: str | None) -> str:
    return " ".join(normalize(text))


def bigrams(tokens: Iterable[str]) -> Set[str]:
    seq = list(tokens)
    return {f"{seq[i]}_{seq[i + 1]}" for i in range(len(seq) - 1)}
