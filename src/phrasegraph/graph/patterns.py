from __future__ import annotations

from typing import Sequence


def build_pos_pattern(pos: Sequence[str], morph: Sequence[str | None] | None = None) -> str:
    """Canonical POS pattern used as a storage/lookup key.

    Positions join with ``-``; a morph feature is appended as ``POS|morph``
    unless it is empty or the ``base`` sentinel.
    """
    morph = morph or ()
    parts: list[str] = []
    for i, p in enumerate(pos):
        m = morph[i] if i < len(morph) else None
        parts.append(f"{p}|{m}" if m and m != "base" else p)
    return "-".join(parts)


# Display-only builders. Never use these as catalog keys.


def build_debug_pos_word_pattern(pos: Sequence[str], words: Sequence[str]) -> str:
    n = min(len(pos), len(words))
    return "-".join(f"{pos[i]}:{words[i]}" for i in range(n))


def build_debug_pos_lemma_pattern(pos: Sequence[str], lemmas: Sequence[str]) -> str:
    n = min(len(pos), len(lemmas))
    return "-".join(f"{pos[i]}:{lemmas[i]}" for i in range(n))
