from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from ..graph.model import PhraseChunk, lemma_key, normalize_pos
from ..graph.patterns import build_pos_pattern
from ..nlp.tagger import TaggedToken


# Bare POS patterns worth tracking as chunks.
DEFAULT_CHUNK_PATTERNS = frozenset(
    {
        "NOUN-NOUN",  # coffee cup
        "ADJ-NOUN",  # brown fox
        "ADJ-ADJ-NOUN",  # quick brown fox
        "DET-ADJ-NOUN",  # the big house
        "DET-ADJ-PROPN",
        "VERB-ADP-NOUN",  # go to school
        "VERB-ADP-PROPN",
        "NOUN-ADP-NOUN",  # book on table
        "PROPN-ADP-PROPN",
    }
)


@dataclass(frozen=True)
class ChunkOptions:
    min_window: int = 2
    max_window: int = 4
    max_chunks: int = 8
    patterns: frozenset[str] = DEFAULT_CHUNK_PATTERNS

    def __post_init__(self):
        if self.min_window < 1 or self.max_window < self.min_window:
            raise ValueError(f"Invalid chunk window bounds: {self.min_window}..{self.max_window}")
        if self.max_chunks < 0:
            raise ValueError("max_chunks must be >= 0")


def merge_proper_name_runs(tokens: Sequence[TaggedToken]) -> list[TaggedToken]:
    """Collapse adjacent PROPN tokens into one unit.

    "New York Times" becomes a single PROPN token whose surface text and lemma
    are the space-joined parts.
    """
    out: list[TaggedToken] = []
    run: list[TaggedToken] = []

    def flush():
        if not run:
            return
        if len(run) == 1:
            out.append(run[0])
        else:
            out.append(
                TaggedToken(
                    token=" ".join(t.token for t in run),
                    lemma=" ".join(t.lemma for t in run),
                    pos="PROPN",
                )
            )
        run.clear()

    for tok in tokens:
        if normalize_pos(tok.pos)[0] == "PROPN":
            run.append(tok)
            continue
        flush()
        out.append(tok)
    flush()
    return out


def extract_chunks(
    units: Sequence[TaggedToken],
    phrase_id: str,
    options: ChunkOptions | None = None,
) -> list[PhraseChunk]:
    """Sliding-window chunk extraction over merged units.

    A window is kept when its bare POS pattern is allowed; the stored pattern
    carries morph features in canonical form. Results are in (start, size)
    order and capped at ``options.max_chunks``.
    """
    options = options or ChunkOptions()
    if options.max_chunks == 0:
        return []
    tags = [normalize_pos(u.pos) for u in units]
    pos = [p for p, _ in tags]
    morph = [u.morph or m for u, (_, m) in zip(units, tags)]

    chunks: list[PhraseChunk] = []
    n = len(units)
    for start in range(n):
        for size in range(options.min_window, min(options.max_window, n - start) + 1):
            end = start + size
            if "-".join(pos[start:end]) not in options.patterns:
                continue
            window = units[start:end]
            chunks.append(
                PhraseChunk(
                    text=" ".join(u.token for u in window),
                    lemmas=tuple(lemma_key(u.lemma) for u in window),
                    pos_pattern=build_pos_pattern(pos[start:end], morph[start:end]),
                    phrase_id=phrase_id,
                    span=(start, end - 1),
                )
            )
            if len(chunks) >= options.max_chunks:
                return chunks
    return chunks
