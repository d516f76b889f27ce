from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

import numpy as np

from ..graph.model import PhraseChunk, lemma_key, split_chunk_key


RECENCY_WINDOW_MS = 30 * 24 * 60 * 60 * 1000
MAX_EXAMPLES = 3


def _now_ms() -> float:
    return time.time() * 1000.0


@dataclass
class ChunkStats:
    uses: int = 0
    likes: int = 0
    last_seen: float = 0.0
    examples: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ChunkRanking:
    key: str
    stats: ChunkStats
    score: float


@dataclass(frozen=True)
class LemmaMatch:
    key: str
    stats: ChunkStats
    overlap: int


class ChunkCatalog:
    """Usage and recency index over chunk keys (``lemma_lemma|PATTERN``).

    Keys keep insertion order, which is also the tie-break order for ranking.
    """

    def __init__(self, *, clock: Callable[[], float] = _now_ms):
        self.clock = clock
        self._stats: dict[str, ChunkStats] = {}

    def __len__(self) -> int:
        return len(self._stats)

    def __contains__(self, key: str) -> bool:
        return key in self._stats

    def record_chunks(self, phrase_id: str, chunks: Iterable[PhraseChunk]) -> None:
        now = self.clock()
        for chunk in chunks:
            stats = self._stats.get(chunk.key)
            if stats is None:
                self._stats[chunk.key] = ChunkStats(uses=1, likes=0, last_seen=now, examples=[chunk.text])
                continue
            stats.uses += 1
            stats.last_seen = now
            if chunk.text not in stats.examples:
                stats.examples.append(chunk.text)
                del stats.examples[:-MAX_EXAMPLES]

    def update_chunk_stats(self, key: str, delta_uses: int | None = None, delta_likes: int | None = None) -> bool:
        """Additive adjustment; returns False (and changes nothing) for an unknown key."""
        stats = self._stats.get(key)
        if stats is None:
            return False
        if delta_uses is not None:
            stats.uses += int(delta_uses)
        if delta_likes is not None:
            stats.likes += int(delta_likes)
        stats.last_seen = self.clock()
        return True

    def get_chunk_stats(self, key: str) -> ChunkStats | None:
        return self._stats.get(key)

    def recency_bonus(self, stats: ChunkStats) -> float:
        age_ms = self.clock() - stats.last_seen
        return max(0.0, 1.0 - age_ms / RECENCY_WINDOW_MS)

    def score(self, stats: ChunkStats) -> float:
        return max(0.0, stats.uses + stats.likes + self.recency_bonus(stats))

    def top_keys(self, limit: int) -> list[ChunkRanking]:
        if limit <= 0 or not self._stats:
            return []
        keys = list(self._stats)
        scores = np.array([self.score(self._stats[k]) for k in keys], dtype=np.float64)
        # Stable sort keeps insertion order among equal scores.
        order = np.argsort(-scores, kind="stable")[: int(limit)]
        return [ChunkRanking(key=keys[i], stats=self._stats[keys[i]], score=float(scores[i])) for i in order]

    def get_chunks_by_pattern(self, pos_pattern: str) -> list[tuple[str, ChunkStats]]:
        out: list[tuple[str, ChunkStats]] = []
        for key, stats in self._stats.items():
            _, pattern = split_chunk_key(key)
            if pattern == pos_pattern:
                out.append((key, stats))
        return out

    def get_chunks_by_lemmas(self, lemmas: Iterable[str]) -> list[LemmaMatch]:
        wanted = {lemma_key(l) for l in lemmas if l}
        if not wanted:
            return []

        matches: list[LemmaMatch] = []
        for key, stats in self._stats.items():
            chunk_lemmas = set(split_chunk_key(key)[0])
            overlap = len(wanted & chunk_lemmas)
            if overlap > 0:
                matches.append(LemmaMatch(key=key, stats=stats, overlap=overlap))

        order = np.argsort(-np.array([m.overlap for m in matches]), kind="stable")
        return [matches[i] for i in order]

    def clear(self) -> None:
        self._stats.clear()

    # Persistence helpers

    def to_records(self) -> list[dict[str, Any]]:
        return [
            {
                "key": key,
                "uses": s.uses,
                "likes": s.likes,
                "last_seen": s.last_seen,
                "examples": list(s.examples),
            }
            for key, s in self._stats.items()
        ]

    def load_records(self, records: Iterable[dict[str, Any]]) -> None:
        self._stats.clear()
        for rec in records:
            key = rec.get("key")
            if not key:
                continue
            self._stats[str(key)] = ChunkStats(
                uses=int(rec.get("uses") or 0),
                likes=int(rec.get("likes") or 0),
                last_seen=float(rec.get("last_seen") or 0.0),
                examples=[str(e) for e in (rec.get("examples") or [])][-MAX_EXAMPLES:],
            )
