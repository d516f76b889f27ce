from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from ..graph.model import PhraseChunk, PhraseNode, lemma_key
from ..graph.store import SemanticGraph
from .chunk_catalog import ChunkCatalog


SAME_PATTERN_BOOST = 0.5
SHARED_CHUNK_PATTERN_BOOST = 0.2
LIKE_WEIGHT = 0.1
MAX_LIKE_BOOST = 0.3


@dataclass(frozen=True)
class RetrievalOptions:
    max_results: int = 40
    min_overlap: float = 0.0
    max_chunks: int = 20


@dataclass(frozen=True)
class ScoredPhrase:
    phrase: PhraseNode
    score: float
    overlap_score: float
    pattern_boost: float
    like_boost: float
    shared_lemmas: tuple[str, ...] = ()


@dataclass(frozen=True)
class ScoredChunk:
    key: str
    chunk: PhraseChunk
    score: float


@dataclass(frozen=True)
class RetrievalResult:
    related_phrases: list[ScoredPhrase]
    top_chunks: list[ScoredChunk]


def lemma_overlap(a: set[str], b: set[str]) -> float:
    """Jaccard similarity of two lemma sets, in [0, 1]."""
    union = a | b
    if not union:
        return 0.0
    return len(a & b) / len(union)


def pattern_boost(seed: PhraseNode, other: PhraseNode) -> float:
    if seed.pos_pattern and seed.pos_pattern == other.pos_pattern:
        return SAME_PATTERN_BOOST
    a = {c.pos_pattern for c in seed.chunks}
    b = {c.pos_pattern for c in other.chunks}
    shared = a & b
    if not shared:
        return 0.0
    return SHARED_CHUNK_PATTERN_BOOST * len(shared) / len(a | b)


def like_boost(seed: PhraseNode, other: PhraseNode, catalog: ChunkCatalog) -> float:
    shared = {c.key for c in seed.chunks} & {c.key for c in other.chunks}
    likes = 0
    for key in shared:
        stats = catalog.get_chunk_stats(key)
        if stats is not None:
            likes += max(0, stats.likes)
    return min(MAX_LIKE_BOOST, LIKE_WEIGHT * likes)


def surface_related_phrases(
    seed_phrase_id: str,
    graph: SemanticGraph,
    *,
    catalog: ChunkCatalog,
    options: RetrievalOptions | None = None,
) -> RetrievalResult:
    """Rank every other phrase against the seed.

    score = overlap + pattern boost + like boost, sorted descending (stable).
    Raises NotFoundError when the seed id is not a phrase.
    """
    options = options or RetrievalOptions()
    seed = graph.get_phrase(seed_phrase_id)
    seed_lemmas = {lemma_key(l) for l in seed.lemmas}

    candidates: list[ScoredPhrase] = []
    for node in graph.iter_phrases():
        if node.id == seed.id:
            continue

        lemmas = {lemma_key(l) for l in node.lemmas}
        overlap = lemma_overlap(seed_lemmas, lemmas)
        if overlap < options.min_overlap:
            continue

        pb = pattern_boost(seed, node)
        lb = like_boost(seed, node, catalog)
        candidates.append(
            ScoredPhrase(
                phrase=node,
                score=overlap + pb + lb,
                overlap_score=overlap,
                pattern_boost=pb,
                like_boost=lb,
                shared_lemmas=tuple(sorted(seed_lemmas & lemmas)),
            )
        )

    related = _rank(candidates, [c.score for c in candidates], options.max_results)
    return RetrievalResult(related_phrases=related, top_chunks=_top_chunks(related, catalog, options.max_chunks))


def _top_chunks(related: list[ScoredPhrase], catalog: ChunkCatalog, limit: int) -> list[ScoredChunk]:
    seen: dict[str, ScoredChunk] = {}
    for item in related:
        for chunk in item.phrase.chunks:
            if chunk.key in seen:
                continue
            stats = catalog.get_chunk_stats(chunk.key)
            score = catalog.score(stats) if stats is not None else 0.0
            seen[chunk.key] = ScoredChunk(key=chunk.key, chunk=chunk, score=score)

    scored = list(seen.values())
    return _rank(scored, [c.score for c in scored], limit)


def _rank(items: list, scores: list[float], limit: int) -> list:
    if not items or limit <= 0:
        return []
    order = np.argsort(-np.asarray(scores, dtype=np.float64), kind="stable")[: int(limit)]
    return [items[i] for i in order]


def get_phrases_by_pattern(pos_pattern: str, graph: SemanticGraph) -> list[PhraseNode]:
    """Phrases whose whole pattern, or one of whose chunk patterns, equals ``pos_pattern``."""
    out: list[PhraseNode] = []
    for node in graph.iter_phrases():
        if node.pos_pattern == pos_pattern or any(c.pos_pattern == pos_pattern for c in node.chunks):
            out.append(node)
    return out


def get_phrases_by_word(lemma: str, graph: SemanticGraph) -> list[PhraseNode]:
    return graph.get_phrases_by_word_lemma(lemma)
