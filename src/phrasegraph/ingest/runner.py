from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from ..errors import IngestError, NotFoundError, PhraseGraphError
from ..graph.model import PhraseChunk, PhraseNode, WordNode, lemma_key, normalize_pos
from ..graph.patterns import build_pos_pattern
from ..graph.store import SemanticGraph
from ..index.chunk_catalog import ChunkCatalog
from ..nlp.pos_analysis import ContextTester, WordPOSAnalysis, analyze_word_pos
from ..nlp.stopwords import is_stop_word, stop_word_ratio
from ..nlp.tagger import Tagger
from .chunks import ChunkOptions, extract_chunks, merge_proper_name_runs


logger = logging.getLogger(__name__)

MIN_PROMOTE_TOKENS = 3
MIN_PROMOTE_CONTENT_WORDS = 2


@dataclass(frozen=True)
class IngestOptions:
    chunks: ChunkOptions = field(default_factory=ChunkOptions)
    # Stop-word gate is off unless asked for.
    skip_stop_words: bool = False
    max_stop_word_ratio: float = 0.7
    topic_id: str | None = None


@dataclass(frozen=True)
class IngestionResult:
    phrase: PhraseNode
    words: list[WordNode]
    chunks: list[PhraseChunk]


@dataclass(frozen=True)
class BatchIngestionResult:
    results: list[IngestionResult]
    total_phrases: int
    errors: list[str]

    @property
    def successful_phrases(self) -> int:
        return len(self.results)

    @property
    def failed_phrases(self) -> int:
        return self.total_phrases - len(self.results)


def ingest_phrase_text(
    text: str,
    graph: SemanticGraph,
    *,
    catalog: ChunkCatalog,
    tagger: Tagger,
    context_tester: ContextTester | None = None,
    options: IngestOptions | None = None,
) -> IngestionResult:
    """Tag one phrase and fold it into the graph and chunk catalog.

    Words upserted before a later step fails stay in the graph.
    """
    options = options or IngestOptions()
    text = text.strip()

    tokens = [t for t in tagger.tag(text) if normalize_pos(t.pos)[0] != "PUNCT"]
    if not tokens:
        raise IngestError(f"No tokens found in text: {text!r}")

    if options.skip_stop_words:
        surfaces = [t.token for t in tokens]
        if all(is_stop_word(s) for s in surfaces):
            raise IngestError("Phrase contains only stop words and cannot be ingested")
        ratio = stop_word_ratio(surfaces)
        if ratio > options.max_stop_word_ratio:
            raise IngestError(
                f"Phrase has too many stop words ({ratio:.0%}); maximum allowed is {options.max_stop_word_ratio:.0%}"
            )

    units = merge_proper_name_runs(tokens)

    analyses: dict[str, WordPOSAnalysis] = {}
    words: dict[str, WordNode] = {}
    word_ids: list[str] = []
    word_pos: list[str] = []
    for unit in units:
        pos, morph = normalize_pos(unit.pos)
        if options.skip_stop_words and (is_stop_word(unit.token) or is_stop_word(unit.lemma)):
            continue

        key = lemma_key(unit.lemma or unit.token)
        if key not in analyses:
            analyses[key] = analyze_word_pos(key, pos, context_tester)
            candidates = analyses[key].pos
        else:
            candidates = []

        word = graph.upsert_word(
            unit.token,
            key,
            candidates,
            pos,
            morph=unit.morph or morph,
            source=analyses[key].source,
        )
        words.setdefault(word.id, word)
        word_ids.append(word.id)
        word_pos.append(pos)

    tags = [normalize_pos(u.pos) for u in units]
    pos_seq = [p for p, _ in tags]
    morph_seq = [u.morph or m for u, (_, m) in zip(units, tags)]
    phrase = graph.upsert_phrase(
        text,
        [u.lemma or u.token for u in units],
        pos_seq,
        word_ids,
        pos_pattern=build_pos_pattern(pos_seq, morph_seq),
        word_pos=word_pos,
        tokens=[u.token for u in units],
    )

    chunks = extract_chunks(units, phrase.id, options.chunks)
    graph.add_chunks_to_phrase(phrase.id, chunks)
    catalog.record_chunks(phrase.id, chunks)

    if options.topic_id:
        graph.link_about_topic(phrase.id, options.topic_id)

    logger.info("ingested %r: %d words, %d chunks", text, len(words), len(chunks))
    return IngestionResult(phrase=phrase, words=list(words.values()), chunks=chunks)


_SPLIT_RE = re.compile(r"(?<=[.!?])\s*|\n")


def split_text_into_phrases(text: str) -> list[str]:
    """Split on sentence-ending punctuation and line breaks."""
    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    return [p.strip() for p in _SPLIT_RE.split(normalized) if p and p.strip()]


def ingest_batch(
    text: str,
    graph: SemanticGraph,
    *,
    catalog: ChunkCatalog,
    tagger: Tagger,
    context_tester: ContextTester | None = None,
    options: IngestOptions | None = None,
) -> BatchIngestionResult:
    phrases = split_text_into_phrases(text)
    results: list[IngestionResult] = []
    errors: list[str] = []

    for i, phrase_text in enumerate(phrases, start=1):
        try:
            res = ingest_phrase_text(
                phrase_text,
                graph,
                catalog=catalog,
                tagger=tagger,
                context_tester=context_tester,
                options=options,
            )
        except PhraseGraphError as e:
            msg = f"Failed to process phrase {phrase_text!r}: {e}"
            logger.warning("phrase %d/%d: %s", i, len(phrases), msg)
            errors.append(msg)
            continue
        results.append(res)

    return BatchIngestionResult(results=results, total_phrases=len(phrases), errors=errors)


def promote_chunk(
    phrase_id: str,
    chunk_index: int,
    graph: SemanticGraph,
    *,
    context_tester: ContextTester | None = None,
) -> PhraseNode:
    """Create a phrase from one of a phrase's chunks, linked back with DERIVED_FROM."""
    parent = graph.get_phrase(phrase_id)
    if not 0 <= chunk_index < len(parent.chunks):
        raise NotFoundError("chunk", f"{phrase_id}#{chunk_index}")
    chunk = parent.chunks[chunk_index]

    if len(chunk.lemmas) < MIN_PROMOTE_TOKENS:
        raise IngestError(
            f"Chunk too short to promote (must be >= {MIN_PROMOTE_TOKENS} tokens, got {len(chunk.lemmas)})"
        )
    content = [l for l in chunk.lemmas if not is_stop_word(l)]
    if len(content) < MIN_PROMOTE_CONTENT_WORDS:
        raise IngestError(
            f"Chunk has {len(content)} content words after removing stop words "
            f"(minimum {MIN_PROMOTE_CONTENT_WORDS})"
        )

    # "VERB|past-ADP-NOUN" -> [("VERB", "past"), ("ADP", None), ("NOUN", None)]
    parts = [p.partition("|") for p in chunk.pos_pattern.split("-")]
    pos = [normalize_pos(p[0])[0] for p in parts]
    morph = [p[2] or None for p in parts]

    word_ids: list[str] = []
    word_pos: list[str] = []
    for i, lemma in enumerate(chunk.lemmas):
        if is_stop_word(lemma):
            continue
        tag = pos[i] if i < len(pos) else "X"
        analysis = analyze_word_pos(lemma, tag, context_tester)
        word = graph.upsert_word(lemma, lemma, analysis.pos, tag, morph=morph[i] if i < len(morph) else None, source=analysis.source)
        word_ids.append(word.id)
        word_pos.append(tag)

    start, end = chunk.span
    tokens = parent.tokens[start : end + 1]
    if len(tokens) != len(chunk.lemmas):
        tokens = chunk.text.split()

    return graph.upsert_phrase(
        chunk.text,
        list(chunk.lemmas),
        pos,
        word_ids,
        pos_pattern=chunk.pos_pattern,
        derived_from_id=parent.id,
        word_pos=word_pos,
        tokens=tokens,
    )
