from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Callable, Iterable, Iterator, ValuesView, cast

from ..errors import NotFoundError
from .model import (
    DERIVED_FROM,
    NODE_KINDS,
    PHRASE,
    PHRASE_ABOUT_TOPIC,
    PHRASE_CONTAINS_WORD,
    TOPIC,
    WORD,
    Edge,
    PhraseChunk,
    PhraseNode,
    TopicNode,
    WordNode,
    lemma_key,
    normalize_pos,
)
from .patterns import build_pos_pattern


logger = logging.getLogger(__name__)

Node = WordNode | PhraseNode | TopicNode


def _now_ms() -> float:
    return time.time() * 1000.0


def _new_id() -> str:
    return uuid.uuid4().hex


def _extend_unique(target: list[str], items: Iterable[str]) -> None:
    for item in items:
        if item not in target:
            target.append(item)


class SemanticGraph:
    """In-memory store of word, phrase and topic nodes plus typed edges.

    Nodes are append-only. Words are keyed by case-normalized lemma and merge
    in place on re-ingestion.
    """

    def __init__(self, *, clock: Callable[[], float] = _now_ms):
        self.clock = clock
        self._nodes: dict[str, Node] = {}
        self._by_kind: dict[str, dict[str, Node]] = {k: {} for k in NODE_KINDS}
        self._edges: dict[str, Edge] = {}

        # Secondary indexes (insertion-ordered dicts used as ordered sets).
        self._word_by_lemma: dict[str, str] = {}
        self._phrases_by_lemma: dict[str, dict[str, None]] = {}
        self._phrases_by_word: dict[str, dict[str, None]] = {}

    # --- words ---------------------------------------------------------

    def upsert_word(
        self,
        text: str,
        lemma: str,
        candidate_pos: Iterable[str] = (),
        observed_pos: str | None = None,
        *,
        morph: str | None = None,
        source: str | None = None,
    ) -> WordNode:
        key = lemma_key(lemma)
        observed, observed_morph = normalize_pos(observed_pos) if observed_pos else (None, None)
        morph = morph or observed_morph
        candidates = [normalize_pos(c)[0] for c in candidate_pos if c]

        word_id = self._word_by_lemma.get(key)
        if word_id is None:
            potential: list[str] = []
            _extend_unique(potential, candidates)
            if observed:
                _extend_unique(potential, [observed])
            if not potential:
                potential.append("NOUN")

            word = WordNode(
                id=_new_id(),
                text=text,
                lemma=key,
                pos=[observed or potential[0]],
                pos_potential=potential,
                pos_observed={observed: 1} if observed else {},
                primary_pos=observed or potential[0],
                morph_feature=morph,
                original_form=text,
                pos_sources=[source] if source else [],
            )
            word.is_polysemous_pos = len(word.pos_potential) > 1
            self._insert_node(word)
            self._word_by_lemma[key] = word.id
            logger.debug("new word %r pos=%s", key, word.pos_potential)
            return word

        word = cast(WordNode, self._nodes[word_id])

        _extend_unique(word.pos_potential, candidates)
        if observed:
            _extend_unique(word.pos_potential, [observed])
            word.pos_observed[observed] = word.pos_observed.get(observed, 0) + 1
            word.pos = [observed]
            word.original_form = text
        if morph:
            word.morph_feature = morph
        if source:
            _extend_unique(word.pos_sources, [source])

        word.primary_pos = _primary_pos(word)
        word.is_polysemous_pos = len(word.pos_potential) > 1
        return word

    def find_word_by_lemma(self, lemma: str) -> WordNode | None:
        word_id = self._word_by_lemma.get(lemma_key(lemma))
        if word_id is None:
            return None
        node = self._nodes.get(word_id)
        return node if isinstance(node, WordNode) else None

    # --- phrases -------------------------------------------------------

    def upsert_phrase(
        self,
        text: str,
        lemmas: list[str],
        pos: list[str],
        word_ids: list[str],
        *,
        pos_pattern: str | None = None,
        derived_from_id: str | None = None,
        word_pos: list[str] | None = None,
        tokens: list[str] | None = None,
    ) -> PhraseNode:
        words: list[WordNode] = []
        for word_id in word_ids:
            word = self._nodes.get(word_id)
            if not isinstance(word, WordNode):
                raise NotFoundError("word", word_id)
            words.append(word)

        phrase = PhraseNode(
            id=_new_id(),
            text=text,
            word_ids=list(word_ids),
            created_at=self.clock(),
            lemmas=[lemma_key(l) for l in lemmas],
            pos=list(pos),
            pos_pattern=pos_pattern if pos_pattern is not None else build_pos_pattern(pos),
            derived_from_id=derived_from_id,
            tokens=list(tokens) if tokens is not None else [],
        )
        self._insert_node(phrase)

        for i, word in enumerate(words):
            pos_used = (word_pos[i] if word_pos and i < len(word_pos) else None) or word.primary_pos
            self.add_edge(phrase.id, word.id, PHRASE_CONTAINS_WORD, pos_used=pos_used)

        if derived_from_id:
            self.add_edge(phrase.id, derived_from_id, DERIVED_FROM)

        return phrase

    def add_chunks_to_phrase(self, phrase_id: str, chunks: list[PhraseChunk]) -> None:
        self.get_phrase(phrase_id).chunks = list(chunks)

    def get_phrase(self, phrase_id: str) -> PhraseNode:
        node = self._nodes.get(phrase_id)
        if not isinstance(node, PhraseNode):
            raise NotFoundError("phrase", phrase_id)
        return node

    def get_phrases_by_word_lemma(self, lemma: str) -> list[PhraseNode]:
        ids = self._phrases_by_lemma.get(lemma_key(lemma), {})
        return [self._nodes[pid] for pid in ids]  # type: ignore[misc]

    def get_word_neighbors(self, word_id: str) -> list[PhraseNode]:
        ids = self._phrases_by_word.get(word_id, {})
        return [self._nodes[pid] for pid in ids]  # type: ignore[misc]

    # --- topics --------------------------------------------------------

    def get_topic_by_text(self, text: str) -> TopicNode | None:
        canon = text.strip().lower()
        for topic in self.get_nodes_by_type(TOPIC):
            if topic.text.strip().lower() == canon:
                return topic  # type: ignore[return-value]
        return None

    def upsert_topic(self, text: str, lemmas: list[str], keywords: list[str] | None = None) -> TopicNode:
        existing = self.get_topic_by_text(text)
        now = self.clock()
        if existing is not None:
            existing.updated_at = now
            if keywords:
                existing.keywords = list(keywords)
            return existing

        topic = TopicNode(
            id=_new_id(),
            text=text.strip(),
            lemmas=[lemma_key(l) for l in lemmas],
            created_at=now,
            updated_at=now,
            keywords=list(keywords or []),
        )
        self._insert_node(topic)
        return topic

    def link_about_topic(self, from_id: str, topic_id: str, *, confidence: float = 1.0, origin: str = "user") -> Edge:
        if from_id not in self._nodes:
            raise NotFoundError("node", from_id)
        if not isinstance(self._nodes.get(topic_id), TopicNode):
            raise NotFoundError("topic", topic_id)
        return self.add_edge(from_id, topic_id, PHRASE_ABOUT_TOPIC, confidence=float(confidence), origin=origin)

    # --- generic -------------------------------------------------------

    def add_edge(self, from_id: str, to_id: str, kind: str, **meta: Any) -> Edge:
        edge = Edge(id=_new_id(), kind=kind, from_id=from_id, to_id=to_id, meta=dict(meta))
        self.restore_edge(edge)
        return edge

    def get_node(self, node_id: str) -> Node | None:
        return self._nodes.get(node_id)

    def iter_words(self) -> Iterator[WordNode]:
        for node in self._by_kind[WORD].values():
            yield cast(WordNode, node)

    def iter_phrases(self) -> Iterator[PhraseNode]:
        for node in self._by_kind[PHRASE].values():
            yield cast(PhraseNode, node)

    def get_nodes_by_type(self, kind: str) -> ValuesView[Node]:
        """Live, insertion-ordered view over nodes of one kind."""
        try:
            return self._by_kind[kind].values()
        except KeyError:
            raise ValueError(f"Unknown node kind: {kind!r}") from None

    def iter_edges(self, kind: str | None = None) -> Iterator[Edge]:
        for edge in self._edges.values():
            if kind is None or edge.kind == kind:
                yield edge

    def node_count(self) -> int:
        return len(self._nodes)

    def edge_count(self) -> int:
        return len(self._edges)

    def clear(self) -> None:
        self._nodes.clear()
        for bucket in self._by_kind.values():
            bucket.clear()
        self._edges.clear()
        self._word_by_lemma.clear()
        self._phrases_by_lemma.clear()
        self._phrases_by_word.clear()

    # Used by snapshot loading; ids are kept as-is.

    def restore_node(self, node: Node) -> None:
        self._insert_node(node)
        if isinstance(node, WordNode):
            self._word_by_lemma.setdefault(lemma_key(node.lemma), node.id)

    def restore_edge(self, edge: Edge) -> None:
        self._edges[edge.id] = edge
        if edge.kind == PHRASE_CONTAINS_WORD:
            self._phrases_by_word.setdefault(edge.to_id, {})[edge.from_id] = None

    def _insert_node(self, node: Node) -> None:
        self._nodes[node.id] = node
        self._by_kind[node.kind][node.id] = node
        if isinstance(node, PhraseNode):
            for lemma in node.lemmas:
                self._phrases_by_lemma.setdefault(lemma_key(lemma), {})[node.id] = None


def _primary_pos(word: WordNode) -> str:
    # Highest observed count; dict order breaks ties by first observation.
    best: str | None = None
    best_n = 0
    for pos, n in word.pos_observed.items():
        if n > best_n:
            best, best_n = pos, n
    return best or word.primary_pos or word.pos_potential[0]
