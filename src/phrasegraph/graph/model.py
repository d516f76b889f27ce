from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


# Fixed tag vocabulary consumed from the tagging capability.
POS_TAGS = (
    "NOUN",
    "VERB",
    "ADJ",
    "ADV",
    "PROPN",
    "DET",
    "PRON",
    "ADP",
    "CCONJ",
    "SCONJ",
    "PART",
    "NUM",
    "INTJ",
    "PUNCT",
    "SYM",
    "X",
    "AUX",
)
_POS_SET = frozenset(POS_TAGS)

# Node kinds
WORD = "word"
PHRASE = "phrase"
TOPIC = "topic"
NODE_KINDS = (WORD, PHRASE, TOPIC)

# Edge kinds
PHRASE_CONTAINS_WORD = "PHRASE_CONTAINS_WORD"
DERIVED_FROM = "DERIVED_FROM"
PHRASE_ABOUT_TOPIC = "PHRASE_ABOUT_TOPIC"


def normalize_pos(tag: str | None) -> tuple[str, str | None]:
    """Split an observed tag like ``VERB:past`` into (``VERB``, ``past``).

    Tags outside the vocabulary collapse to ``X``.
    """
    if not tag:
        return "X", None
    raw = tag.strip()
    morph: str | None = None
    if ":" in raw:
        raw, morph = raw.split(":", 1)
        morph = morph.strip() or None
    pos = raw.strip().upper()
    if pos not in _POS_SET:
        pos = "X"
    return pos, morph


def lemma_key(lemma: str) -> str:
    return " ".join(lemma.split()).lower()


@dataclass
class WordNode:
    id: str
    text: str
    lemma: str
    pos: list[str]
    pos_potential: list[str]
    pos_observed: dict[str, int]
    primary_pos: str
    is_polysemous_pos: bool = False
    morph_feature: str | None = None
    original_form: str | None = None
    pos_sources: list[str] = field(default_factory=list)
    kind: str = field(default=WORD, init=False)


@dataclass(frozen=True)
class PhraseChunk:
    text: str
    lemmas: tuple[str, ...]
    pos_pattern: str
    phrase_id: str
    span: tuple[int, int] = (0, 0)

    @property
    def key(self) -> str:
        return chunk_key(self.lemmas, self.pos_pattern)

    @property
    def token_count(self) -> int:
        return self.span[1] - self.span[0] + 1


def _escape_key_part(lemma: str) -> str:
    return lemma_key(lemma).replace("\\", "\\\\").replace("_", "\\_").replace("|", "\\|")


def chunk_key(lemmas, pos_pattern: str) -> str:
    """Build the catalog key ``lemma_lemma|PATTERN``.

    Backslash, underscore and pipe inside a lemma are backslash-escaped so
    distinct lemma sequences never share a key.
    """
    return "_".join(_escape_key_part(l) for l in lemmas) + "|" + pos_pattern


def split_chunk_key(key: str) -> tuple[tuple[str, ...], str]:
    """Inverse of :func:`chunk_key`: return (lemmas, pos_pattern)."""
    lemmas: list[str] = []
    buf: list[str] = []
    i = 0
    while i < len(key):
        ch = key[i]
        if ch == "\\" and i + 1 < len(key):
            buf.append(key[i + 1])
            i += 2
            continue
        if ch == "_":
            lemmas.append("".join(buf))
            buf = []
        elif ch == "|":
            lemmas.append("".join(buf))
            return tuple(lemmas), key[i + 1 :]
        else:
            buf.append(ch)
        i += 1
    lemmas.append("".join(buf))
    return tuple(lemmas), ""


@dataclass
class PhraseNode:
    id: str
    text: str
    word_ids: list[str]
    created_at: float
    lemmas: list[str] = field(default_factory=list)
    pos: list[str] = field(default_factory=list)
    pos_pattern: str = ""
    chunks: list[PhraseChunk] = field(default_factory=list)
    derived_from_id: str | None = None
    tokens: list[str] = field(default_factory=list)
    kind: str = field(default=PHRASE, init=False)


@dataclass
class TopicNode:
    id: str
    text: str
    lemmas: list[str]
    created_at: float
    updated_at: float
    keywords: list[str] = field(default_factory=list)
    kind: str = field(default=TOPIC, init=False)


@dataclass(frozen=True)
class Edge:
    id: str
    kind: str
    from_id: str
    to_id: str
    meta: dict[str, Any] = field(default_factory=dict)
