from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from typing import Any, Mapping, Protocol, Sequence, TypeVar

import numpy as np

from ..graph.model import PhraseNode, WordNode
from ..graph.store import SemanticGraph


logger = logging.getLogger(__name__)

T = TypeVar("T")

_LETTER_RE = re.compile(r"[A-Za-z]")


@dataclass(frozen=True)
class PhraseToken:
    text: str
    pos: str | None = None
    pos_set: tuple[str, ...] = ()
    randomize: bool = False
    slot_label: str | None = None
    lemma: str | None = None


def is_randomizable(token: PhraseToken) -> bool:
    return bool(_LETTER_RE.search(token.text or ""))


def _mark(tokens: Sequence[PhraseToken], indices) -> list[PhraseToken]:
    chosen = set(indices)
    return [replace(t, randomize=True) if i in chosen and not t.randomize else t for i, t in enumerate(tokens)]


def _open_indices(tokens: Sequence[PhraseToken]) -> list[int]:
    return [i for i, t in enumerate(tokens) if is_randomizable(t) and not t.randomize]


class SlotStrategy(Protocol):
    def apply(self, tokens: Sequence[PhraseToken], rng: np.random.Generator) -> list[PhraseToken]: ...


# --- slot strategies ---------------------------------------------------------


@dataclass(frozen=True)
class JitterSlots:
    """Mark each open token with probability ``p``."""

    p: float

    def apply(self, tokens, rng):
        return _mark(tokens, [i for i in _open_indices(tokens) if rng.random() < self.p])


@dataclass(frozen=True)
class MaxSlots:
    """Mark up to ``n`` open tokens chosen at random."""

    n: int

    def apply(self, tokens, rng):
        open_ = _open_indices(tokens)
        k = min(int(self.n), len(open_))
        if k <= 0:
            return list(tokens)
        return _mark(tokens, rng.choice(open_, size=k, replace=False).tolist())


@dataclass(frozen=True)
class PositionalSlot:
    """Mark the Nth (1-based) token tagged ``target_pos``."""

    target_pos: str
    position: int = 1

    def apply(self, tokens, rng):
        matching = [
            i
            for i, t in enumerate(tokens)
            if is_randomizable(t) and (t.pos == self.target_pos or self.target_pos in t.pos_set)
        ]
        if self.position < 1 or len(matching) < self.position:
            return list(tokens)
        return _mark(tokens, [matching[self.position - 1]])


@dataclass(frozen=True)
class SelectedSlots:
    indices: frozenset[int]

    def apply(self, tokens, rng):
        return _mark(tokens, [i for i in self.indices if 0 <= i < len(tokens) and is_randomizable(tokens[i])])


@dataclass(frozen=True)
class PosProbabilitySlots:
    """Per-POS marking probability, given in percent (0-100)."""

    table: Mapping[str, float]

    def apply(self, tokens, rng):
        chosen = []
        for i in _open_indices(tokens):
            t = tokens[i]
            candidates = [t.pos] if t.pos else list(t.pos_set)
            p = max((float(self.table.get(c, 0)) / 100.0 for c in candidates), default=0.0)
            if p > 0 and rng.random() < p:
                chosen.append(i)
        return _mark(tokens, chosen)


@dataclass(frozen=True)
class RegexGatedSlots:
    """When the joined phrase text matches ``pattern``, mark open tokens with ``p`` percent."""

    pattern: str
    p: float

    def apply(self, tokens, rng):
        try:
            regex = re.compile(self.pattern, re.IGNORECASE)
        except re.error as e:
            logger.warning("Invalid regex pattern for randomization %r: %s", self.pattern, e)
            return list(tokens)

        if not regex.search(" ".join(t.text for t in tokens)):
            return list(tokens)
        p = max(0.0, min(100.0, float(self.p))) / 100.0
        return _mark(tokens, [i for i in _open_indices(tokens) if rng.random() < p])


@dataclass(frozen=True)
class EnsureMinSlots:
    """Top up random open tokens until at least ``n`` are marked."""

    n: int

    def apply(self, tokens, rng):
        marked = sum(1 for t in tokens if t.randomize)
        need = int(self.n) - marked
        open_ = _open_indices(tokens)
        if need <= 0 or not open_:
            return list(tokens)
        k = min(need, len(open_))
        return _mark(tokens, rng.choice(open_, size=k, replace=False).tolist())


SLOT_STRATEGIES: dict[str, type] = {
    "jitter": JitterSlots,
    "max_slots": MaxSlots,
    "positional": PositionalSlot,
    "selection": SelectedSlots,
    "pos_probability": PosProbabilitySlots,
    "regex": RegexGatedSlots,
    "ensure_min": EnsureMinSlots,
}


@dataclass(frozen=True)
class SlotRandomizationConfig:
    jitter_p: float = 0.0
    max_random_slots: int = 0
    use_position_based: bool = False
    target_pos: str = "NOUN"
    target_position: int = 1
    selected_indices: frozenset[int] = frozenset()
    pos_random_p: Mapping[str, float] = field(default_factory=dict)
    regex_text: str = ""
    regex_randomize_p: float = 0.0
    min_slots: int = 0


def build_slot_pipeline(config: SlotRandomizationConfig) -> list[SlotStrategy]:
    """Resolve a config into the ordered list of strategies it enables."""
    steps: list[tuple[str, dict[str, Any]]] = []
    if config.jitter_p > 0:
        steps.append(("jitter", {"p": config.jitter_p}))
    if config.max_random_slots > 0:
        steps.append(("max_slots", {"n": config.max_random_slots}))
    if config.use_position_based:
        steps.append(("positional", {"target_pos": config.target_pos, "position": config.target_position}))
    if config.selected_indices:
        steps.append(("selection", {"indices": frozenset(config.selected_indices)}))
    if any(v > 0 for v in config.pos_random_p.values()):
        steps.append(("pos_probability", {"table": dict(config.pos_random_p)}))
    if config.regex_text and config.regex_randomize_p > 0:
        steps.append(("regex", {"pattern": config.regex_text, "p": config.regex_randomize_p}))
    if config.min_slots > 0:
        steps.append(("ensure_min", {"n": config.min_slots}))
    return [SLOT_STRATEGIES[name](**kwargs) for name, kwargs in steps]


def apply_sequential(
    tokens: Sequence[PhraseToken],
    strategies: Sequence[SlotStrategy],
    rng: np.random.Generator,
) -> list[PhraseToken]:
    """Run strategies in order; a failing strategy is logged and skipped."""
    result = list(tokens)
    for strategy in strategies:
        try:
            out = strategy.apply(result, rng)
        except Exception:
            logger.warning("slot strategy %r failed; skipping", strategy, exc_info=True)
            continue
        result = _union(result, out)
    return result


def apply_parallel(
    tokens: Sequence[PhraseToken],
    strategies: Sequence[SlotStrategy],
    rng: np.random.Generator,
) -> list[PhraseToken]:
    """Run each strategy on the same input and union the marks."""
    result = list(tokens)
    for strategy in strategies:
        try:
            out = strategy.apply(list(tokens), rng)
        except Exception:
            logger.warning("slot strategy %r failed; skipping", strategy, exc_info=True)
            continue
        result = _union(result, out)
    return result


def _union(base: list[PhraseToken], other: Sequence[PhraseToken]) -> list[PhraseToken]:
    if len(other) != len(base):
        logger.warning("slot strategy changed token count (%d -> %d); ignoring its marks", len(base), len(other))
        return base
    return _mark(base, [i for i, t in enumerate(other) if t.randomize])


# --- template selection ------------------------------------------------------


class TemplateSelector(Protocol):
    def select(
        self,
        candidates: Sequence[T],
        rng: np.random.Generator,
        weights: Sequence[float] | None = None,
    ) -> T: ...


def _require(candidates: Sequence) -> None:
    if not candidates:
        raise ValueError("No candidate templates to select from")


class UniformSelection:
    def select(self, candidates, rng, weights=None):
        _require(candidates)
        return candidates[int(rng.integers(len(candidates)))]


class WeightedSelection:
    """Pick by score; falls back to uniform on missing or unusable weights."""

    def select(self, candidates, rng, weights=None):
        _require(candidates)
        if weights is None or len(weights) != len(candidates):
            return UniformSelection().select(candidates, rng)
        w = np.clip(np.asarray(weights, dtype=np.float64), 0.0, None)
        total = float(w.sum())
        if total <= 0:
            return UniformSelection().select(candidates, rng)
        return candidates[int(rng.choice(len(candidates), p=w / total))]


class ShuffledSelection:
    def select(self, candidates, rng, weights=None):
        _require(candidates)
        return candidates[int(rng.permutation(len(candidates))[0])]


class RoundRobinSelection:
    def __init__(self):
        self._index = 0

    def select(self, candidates, rng, weights=None):
        _require(candidates)
        chosen = candidates[self._index % len(candidates)]
        self._index += 1
        return chosen

    def reset(self) -> None:
        self._index = 0


TEMPLATE_SELECTORS: dict[str, type] = {
    "uniform": UniformSelection,
    "weighted": WeightedSelection,
    "shuffled": ShuffledSelection,
    "round_robin": RoundRobinSelection,
}


def make_selector(name: str) -> TemplateSelector:
    try:
        return TEMPLATE_SELECTORS[name]()
    except KeyError:
        raise ValueError(f"Unknown template selector: {name!r}") from None


# --- instantiation helpers ---------------------------------------------------


def phrase_tokens_for_phrase(graph: SemanticGraph, phrase: PhraseNode) -> list[PhraseToken]:
    """One token per phrase unit, carrying the word's POS potential when known."""
    words = [graph.get_node(wid) for wid in phrase.word_ids]
    by_lemma = {w.lemma: w for w in words if isinstance(w, WordNode)}

    surfaces = phrase.tokens if len(phrase.tokens) == len(phrase.lemmas) else phrase.text.split()
    aligned = len(surfaces) == len(phrase.lemmas)
    out: list[PhraseToken] = []
    for i, lemma in enumerate(phrase.lemmas):
        word = by_lemma.get(lemma)
        pos = phrase.pos[i] if i < len(phrase.pos) else None
        # phrases without stored unit tokens and with merged names fall back to the lemma
        text = surfaces[i] if aligned else lemma
        out.append(
            PhraseToken(
                text=text,
                pos=pos,
                pos_set=tuple(word.pos_potential) if word is not None else (),
                lemma=lemma,
            )
        )
    return out


def render_template_text(tokens: Sequence[PhraseToken]) -> str:
    """Marked tokens become ``[POS]`` (or ``[POS<label>]``) slots; others stay text."""
    parts: list[str] = []
    for t in tokens:
        if t.randomize and (t.pos or t.pos_set):
            pos = t.pos or t.pos_set[0]
            parts.append(f"[{pos}{t.slot_label or ''}]")
        else:
            parts.append(t.text.replace("[", "(").replace("]", ")"))
    return " ".join(parts)
