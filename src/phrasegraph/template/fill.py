"""Realize parsed templates into surface text using words from the graph.

Each slot draws a POS-compatible word from, in order: the caller's locked
words, every word in the graph, then an optional word bank. Numbered slots
(``[NOUN1] ... [NOUN1]``) share one draw for the whole template, including
inside ``[CHUNK:...]`` subtemplates.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Collection, Mapping, Sequence

import numpy as np

from ..graph.model import WordNode
from ..graph.store import SemanticGraph
from .parser import LiteralToken, SlotToken, SubtemplateToken, TemplateToken


logger = logging.getLogger(__name__)

_SPACE_BEFORE_PUNCT_RE = re.compile(r"\s+([,.;:!?])")


@dataclass(frozen=True)
class RealizedTemplate:
    text: str
    # one entry per top-level token, subtemplates already joined
    chosen: tuple[str, ...]
    bindings: Mapping[str, str] = field(default_factory=dict)
    unfilled: int = 0


def pos_compatible(requested: str | None, got: str | None) -> bool:
    """PROPN only pairs with PROPN, NOUN never takes PROPN, other tags match exactly."""
    if not requested or not got:
        return True
    if requested == "PROPN":
        return got == "PROPN"
    if requested == "NOUN":
        return got != "PROPN"
    return requested == got


def word_fits_slot(word: WordNode, pos: str) -> bool:
    if "PROPN" in (pos, word.primary_pos):
        return pos_compatible(pos, word.primary_pos)
    return pos in word.pos_potential


def _surface(word: WordNode, slot: SlotToken) -> str:
    if word.primary_pos == "PROPN":
        return word.text
    if slot.morph and word.morph_feature == slot.morph:
        return word.original_form or word.text
    return word.lemma


class _Realizer:
    def __init__(
        self,
        graph: SemanticGraph,
        rng: np.random.Generator,
        locked: Collection[str],
        word_bank: Mapping[str, Sequence[str]],
        bindings: dict[str, str],
    ):
        self.words = list(graph.iter_words())
        self.rng = rng
        self.locked = set(locked)
        self.word_bank = word_bank
        self.bindings = bindings
        self.unfilled = 0

    def realize(self, tokens: Sequence[TemplateToken]) -> list[str]:
        out: list[str] = []
        for t in tokens:
            if isinstance(t, LiteralToken):
                out.append(t.surface)
            elif isinstance(t, SubtemplateToken):
                out.append(" ".join(self.realize(t.tokens)))
            elif t.bind_id and t.bind_id in self.bindings:
                out.append(self.bindings[t.bind_id])
            else:
                surface = self._fill(t)
                if t.bind_id and surface is not None:
                    self.bindings[t.bind_id] = surface
                if surface is None:
                    self.unfilled += 1
                    logger.debug("no word fits slot %s", t.raw)
                out.append(surface if surface is not None else t.raw)
        return out

    def _fill(self, slot: SlotToken) -> str | None:
        fitting = [w for w in self.words if word_fits_slot(w, slot.pos)]
        for pool in ([w for w in fitting if w.id in self.locked], fitting):
            if not pool:
                continue
            if slot.morph:
                pool = [w for w in pool if w.morph_feature == slot.morph] or pool
            return _surface(pool[int(self.rng.integers(len(pool)))], slot)

        key = f"{slot.pos}:{slot.morph}" if slot.morph else slot.pos
        bank = list(self.word_bank.get(key) or self.word_bank.get(slot.pos) or [])
        if bank:
            return str(bank[int(self.rng.integers(len(bank)))])
        return None


def realize_template(
    tokens: Sequence[TemplateToken],
    graph: SemanticGraph,
    rng: np.random.Generator,
    *,
    locked: Collection[str] = (),
    word_bank: Mapping[str, Sequence[str]] | None = None,
    bindings: Mapping[str, str] | None = None,
) -> RealizedTemplate:
    """Fill every slot in ``tokens`` and return the tidied surface text.

    ``locked`` holds word ids tried before the rest of the graph. ``word_bank``
    maps ``POS`` or ``POS:morph`` to fallback surfaces. ``bindings`` pins
    binding ids to fixed surfaces. A slot nothing fits keeps its raw DSL text
    and is counted in ``unfilled``.
    """
    realizer = _Realizer(graph, rng, locked, word_bank or {}, dict(bindings or {}))
    chosen = realizer.realize(tokens)
    text = " ".join(_SPACE_BEFORE_PUNCT_RE.sub(r"\1", " ".join(chosen)).split())
    return RealizedTemplate(
        text=text,
        chosen=tuple(chosen),
        bindings=dict(realizer.bindings),
        unfilled=realizer.unfilled,
    )
