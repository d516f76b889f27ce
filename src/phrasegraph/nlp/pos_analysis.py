from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Protocol

from ..errors import CapabilityError
from ..graph.model import normalize_pos
from .tagger import TaggedToken, Tagger


logger = logging.getLogger(__name__)

# Provenance tags for WordPOSAnalysis.source
SOURCE_POLYSEMY_TEST = "polysemy-test"
SOURCE_OBSERVED = "observed"
SOURCE_FALLBACK = "fallback"


@dataclass(frozen=True)
class ContextTest:
    unique_pos: list[str]
    is_polysemous: bool
    contexts: list[tuple[str, str]] = field(default_factory=list)  # (sentence, pos)


class ContextTester(Protocol):
    def test(self, lemma: str) -> ContextTest: ...


@dataclass(frozen=True)
class WordPOSAnalysis:
    pos: list[str]
    is_polysemous: bool
    source: str


def analyze_word_pos(lemma: str, observed_pos: str | None, context_tester: ContextTester | None = None) -> WordPOSAnalysis:
    """Candidate POS set for a lemma.

    A multi-POS context test wins; otherwise the observed tag stands alone.
    Tester failures degrade to the observed tag with ``fallback`` provenance.
    """
    observed = normalize_pos(observed_pos)[0] if observed_pos else "NOUN"
    if context_tester is None:
        return WordPOSAnalysis(pos=[observed], is_polysemous=False, source=SOURCE_OBSERVED)

    try:
        result = context_tester.test(lemma)
    except Exception as e:
        logger.warning("POS context test failed for %r: %s", lemma, e)
        return WordPOSAnalysis(pos=[observed], is_polysemous=False, source=SOURCE_FALLBACK)

    unique = list(dict.fromkeys(result.unique_pos))
    if result.is_polysemous and len(unique) > 1:
        return WordPOSAnalysis(pos=unique, is_polysemous=True, source=SOURCE_POLYSEMY_TEST)
    return WordPOSAnalysis(pos=[observed], is_polysemous=False, source=SOURCE_OBSERVED)


# (id, wanted POS, sentence template)
POLYSEMY_FRAMES = (
    ("N1", "NOUN", "The {} is ready."),
    ("N2", "NOUN", "That {} was helpful."),
    ("N3", "NOUN", "The {} of the project was discussed."),
    ("V1", "VERB", "We will {} tomorrow."),
    ("V2", "VERB", "To {} takes courage."),
    ("V3", "VERB", "Please {} carefully."),
    ("A1", "ADJ", "It is very {}."),
    ("A2", "ADJ", "The {} idea worked."),
    ("A3", "ADJ", "The result seems {}."),
    ("A4", "ADJ", "The choice became {}."),
    ("R1", "ADV", "They moved {}."),
    ("R2", "ADV", "She spoke {}."),
    ("R3", "ADV", "He finished {}."),
)

# Frames where the blocked tag should not fit; a hit there is a down-vote.
POLYSEMY_ANTI_FRAMES = (
    ("ANTI_V", "VERB", "The very {} was approved."),
    ("ANTI_A", "ADJ", "We will {} now."),
    ("ANTI_R", "ADV", "The {} solution is ready."),
    ("ANTI_N", "NOUN", "They will {} quickly."),
)

MIN_VOTES = 1


class FrameContextTester:
    """Tests a word in fixed sentence frames with a tagger and votes on its POS."""

    def __init__(self, tagger: Tagger, *, min_votes: int = MIN_VOTES):
        self.tagger = tagger
        self.min_votes = int(min_votes)

    def test(self, lemma: str) -> ContextTest:
        votes: dict[str, int] = {}
        contexts: list[tuple[str, str]] = []
        failures = 0

        frames = [(fid, want, tpl, +1) for fid, want, tpl in POLYSEMY_FRAMES]
        frames += [(fid, blocked, tpl, -1) for fid, blocked, tpl in POLYSEMY_ANTI_FRAMES]

        for fid, tag, tpl, direction in frames:
            sentence = tpl.format(lemma)
            try:
                tokens = self.tagger.tag(sentence)
            except Exception as e:
                failures += 1
                logger.debug("context frame %s failed for %r: %s", fid, lemma, e)
                continue

            idx = _find_target(tokens, lemma)
            if idx == -1:
                continue
            pos = normalize_pos(tokens[idx].pos)[0]
            if pos in ("PUNCT", "X"):
                continue

            contexts.append((sentence, pos))
            if direction > 0:
                votes[pos] = votes.get(pos, 0) + 1
            elif pos == tag:
                votes[pos] = max(0, votes.get(pos, 0) - 1)

        if failures == len(frames):
            raise CapabilityError(f"Tagger failed on every context frame for {lemma!r}")

        unique = [p for p, n in votes.items() if n >= self.min_votes]
        return ContextTest(unique_pos=unique, is_polysemous=len(unique) > 1, contexts=contexts)


def _find_target(tokens: list[TaggedToken], word: str) -> int:
    w = word.lower()
    for i, t in enumerate(tokens):
        if (t.lemma or "").lower() == w:
            return i
    for i, t in enumerate(tokens):
        if (t.token or "").lower() == w:
            return i
    return -1
