import unittest

import numpy as np

from phrasegraph.graph.store import SemanticGraph
from phrasegraph.template.fill import pos_compatible, realize_template
from phrasegraph.template.parser import SlotToken, SubtemplateToken, parse_template_text_to_tokens


def _graph():
    g = SemanticGraph()
    words = {
        "fox": g.upsert_word("fox", "fox", [], "NOUN"),
        "cup": g.upsert_word("cup", "cup", [], "NOUN"),
        "car": g.upsert_word("car", "car", [], "NOUN"),
        "paris": g.upsert_word("Paris", "Paris", [], "PROPN"),
        "quick": g.upsert_word("quick", "quick", [], "ADJ"),
        "run": g.upsert_word("ran", "run", [], "VERB:past"),
        "jump": g.upsert_word("jump", "jump", [], "VERB"),
    }
    return g, words


def _fill(text, graph, seed=0, **kw):
    return realize_template(parse_template_text_to_tokens(text), graph, np.random.default_rng(seed), **kw)


class TestPosCompatible(unittest.TestCase):
    def test_rules(self):
        self.assertTrue(pos_compatible("PROPN", "PROPN"))
        self.assertFalse(pos_compatible("PROPN", "NOUN"))
        self.assertFalse(pos_compatible("NOUN", "PROPN"))
        self.assertTrue(pos_compatible("NOUN", "VERB"))
        self.assertFalse(pos_compatible("ADJ", "ADV"))
        self.assertTrue(pos_compatible("ADJ", "ADJ"))
        self.assertTrue(pos_compatible(None, "ADJ"))


class TestRealizeTemplate(unittest.TestCase):
    def setUp(self):
        self.graph, self.words = _graph()

    def test_literals_and_slots(self):
        res = _fill("The [ADJ] [PROPN] .", self.graph)
        self.assertEqual(res.text, "The quick Paris.")
        self.assertEqual(res.chosen, ("The", "quick", "Paris", "."))
        self.assertEqual(res.unfilled, 0)

    def test_noun_slots_never_take_proper_names(self):
        for seed in range(20):
            with self.subTest(seed=seed):
                self.assertIn(_fill("[NOUN]", self.graph, seed).text, {"fox", "cup", "car"})

        g = SemanticGraph()
        g.upsert_word("Paris", "Paris", [], "PROPN")
        res = _fill("a [NOUN] in [PROPN]", g)
        self.assertEqual(res.text, "a [NOUN] in Paris")
        self.assertEqual(res.unfilled, 1)

    def test_bound_slots_reuse_one_word(self):
        for seed in range(10):
            res = _fill("[NOUN1] meets [NOUN1] near [NOUN2:x]", self.graph, seed)
            first, _, second, _, third = res.chosen
            self.assertEqual(first, second)
            self.assertEqual(res.bindings["N1"], first)
            self.assertEqual(res.bindings["N2"], third)

    def test_bindings_are_shared_with_subtemplates(self):
        slot = SlotToken(pos="NOUN", raw="[NOUN1]", bind_id="N1")
        tokens = [slot, SubtemplateToken(tokens=(SlotToken(pos="ADJ", raw="[ADJ]"), slot), raw="[CHUNK:[ADJ-NOUN]]")]
        for seed in range(10):
            res = realize_template(tokens, self.graph, np.random.default_rng(seed))
            noun = res.chosen[0]
            self.assertEqual(res.chosen[1], f"quick {noun}")

    def test_locked_words_win(self):
        for seed in range(10):
            self.assertEqual(_fill("[NOUN]", self.graph, seed, locked={self.words["cup"].id}).text, "cup")
        # a locked word that does not fit falls through to the graph
        self.assertEqual(_fill("[ADJ]", self.graph, locked={self.words["cup"].id}).text, "quick")

    def test_morph_prefers_matching_words(self):
        for seed in range(10):
            self.assertEqual(_fill("[VERB:past]", self.graph, seed).text, "ran")
        self.assertIn(_fill("[VERB]", self.graph).text, {"run", "jump"})

    def test_word_bank_fallback(self):
        g = SemanticGraph()
        bank = {"ADJ": ["shiny"], "VERB:past": ["sang"], "VERB": ["sing"]}
        res = _fill("[ADJ] [VERB:past] [VERB] [ADV]", g, word_bank=bank)
        self.assertEqual(res.text, "shiny sang sing [ADV]")
        self.assertEqual(res.unfilled, 1)

    def test_pinned_bindings(self):
        res = _fill("[NOUN1] and [NOUN1]", self.graph, bindings={"N1": "teapot"})
        self.assertEqual(res.text, "teapot and teapot")

    def test_seeded_rng_is_deterministic(self):
        a = _fill("[NOUN] [VERB] [NOUN]", self.graph, seed=7)
        b = _fill("[NOUN] [VERB] [NOUN]", self.graph, seed=7)
        self.assertEqual(a, b)


if __name__ == "__main__":
    unittest.main()
