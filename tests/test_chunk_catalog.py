import unittest

from phrasegraph.graph.model import PhraseChunk, chunk_key, split_chunk_key
from phrasegraph.index.chunk_catalog import RECENCY_WINDOW_MS, ChunkCatalog

from fakes import ManualClock


def _chunk(text, pattern, phrase_id="p1"):
    return PhraseChunk(text=text, lemmas=tuple(text.lower().split()), pos_pattern=pattern, phrase_id=phrase_id)


class TestChunkCatalog(unittest.TestCase):
    def setUp(self):
        self.clock = ManualClock()
        self.catalog = ChunkCatalog(clock=self.clock)

    def test_record_counts_uses_and_bounds_examples(self):
        for text in ["coffee cup", "Coffee cup", "coffee cup", "COFFEE CUP", "Coffee Cup"]:
            self.catalog.record_chunks("p1", [_chunk(text, "NOUN-NOUN")])
        stats = self.catalog.get_chunk_stats("coffee_cup|NOUN-NOUN")
        self.assertEqual(stats.uses, 5)
        self.assertEqual(stats.examples, ["Coffee cup", "COFFEE CUP", "Coffee Cup"])
        self.assertEqual(len(self.catalog), 1)

    def test_update_stats_is_noop_for_unknown_key(self):
        self.assertFalse(self.catalog.update_chunk_stats("nope|NOUN", delta_likes=1))
        self.assertEqual(len(self.catalog), 0)
        self.catalog.record_chunks("p1", [_chunk("brown fox", "ADJ-NOUN")])
        self.assertTrue(self.catalog.update_chunk_stats("brown_fox|ADJ-NOUN", delta_uses=2, delta_likes=3))
        stats = self.catalog.get_chunk_stats("brown_fox|ADJ-NOUN")
        self.assertEqual((stats.uses, stats.likes), (3, 3))

    def test_recency_decays_to_zero_over_thirty_days(self):
        self.catalog.record_chunks("p1", [_chunk("brown fox", "ADJ-NOUN")])
        stats = self.catalog.get_chunk_stats("brown_fox|ADJ-NOUN")
        self.assertAlmostEqual(self.catalog.recency_bonus(stats), 1.0)
        self.clock.advance(RECENCY_WINDOW_MS / 2)
        self.assertAlmostEqual(self.catalog.recency_bonus(stats), 0.5)
        self.clock.advance(RECENCY_WINDOW_MS / 2)
        self.assertEqual(self.catalog.recency_bonus(stats), 0.0)
        self.clock.advance(RECENCY_WINDOW_MS)
        self.assertEqual(self.catalog.recency_bonus(stats), 0.0)
        self.assertEqual(self.catalog.top_keys(1)[0].score, 1.0)

    def test_top_keys_is_stable_and_never_negative(self):
        self.catalog.record_chunks("p1", [_chunk("a b", "NOUN-NOUN"), _chunk("c d", "NOUN-NOUN"), _chunk("e f", "ADJ-NOUN")])
        self.catalog.update_chunk_stats("e_f|ADJ-NOUN", delta_likes=1)
        self.catalog.update_chunk_stats("c_d|NOUN-NOUN", delta_likes=-10)
        ranked = self.catalog.top_keys(10)
        self.assertEqual([r.key for r in ranked], ["e_f|ADJ-NOUN", "a_b|NOUN-NOUN", "c_d|NOUN-NOUN"])
        self.assertTrue(all(r.score >= 0 for r in ranked))
        self.assertEqual(ranked[-1].score, 0.0)
        self.assertEqual(len(self.catalog.top_keys(2)), 2)
        self.assertEqual(self.catalog.top_keys(0), [])

    def test_ties_keep_insertion_order(self):
        self.catalog.record_chunks("p1", [_chunk("x y", "NOUN-NOUN"), _chunk("a b", "NOUN-NOUN"), _chunk("m n", "NOUN-NOUN")])
        self.assertEqual([r.key for r in self.catalog.top_keys(3)], ["x_y|NOUN-NOUN", "a_b|NOUN-NOUN", "m_n|NOUN-NOUN"])

    def test_get_chunks_by_pattern_matches_pattern_segment_exactly(self):
        self.catalog.record_chunks(
            "p1",
            [_chunk("brown fox", "ADJ-NOUN"), _chunk("quick brown fox", "ADJ-ADJ-NOUN"), _chunk("went school", "VERB|past-NOUN")],
        )
        self.assertEqual([k for k, _ in self.catalog.get_chunks_by_pattern("ADJ-NOUN")], ["brown_fox|ADJ-NOUN"])
        self.assertEqual([k for k, _ in self.catalog.get_chunks_by_pattern("VERB|past-NOUN")], ["went_school|VERB|past-NOUN"])
        self.assertEqual(self.catalog.get_chunks_by_pattern("NOUN"), [])

    def test_get_chunks_by_lemmas_sorted_by_overlap(self):
        self.catalog.record_chunks(
            "p1",
            [_chunk("brown fox", "ADJ-NOUN"), _chunk("quick brown fox", "ADJ-ADJ-NOUN"), _chunk("coffee cup", "NOUN-NOUN")],
        )
        matches = self.catalog.get_chunks_by_lemmas(["quick", "fox"])
        self.assertEqual([(m.key, m.overlap) for m in matches], [("quick_brown_fox|ADJ-ADJ-NOUN", 2), ("brown_fox|ADJ-NOUN", 1)])
        self.assertEqual(self.catalog.get_chunks_by_lemmas(["tea"]), [])

    def test_keys_keep_lemma_boundaries(self):
        self.assertNotEqual(chunk_key(("a_b", "c"), "NOUN-NOUN"), chunk_key(("a", "b_c"), "NOUN-NOUN"))
        self.assertNotEqual(chunk_key(("a|b",), "NOUN"), chunk_key(("a",), "b|NOUN"))
        for lemmas, pattern in [(("a_b", "c"), "NOUN-NOUN"), (("new york times", "x|y\\"), "PROPN-NOUN"), (("go",), "VERB|past")]:
            with self.subTest(lemmas=lemmas):
                self.assertEqual(split_chunk_key(chunk_key(lemmas, pattern)), (lemmas, pattern))
        self.assertEqual(chunk_key(("Quick", "brown"), "ADJ-ADJ"), "quick_brown|ADJ-ADJ")

    def test_lemma_lookup_uses_whole_lemmas(self):
        self.catalog.record_chunks(
            "p1",
            [
                PhraseChunk(text="snake_case names", lemmas=("snake_case", "name"), pos_pattern="NOUN-NOUN", phrase_id="p1"),
                PhraseChunk(text="New York Times", lemmas=("new york times", "times"), pos_pattern="PROPN-NOUN", phrase_id="p1"),
            ],
        )
        self.assertEqual([m.key for m in self.catalog.get_chunks_by_lemmas(["snake"])], [])
        self.assertEqual([m.key for m in self.catalog.get_chunks_by_lemmas(["snake_case"])], ["snake\\_case_name|NOUN-NOUN"])
        self.assertEqual([m.overlap for m in self.catalog.get_chunks_by_lemmas(["new york times", "times"])], [2])
        self.assertEqual([k for k, _ in self.catalog.get_chunks_by_pattern("PROPN-NOUN")], ["new york times_times|PROPN-NOUN"])

    def test_clear_and_records_round_trip(self):
        self.catalog.record_chunks("p1", [_chunk("brown fox", "ADJ-NOUN")])
        records = self.catalog.to_records()
        self.catalog.clear()
        self.assertEqual(len(self.catalog), 0)
        self.assertEqual(self.catalog.top_keys(5), [])
        self.catalog.load_records(records)
        self.assertEqual(self.catalog.get_chunk_stats("brown_fox|ADJ-NOUN").examples, ["brown fox"])


if __name__ == "__main__":
    unittest.main()
