import unittest

from phrasegraph.errors import NotFoundError
from phrasegraph.graph.model import (
    DERIVED_FROM,
    PHRASE,
    PHRASE_ABOUT_TOPIC,
    PHRASE_CONTAINS_WORD,
    WORD,
    normalize_pos,
)
from phrasegraph.graph.store import SemanticGraph


class TestUpsertWord(unittest.TestCase):
    def setUp(self):
        self.g = SemanticGraph(clock=lambda: 1000.0)

    def test_create_sets_observed_and_potential(self):
        w = self.g.upsert_word("Runs", "run", ["VERB", "NOUN"], "VERB")
        self.assertEqual(w.lemma, "run")
        self.assertEqual(w.pos, ["VERB"])
        self.assertEqual(w.pos_potential, ["VERB", "NOUN"])
        self.assertEqual(w.pos_observed, {"VERB": 1})
        self.assertEqual(w.primary_pos, "VERB")
        self.assertTrue(w.is_polysemous_pos)

    def test_lookup_is_case_normalized(self):
        a = self.g.upsert_word("Fox", "Fox", [], "NOUN")
        b = self.g.upsert_word("fox", " fox ", [], "NOUN")
        self.assertEqual(a.id, b.id)
        self.assertEqual(len(self.g.get_nodes_by_type(WORD)), 1)
        self.assertEqual(b.pos_observed, {"NOUN": 2})

    def test_potential_is_monotonic(self):
        seen: set[str] = set()
        polysemous_once = False
        for cands, observed in [
            ([], "NOUN"),
            (["NOUN"], "NOUN"),
            ([], "VERB"),
            (["ADJ"], "NOUN"),
            ([], "NOUN"),
        ]:
            w = self.g.upsert_word("light", "light", cands, observed)
            self.assertTrue(seen.issubset(set(w.pos_potential)))
            seen = set(w.pos_potential)
            self.assertEqual(w.is_polysemous_pos, len(w.pos_potential) > 1)
            if polysemous_once:
                self.assertTrue(w.is_polysemous_pos)
            polysemous_once = polysemous_once or w.is_polysemous_pos
            self.assertIn(w.primary_pos, w.pos_potential)
            self.assertTrue(set(w.pos).issubset(set(w.pos_potential)))
        self.assertEqual(seen, {"NOUN", "VERB", "ADJ"})

    def test_repeated_identical_calls_only_change_counts(self):
        w1 = self.g.upsert_word("bank", "bank", ["NOUN", "VERB"], "NOUN")
        potential = list(w1.pos_potential)
        w2 = self.g.upsert_word("bank", "bank", ["NOUN", "VERB"], "NOUN")
        self.assertEqual(w2.pos_potential, potential)
        self.assertEqual(w2.pos_observed["NOUN"], 2)

    def test_primary_pos_ties_go_to_first_seen(self):
        self.g.upsert_word("walk", "walk", [], "VERB")
        w = self.g.upsert_word("walk", "walk", [], "NOUN")
        self.assertEqual(w.primary_pos, "VERB")
        w = self.g.upsert_word("walk", "walk", [], "NOUN")
        self.assertEqual(w.primary_pos, "NOUN")
        self.assertEqual(w.pos, ["NOUN"])

    def test_observed_tag_with_morph_is_split(self):
        w = self.g.upsert_word("walked", "walk", [], "VERB:past")
        self.assertEqual(w.pos, ["VERB"])
        self.assertEqual(w.morph_feature, "past")

    def test_unknown_tags_become_x(self):
        self.assertEqual(normalize_pos("FOO"), ("X", None))
        self.assertEqual(normalize_pos("verb:past"), ("VERB", "past"))
        w = self.g.upsert_word("zz", "zz", ["BOGUS"], "NOUN")
        self.assertEqual(w.pos_potential, ["X", "NOUN"])


class TestPhrasesAndTopics(unittest.TestCase):
    def setUp(self):
        self.g = SemanticGraph(clock=lambda: 42.0)
        self.fox = self.g.upsert_word("fox", "fox", [], "NOUN")
        self.run = self.g.upsert_word("runs", "run", [], "VERB")

    def test_upsert_phrase_links_words(self):
        p = self.g.upsert_phrase("fox runs", ["fox", "run"], ["NOUN", "VERB"], [self.fox.id, self.run.id])
        self.assertEqual(p.pos_pattern, "NOUN-VERB")
        self.assertEqual(p.created_at, 42.0)
        edges = list(self.g.iter_edges(PHRASE_CONTAINS_WORD))
        self.assertEqual([e.to_id for e in edges], [self.fox.id, self.run.id])
        self.assertEqual(edges[1].meta["pos_used"], "VERB")
        self.assertEqual(self.g.get_phrases_by_word_lemma("FOX"), [p])
        self.assertEqual(self.g.get_word_neighbors(self.run.id), [p])

    def test_upsert_phrase_with_unknown_word_raises(self):
        with self.assertRaises(NotFoundError):
            self.g.upsert_phrase("ghost", ["ghost"], ["NOUN"], ["missing-id"])

    def test_failed_upsert_phrase_leaves_no_partial_phrase(self):
        nodes, edges = self.g.node_count(), self.g.edge_count()
        with self.assertRaises(NotFoundError) as cm:
            self.g.upsert_phrase("fox ghost", ["fox", "ghost"], ["NOUN", "NOUN"], [self.fox.id, "missing-id"])
        self.assertEqual(cm.exception.entity_id, "missing-id")
        self.assertEqual(self.g.node_count(), nodes)
        self.assertEqual(self.g.edge_count(), edges)
        self.assertEqual(len(self.g.get_nodes_by_type(PHRASE)), 0)
        self.assertEqual(self.g.get_phrases_by_word_lemma("fox"), [])
        self.assertEqual(self.g.get_word_neighbors(self.fox.id), [])

    def test_upsert_phrase_keeps_unit_tokens(self):
        p = self.g.upsert_phrase("Fox runs", ["fox", "run"], ["NOUN", "VERB"], [self.fox.id, self.run.id], tokens=["Fox", "runs"])
        self.assertEqual(p.tokens, ["Fox", "runs"])
        self.assertEqual(self.g.upsert_phrase("fox", ["fox"], ["NOUN"], [self.fox.id]).tokens, [])

    def test_typed_iterators(self):
        p = self.g.upsert_phrase("fox runs", ["fox", "run"], ["NOUN", "VERB"], [self.fox.id, self.run.id])
        self.assertEqual(list(self.g.iter_words()), [self.fox, self.run])
        self.assertEqual(list(self.g.iter_phrases()), [p])

    def test_derived_phrase_gets_edge(self):
        parent = self.g.upsert_phrase("fox runs", ["fox", "run"], ["NOUN", "VERB"], [self.fox.id, self.run.id])
        child = self.g.upsert_phrase("fox", ["fox"], ["NOUN"], [self.fox.id], derived_from_id=parent.id)
        derived = list(self.g.iter_edges(DERIVED_FROM))
        self.assertEqual(len(derived), 1)
        self.assertEqual((derived[0].from_id, derived[0].to_id), (child.id, parent.id))

    def test_get_phrase_not_found_names_id(self):
        with self.assertRaises(NotFoundError) as cm:
            self.g.get_phrase("nope-123")
        self.assertIn("nope-123", str(cm.exception))
        self.assertEqual(cm.exception.entity_id, "nope-123")

    def test_nodes_by_type_is_live_and_ordered(self):
        view = self.g.get_nodes_by_type(WORD)
        self.assertEqual([w.lemma for w in view], ["fox", "run"])
        self.g.upsert_word("car", "car", [], "NOUN")
        self.assertEqual([w.lemma for w in view], ["fox", "run", "car"])
        self.assertEqual(len(self.g.get_nodes_by_type(PHRASE)), 0)
        with self.assertRaises(ValueError):
            self.g.get_nodes_by_type("session")

    def test_topics_are_case_insensitive(self):
        t1 = self.g.upsert_topic("Foxes", ["fox"])
        t2 = self.g.upsert_topic("  foxes ", ["fox"], keywords=["fox"])
        self.assertEqual(t1.id, t2.id)
        self.assertEqual(t2.keywords, ["fox"])
        p = self.g.upsert_phrase("fox", ["fox"], ["NOUN"], [self.fox.id])
        edge = self.g.link_about_topic(p.id, t1.id, confidence=0.5)
        self.assertEqual(edge.kind, PHRASE_ABOUT_TOPIC)
        self.assertEqual(edge.meta, {"confidence": 0.5, "origin": "user"})
        with self.assertRaises(NotFoundError):
            self.g.link_about_topic(p.id, self.fox.id)

    def test_clear_matches_fresh_store(self):
        self.g.upsert_phrase("fox runs", ["fox", "run"], ["NOUN", "VERB"], [self.fox.id, self.run.id])
        self.g.clear()
        self.assertEqual(self.g.node_count(), 0)
        self.assertEqual(self.g.edge_count(), 0)
        self.assertIsNone(self.g.find_word_by_lemma("fox"))
        self.assertEqual(self.g.get_phrases_by_word_lemma("fox"), [])
        w = self.g.upsert_word("fox", "fox", [], "NOUN")
        self.assertEqual(w.pos_observed, {"NOUN": 1})


if __name__ == "__main__":
    unittest.main()
