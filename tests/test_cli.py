import tempfile
import unittest
from pathlib import Path
from unittest import mock

from typer.testing import CliRunner

from phrasegraph.cli import app
from phrasegraph.context import GraphContext
from phrasegraph.graph.model import PHRASE
from phrasegraph.persist.kv_store import JsonFileKVStore, SqliteKVStore
from phrasegraph.persist.persistent_store import PersistentStore

from fakes import StaticTagger


class TestCli(unittest.TestCase):
    def setUp(self):
        self.runner = CliRunner()
        self._td = tempfile.TemporaryDirectory()
        self.addCleanup(self._td.cleanup)
        td = Path(self._td.name)
        self.db = td / "graph.sqlite"
        self.legacy = td / "legacy.json"

    def _run(self, *args):
        with mock.patch("phrasegraph.cli.make_tagger", return_value=StaticTagger()):
            return self.runner.invoke(app, [*args, "--db", str(self.db), "--legacy", str(self.legacy)])

    def _load(self):
        primary = SqliteKVStore(self.db)
        try:
            return GraphContext.from_snapshot(PersistentStore(primary, JsonFileKVStore(self.legacy)).load())
        finally:
            primary.close()

    def test_ingest_related_and_like(self):
        res = self._run("ingest", "The quick brown fox. The quick red fox.")
        self.assertEqual(res.exit_code, 0, res.output)

        ctx = self._load()
        phrases = list(ctx.graph.get_nodes_by_type(PHRASE))
        self.assertEqual([p.text for p in phrases], ["The quick brown fox.", "The quick red fox."])

        res = self._run("related", phrases[0].id)
        self.assertEqual(res.exit_code, 0, res.output)
        self.assertIn("Related phrases", res.output)

        res = self._run("related", "missing")
        self.assertEqual(res.exit_code, 2)

        res = self._run("chunks", "like", "brown_fox|ADJ-NOUN", "--delta", "2")
        self.assertEqual(res.exit_code, 0, res.output)
        self.assertEqual(self._load().catalog.get_chunk_stats("brown_fox|ADJ-NOUN").likes, 2)

        res = self._run("chunks", "like", "nope|NOUN")
        self.assertEqual(res.exit_code, 2)

    def test_template_parse(self):
        res = self.runner.invoke(app, ["template", "parse", "[NOUN1] [VERB:participle2] ok"])
        self.assertEqual(res.exit_code, 0, res.output)
        self.assertIn("N1: NOUN", res.output)
        self.assertIn("V2: VERB:participle", res.output)

        res = self.runner.invoke(app, ["template", "parse", "[NOUN"])
        self.assertEqual(res.exit_code, 2)

    def test_template_from_phrase(self):
        self.assertEqual(self._run("ingest", "The quick brown fox").exit_code, 0)
        phrase_id = next(iter(self._load().graph.get_nodes_by_type(PHRASE))).id

        res = self._run("template", "from-phrase", phrase_id, "--target-pos", "noun", "--seed", "1")
        self.assertEqual(res.exit_code, 0, res.output)
        self.assertIn("The quick brown [NOUN]", res.output)

    def test_template_fill(self):
        self.assertEqual(self._run("ingest", "The quick brown fox").exit_code, 0)

        res = self._run("template", "fill", "A [ADJ1] [NOUN] and a [ADJ1] one.", "--lock", "brown", "--seed", "3")
        self.assertEqual(res.exit_code, 0, res.output)
        self.assertIn("A brown fox and a brown one.", res.output)

        res = self._run("template", "fill", "[NOUN1] [VERB]", "--bind", "N1=teapot", "--bank", "VERB=hums")
        self.assertEqual(res.exit_code, 0, res.output)
        self.assertIn("teapot hums", res.output)

        self.assertEqual(self._run("template", "fill", "[NOUN]", "--lock", "nope").exit_code, 2)
        self.assertEqual(self._run("template", "fill", "[NOUN]", "--bind", "X9=foo").exit_code, 2)
        self.assertEqual(self._run("template", "fill", "[NOUN").exit_code, 2)


if __name__ == "__main__":
    unittest.main()
