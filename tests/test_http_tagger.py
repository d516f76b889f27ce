import json
import unittest

import httpx

from phrasegraph.config import Settings
from phrasegraph.errors import CapabilityError, TaggerError
from phrasegraph.nlp.tagger import HttpTagger, TaggedToken, make_tagger


def _tagger(handler):
    return HttpTagger(base_url="http://tagger.test/", transport=httpx.MockTransport(handler))


class TestHttpTagger(unittest.TestCase):
    def test_parses_tokens_and_drops_punct(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "tokens": [
                        {"token": "Foxes", "lemma": "fox", "pos": "NOUN"},
                        {"token": "ran", "lemma": "run", "pos": "VERB", "morph": "past"},
                        {"token": ".", "lemma": ".", "pos": "PUNCT"},
                    ]
                },
            )

        tokens = _tagger(handler).tag("Foxes ran.")
        self.assertEqual(seen["url"], "http://tagger.test/tag")
        self.assertEqual(seen["body"], {"text": "Foxes ran."})
        self.assertEqual(
            tokens,
            [
                TaggedToken(token="Foxes", lemma="fox", pos="NOUN"),
                TaggedToken(token="ran", lemma="run", pos="VERB", morph="past"),
            ],
        )

    def test_missing_fields_default(self):
        tokens = _tagger(lambda r: httpx.Response(200, json={"tokens": [{"token": "fox"}]})).tag("fox")
        self.assertEqual(tokens, [TaggedToken(token="fox", lemma="fox", pos="X")])

    def test_failures_raise_tagger_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        handlers = [
            lambda r: httpx.Response(503, text="warming up"),
            lambda r: httpx.Response(200, text="<html>"),
            lambda r: httpx.Response(200, json={"items": []}),
            refuse,
        ]
        for handler in handlers:
            with self.subTest(handler=handler):
                with self.assertRaises(TaggerError):
                    _tagger(handler).tag("fox")

    def test_tagger_error_is_a_capability_failure(self):
        self.assertTrue(issubclass(TaggerError, CapabilityError))


class TestMakeTagger(unittest.TestCase):
    def test_http(self):
        tagger = make_tagger(Settings(tagger="http", tagger_url="http://example.test:9000/"))
        self.assertIsInstance(tagger, HttpTagger)
        self.assertEqual(tagger.base_url, "http://example.test:9000")

    def test_unknown(self):
        with self.assertRaises(ValueError):
            make_tagger(Settings(tagger="carrier-pigeon"))


if __name__ == "__main__":
    unittest.main()
