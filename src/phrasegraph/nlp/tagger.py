from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from ..errors import TaggerError


@dataclass(frozen=True)
class TaggedToken:
    token: str
    lemma: str
    pos: str
    morph: str | None = None


class Tagger(Protocol):
    def tag(self, text: str) -> list[TaggedToken]: ...


# spaCy morphology -> the feature names used in templates ("VERB:past" etc.)
def _spacy_morph(tok) -> str | None:
    m = tok.morph
    if "Part" in m.get("VerbForm") or "Ger" in m.get("VerbForm"):
        return "participle"
    if "Past" in m.get("Tense"):
        return "past"
    if "Pres" in m.get("Tense") and "3" in m.get("Person"):
        return "present_3rd"
    if "Cmp" in m.get("Degree"):
        return "comparative"
    if "Sup" in m.get("Degree"):
        return "superlative"
    return None


class SpacyTagger:
    def __init__(self, model_name: str = "en_core_web_sm"):
        # Import here so the core runs without the nlp extra installed.
        import spacy  # type: ignore

        self.model_name = model_name
        try:
            self._nlp = spacy.load(model_name, disable=["ner", "textcat"])
        except OSError as e:
            raise TaggerError(
                f"spaCy model {model_name!r} is not installed. Fix: `python -m spacy download {model_name}`"
            ) from e

    def tag(self, text: str) -> list[TaggedToken]:
        # Normalize curly apostrophes so contractions tokenize consistently.
        text = text.replace("’", "'").replace("‘", "'")
        out: list[TaggedToken] = []
        for tok in self._nlp(text):
            if tok.is_space or tok.pos_ == "PUNCT":
                continue
            out.append(
                TaggedToken(
                    token=tok.text,
                    lemma=(tok.lemma_ or tok.text),
                    pos=tok.pos_ or "X",
                    morph=_spacy_morph(tok),
                )
            )
        return out


class HttpTagger:
    """Client for a remote tagging service.

    ``POST {base_url}/tag`` with ``{"text": ...}`` must answer
    ``{"tokens": [{"token", "lemma", "pos", "morph"?}, ...]}``.
    """

    def __init__(
        self,
        *,
        base_url: str,
        timeout_s: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_s = float(timeout_s)
        self._transport = transport

    def tag(self, text: str) -> list[TaggedToken]:
        url = f"{self.base_url}/tag"
        try:
            with httpx.Client(timeout=self.timeout_s, transport=self._transport) as client:
                r = client.post(url, json={"text": text})
        except Exception as e:
            raise TaggerError(f"Failed to reach tagger at {self.base_url}. Is it running? ({e})") from e

        if r.status_code != 200:
            raise TaggerError(f"Tagger error {r.status_code}: {r.text}")

        try:
            data = r.json()
        except ValueError as e:
            raise TaggerError(f"Tagger returned invalid JSON: {r.text[:200]}") from e
        rows = data.get("tokens") if isinstance(data, dict) else None
        if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
            raise TaggerError(f"Unexpected tagger response: {data}")
        return [_token_from_json(row) for row in rows if row.get("pos") != "PUNCT"]


def _token_from_json(row: dict[str, Any]) -> TaggedToken:
    token = str(row.get("token") or "")
    return TaggedToken(
        token=token,
        lemma=str(row.get("lemma") or token),
        pos=str(row.get("pos") or "X"),
        morph=(str(row["morph"]) if row.get("morph") else None),
    )


def make_tagger(settings) -> Tagger:
    if settings.tagger == "http":
        return HttpTagger(base_url=settings.tagger_url)
    if settings.tagger == "spacy":
        return SpacyTagger(settings.spacy_model)
    raise ValueError(f"Unknown tagger: {settings.tagger!r} (expected 'spacy' or 'http')")
