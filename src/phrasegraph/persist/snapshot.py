"""Versioned snapshot of a graph plus its chunk catalog.

    {"schema": "phrasegraph.snapshot", "version": 1, "saved_at": <ms>,
     "entities": [{"kind": "word"|"phrase"|"topic", "id": ..., "fields": {...}}],
     "edges": [{"id", "kind", "from", "to", "meta"}],
     "catalog": [{"key", "uses", "likes", "last_seen", "examples"}]}

Unknown fields are ignored and missing ones take defaults. The older flat
``{"nodes": [...], "edges": [...]}`` layout with camelCase keys is migrated
on load.
"""

from __future__ import annotations

import logging
from typing import Any

from ..errors import SnapshotError
from ..graph.model import (
    PHRASE,
    TOPIC,
    WORD,
    Edge,
    PhraseChunk,
    PhraseNode,
    TopicNode,
    WordNode,
)
from ..graph.store import SemanticGraph
from ..index.chunk_catalog import ChunkCatalog


logger = logging.getLogger(__name__)

SNAPSHOT_SCHEMA = "phrasegraph.snapshot"
SNAPSHOT_VERSION = 1


def dump_snapshot(graph: SemanticGraph, catalog: ChunkCatalog, *, saved_at: float | None = None) -> dict[str, Any]:
    entities: list[dict[str, Any]] = []
    for kind in (WORD, PHRASE, TOPIC):
        for node in graph.get_nodes_by_type(kind):
            entities.append({"kind": kind, "id": node.id, "fields": _fields_of(node)})

    return {
        "schema": SNAPSHOT_SCHEMA,
        "version": SNAPSHOT_VERSION,
        "saved_at": graph.clock() if saved_at is None else saved_at,
        "entities": entities,
        "edges": [
            {"id": e.id, "kind": e.kind, "from": e.from_id, "to": e.to_id, "meta": dict(e.meta)}
            for e in graph.iter_edges()
        ],
        "catalog": catalog.to_records(),
    }


def load_snapshot(data: Any, graph: SemanticGraph, catalog: ChunkCatalog) -> None:
    """Replace the contents of ``graph`` and ``catalog`` with a snapshot."""
    if not isinstance(data, dict):
        raise SnapshotError(f"Snapshot must be a JSON object, got {type(data).__name__}")
    if "schema" not in data and "nodes" in data:
        data = migrate_legacy(data)
    if data.get("schema") != SNAPSHOT_SCHEMA:
        raise SnapshotError(f"Not a phrasegraph snapshot (schema={data.get('schema')!r})")

    version = data.get("version")
    if not isinstance(version, int) or version < 1:
        raise SnapshotError(f"Invalid snapshot version: {version!r}")
    if version > SNAPSHOT_VERSION:
        raise SnapshotError(f"Snapshot version {version} is newer than supported ({SNAPSHOT_VERSION})")

    graph.clear()
    catalog.clear()

    for ent in data.get("entities") or []:
        node = _node_from_entity(ent)
        if node is not None:
            graph.restore_node(node)

    for raw in data.get("edges") or []:
        if not isinstance(raw, dict) or not raw.get("id"):
            continue
        graph.restore_edge(
            Edge(
                id=str(raw["id"]),
                kind=str(raw.get("kind") or ""),
                from_id=str(raw.get("from") or ""),
                to_id=str(raw.get("to") or ""),
                meta=dict(raw.get("meta") or {}),
            )
        )

    catalog.load_records(r for r in (data.get("catalog") or []) if isinstance(r, dict))


def _fields_of(node: WordNode | PhraseNode | TopicNode) -> dict[str, Any]:
    if isinstance(node, WordNode):
        return {
            "text": node.text,
            "lemma": node.lemma,
            "pos": list(node.pos),
            "pos_potential": list(node.pos_potential),
            "pos_observed": dict(node.pos_observed),
            "primary_pos": node.primary_pos,
            "is_polysemous_pos": node.is_polysemous_pos,
            "morph_feature": node.morph_feature,
            "original_form": node.original_form,
            "pos_sources": list(node.pos_sources),
        }
    if isinstance(node, PhraseNode):
        return {
            "text": node.text,
            "word_ids": list(node.word_ids),
            "created_at": node.created_at,
            "lemmas": list(node.lemmas),
            "pos": list(node.pos),
            "pos_pattern": node.pos_pattern,
            "derived_from_id": node.derived_from_id,
            "tokens": list(node.tokens),
            "chunks": [
                {
                    "text": c.text,
                    "lemmas": list(c.lemmas),
                    "pos_pattern": c.pos_pattern,
                    "span": list(c.span),
                }
                for c in node.chunks
            ],
        }
    return {
        "text": node.text,
        "lemmas": list(node.lemmas),
        "keywords": list(node.keywords),
        "created_at": node.created_at,
        "updated_at": node.updated_at,
    }


def _node_from_entity(ent: Any) -> WordNode | PhraseNode | TopicNode | None:
    if not isinstance(ent, dict) or not ent.get("id"):
        return None
    kind = ent.get("kind")
    node_id = str(ent["id"])
    f = ent.get("fields") or {}

    if kind == WORD:
        potential = [str(p) for p in f.get("pos_potential") or []] or ["NOUN"]
        observed = {str(k): int(v) for k, v in (f.get("pos_observed") or {}).items()}
        return WordNode(
            id=node_id,
            text=str(f.get("text") or f.get("lemma") or ""),
            lemma=str(f.get("lemma") or f.get("text") or ""),
            pos=[str(p) for p in f.get("pos") or []] or [potential[0]],
            pos_potential=potential,
            pos_observed=observed,
            primary_pos=str(f.get("primary_pos") or potential[0]),
            is_polysemous_pos=bool(f.get("is_polysemous_pos", len(potential) > 1)),
            morph_feature=f.get("morph_feature"),
            original_form=f.get("original_form"),
            pos_sources=[str(s) for s in f.get("pos_sources") or []],
        )

    if kind == PHRASE:
        phrase = PhraseNode(
            id=node_id,
            text=str(f.get("text") or ""),
            word_ids=[str(w) for w in f.get("word_ids") or []],
            created_at=float(f.get("created_at") or 0.0),
            lemmas=[str(l) for l in f.get("lemmas") or []],
            pos=[str(p) for p in f.get("pos") or []],
            pos_pattern=str(f.get("pos_pattern") or ""),
            derived_from_id=f.get("derived_from_id"),
            tokens=[str(t) for t in f.get("tokens") or []],
        )
        phrase.chunks = [_chunk_from_dict(c, node_id) for c in f.get("chunks") or [] if isinstance(c, dict)]
        return phrase

    if kind == TOPIC:
        return TopicNode(
            id=node_id,
            text=str(f.get("text") or ""),
            lemmas=[str(l) for l in f.get("lemmas") or []],
            created_at=float(f.get("created_at") or 0.0),
            updated_at=float(f.get("updated_at") or f.get("created_at") or 0.0),
            keywords=[str(k) for k in f.get("keywords") or []],
        )

    logger.debug("skipping snapshot entity %s of kind %r", node_id, kind)
    return None


def _chunk_from_dict(c: dict[str, Any], phrase_id: str) -> PhraseChunk:
    lemmas = tuple(str(l) for l in c.get("lemmas") or [])
    span = c.get("span") or [0, max(0, len(lemmas) - 1)]
    return PhraseChunk(
        text=str(c.get("text") or " ".join(lemmas)),
        lemmas=lemmas,
        pos_pattern=str(c.get("pos_pattern") or c.get("posPattern") or ""),
        phrase_id=phrase_id,
        span=(int(span[0]), int(span[1])),
    )


# Legacy flat layout

_LEGACY_KINDS = {"WORD": WORD, "PHRASE": PHRASE, "TOPIC": TOPIC}


def migrate_legacy(data: dict[str, Any]) -> dict[str, Any]:
    """Convert ``{"nodes": [...], "edges": [...]}`` into the current schema."""
    entities: list[dict[str, Any]] = []
    skipped = 0
    for node in data.get("nodes") or []:
        if not isinstance(node, dict):
            continue
        kind = _LEGACY_KINDS.get(str(node.get("type") or "").upper())
        if kind is None:
            skipped += 1
            continue

        if kind == WORD:
            fields = {
                "text": node.get("text"),
                "lemma": node.get("lemma"),
                "pos": node.get("pos"),
                "pos_potential": node.get("posPotential"),
                "pos_observed": node.get("posObserved"),
                "primary_pos": node.get("primaryPOS"),
                "is_polysemous_pos": node.get("isPolysemousPOS", False),
                "morph_feature": node.get("morphFeature"),
                "original_form": node.get("originalForm"),
                "pos_sources": node.get("posPotentialSource"),
            }
        elif kind == PHRASE:
            pattern = str(node.get("posPattern") or "")
            fields = {
                "text": node.get("text"),
                "word_ids": node.get("wordIds"),
                "created_at": node.get("createdAt"),
                "lemmas": node.get("lemmas"),
                "pos": [p.partition("|")[0] for p in pattern.split("-")] if pattern else [],
                "pos_pattern": pattern,
                "derived_from_id": node.get("derivedFromId"),
                "chunks": node.get("chunks"),
            }
        else:
            fields = {
                "text": node.get("text"),
                "lemmas": node.get("lemmas"),
                "keywords": node.get("keywords"),
                "created_at": node.get("createdAt"),
                "updated_at": node.get("updatedAt"),
            }
        entities.append({"kind": kind, "id": node.get("id"), "fields": fields})

    if skipped:
        logger.info("legacy snapshot: skipped %d nodes of unsupported types", skipped)

    edges = [
        {
            "id": e.get("id"),
            "kind": e.get("type") or e.get("kind"),
            "from": e.get("from"),
            "to": e.get("to"),
            "meta": e.get("meta") or {},
        }
        for e in data.get("edges") or []
        if isinstance(e, dict)
    ]
    return {
        "schema": SNAPSHOT_SCHEMA,
        "version": SNAPSHOT_VERSION,
        "saved_at": data.get("savedAt"),
        "entities": entities,
        "edges": edges,
        "catalog": [],
    }
