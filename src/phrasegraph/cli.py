from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

import httpx
import numpy as np
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.text import Text

from .config import Settings
from .context import GraphContext
from .errors import MalformedTemplateError, NotFoundError, PhraseGraphError, SnapshotError, TaggerError
from .graph.model import PHRASE, TOPIC
from .index.retriever import RetrievalOptions, surface_related_phrases
from .ingest.chunks import ChunkOptions
from .ingest.runner import IngestOptions, ingest_batch, promote_chunk
from .nlp.pos_analysis import FrameContextTester
from .nlp.tagger import make_tagger
from .persist.kv_store import JsonFileKVStore, SqliteKVStore
from .persist.persistent_store import DebouncedSaver, PersistentStore
from .template.fill import realize_template
from .template.parser import LiteralToken, SlotToken, SubtemplateToken, build_bindings, parse_template_text_to_tokens
from .template.randomize import (
    TEMPLATE_SELECTORS,
    SlotRandomizationConfig,
    apply_sequential,
    build_slot_pipeline,
    make_selector,
    phrase_tokens_for_phrase,
    render_template_text,
)


app = typer.Typer(add_completion=False, help="phrasegraph: a word/phrase graph with chunk ranking and template tools.")
console = Console()
err_console = Console(stderr=True)

chunks_app = typer.Typer(add_completion=False, help="Chunk catalog utilities.")
app.add_typer(chunks_app, name="chunks")

template_app = typer.Typer(add_completion=False, help="Template DSL utilities.")
app.add_typer(template_app, name="template")

logger = logging.getLogger("phrasegraph")


@app.callback()
def main(
    log_level: str | None = typer.Option(None, "--log-level", help="Logging level (default from PHRASEGRAPH_LOG_LEVEL)"),
):
    settings = Settings()
    logging.basicConfig(
        level=(log_level or settings.log_level).upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
    )


@contextmanager
def _session(db: Path | None, legacy: Path | None, *, save: bool) -> Iterator[GraphContext]:
    """Load the persisted graph, yield it, and save it back when ``save`` is set."""
    settings = Settings()
    store = PersistentStore(
        SqliteKVStore(db or settings.db_path),
        JsonFileKVStore(legacy or settings.legacy_path),
    )
    try:
        data = store.load()
        try:
            ctx = GraphContext.from_snapshot(data) if data is not None else GraphContext()
        except SnapshotError as e:
            console.print(f"Cannot read stored snapshot: {e}", style="red")
            raise typer.Exit(code=2)

        yield ctx

        if save:
            saver = DebouncedSaver(store, delay_s=settings.save_debounce_ms / 1000.0)
            if not saver.force_save(ctx.to_snapshot()):
                console.print("Primary store unavailable; snapshot written to the legacy fallback.", style="yellow")
    finally:
        store.primary.close()


def _db_option():
    return typer.Option(None, "--db", help="SQLite snapshot store (default from PHRASEGRAPH_DB_PATH)")


def _legacy_option():
    return typer.Option(None, "--legacy", help="JSON fallback store (default from PHRASEGRAPH_LEGACY_PATH)")


@app.command()
def ingest(
    text: str | None = typer.Argument(None, help="Text to ingest; split into phrases on . ! ? and newlines"),
    file: Path | None = typer.Option(None, "--file", exists=True, file_okay=True, dir_okay=False),
    topic: str | None = typer.Option(None, "--topic", help="Link every ingested phrase to this topic"),
    polysemy: bool = typer.Option(False, "--polysemy/--no-polysemy", help="Test each word in context frames"),
    skip_stop_words: bool = typer.Option(False, "--skip-stop-words", help="Reject stop-word-heavy phrases"),
    db: Path | None = _db_option(),
    legacy: Path | None = _legacy_option(),
):
    """Ingest phrases into the graph."""
    if text is None and file is None:
        raise typer.BadParameter("Provide TEXT or --file")
    body = file.read_text(encoding="utf-8", errors="replace") if file is not None else str(text)

    settings = Settings()
    try:
        tagger = make_tagger(settings)
    except (TaggerError, ValueError) as e:
        console.print(str(e), style="red")
        raise typer.Exit(code=2)

    with _session(db, legacy, save=True) as ctx:
        topic_id = None
        if topic:
            topic_id = ctx.graph.upsert_topic(topic, topic.lower().split()).id

        opts = IngestOptions(
            chunks=ChunkOptions(
                min_window=settings.chunk_min_window,
                max_window=settings.chunk_max_window,
                max_chunks=settings.max_chunks,
            ),
            skip_stop_words=skip_stop_words,
            topic_id=topic_id,
        )
        res = ingest_batch(
            body,
            ctx.graph,
            catalog=ctx.catalog,
            tagger=tagger,
            context_tester=FrameContextTester(tagger) if polysemy else None,
            options=opts,
        )

    table = Table(title=f"Ingested {res.successful_phrases}/{res.total_phrases} phrases")
    table.add_column("phrase id")
    table.add_column("text")
    table.add_column("pattern")
    table.add_column("chunks", justify="right")
    for r in res.results:
        table.add_row(Text(r.phrase.id), Text(r.phrase.text), Text(r.phrase.pos_pattern), Text(str(len(r.chunks))))
    console.print(table)

    for err in res.errors:
        console.print(err, style="yellow", markup=False)
    if res.failed_phrases and not res.successful_phrases:
        raise typer.Exit(code=1)


@app.command()
def phrases(
    word: str | None = typer.Option(None, "--word", help="Only phrases containing this lemma"),
    limit: int = typer.Option(50, help="Max phrases to list"),
    db: Path | None = _db_option(),
    legacy: Path | None = _legacy_option(),
):
    """List phrases in the graph."""
    with _session(db, legacy, save=False) as ctx:
        if word:
            items = ctx.graph.get_phrases_by_word_lemma(word)
        else:
            items = list(ctx.graph.iter_phrases())

    table = Table(title="Phrases")
    table.add_column("phrase id")
    table.add_column("text")
    table.add_column("pattern")
    table.add_column("chunks")
    for p in items[: int(limit)]:
        table.add_row(
            Text(p.id),
            Text(p.text),
            Text(p.pos_pattern),
            Text(", ".join(f"{i}:{c.text}" for i, c in enumerate(p.chunks))),
        )
    console.print(table)


@app.command()
def related(
    phrase_id: str = typer.Argument(...),
    max_results: int | None = typer.Option(None, help="Max related phrases"),
    min_overlap: float = typer.Option(0.0, help="Minimum lemma overlap (0-1)"),
    max_chunks: int = typer.Option(20, help="Max top chunks"),
    db: Path | None = _db_option(),
    legacy: Path | None = _legacy_option(),
):
    """Show phrases related to a seed phrase, with score breakdown."""
    settings = Settings()
    opts = RetrievalOptions(
        max_results=int(max_results if max_results is not None else settings.max_results),
        min_overlap=float(min_overlap),
        max_chunks=int(max_chunks),
    )
    with _session(db, legacy, save=False) as ctx:
        try:
            res = surface_related_phrases(phrase_id, ctx.graph, catalog=ctx.catalog, options=opts)
        except NotFoundError as e:
            console.print(str(e), style="red")
            raise typer.Exit(code=2)

    table = Table(title="Related phrases")
    table.add_column("#", justify="right", width=4)
    table.add_column("score", justify="right")
    table.add_column("overlap", justify="right")
    table.add_column("pattern", justify="right")
    table.add_column("like", justify="right")
    table.add_column("text")
    for i, r in enumerate(res.related_phrases, start=1):
        table.add_row(
            Text(str(i)),
            Text(f"{r.score:.3f}"),
            Text(f"{r.overlap_score:.3f}"),
            Text(f"{r.pattern_boost:.3f}"),
            Text(f"{r.like_boost:.3f}"),
            Text(r.phrase.text),
        )
    console.print(table)

    if res.top_chunks:
        t2 = Table(title="Top chunks")
        t2.add_column("score", justify="right")
        t2.add_column("key")
        t2.add_column("text")
        for c in res.top_chunks:
            t2.add_row(Text(f"{c.score:.3f}"), Text(c.key), Text(c.chunk.text))
        console.print(t2)


@app.command()
def promote(
    phrase_id: str = typer.Argument(...),
    chunk_index: int = typer.Argument(..., help="Index into the phrase's chunk list"),
    db: Path | None = _db_option(),
    legacy: Path | None = _legacy_option(),
):
    """Promote a chunk of a phrase into a phrase of its own."""
    with _session(db, legacy, save=True) as ctx:
        try:
            phrase = promote_chunk(phrase_id, int(chunk_index), ctx.graph)
        except PhraseGraphError as e:
            console.print(str(e), style="red")
            raise typer.Exit(code=2)
    console.print(f"Created phrase {phrase.id}: {phrase.text}", markup=False)


@app.command()
def stats(
    db: Path | None = _db_option(),
    legacy: Path | None = _legacy_option(),
):
    """Show graph and catalog stats."""
    with _session(db, legacy, save=False) as ctx:
        g = ctx.graph
        words = list(g.iter_words())
        rows = [
            ("Words", len(words)),
            ("Polysemous words", sum(1 for w in words if w.is_polysemous_pos)),
            ("Phrases", len(g.get_nodes_by_type(PHRASE))),
            ("Topics", len(g.get_nodes_by_type(TOPIC))),
            ("Edges", g.edge_count()),
            ("Catalog chunks", len(ctx.catalog)),
        ]

    table = Table(title="Phrasegraph Stats")
    table.add_column("Metric")
    table.add_column("Value")
    for name, value in rows:
        table.add_row(name, str(value))
    console.print(table)


@app.command()
def doctor(
    db: Path | None = _db_option(),
):
    """Check the tagger and the snapshot store and print actionable fixes."""
    settings = Settings()
    ok = True

    console.print(f"Tagger ({settings.tagger}):")
    if settings.tagger == "http":
        url = settings.tagger_url.rstrip("/")
        try:
            r = httpx.post(f"{url}/tag", json={"text": "The fox runs."}, timeout=5.0)
            r.raise_for_status()
            n = len((r.json() or {}).get("tokens") or [])
            console.print(f"- Service reachable at {url} ({n} tokens for a probe sentence).", style="green")
        except Exception as e:
            console.print(f"- Not reachable at {url}: {e}", style="red")
            console.print("  Fix: start the tagging service or set PHRASEGRAPH_TAGGER=spacy.", style="yellow")
            ok = False
    else:
        try:
            tagger = make_tagger(settings)
            tokens = tagger.tag("The fox runs.")
            console.print(f"- spaCy model {settings.spacy_model} OK ({len(tokens)} tokens).", style="green")
        except ImportError:
            console.print("- spaCy is not installed.", style="red")
            console.print("  Fix: `pip install -e '.[nlp]'`", style="yellow")
            ok = False
        except TaggerError as e:
            console.print(f"- {e}", style="red")
            ok = False

    path = Path(db or settings.db_path)
    console.print("\nStore:")
    if not path.exists():
        console.print(f"- No snapshot store yet at {path}", style="yellow")
        console.print("  Fix: run `phrasegraph ingest ...`", style="yellow")
    else:
        with _session(path, None, save=False) as ctx:
            n = ctx.graph.node_count()
        console.print(f"- {path}: {n} nodes", style="green" if n else "yellow")

    if not ok:
        raise typer.Exit(code=1)


@chunks_app.command("top")
def chunks_top(
    limit: int = typer.Option(20, help="Number of chunks"),
    pattern: str | None = typer.Option(None, "--pattern", help="Only chunks with this POS pattern"),
    db: Path | None = _db_option(),
    legacy: Path | None = _legacy_option(),
):
    """Rank catalog chunks by uses + likes + recency."""
    with _session(db, legacy, save=False) as ctx:
        ranked = ctx.catalog.top_keys(len(ctx.catalog))
        if pattern:
            keep = {k for k, _ in ctx.catalog.get_chunks_by_pattern(pattern)}
            ranked = [r for r in ranked if r.key in keep]

    table = Table(title="Top chunks")
    table.add_column("score", justify="right")
    table.add_column("uses", justify="right")
    table.add_column("likes", justify="right")
    table.add_column("key")
    table.add_column("examples")
    for r in ranked[: int(limit)]:
        table.add_row(
            Text(f"{r.score:.3f}"),
            Text(str(r.stats.uses)),
            Text(str(r.stats.likes)),
            Text(r.key),
            Text(" | ".join(r.stats.examples)),
        )
    console.print(table)


@chunks_app.command("like")
def chunks_like(
    key: str = typer.Argument(..., help="Chunk key, e.g. 'brown_fox|ADJ-NOUN'"),
    delta: int = typer.Option(1, help="Likes to add (negative to remove)"),
    db: Path | None = _db_option(),
    legacy: Path | None = _legacy_option(),
):
    """Record like feedback for a chunk."""
    with _session(db, legacy, save=True) as ctx:
        if not ctx.catalog.update_chunk_stats(key, delta_likes=int(delta)):
            console.print(f"Unknown chunk key: {key}", style="yellow", markup=False)
            raise typer.Exit(code=2)
        stats = ctx.catalog.get_chunk_stats(key)
    console.print(f"{key}: likes={stats.likes}", markup=False)


@template_app.command("parse")
def template_parse(
    text: str = typer.Argument(..., help="Template DSL text"),
):
    """Parse template DSL and show its tokens and bindings."""
    try:
        tokens = parse_template_text_to_tokens(text)
    except MalformedTemplateError as e:
        console.print(str(e), style="red", markup=False)
        raise typer.Exit(code=2)

    table = Table(title="Tokens")
    table.add_column("kind")
    table.add_column("raw")
    table.add_column("detail")
    for t in tokens:
        table.add_row(Text(t.kind), Text(t.raw), Text(_token_detail(t)))
    console.print(table)

    bindings = build_bindings(tokens)
    if bindings:
        for b in bindings.values():
            console.print(f"{b.id}: {b.pos}{':' + b.morph if b.morph else ''}", markup=False)


def _token_detail(t) -> str:
    if isinstance(t, LiteralToken):
        return t.surface
    if isinstance(t, SlotToken):
        parts = [t.pos]
        if t.morph:
            parts.append(f"morph={t.morph}")
        if t.bind_id:
            parts.append(f"bind={t.bind_id}")
        return " ".join(parts)
    if isinstance(t, SubtemplateToken):
        return " ".join(_token_detail(x) for x in t.tokens)
    return ""


@template_app.command("from-phrase")
def template_from_phrase(
    phrase_ids: list[str] = typer.Argument(..., help="One or more phrase ids; one is selected"),
    selector: str = typer.Option("uniform", help=f"One of: {', '.join(TEMPLATE_SELECTORS)}"),
    jitter: float = typer.Option(0.0, help="Probability (0-1) of marking each word"),
    max_slots: int = typer.Option(0, help="Mark up to N random words"),
    min_slots: int = typer.Option(0, help="Ensure at least N marked words"),
    target_pos: str | None = typer.Option(None, "--target-pos", help="Mark the Nth word with this POS"),
    position: int = typer.Option(1, help="1-based position for --target-pos"),
    pos_p: list[str] = typer.Option([], "--pos-p", help="Per-POS percent, e.g. NOUN=50 (repeatable)"),
    regex: str = typer.Option("", help="Gate regex matched against the phrase text"),
    regex_p: float = typer.Option(0.0, help="Percent (0-100) used when --regex matches"),
    seed: int | None = typer.Option(None, help="Random seed"),
    db: Path | None = _db_option(),
    legacy: Path | None = _legacy_option(),
):
    """Turn a stored phrase into template DSL by marking words as slots."""
    table: dict[str, float] = {}
    for item in pos_p:
        name, _, value = item.partition("=")
        try:
            table[name.strip().upper()] = float(value)
        except ValueError:
            raise typer.BadParameter(f"Expected POS=percent, got {item!r}")

    try:
        pick = make_selector(selector)
    except ValueError as e:
        raise typer.BadParameter(str(e))

    config = SlotRandomizationConfig(
        jitter_p=float(jitter),
        max_random_slots=int(max_slots),
        use_position_based=target_pos is not None,
        target_pos=(target_pos or "NOUN").upper(),
        target_position=int(position),
        pos_random_p=table,
        regex_text=regex,
        regex_randomize_p=float(regex_p),
        min_slots=int(min_slots),
    )
    rng = np.random.default_rng(seed)

    with _session(db, legacy, save=False) as ctx:
        try:
            phrase = ctx.graph.get_phrase(pick.select(phrase_ids, rng))
        except NotFoundError as e:
            console.print(str(e), style="red")
            raise typer.Exit(code=2)
        tokens = phrase_tokens_for_phrase(ctx.graph, phrase)

    marked = apply_sequential(tokens, build_slot_pipeline(config), rng)
    console.print(render_template_text(marked), markup=False)


@template_app.command("fill")
def template_fill(
    text: str = typer.Argument(..., help="Template DSL text, e.g. 'The [ADJ] [NOUN1] saw the [NOUN1]'"),
    lock: list[str] = typer.Option([], "--lock", help="Lemma of a graph word to prefer (repeatable)"),
    bind: list[str] = typer.Option([], "--bind", help="Pin a binding, e.g. N1=fox (repeatable)"),
    bank: list[str] = typer.Option([], "--bank", help="Fallback word, e.g. ADJ=shiny or VERB:past=ran (repeatable)"),
    count: int = typer.Option(1, help="Number of realizations"),
    seed: int | None = typer.Option(None, help="Random seed"),
    db: Path | None = _db_option(),
    legacy: Path | None = _legacy_option(),
):
    """Fill template slots with words from the graph."""
    try:
        tokens = parse_template_text_to_tokens(text)
    except MalformedTemplateError as e:
        console.print(str(e), style="red", markup=False)
        raise typer.Exit(code=2)

    known = build_bindings(tokens) or {}
    pinned: dict[str, str] = {}
    for item in bind:
        name, _, value = item.partition("=")
        name = name.strip().upper()
        if name not in known or not value.strip():
            raise typer.BadParameter(f"Unknown binding or empty value: {item!r}")
        pinned[name] = value.strip()

    word_bank: dict[str, list[str]] = {}
    for item in bank:
        pos, _, value = item.partition("=")
        if not pos.strip() or not value.strip():
            raise typer.BadParameter(f"Expected POS=word, got {item!r}")
        base, _, morph = pos.strip().partition(":")
        key = f"{base.upper()}:{morph}" if morph else base.upper()
        word_bank.setdefault(key, []).append(value.strip())

    rng = np.random.default_rng(seed)
    with _session(db, legacy, save=False) as ctx:
        locked: list[str] = []
        for lemma in lock:
            word = ctx.graph.find_word_by_lemma(lemma)
            if word is None:
                console.print(f"Unknown word: {lemma}", style="yellow", markup=False)
                raise typer.Exit(code=2)
            locked.append(word.id)

        results = [
            realize_template(tokens, ctx.graph, rng, locked=locked, word_bank=word_bank, bindings=pinned)
            for _ in range(max(1, int(count)))
        ]

    for r in results:
        console.print(r.text, markup=False)
        if r.unfilled:
            logger.warning("%d slot(s) had no matching word: %s", r.unfilled, r.text)


if __name__ == "__main__":
    app()
