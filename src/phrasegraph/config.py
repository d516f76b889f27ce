from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


load_dotenv()


@dataclass(frozen=True)
class Settings:
    # Primary snapshot store (SQLite key-value table) and its JSON fallback.
    db_path: str = os.getenv("PHRASEGRAPH_DB_PATH", "./data/phrasegraph.db")
    legacy_path: str = os.getenv("PHRASEGRAPH_LEGACY_PATH", "./data/phrasegraph.legacy.json")
    save_debounce_ms: int = int(os.getenv("PHRASEGRAPH_SAVE_DEBOUNCE_MS", "800"))

    # POS tagging capability: "spacy" (local model) or "http" (remote service).
    tagger: str = os.getenv("PHRASEGRAPH_TAGGER", "spacy")
    spacy_model: str = os.getenv("PHRASEGRAPH_SPACY_MODEL", "en_core_web_sm")
    tagger_url: str = os.getenv("PHRASEGRAPH_TAGGER_URL", "http://localhost:8088")

    # Chunk extraction windows (in merged units).
    chunk_min_window: int = int(os.getenv("PHRASEGRAPH_CHUNK_MIN_WINDOW", "2"))
    chunk_max_window: int = int(os.getenv("PHRASEGRAPH_CHUNK_MAX_WINDOW", "4"))
    max_chunks: int = int(os.getenv("PHRASEGRAPH_MAX_CHUNKS", "8"))

    # Retrieval
    max_results: int = int(os.getenv("PHRASEGRAPH_MAX_RESULTS", "40"))

    log_level: str = os.getenv("PHRASEGRAPH_LOG_LEVEL", "WARNING")
