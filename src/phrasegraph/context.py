from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .graph.store import SemanticGraph
from .index.chunk_catalog import ChunkCatalog
from .persist.snapshot import dump_snapshot, load_snapshot


@dataclass
class GraphContext:
    """A graph and its chunk catalog, owned by whoever builds it."""

    graph: SemanticGraph = field(default_factory=SemanticGraph)
    catalog: ChunkCatalog = field(default_factory=ChunkCatalog)

    def reset(self) -> None:
        self.graph.clear()
        self.catalog.clear()

    def to_snapshot(self) -> dict[str, Any]:
        return dump_snapshot(self.graph, self.catalog)

    @classmethod
    def from_snapshot(cls, data: Any, **kwargs) -> "GraphContext":
        ctx = cls(**kwargs)
        load_snapshot(data, ctx.graph, ctx.catalog)
        return ctx
