from __future__ import annotations


class PhraseGraphError(Exception):
    pass


class NotFoundError(PhraseGraphError, LookupError):
    """A referenced entity id does not exist in the graph."""

    def __init__(self, kind: str, entity_id: str):
        super().__init__(f"{kind} {entity_id} not found")
        self.kind = kind
        self.entity_id = entity_id


class MalformedTemplateError(PhraseGraphError, ValueError):
    pass


class CapabilityError(PhraseGraphError, RuntimeError):
    """An external capability (tagger, context tester, storage) failed."""


class TaggerError(CapabilityError):
    pass


class IngestError(PhraseGraphError, ValueError):
    pass


class SnapshotError(PhraseGraphError, ValueError):
    pass
