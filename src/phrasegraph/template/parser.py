"""Bracket DSL for templates.

    [NOUN] [VERB:past] [ADJ1] [VERB:participle2] [LIT:life] [CHUNK:[ADJ-NOUN]]

Free text between directives becomes literal tokens.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Union

from ..errors import MalformedTemplateError
from ..graph.model import POS_TAGS


LITERAL = "literal"
SLOT = "slot"
SUBTEMPLATE = "subtemplate"

# [POS], [POS:morph], [POSn], [POS:morphn], [POSn:morph]
_SLOT_RE = re.compile(r"^\[([A-Za-z]+)(\d+)?(?::([A-Za-z0-9_]*[A-Za-z_]))?(\d+)?\]$")
_LIT_RE = re.compile(r"^\[LIT:(.+)\]$", re.DOTALL)
_CHUNK_RE = re.compile(r"^\[CHUNK:\[([A-Za-z0-9_:|-]+)\]\]$")


@dataclass(frozen=True)
class LiteralToken:
    surface: str
    raw: str
    kind: str = field(default=LITERAL, init=False)


@dataclass(frozen=True)
class SlotToken:
    pos: str
    raw: str
    morph: str | None = None
    bind_id: str | None = None
    kind: str = field(default=SLOT, init=False)


@dataclass(frozen=True)
class SubtemplateToken:
    tokens: tuple["TemplateToken", ...]
    raw: str
    kind: str = field(default=SUBTEMPLATE, init=False)


TemplateToken = Union[LiteralToken, SlotToken, SubtemplateToken]


@dataclass(frozen=True)
class BindingSpec:
    id: str
    pos: str
    morph: str | None = None


def bind_id_for(pos: str, n: str | int) -> str:
    return f"{pos[0].upper()}{n}"


def parse_template_text_to_tokens(text: str) -> list[TemplateToken]:
    """Parse DSL text into tokens. Raises MalformedTemplateError on unbalanced brackets."""
    tokens: list[TemplateToken] = []
    for part in split_dsl(text.strip()):
        tokens.append(_parse_part(part))
    return tokens


def _parse_part(part: str) -> TemplateToken:
    if not part.startswith("["):
        return LiteralToken(surface=part, raw=part)

    m = _LIT_RE.match(part)
    if m:
        return LiteralToken(surface=m.group(1), raw=part)

    m = _CHUNK_RE.match(part)
    if m:
        # "ADJ-VERB|past" -> "[ADJ] [VERB:past]"
        inner = " ".join(f"[{p.replace('|', ':')}]" for p in m.group(1).split("-") if p)
        return SubtemplateToken(tokens=tuple(parse_template_text_to_tokens(inner)), raw=part)

    m = _SLOT_RE.match(part)
    if m and m.group(1).upper() in POS_TAGS:
        pos = m.group(1).upper()
        n = m.group(2) or m.group(4)
        return SlotToken(
            pos=pos,
            raw=part,
            morph=m.group(3) or None,
            bind_id=bind_id_for(pos, n) if n else None,
        )

    return LiteralToken(surface=part, raw=part)


def split_dsl(s: str) -> list[str]:
    """Split into bracketed directives and the trimmed free-text runs between them."""
    out: list[str] = []
    buf: list[str] = []
    i = 0
    while i < len(s):
        ch = s[i]
        if ch == "]":
            raise MalformedTemplateError(f"Unbalanced ']' at position {i} in template: {s!r}")
        if ch != "[":
            buf.append(ch)
            i += 1
            continue

        run = "".join(buf).strip()
        if run:
            out.append(run)
        buf = []

        j = _find_matching_bracket(s, i)
        out.append(s[i : j + 1])
        i = j + 1

    run = "".join(buf).strip()
    if run:
        out.append(run)
    return out


def _find_matching_bracket(s: str, start: int) -> int:
    depth = 0
    for i in range(start, len(s)):
        if s[i] == "[":
            depth += 1
        elif s[i] == "]":
            depth -= 1
            if depth == 0:
                return i
    raise MalformedTemplateError(f"Unclosed '[' at position {start} in template: {s!r}")


def build_bindings(tokens: list[TemplateToken] | tuple[TemplateToken, ...]) -> dict[str, BindingSpec] | None:
    """Binding id -> spec for every numbered slot; first occurrence wins.

    Returns None rather than an empty dict when nothing is bound.
    """
    bindings: dict[str, BindingSpec] = {}
    _collect_bindings(tokens, bindings)
    return bindings or None


def _collect_bindings(tokens, bindings: dict[str, BindingSpec]) -> None:
    for t in tokens:
        if isinstance(t, SlotToken) and t.bind_id and t.bind_id not in bindings:
            bindings[t.bind_id] = BindingSpec(id=t.bind_id, pos=t.pos, morph=t.morph)
        elif isinstance(t, SubtemplateToken):
            _collect_bindings(t.tokens, bindings)
