"""
Parsing of `{{...}}` and `${...}` placeholders in blueprint strings.

A placeholder holds a path: a root name followed by `.key`, `[0]` or
`['key']` accessors, e.g. ``{{trigger.payload.items[0]['id']}}``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Sequence, Union

# Upstream blueprints use `{{var}}`; `${var}` is accepted as well.
REFERENCE_PATTERN = re.compile(r"\$\{([^{}]+)\}|\{\{([^{}]+)\}\}")

_ROOT = re.compile(r"\s*([^.\[\]\s]+)\s*")
_PROPERTY = re.compile(r"\.\s*([^.\[\]]+?)\s*(?=[.\[]|$)")
_INDEX = re.compile(r"\[\s*(-?\d+|'[^']*'|\"[^\"]*\")\s*\]")


@dataclass(frozen=True)
class PathSegment:
    pass


@dataclass(frozen=True)
class PropertySegment(PathSegment):
    key: str


@dataclass(frozen=True)
class IndexSegment(PathSegment):
    index: Union[int, str]


@dataclass(frozen=True)
class ReferenceExpr:
    raw: str
    root: str
    segments: Sequence[PathSegment]


@dataclass(frozen=True)
class TemplateLiteral:
    text: str


@dataclass(frozen=True)
class TemplateReference:
    placeholder: str
    reference: ReferenceExpr


TemplateToken = Union[TemplateLiteral, TemplateReference]


def parse_reference_string(expr: str) -> ReferenceExpr:
    """Parse a bare path such as ``order.lines[0].sku``; raises ValueError."""

    working = expr.strip()
    if not working:
        raise ValueError("Reference cannot be empty")

    root_match = _ROOT.match(working)
    if root_match is None:
        raise ValueError(f"Reference '{expr}' is missing a root symbol")

    segments: List[PathSegment] = []
    position = root_match.end()
    while position < len(working):
        if working[position] == "[":
            match = _INDEX.match(working, position)
            if match is None:
                raise ValueError(
                    f"Bracket accessor must be an integer or quoted string in '{expr}'"
                )
            token = match.group(1)
            segments.append(IndexSegment(token[1:-1] if token[0] in "'\"" else int(token)))
        else:
            match = _PROPERTY.match(working, position)
            if match is None:
                raise ValueError(f"Malformed path '{expr}' at position {position}")
            segments.append(PropertySegment(match.group(1)))
        position = match.end()

    return ReferenceExpr(raw=expr, root=root_match.group(1), segments=tuple(segments))


def parse_template(text: str) -> List[TemplateToken]:
    """Split ``text`` into literal runs and placeholder references, in order."""

    tokens: List[TemplateToken] = []
    cursor = 0
    for match in REFERENCE_PATTERN.finditer(text):
        if match.start() > cursor:
            tokens.append(TemplateLiteral(text[cursor:match.start()]))
        inner = match.group(1) if match.group(1) is not None else match.group(2)
        tokens.append(TemplateReference(placeholder=match.group(0), reference=parse_reference_string(inner)))
        cursor = match.end()
    if cursor < len(text) or not tokens:
        tokens.append(TemplateLiteral(text[cursor:]))
    return tokens
