# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Inspection and parametrization of SPARQL query patterns.

Field configuration carries query patterns as plain strings. This module
rebinds their variables to concrete RDF nodes and classifies them by query
form, which the configuration checks use to reject misplaced patterns. Update
requests can be redirected to named graphs.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from pyparsing import ParseBaseException
from rdflib import URIRef
from rdflib.plugins.sparql.parser import parseQuery, parseUpdate
from rdflib.term import Node

# ###############
# Public Interface
# ###############


class QuerySyntaxError(Exception):
    """Raised when a query pattern cannot be parsed."""


@dataclass(frozen=True)
class UpdateOperation:
    """Shape of one operation inside a SPARQL update request.

    Attributes:
        name: Operation name as reported by the parser, e.g. ``Modify``.
        has_insert: Whether the operation inserts statements.
        has_delete: Whether the operation deletes statements.
    """

    name: str
    has_insert: bool
    has_delete: bool


def parametrize(query: str, bindings: Mapping[str, Node]) -> str:
    """Replace ``?name`` and ``$name`` variables by the N3 form of bound nodes.

    Variables inside string literals, IRIs and comments are left alone, as are
    variables without a binding.

    Args:
        query: The query pattern.
        bindings: Nodes keyed by variable name (without ``?``).

    Returns:
        The query with all bound variables substituted.
    """
    if not bindings:
        return query

    def replace(match: re.Match[str]) -> str:
        name = match.group(2)
        if name is None or name not in bindings:
            return match.group(0)
        return bindings[name].n3()

    return _TOKEN_PATTERN.sub(replace, query)


def query_form(query: str) -> str:
    """Return the form of a query: ``SELECT``, ``ASK``, ``CONSTRUCT`` or ``DESCRIBE``.

    Raises:
        QuerySyntaxError: If ``query`` is not a valid SPARQL query.
    """
    try:
        parsed = parseQuery(query)
    except ParseBaseException as exc:
        raise QuerySyntaxError(f"Invalid query: {exc}") from exc
    name = parsed[1].name
    return name[: -len("Query")].upper()


def update_operations(update: str) -> list[UpdateOperation]:
    """Describe every operation of a SPARQL update request.

    Raises:
        QuerySyntaxError: If ``update`` is not a valid SPARQL update.
    """
    try:
        parsed = parseUpdate(update)
    except ParseBaseException as exc:
        raise QuerySyntaxError(f"Invalid update: {exc}") from exc
    return [_describe_operation(operation) for operation in parsed.request or []]


def set_default_graph(update: str, insert_graph: str | None = None, delete_graph: str | None = None) -> str:
    """Redirect statements of insert and delete templates to named graphs.

    Triples an ``INSERT`` template writes to the default graph are wrapped in
    ``GRAPH <insert_graph> { ... }``, those of a ``DELETE`` template in
    ``GRAPH <delete_graph> { ... }``. Explicit ``GRAPH`` blocks of the
    templates and the ``WHERE`` clause are left unchanged.

    Args:
        update: The update request.
        insert_graph: IRI of the graph receiving inserted statements, optional.
        delete_graph: IRI of the graph losing deleted statements, optional.

    Returns:
        The rewritten update request, or ``update`` if no graph is given.
    """
    if insert_graph is None and delete_graph is None:
        return update
    graphs = {"INSERT": insert_graph, "DELETE": delete_graph}

    segments: list[tuple[int, int, str]] = []
    depth = 0
    keyword: str | None = None
    target: str | None = None
    start = 0
    in_graph_block = False
    for match in _TEMPLATE_PATTERN.finditer(update):
        brace, word = match.group(2), match.group(3)
        if word is not None:
            word = word.upper()
            if depth == 0 and word in graphs:
                keyword = word
            elif word == "GRAPH" and target is not None and depth == 1:
                segments.append((start, match.start(), target))
                in_graph_block = True
        elif brace == "{":
            depth += 1
            if depth == 1 and keyword is not None:
                target = graphs[keyword]
                start = match.end()
                keyword = None
        elif brace == "}":
            depth -= 1
            if target is not None and depth == 1 and in_graph_block:
                in_graph_block = False
                start = match.end()
            elif target is not None and depth == 0:
                segments.append((start, match.start(), target))
                target = None

    pieces: list[str] = []
    position = 0
    for start, end, graph in segments:
        segment = update[start:end]
        stripped = segment.lstrip()
        if stripped.startswith("."):
            stripped = stripped[1:].lstrip()
        lead = len(segment) - len(stripped)
        triples = segment[lead:].rstrip()
        if not triples:
            continue
        closing = "\n}" if "\n" in segment[lead:] else " }"
        pieces.append(update[position : start + lead])
        pieces.append(f"GRAPH {URIRef(graph).n3()} {{ {triples}{closing}")
        position = start + lead + len(triples)
    pieces.append(update[position:])
    return "".join(pieces)


# ################
# Implementation
# ################

_SKIPPED = (
    r'"""[\s\S]*?"""'
    r"|'''[\s\S]*?'''"
    r'|"(?:[^"\\\n]|\\.)*"'
    r"|'(?:[^'\\\n]|\\.)*'"
    r"|<[^<>\"{}|^`\\\s]*>"
    r"|#[^\n]*"
)
_TOKEN_PATTERN = re.compile("(" + _SKIPPED + r")|[?$]([A-Za-z_][A-Za-z0-9_]*)")
_TEMPLATE_PATTERN = re.compile(
    "(" + _SKIPPED + r")|([{}])|(?<![\w:?$])(INSERT|DELETE|GRAPH)(?![\w:])",
    re.IGNORECASE,
)


def _describe_operation(operation: Any) -> UpdateOperation:
    name = operation.name
    if name == "Modify":
        return UpdateOperation(
            name=name,
            has_insert=operation.insert is not None,
            has_delete=operation.delete is not None,
        )
    return UpdateOperation(
        name=name,
        has_insert=name == "InsertData",
        has_delete=name in ("DeleteData", "DeleteWhere"),
    )
