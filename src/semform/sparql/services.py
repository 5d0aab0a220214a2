# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Query execution and label resolution services used by the form engine.

The engine only depends on the ``QueryService`` and ``LabelService``
protocols. The rdflib implementations evaluate queries against an in-memory
graph and are used for local editing and in tests.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Mapping, Sequence
from typing import Protocol, runtime_checkable

from rdflib import Graph, URIRef
from rdflib import Literal as RdfLiteral
from rdflib.namespace import RDFS, SKOS
from rdflib.term import Node

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############

Binding = dict[str, Node]

DEFAULT_REPOSITORY = "default"


@runtime_checkable
class QueryService(Protocol):
    """Evaluates parametrized queries against the remote store."""

    async def ask(self, query: str, bindings: Mapping[str, Node]) -> bool:
        """Evaluate a boolean query."""
        ...

    async def select(self, query: str, bindings: Mapping[str, Node]) -> list[Binding]:
        """Evaluate a tuple query and return one binding per solution."""
        ...

    async def update(self, query: str, bindings: Mapping[str, Node]) -> None:
        """Execute an update request."""
        ...


@runtime_checkable
class RepositoryQueryService(Protocol):
    """Query service of a store holding several repositories."""

    def for_repository(self, repository: str) -> QueryService:
        """Return the service evaluating queries against ``repository``."""
        ...


@runtime_checkable
class LabelService(Protocol):
    """Resolves display labels for IRIs."""

    async def resolve_label(self, iri: URIRef) -> str | None:
        """Return a label for ``iri`` or None if there is none."""
        ...


class RdflibQueryService:
    """Query service evaluating SPARQL against an rdflib graph.

    Queries run in a worker thread; access to the graph is serialized.
    """

    def __init__(self, graph: Graph, namespaces: Mapping[str, str] | None = None) -> None:
        self._graph = graph
        self._namespaces = dict(namespaces or {})
        self._lock = threading.Lock()

    @property
    def graph(self) -> Graph:
        return self._graph

    @property
    def lock(self) -> threading.Lock:
        """Lock serializing access to the graph."""
        return self._lock

    async def ask(self, query: str, bindings: Mapping[str, Node]) -> bool:
        return await asyncio.to_thread(self._ask, query, dict(bindings))

    async def select(self, query: str, bindings: Mapping[str, Node]) -> list[Binding]:
        return await asyncio.to_thread(self._select, query, dict(bindings))

    async def update(self, query: str, bindings: Mapping[str, Node]) -> None:
        logger.debug("Executing update with bindings %s", bindings)
        await asyncio.to_thread(self._update, query, dict(bindings))

    def _ask(self, query: str, bindings: dict[str, Node]) -> bool:
        with self._lock:
            result = self._graph.query(query, initNs=self._namespaces, initBindings=bindings)
            return bool(result.askAnswer)

    def _select(self, query: str, bindings: dict[str, Node]) -> list[Binding]:
        with self._lock:
            result = self._graph.query(query, initNs=self._namespaces, initBindings=bindings)
            return [{str(name): node for name, node in row.asdict().items()} for row in result]

    def _update(self, query: str, bindings: dict[str, Node]) -> None:
        with self._lock:
            self._graph.update(query, initNs=self._namespaces, initBindings=bindings)


class RdflibLabelService:
    """Label service reading label predicates from an rdflib graph.

    Labels without language tag are preferred, then the configured languages
    in order, then any label. Lookups run in a worker thread; pass the lock of
    an ``RdflibQueryService`` on the same graph to serialize them with its
    queries and updates.
    """

    def __init__(
        self,
        graph: Graph,
        predicates: Sequence[URIRef] = (RDFS.label, SKOS.prefLabel),
        languages: Sequence[str] = ("en",),
        lock: threading.Lock | None = None,
    ) -> None:
        self._graph = graph
        self._predicates = tuple(predicates)
        self._languages = ("", *languages)
        self._lock = lock if lock is not None else threading.Lock()

    async def resolve_label(self, iri: URIRef) -> str | None:
        return await asyncio.to_thread(self._resolve_label, iri)

    def _resolve_label(self, iri: URIRef) -> str | None:
        with self._lock:
            labels = [
                label
                for predicate in self._predicates
                for label in self._graph.objects(iri, predicate)
                if isinstance(label, RdfLiteral)
            ]
        for language in self._languages:
            for label in labels:
                if (label.language or "") == language:
                    return str(label)
        return str(labels[0]) if labels else None
