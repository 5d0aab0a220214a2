# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Tests for the rdflib backed query and label services."""

import asyncio

import pytest
from rdflib import Graph, Literal, Namespace
from rdflib.namespace import RDFS, SKOS

from semform.sparql.services import LabelService, QueryService, RdflibLabelService, RdflibQueryService

# ###############
# Test Helpers
# ###############

EX = Namespace("http://example.org/")


def _graph():
    """Create a graph with one person."""
    graph = Graph()
    graph.add((EX.ada, EX.name, Literal("Ada")))
    return graph


# ###############
# RdflibQueryService
# ###############


def test_services_satisfy_protocols():
    """The rdflib services implement the engine protocols."""
    assert isinstance(RdflibQueryService(Graph()), QueryService)
    assert isinstance(RdflibLabelService(Graph()), LabelService)


@pytest.mark.asyncio
async def test_ask_with_bindings():
    """Bindings are applied to ASK queries."""
    service = RdflibQueryService(_graph())
    query = "ASK { $subject <http://example.org/name> ?name }"

    assert await service.ask(query, {"subject": EX.ada})
    assert not await service.ask(query, {"subject": EX.grace})


@pytest.mark.asyncio
async def test_select_returns_bindings():
    """Each solution is returned as a dict keyed by variable name."""
    service = RdflibQueryService(_graph())

    rows = await service.select("SELECT ?name WHERE { $subject <http://example.org/name> ?name }", {"subject": EX.ada})

    assert len(rows) == 1
    assert rows[0]["name"] == Literal("Ada")


@pytest.mark.asyncio
async def test_select_with_namespaces():
    """Configured namespaces are available as prefixes."""
    service = RdflibQueryService(_graph(), namespaces={"ex": str(EX)})

    rows = await service.select("SELECT ?name WHERE { ex:ada ex:name ?name }", {})

    assert [row["name"] for row in rows] == [Literal("Ada")]


@pytest.mark.asyncio
async def test_update_changes_graph():
    """Updates are applied to the underlying graph."""
    service = RdflibQueryService(_graph())

    await service.update('INSERT DATA { <http://example.org/grace> <http://example.org/name> "Grace" }', {})

    assert (EX.grace, EX.name, Literal("Grace")) in service.graph


# ###############
# RdflibLabelService
# ###############


@pytest.mark.asyncio
async def test_label_prefers_plain_literal():
    """A label without language tag wins."""
    graph = Graph()
    graph.add((EX.ada, RDFS.label, Literal("Ada (en)", lang="en")))
    graph.add((EX.ada, SKOS.prefLabel, Literal("Ada")))

    assert await RdflibLabelService(graph).resolve_label(EX.ada) == "Ada"


@pytest.mark.asyncio
async def test_label_prefers_configured_language():
    """Configured languages are tried in order."""
    graph = Graph()
    graph.add((EX.ada, RDFS.label, Literal("Ada (de)", lang="de")))
    graph.add((EX.ada, RDFS.label, Literal("Ada (en)", lang="en")))

    assert await RdflibLabelService(graph).resolve_label(EX.ada) == "Ada (en)"
    assert await RdflibLabelService(graph, languages=("de",)).resolve_label(EX.ada) == "Ada (de)"


@pytest.mark.asyncio
async def test_label_falls_back_to_any_label():
    """Any label is better than none."""
    graph = Graph()
    graph.add((EX.ada, RDFS.label, Literal("Ada (fr)", lang="fr")))

    service = RdflibLabelService(graph)

    assert await service.resolve_label(EX.ada) == "Ada (fr)"
    assert await service.resolve_label(EX.grace) is None


@pytest.mark.asyncio
async def test_label_lookup_shares_query_service_lock():
    """Lookups wait while the query service holds the graph."""
    graph = Graph()
    graph.add((EX.ada, RDFS.label, Literal("Ada")))
    queries = RdflibQueryService(graph)
    labels = RdflibLabelService(graph, lock=queries.lock)

    queries.lock.acquire()
    try:
        lookup = asyncio.ensure_future(labels.resolve_label(EX.ada))
        await asyncio.sleep(0.05)
        assert not lookup.done()
    finally:
        queries.lock.release()

    assert await lookup == "Ada"
