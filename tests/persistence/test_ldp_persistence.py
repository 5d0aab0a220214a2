# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Tests for LDP container persistence."""

import logging

import pytest
from rdflib import Literal, Namespace, URIRef

from semform.model.definitions import normalize_definitions
from semform.model.values import EMPTY, AtomicValue, CompositeValue, FieldState
from semform.persistence.diff import compute_model_diff
from semform.persistence.ldp import (
    GraphLdpClient,
    LdpClient,
    LdpPersistence,
    create_form_insert_queries,
)
from semform.sparql.services import DEFAULT_REPOSITORY

# ###############
# Test Helpers
# ###############

EX = Namespace("http://example.org/")

_NAME_INSERT = "INSERT { $subject <http://example.org/name> $value } WHERE {}"

_DEFINITIONS = normalize_definitions(
    [
        {"id": "name", "insertPattern": _NAME_INSERT},
        {
            "id": "tag",
            "insertPattern": (
                "INSERT DATA { <http://example.org/a> <http://example.org/b> 1 } ;\n"
                "INSERT { $subject <http://example.org/tag> $value } WHERE {}"
            ),
        },
        {"id": "note"},
    ]
)


def _person(subject=EX.ada, **fields):
    """Create a person composite with literal values."""
    return CompositeValue(
        subject=subject,
        definitions=_DEFINITIONS,
        fields={
            field_id: FieldState(values=tuple(AtomicValue(value=Literal(text)) for text in texts))
            for field_id, texts in fields.items()
        },
    )


class _RecordingLdpClient:
    """LDP client recording every request."""

    def __init__(self):
        self.posted = []
        self.deleted = []

    async def post_updates(self, resource, repository, updates):
        self.posted.append((resource, repository, list(updates)))

    async def delete_resource(self, resource, repository):
        self.deleted.append((resource, repository))


# ###############
# Insert queries
# ###############


def test_insert_queries_for_whole_resource():
    """Every value of every field with an insert pattern is bound."""
    entries = compute_model_diff(EMPTY, _person(name=["Ada", "Countess"], note=["x"]))

    assert create_form_insert_queries(entries) == [
        'INSERT { <http://example.org/ada> <http://example.org/name> "Ada" } WHERE {}',
        'INSERT { <http://example.org/ada> <http://example.org/name> "Countess" } WHERE {}',
    ]


def test_multi_operation_insert_patterns_are_skipped(caplog):
    """Insert patterns with several operations are dropped with a warning."""
    entries = compute_model_diff(EMPTY, _person(tag=["t"]))

    with caplog.at_level(logging.WARNING, logger="semform.persistence.ldp"):
        queries = create_form_insert_queries(entries)

    assert queries == []
    assert "expected a single update operation but got 2" in caplog.text


# ###############
# LdpPersistence
# ###############


def test_graph_client_satisfies_protocol():
    """The local client implements the LDP transport."""
    assert isinstance(GraphLdpClient(), LdpClient)


@pytest.mark.asyncio
async def test_persist_posts_complete_state():
    """The whole current state is posted to the default container."""
    client = _RecordingLdpClient()

    await LdpPersistence(client).persist(_person(name=["Ada"]), _person(name=["Grace"]))

    assert client.posted == [
        (
            "http://example.org/ada/container",
            DEFAULT_REPOSITORY,
            ['INSERT { <http://example.org/ada> <http://example.org/name> "Grace" } WHERE {}'],
        )
    ]


@pytest.mark.asyncio
async def test_persist_uses_configured_container():
    """A configured container receives every resource."""
    client = _RecordingLdpClient()
    persistence = LdpPersistence(client, container_iri="http://example.org/people/", repository="test")

    await persistence.persist(EMPTY, _person(name=["Ada"]))

    assert client.posted[0][:2] == ("http://example.org/people/", "test")
    assert persistence.target_resource(EX.grace) == "http://example.org/people/"


@pytest.mark.asyncio
async def test_persist_empty_model_deletes_resource():
    """Persisting an empty model deletes a stored resource."""
    client = _RecordingLdpClient()

    await LdpPersistence(client).persist(_person(name=["Ada"]), EMPTY)
    await LdpPersistence(client).persist(_person(subject=URIRef(""), name=["Ada"]), EMPTY)
    await LdpPersistence(client).persist(EMPTY, EMPTY)

    assert client.deleted == [("http://example.org/ada/container", DEFAULT_REPOSITORY)]
    assert client.posted == []


@pytest.mark.asyncio
async def test_graph_client_replaces_resource_content():
    """Posting replaces the named graph of the resource."""
    graph_client = GraphLdpClient()
    persistence = LdpPersistence(graph_client)
    resource = URIRef("http://example.org/ada/container")

    await persistence.persist(EMPTY, _person(name=["Ada"]))
    await persistence.persist(_person(name=["Ada"]), _person(name=["Grace"]))

    stored = graph_client.dataset.graph(resource)
    assert set(stored.objects(EX.ada, EX.name)) == {Literal("Grace")}

    await persistence.persist(_person(name=["Grace"]), EMPTY)

    assert len(graph_client.dataset.graph(resource)) == 0
