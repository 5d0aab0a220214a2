# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Tests for query pattern parametrization and classification."""

import pytest
from rdflib import Literal, URIRef

from semform.sparql.queries import (
    QuerySyntaxError,
    UpdateOperation,
    parametrize,
    query_form,
    set_default_graph,
    update_operations,
)

# ###############
# Test Helpers
# ###############

_SUBJECT = URIRef("http://example.org/person/1")


# ###############
# parametrize
# ###############


def test_parametrize_replaces_both_variable_styles():
    """Variables written with ? and $ are substituted."""
    query = "ASK { $subject <http://example.org/name> ?value }"

    result = parametrize(query, {"subject": _SUBJECT, "value": Literal("Ada")})

    assert result == 'ASK { <http://example.org/person/1> <http://example.org/name> "Ada" }'


def test_parametrize_leaves_unbound_variables():
    """Variables without a binding stay in the query."""
    query = "SELECT ?value WHERE { $subject <http://example.org/name> ?value }"

    result = parametrize(query, {"subject": _SUBJECT})

    assert result == "SELECT ?value WHERE { <http://example.org/person/1> <http://example.org/name> ?value }"


def test_parametrize_skips_strings_iris_and_comments():
    """Question marks inside literals, IRIs and comments are not variables."""
    query = (
        "SELECT ?value WHERE {\n"
        '  $subject <http://example.org/p?subject> ?value . FILTER(?value != "?subject")\n'
        "} # ?subject\n"
    )

    result = parametrize(query, {"subject": _SUBJECT})

    assert result == (
        "SELECT ?value WHERE {\n"
        '  <http://example.org/person/1> <http://example.org/p?subject> ?value . FILTER(?value != "?subject")\n'
        "} # ?subject\n"
    )


def test_parametrize_uses_typed_literal_syntax():
    """Typed literals are written with their datatype."""
    result = parametrize("ASK { ?s ?p $value }", {"value": Literal(5)})

    assert result == 'ASK { ?s ?p "5"^^<http://www.w3.org/2001/XMLSchema#integer> }'


def test_parametrize_without_bindings_returns_query():
    """An empty binding set is a no-op."""
    query = "ASK { ?s ?p ?o }"

    assert parametrize(query, {}) is query


# ###############
# query_form
# ###############


@pytest.mark.parametrize(
    ("query", "expected"),
    [
        ("SELECT ?s WHERE { ?s ?p ?o }", "SELECT"),
        ("ASK { ?s ?p ?o }", "ASK"),
        ("CONSTRUCT { ?s ?p ?o } WHERE { ?s ?p ?o }", "CONSTRUCT"),
        ("PREFIX ex: <http://example.org/> ASK { ?s ex:p ?o }", "ASK"),
    ],
)
def test_query_form(query, expected):
    """The query form is reported in upper case."""
    assert query_form(query) == expected


def test_query_form_rejects_invalid_query():
    """Syntax errors are reported as QuerySyntaxError."""
    with pytest.raises(QuerySyntaxError):
        query_form("SELEKT ?s WHERE { ?s ?p ?o }")


# ###############
# update_operations
# ###############


def test_insert_where_operation():
    """An INSERT WHERE is a Modify operation that only inserts."""
    operations = update_operations("INSERT { ?s <http://example.org/p> ?o } WHERE { ?s <http://example.org/q> ?o }")

    assert operations == [UpdateOperation(name="Modify", has_insert=True, has_delete=False)]


def test_delete_insert_where_operation():
    """A DELETE/INSERT WHERE reports both parts."""
    operations = update_operations(
        "DELETE { ?s <http://example.org/p> ?o } INSERT { ?s <http://example.org/p> ?n } WHERE { ?s ?p ?o }"
    )

    assert operations == [UpdateOperation(name="Modify", has_insert=True, has_delete=True)]


def test_data_and_multiple_operations():
    """Every operation of a request is described."""
    operations = update_operations(
        "INSERT DATA { <http://example.org/s> <http://example.org/p> 1 } ;\n"
        "DELETE WHERE { <http://example.org/s> ?p ?o }"
    )

    assert [operation.name for operation in operations] == ["InsertData", "DeleteWhere"]
    assert operations[0].has_insert and not operations[0].has_delete
    assert operations[1].has_delete and not operations[1].has_insert


def test_update_operations_rejects_invalid_update():
    """Queries are not valid updates."""
    with pytest.raises(QuerySyntaxError):
        update_operations("SELECT ?s WHERE { ?s ?p ?o }")


# ###############
# set_default_graph
# ###############

_GRAPH = "http://example.org/graph"


def test_set_default_graph_without_graphs_returns_update():
    update = "INSERT { ?s <http://example.org/p> ?o } WHERE { ?s <http://example.org/q> ?o }"

    assert set_default_graph(update) is update


def test_insert_template_is_moved_to_graph():
    """Only the insert template is wrapped; the WHERE clause is unchanged."""
    update = "INSERT { ?s <http://example.org/p> ?o } WHERE { ?s <http://example.org/q> ?o }"

    result = set_default_graph(update, insert_graph=_GRAPH)

    assert result == (
        "INSERT { GRAPH <http://example.org/graph> { ?s <http://example.org/p> ?o } } "
        "WHERE { ?s <http://example.org/q> ?o }"
    )
    assert update_operations(result) == [UpdateOperation(name="Modify", has_insert=True, has_delete=False)]


def test_delete_and_insert_templates_use_their_own_graph():
    update = "DELETE { ?s <http://example.org/p> ?o } INSERT { ?s <http://example.org/p> ?n } WHERE { ?s ?p ?o }"

    assert set_default_graph(update, delete_graph=_GRAPH) == (
        "DELETE { GRAPH <http://example.org/graph> { ?s <http://example.org/p> ?o } } "
        "INSERT { ?s <http://example.org/p> ?n } WHERE { ?s ?p ?o }"
    )
    assert set_default_graph(update, insert_graph=_GRAPH, delete_graph="http://example.org/old") == (
        "DELETE { GRAPH <http://example.org/old> { ?s <http://example.org/p> ?o } } "
        "INSERT { GRAPH <http://example.org/graph> { ?s <http://example.org/p> ?n } } WHERE { ?s ?p ?o }"
    )


def test_explicit_graph_blocks_are_kept():
    """Statements already written to a named graph stay there."""
    update = (
        "INSERT DATA { <http://example.org/s> <http://example.org/p> 1 . "
        "GRAPH <http://example.org/other> { <http://example.org/s> <http://example.org/p> 2 } }"
    )

    result = set_default_graph(update, insert_graph=_GRAPH)

    assert result == (
        "INSERT DATA { GRAPH <http://example.org/graph> { <http://example.org/s> <http://example.org/p> 1 . } "
        "GRAPH <http://example.org/other> { <http://example.org/s> <http://example.org/p> 2 } }"
    )
    assert [operation.name for operation in update_operations(result)] == ["InsertData"]


def test_set_default_graph_skips_strings():
    """Keywords and braces inside literals are not templates."""
    update = 'INSERT { ?s <http://example.org/p> "DELETE { }" } WHERE {}'

    assert set_default_graph(update, delete_graph=_GRAPH) == update
    assert set_default_graph(update, insert_graph=_GRAPH) == (
        'INSERT { GRAPH <http://example.org/graph> { ?s <http://example.org/p> "DELETE { }" } } WHERE {}'
    )
