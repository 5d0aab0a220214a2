# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Tests for dependent field query binding."""

from rdflib import Literal, Namespace

from semform.forms.dependencies import make_dependency_context, try_make_bindings
from semform.model.definitions import FieldDependency, normalize_definitions
from semform.model.values import EMPTY, AtomicValue, CompositeValue, FieldState

# ###############
# Test Helpers
# ###############

EX = Namespace("http://example.org/")

_CITY_VALUES = "SELECT ?value WHERE { ?value <http://example.org/country> $country }"


def _composite(country=EX.france):
    """Create an address composite with a country and a dependent city field."""
    definitions = normalize_definitions(
        [
            {"id": "country", "range": "http://example.org/Country"},
            {"id": "city", "range": "http://example.org/City", "valueSetPattern": _CITY_VALUES},
        ]
    )
    countries = (EMPTY, AtomicValue(value=country)) if country is not None else (EMPTY,)
    return CompositeValue(
        subject=EX.address,
        definitions=definitions,
        fields={"country": FieldState(values=countries), "city": FieldState(values=(EMPTY,))},
    )


# ###############
# try_make_bindings
# ###############


def test_bindings_use_first_concrete_value():
    """Empty slots are skipped when binding a field."""
    assert try_make_bindings(_composite(), {"country": "country"}) == {"country": EX.france}


def test_bindings_fail_without_value():
    """A referenced field without a concrete value prevents binding."""
    assert try_make_bindings(_composite(country=None), {"country": "country"}) is None
    assert try_make_bindings(_composite(), {"missing": "x"}) is None


def test_bindings_of_literals():
    """Literal values are bound as they are."""
    composite = CompositeValue(fields={"name": FieldState(values=(AtomicValue(value=Literal("Ada")),))})

    assert try_make_bindings(composite, {"name": "n"}) == {"n": Literal("Ada")}


# ###############
# make_dependency_context
# ###############


def test_context_binds_value_set_pattern():
    """The value set query of the dependent field is parametrized."""
    dependency = FieldDependency(field="city", dependencies={"country": "country"})

    context = make_dependency_context(dependency, _composite())

    assert context.bindings == {"country": EX.france}
    assert context.value_set_pattern == (
        "SELECT ?value WHERE { ?value <http://example.org/country> <http://example.org/france> }"
    )
    assert context.autosuggestion_pattern is None


def test_dependency_pattern_overrides_definition():
    """Patterns declared on the dependency win over the definition."""
    dependency = FieldDependency(
        field="city",
        dependencies={"country": "c"},
        autosuggestionPattern="SELECT ?value WHERE { ?value <http://example.org/in> ?c }",
    )

    context = make_dependency_context(dependency, _composite())

    assert context.autosuggestion_pattern == (
        "SELECT ?value WHERE { ?value <http://example.org/in> <http://example.org/france> }"
    )


def test_context_is_reused_while_bindings_are_equal():
    """Recomputing with unchanged bindings returns the previous context."""
    dependency = FieldDependency(field="city", dependencies={"country": "country"})
    first = make_dependency_context(dependency, _composite())

    assert make_dependency_context(dependency, _composite(), first) is first
    assert make_dependency_context(dependency, _composite(country=EX.spain), first) is not first


def test_context_requires_definition_and_values():
    """Unknown dependent fields and unbound dependencies yield no context."""
    assert make_dependency_context(FieldDependency(field="zip", dependencies={"country": "c"}), _composite()) is None
    assert (
        make_dependency_context(
            FieldDependency(field="city", dependencies={"country": "c"}), _composite(country=None)
        )
        is None
    )
