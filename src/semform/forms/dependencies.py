# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Rebinding of dependent field queries to the current values of other fields."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from rdflib.term import Node

from semform.model.definitions import FieldDependency
from semform.model.values import CompositeValue, as_rdf_node
from semform.sparql.queries import parametrize

# ###############
# Public Interface
# ###############


@dataclass(frozen=True)
class DependencyContext:
    """Queries of a dependent field bound to the values it depends on.

    Attributes:
        bindings: Nodes keyed by query variable name.
        value_set_pattern: The bound value set query, if any.
        autosuggestion_pattern: The bound autosuggestion query, if any.
    """

    bindings: Mapping[str, Node]
    value_set_pattern: str | None = None
    autosuggestion_pattern: str | None = None


def try_make_bindings(composite: CompositeValue, fields: Mapping[str, str]) -> dict[str, Node] | None:
    """Bind query variables to the first concrete value of each referenced field.

    Args:
        composite: The composite holding the referenced fields.
        fields: Maps field ids to variable names.

    Returns:
        The bindings, or None if any referenced field has no concrete value.
    """
    bindings: dict[str, Node] = {}
    for field_id, variable in fields.items():
        state = composite.fields.get(field_id)
        node = None
        if state is not None:
            node = next((n for n in map(as_rdf_node, state.values) if n is not None), None)
        if node is None:
            return None
        bindings[variable] = node
    return bindings


def make_dependency_context(
    dependency: FieldDependency,
    composite: CompositeValue,
    previous: DependencyContext | None = None,
) -> DependencyContext | None:
    """Compute the bound queries of a dependent field.

    Args:
        dependency: The dependency declaration.
        composite: The composite holding both the dependent and the
            referenced fields.
        previous: The context computed for an earlier snapshot.

    Returns:
        ``previous`` itself if the bindings did not change, a new context
        otherwise, or None if the dependent field is not defined or a
        referenced field has no concrete value.
    """
    definition = composite.definitions.get(dependency.field)
    if definition is None:
        return None

    bindings = try_make_bindings(composite, dependency.dependencies)
    if bindings is None:
        return None
    if previous is not None and dict(previous.bindings) == bindings:
        return previous

    value_set_pattern = dependency.value_set_pattern or definition.value_set_pattern
    autosuggestion_pattern = dependency.autosuggestion_pattern or definition.autosuggestion_pattern
    return DependencyContext(
        bindings=bindings,
        value_set_pattern=parametrize(value_set_pattern, bindings) if value_set_pattern else None,
        autosuggestion_pattern=parametrize(autosuggestion_pattern, bindings) if autosuggestion_pattern else None,
    )
