# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Difference between two versions of a composite tree.

The diff lists, per resource and field, the RDF nodes to remove from and to
add to the store. Persistence backends turn the entries into store specific
write operations.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from rdflib import Literal, URIRef
from rdflib.namespace import XSD
from rdflib.term import Node

from semform.model.definitions import FieldDefinition
from semform.model.values import (
    EMPTY,
    CompositeValue,
    EmptyValue,
    FieldValue,
    as_rdf_node,
    is_placeholder,
)

# ###############
# Public Interface
# ###############


@dataclass(frozen=True)
class InsertedValue:
    """A node to add, with its position for ordered fields."""

    value: Node
    index: Literal | None = None


@dataclass(frozen=True)
class ModelDiffEntry:
    """Changes of one field of one resource.

    Attributes:
        subject: IRI of the resource owning the field.
        definition: Definition of the field.
        deleted: Nodes to remove, in their original order.
        inserted: Nodes to add, in their new order.
    """

    subject: URIRef
    definition: FieldDefinition
    deleted: tuple[Node, ...]
    inserted: tuple[InsertedValue, ...]


def compute_model_diff(
    base: CompositeValue | EmptyValue,
    changed: CompositeValue | EmptyValue,
) -> list[ModelDiffEntry]:
    """Compute the changes turning ``base`` into ``changed``.

    Composites without an assigned subject count as empty on both sides.
    Values are compared by RDF node. Ordered fields are rewritten completely
    whenever their sequence changes, with ``xsd:integer`` positions attached
    to the inserted values. Nested composites are matched by subject.

    Args:
        base: The model as stored.
        changed: The edited model.

    Returns:
        One entry per field with at least one deleted or inserted node.
    """
    result: list[ModelDiffEntry] = []
    _collect_composite_diff(_named_or_empty(base), _named_or_empty(changed), result)
    return result


# ################
# Implementation
# ################


def _named_or_empty(value: CompositeValue | EmptyValue) -> CompositeValue | EmptyValue:
    if isinstance(value, CompositeValue) and is_placeholder(value.subject):
        return EMPTY
    return value


def _collect_composite_diff(
    base: CompositeValue | EmptyValue,
    changed: CompositeValue | EmptyValue,
    result: list[ModelDiffEntry],
) -> None:
    if isinstance(base, CompositeValue):
        for field_id, state in base.fields.items():
            definition = base.definitions.get(field_id)
            if definition is None:
                continue
            _collect_field_diff(base.subject, definition, state.values, _field_values(changed, field_id), result)

    if isinstance(changed, CompositeValue):
        for field_id, state in changed.fields.items():
            if isinstance(base, CompositeValue) and field_id in base.fields:
                continue
            definition = changed.definitions.get(field_id)
            if definition is None:
                continue
            _collect_field_diff(changed.subject, definition, (), state.values, result)


def _field_values(composite: CompositeValue | EmptyValue, field_id: str) -> tuple[FieldValue, ...]:
    if isinstance(composite, CompositeValue) and field_id in composite.fields:
        return composite.fields[field_id].values
    return ()


def _collect_field_diff(
    subject: URIRef,
    definition: FieldDefinition,
    base: Sequence[FieldValue],
    changed: Sequence[FieldValue],
    result: list[ModelDiffEntry],
) -> None:
    base_nodes = _ordered_nodes(base)
    changed_nodes = _ordered_nodes(changed)

    if definition.ordered_with is not None and base_nodes != changed_nodes:
        deleted = tuple(base_nodes)
        inserted = tuple(
            InsertedValue(value=node, index=Literal(index, datatype=XSD.integer))
            for index, node in enumerate(changed_nodes)
        )
    else:
        deleted = tuple(node for node in base_nodes if node not in changed_nodes)
        inserted = tuple(InsertedValue(value=node) for node in changed_nodes if node not in base_nodes)

    if deleted or inserted:
        result.append(ModelDiffEntry(subject=subject, definition=definition, deleted=deleted, inserted=inserted))

    base_composites = _pick_composites(base)
    changed_composites = _pick_composites(changed)
    for key, base_composite in base_composites.items():
        _collect_composite_diff(base_composite, changed_composites.get(key, EMPTY), result)
    for key, changed_composite in changed_composites.items():
        if key not in base_composites:
            _collect_composite_diff(EMPTY, changed_composite, result)


def _ordered_nodes(values: Sequence[FieldValue]) -> list[Node]:
    nodes: dict[Node, None] = {}
    for value in values:
        node = as_rdf_node(value)
        if node is not None:
            nodes.setdefault(node, None)
    return list(nodes)


def _pick_composites(values: Sequence[FieldValue]) -> dict[URIRef, CompositeValue]:
    return {
        value.subject: value
        for value in values
        if isinstance(value, CompositeValue) and not is_placeholder(value.subject)
    }
