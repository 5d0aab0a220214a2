# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Value model for semantic forms.

A form edits a tree of field values. Every node of the tree is one of three
shapes: an empty slot, an atomic RDF node (IRI, literal or blank node), or a
composite resource with its own subject and fields. All models are frozen;
updates produce new objects and leave untouched subtrees shared, so callers
may use identity checks for change detection.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict
from pydantic import Field as _Field
from rdflib import URIRef
from rdflib import Literal as RdfLiteral
from rdflib.term import Node

from semform.model.definitions import FieldDefinition, MultipleFieldConstraint

# ###############
# Public Interface
# ###############

PLACEHOLDER_SUBJECT = URIRef("")
"""Subject of a composite whose identity has not been generated yet."""


class ErrorKind(Enum):
    """Origin of a field error."""

    CONFIGURATION = "configuration"
    LOADING = "loading"
    INPUT = "input"
    VALIDATION = "validation"


class DataState(Enum):
    """Aggregated readiness of a form or one of its composites."""

    LOADING = "loading"
    VERIFYING = "verifying"
    READY = "ready"


class FieldError(BaseModel):
    """An error attached to a field state or to a single value.

    Attributes:
        kind: Category of the error.
        message: Human-readable description.
        source: Opaque token identifying who produced the error. Validation
            passes use it to remove exactly the errors they added before.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: ErrorKind
    message: str
    source: Any = None


class EmptyValue(BaseModel):
    """An unfilled value slot."""

    model_config = ConfigDict(frozen=True)

    type: Literal["empty"] = "empty"
    errors: tuple[FieldError, ...] = ()


class AtomicValue(BaseModel):
    """A single RDF node with an optional display label."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    type: Literal["atomic"] = "atomic"
    value: Node
    label: str | None = None
    errors: tuple[FieldError, ...] = ()


class CompositeValue(BaseModel):
    """A structured resource identified by its subject IRI.

    Attributes:
        subject: IRI of the resource or ``PLACEHOLDER_SUBJECT``.
        editable_subject: Whether the user may change the subject.
        suggest_subject: Whether the subject should be regenerated from the
            subject template whenever a field changes.
        definitions: Field definitions keyed by field id.
        constraints: Constraints spanning several fields of this resource.
        discriminator: Node selecting among alternative nested shapes.
        fields: Current state of every field keyed by field id.
        errors: Errors concerning the resource as a whole.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    type: Literal["composite"] = "composite"
    subject: URIRef = PLACEHOLDER_SUBJECT
    editable_subject: bool = False
    suggest_subject: bool = False
    definitions: dict[str, FieldDefinition] = _Field(default_factory=dict)
    constraints: tuple[MultipleFieldConstraint, ...] = ()
    discriminator: Node | None = None
    fields: dict[str, FieldState] = _Field(default_factory=dict)
    errors: tuple[FieldError, ...] = ()


FieldValue = Annotated[
    EmptyValue | AtomicValue | CompositeValue,
    _Field(discriminator="type"),
]


class FieldState(BaseModel):
    """Values and field-level errors of a single field."""

    model_config = ConfigDict(frozen=True)

    values: tuple[FieldValue, ...] = ()
    errors: tuple[FieldError, ...] = ()


CompositeValue.model_rebuild()
FieldState.model_rebuild()

EMPTY = EmptyValue()
EMPTY_STATE = FieldState()

CompositeChange = Callable[[CompositeValue], CompositeValue]
"""An incremental transformation applied to the latest model snapshot."""


def merge_data_state(a: DataState, b: DataState) -> DataState:
    """Combine two data states with precedence Loading > Verifying > Ready."""
    if a is DataState.LOADING or b is DataState.LOADING:
        return DataState.LOADING
    if a is DataState.VERIFYING or b is DataState.VERIFYING:
        return DataState.VERIFYING
    return DataState.READY


def is_prevent_submit(error: FieldError, required: bool = False) -> bool:
    """Default blocking predicate for submission.

    Configuration, input and validation errors always block. Loading errors
    block only when they sit on a required field.
    """
    if error.kind is ErrorKind.LOADING:
        return required
    return True


def ignore_loading_errors(error: FieldError, required: bool = False) -> bool:
    """Blocking predicate that never blocks on loading errors."""
    return error.kind is not ErrorKind.LOADING


def is_placeholder(subject: URIRef) -> bool:
    """Return True if ``subject`` has not been assigned yet."""
    return len(subject) == 0


def is_empty(value: Any) -> bool:
    return isinstance(value, EmptyValue)


def is_atomic(value: Any) -> bool:
    return isinstance(value, AtomicValue)


def is_composite(value: Any) -> bool:
    return isinstance(value, CompositeValue)


def as_rdf_node(value: FieldValue) -> Node | None:
    """Return the RDF node represented by a value.

    Atomic values yield their node, composites with an assigned subject yield
    the subject. Empty values and placeholder composites yield None.
    """
    if isinstance(value, AtomicValue):
        return value.value
    if isinstance(value, CompositeValue) and not is_placeholder(value.subject):
        return value.subject
    return None


def get_errors(value: FieldValue) -> tuple[FieldError, ...]:
    return value.errors


def set_errors(value: FieldValue, errors: Iterable[FieldError]) -> FieldValue:
    """Return a copy of ``value`` with ``errors`` replacing its errors.

    Raises:
        ValueError: If ``errors`` is None.
    """
    if errors is None:
        raise ValueError("Cannot set errors to None")
    errors = tuple(errors)
    if errors == value.errors:
        return value
    return value.model_copy(update={"errors": errors})


def replace_error(value: FieldValue, error: FieldError | None) -> FieldValue:
    """Replace all errors of ``value`` with ``error`` or clear them."""
    return set_errors(value, [error] if error is not None else [])


def get_single(values: Sequence[FieldValue]) -> FieldValue:
    """Pick one representative value.

    Prefers a literal without language tag, then a literal tagged ``en``,
    then the first value. Returns an empty value if there are no values.
    """
    for language in ("", "en"):
        for value in values:
            if isinstance(value, AtomicValue) and isinstance(value.value, RdfLiteral):
                if (value.value.language or "") == language:
                    return value
    return values[0] if values else EMPTY


def from_labeled(value: Node, label: str | None = None, errors: Iterable[FieldError] = ()) -> AtomicValue:
    """Create an atomic value from a node and its optional label.

    Raises:
        ValueError: If ``value`` is None.
    """
    if value is None:
        raise ValueError("Cannot create atomic value from None")
    return AtomicValue(value=value, label=label, errors=tuple(errors))


def set_state(state: FieldState, **changes: Iterable[Any]) -> FieldState:
    """Return a copy of ``state`` with ``values`` and/or ``errors`` replaced.

    Raises:
        ValueError: If a given list is None or an unknown attribute is given.
    """
    update: dict[str, tuple[Any, ...]] = {}
    for name, items in changes.items():
        if name not in ("values", "errors"):
            raise ValueError(f"Unknown field state attribute '{name}'")
        if items is None:
            raise ValueError(f"Cannot set field state {name} to None")
        update[name] = tuple(items)
    if not update:
        return state
    return state.model_copy(update=update)


def set_value_at_index(state: FieldState, index: int, value: FieldValue) -> FieldState:
    """Return a copy of ``state`` with the value at ``index`` replaced.

    Raises:
        IndexError: If ``index`` is out of range.
    """
    if not 0 <= index < len(state.values):
        raise IndexError(f"Cannot set field value: index {index} is out of range")
    values = list(state.values)
    values[index] = value
    return set_state(state, values=values)


def delete_value_at_index(state: FieldState, index: int) -> FieldState:
    """Return a copy of ``state`` without the value at ``index``.

    Raises:
        IndexError: If ``index`` is out of range.
    """
    if not 0 <= index < len(state.values):
        raise IndexError(f"Cannot delete field value: index {index} is out of range")
    values = list(state.values)
    del values[index]
    return set_state(state, values=values)


def set_field(composite: CompositeValue, field_id: str, state: FieldState) -> CompositeValue:
    """Return a copy of ``composite`` with the state of one field replaced."""
    if composite.fields.get(field_id) is state:
        return composite
    return composite.model_copy(update={"fields": {**composite.fields, field_id: state}})


def map_fields(
    composite: CompositeValue,
    mapper: Callable[[str, FieldState], FieldState],
) -> CompositeValue:
    """Apply ``mapper`` to every field state, keeping identity if nothing changed."""
    changed = False
    fields: dict[str, FieldState] = {}
    for field_id, state in composite.fields.items():
        new_state = mapper(field_id, state)
        changed = changed or new_state is not state
        fields[field_id] = new_state
    if not changed:
        return composite
    return composite.model_copy(update={"fields": fields})
