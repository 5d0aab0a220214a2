# Copyright 2026 Semform Contributors
# SPDX-License-Identifier: Apache-2.0

"""Tests for the form value model."""

import pytest
from rdflib import BNode, Literal, URIRef

from semform.model.values import (
    EMPTY,
    EMPTY_STATE,
    PLACEHOLDER_SUBJECT,
    AtomicValue,
    CompositeValue,
    DataState,
    ErrorKind,
    FieldError,
    FieldState,
    as_rdf_node,
    delete_value_at_index,
    from_labeled,
    get_single,
    ignore_loading_errors,
    is_placeholder,
    is_prevent_submit,
    map_fields,
    merge_data_state,
    replace_error,
    set_errors,
    set_field,
    set_state,
    set_value_at_index,
)

# ###############
# Test Helpers
# ###############

_SUBJECT = URIRef("http://example.org/person/1")


def _atomic(text, language=None):
    """Create an atomic literal value."""
    return AtomicValue(value=Literal(text, lang=language))


def _error(kind=ErrorKind.INPUT, message="broken"):
    """Create a field error."""
    return FieldError(kind=kind, message=message)


# ###############
# Data state
# ###############


def test_merge_data_state_precedence():
    """Loading wins over verifying, which wins over ready."""
    assert merge_data_state(DataState.READY, DataState.READY) is DataState.READY
    assert merge_data_state(DataState.READY, DataState.VERIFYING) is DataState.VERIFYING
    assert merge_data_state(DataState.VERIFYING, DataState.LOADING) is DataState.LOADING
    assert merge_data_state(DataState.LOADING, DataState.READY) is DataState.LOADING


def test_loading_errors_block_only_required_fields():
    """A loading error prevents submission only when the field is required."""
    loading = _error(ErrorKind.LOADING)

    assert not is_prevent_submit(loading, required=False)
    assert is_prevent_submit(loading, required=True)
    assert is_prevent_submit(_error(ErrorKind.VALIDATION))
    assert is_prevent_submit(_error(ErrorKind.CONFIGURATION))


def test_ignore_loading_errors_predicate():
    """The lenient predicate never blocks on loading errors."""
    assert not ignore_loading_errors(_error(ErrorKind.LOADING), required=True)
    assert ignore_loading_errors(_error(ErrorKind.INPUT))


# ###############
# Placeholders and nodes
# ###############


def test_placeholder_subject_is_empty_iri():
    """Only the empty IRI is a placeholder."""
    assert is_placeholder(PLACEHOLDER_SUBJECT)
    assert is_placeholder(URIRef(""))
    assert not is_placeholder(_SUBJECT)


def test_placeholder_composites_compare_equal():
    """Two fresh placeholder composites are equal values."""
    assert CompositeValue() == CompositeValue(subject=URIRef(""))


def test_as_rdf_node():
    """Atomic values and identified composites map to RDF nodes."""
    blank = BNode()

    assert as_rdf_node(AtomicValue(value=blank)) == blank
    assert as_rdf_node(_atomic("Ada")) == Literal("Ada")
    assert as_rdf_node(CompositeValue(subject=_SUBJECT)) == _SUBJECT
    assert as_rdf_node(CompositeValue()) is None
    assert as_rdf_node(EMPTY) is None


# ###############
# Errors
# ###############


def test_set_errors_returns_copy():
    """Setting errors leaves the original value untouched."""
    value = _atomic("Ada")
    error = _error()

    updated = set_errors(value, [error])

    assert updated.errors == (error,)
    assert value.errors == ()


def test_set_errors_keeps_identity_when_unchanged():
    """Setting the same errors returns the same object."""
    value = _atomic("Ada")

    assert set_errors(value, []) is value


def test_set_errors_rejects_none():
    """None is not a valid error list."""
    with pytest.raises(ValueError):
        set_errors(_atomic("Ada"), None)


def test_replace_error_clears_with_none():
    """Replacing with None removes all errors."""
    value = set_errors(EMPTY, [_error(), _error(message="other")])

    assert replace_error(value, None).errors == ()
    assert replace_error(value, _error(message="only")).errors == (_error(message="only"),)


# ###############
# Single value selection
# ###############


def test_get_single_prefers_plain_literal():
    """A literal without language tag wins over tagged ones."""
    german = _atomic("Hallo", "de")
    english = _atomic("Hello", "en")
    plain = _atomic("Hi")

    assert get_single([german, english, plain]) is plain


def test_get_single_prefers_english_over_other_languages():
    """Without a plain literal, the English one is chosen."""
    german = _atomic("Hallo", "de")
    english = _atomic("Hello", "en")

    assert get_single([german, english]) is english


def test_get_single_falls_back_to_first_value():
    """If no literal qualifies, the first value is returned."""
    iri = AtomicValue(value=_SUBJECT)
    german = _atomic("Hallo", "de")

    assert get_single([iri, german]) is iri
    assert get_single([]) is EMPTY


def test_from_labeled():
    """Atomic values carry node and label."""
    value = from_labeled(_SUBJECT, "Person")

    assert value.value == _SUBJECT
    assert value.label == "Person"
    with pytest.raises(ValueError):
        from_labeled(None)


# ###############
# Field state updates
# ###############


def test_set_state_replaces_values():
    """Values are replaced and converted to a tuple."""
    state = set_state(EMPTY_STATE, values=[_atomic("a")])

    assert state.values == (_atomic("a"),)
    assert EMPTY_STATE.values == ()


def test_set_state_rejects_none_and_unknown_names():
    """None lists and unknown attributes are rejected."""
    with pytest.raises(ValueError):
        set_state(EMPTY_STATE, values=None)
    with pytest.raises(ValueError):
        set_state(EMPTY_STATE, labels=[])


def test_set_value_at_index():
    """The value at an index is replaced, others are kept."""
    state = FieldState(values=(_atomic("a"), _atomic("b")))

    updated = set_value_at_index(state, 1, _atomic("c"))

    assert updated.values == (_atomic("a"), _atomic("c"))


def test_set_value_at_index_out_of_range():
    """Writing past the end of the value list fails."""
    state = FieldState(values=(_atomic("a"),))

    with pytest.raises(IndexError):
        set_value_at_index(state, 1, _atomic("b"))
    with pytest.raises(IndexError):
        set_value_at_index(state, -1, _atomic("b"))


def test_delete_value_at_index():
    """Deleting removes exactly one value."""
    state = FieldState(values=(_atomic("a"), _atomic("b")))

    assert delete_value_at_index(state, 0).values == (_atomic("b"),)
    with pytest.raises(IndexError):
        delete_value_at_index(state, 2)


def test_set_field_keeps_identity_for_same_state():
    """Setting an identical state object does not copy the composite."""
    state = FieldState(values=(_atomic("a"),))
    composite = CompositeValue(subject=_SUBJECT, fields={"name": state})

    assert set_field(composite, "name", composite.fields["name"]) is composite


def test_set_field_shares_untouched_fields():
    """Only the replaced field changes, the rest is shared."""
    name = FieldState(values=(_atomic("a"),))
    composite = CompositeValue(subject=_SUBJECT, fields={"name": name})

    updated = set_field(composite, "age", FieldState(values=(AtomicValue(value=Literal(3)),)))

    assert updated is not composite
    assert updated.fields["name"] is composite.fields["name"]
    assert "age" not in composite.fields


def test_map_fields_identity_when_unchanged():
    """Mapping with an identity function returns the same composite."""
    composite = CompositeValue(subject=_SUBJECT, fields={"name": FieldState(values=(_atomic("a"),))})

    assert map_fields(composite, lambda field_id, state: state) is composite


def test_map_fields_applies_mapper():
    """Changed states are collected into a new composite."""
    composite = CompositeValue(subject=_SUBJECT, fields={"name": FieldState(values=(_atomic("a"),))})

    updated = map_fields(composite, lambda field_id, state: set_state(state, errors=[_error()]))

    assert updated.fields["name"].errors == (_error(),)
